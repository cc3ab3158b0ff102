"""REST API for learning paths."""
