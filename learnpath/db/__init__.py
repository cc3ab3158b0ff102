"""Database layer: engine, ORM models and the progression store."""
