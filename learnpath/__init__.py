"""Adaptive learning path engine."""

__version__ = "0.1.0"
