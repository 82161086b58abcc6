"""Hive build plan execution engine."""

__version__ = "0.1.0"
