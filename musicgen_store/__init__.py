"""Persistent store for generated audio tracks."""

__version__ = "0.1.0"
