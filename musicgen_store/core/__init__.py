"""
Core application engine.

This package contains the `HistorySession`, which keeps the displayed history,
the track store, and the playback handles consistent with each other.
"""
