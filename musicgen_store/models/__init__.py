"""
Data Models Layer.

This package contains Pydantic models that define the core data structures
used throughout the application, such as tracks and configuration.
"""

from .config import StoreConfig
from .track import AdvancedSettings, AudioBlob, LegacyEntry, Track

__all__ = ["AdvancedSettings", "AudioBlob", "LegacyEntry", "StoreConfig", "Track"]
