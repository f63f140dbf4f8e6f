"""
Playback Layer.

This package hands out short-lived, revocable references to stored audio so a
player can address a track's payload without copying it.
"""

from .handles import BlobRegistry, Handle, HandleManager

__all__ = ["BlobRegistry", "Handle", "HandleManager"]
