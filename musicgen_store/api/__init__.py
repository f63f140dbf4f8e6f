"""
Generation API Layer.

This package handles communication with the remote music generation service.
"""

from .client import GeneratedAudio, GenerationClient

__all__ = ["GeneratedAudio", "GenerationClient"]
