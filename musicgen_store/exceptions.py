"""
Defines custom exceptions for the track store to allow for more specific error handling.
"""


class MusicGenStoreError(Exception):
    """Base exception for all application-specific errors."""


class OpenError(MusicGenStoreError):
    """Raised when the structured track store cannot be opened or upgraded."""


class TransactionError(MusicGenStoreError):
    """Raised when a single put, read, or delete against the track store fails."""


class InvalidTrackError(MusicGenStoreError):
    """Raised when a track without a usable audio payload is about to be written."""


class MigrationError(MusicGenStoreError):
    """
    Raised when the legacy history archive cannot be parsed. Always handled inside
    the migrator; never surfaces to the user.
    """


class DecodeError(MusicGenStoreError):
    """Raised when one legacy entry carries a malformed base64 audio payload."""


class QuotaError(MusicGenStoreError):
    """Raised when a write to the flat store would exceed its size quota."""


class HandleRevokedError(MusicGenStoreError):
    """Raised when a playback handle is read after it has been revoked."""


class ConfigurationError(MusicGenStoreError):
    """Raised for issues related to configuration loading or validation."""


class GenerationError(MusicGenStoreError):
    """Raised when the remote generation service returns an unusable response."""
