"""
Conversion between binary audio payloads and the base64 text used by the legacy archive.
"""

import base64
import binascii
import re

from musicgen_store.exceptions import DecodeError

_DATA_URI_PREFIX = re.compile(r"^data:[^,]*;base64,", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def encode_audio(data: bytes) -> str:
    """Encodes raw audio bytes as a bare base64 string (no data-URI prefix)."""
    return base64.b64encode(data).decode("ascii")


def decode_audio(text: str) -> bytes:
    """
    Decodes a base64 audio payload back into bytes.

    Accepts either a bare base64 string or a full data URI such as
    'data:audio/wav;base64,...'.

    Raises:
        DecodeError: If the payload is empty or not valid base64.
    """
    if not isinstance(text, str):
        raise DecodeError(f"Expected base64 text, got {type(text).__name__}.")
    payload = _WHITESPACE.sub("", _DATA_URI_PREFIX.sub("", text.strip()))
    if not payload:
        raise DecodeError("Audio payload is empty.")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Malformed base64 audio payload: {e}") from e
