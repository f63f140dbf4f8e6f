"""
Pydantic models for stored tracks, their audio payloads, and the legacy archive rows.
"""

import time

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MIME_TYPE = "audio/wav"


def now_ms() -> int:
    """Returns the current wall-clock time in milliseconds, used for new track ids."""
    return int(time.time() * 1000)


class AdvancedSettings(BaseModel):
    """Snapshot of the effect and sampling parameters used to produce a track."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Effects
    reverb: float = 0
    bass_boost: float = Field(0, alias="bassBoost")
    treble: float = 0
    speed: float = 1.0

    # Sampling
    temperature: float = 1.0
    cfg_coef: float = Field(8.0, alias="cfgCoef")
    top_k: int = Field(250, alias="topK")
    top_p: float = Field(0.0, alias="topP")
    use_sampling: bool = Field(True, alias="useSampling")

    @field_validator("speed")
    @classmethod
    def validate_speed(cls, v: float) -> float:
        """Playback speed must be positive."""
        if v <= 0:
            raise ValueError("Speed must be greater than zero.")
        return v

    @field_validator("top_k")
    @classmethod
    def validate_top_k(cls, v: int) -> int:
        if v < 0:
            raise ValueError("top_k cannot be negative.")
        return v

    @field_validator("top_p")
    @classmethod
    def validate_top_p(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("top_p must be between 0.0 and 1.0.")
        return v

    def to_api_params(self) -> dict:
        """Builds the snake_case `advanced_params` body used by the refine endpoint."""
        return {
            "temperature": self.temperature,
            "cfg_coef": self.cfg_coef,
            "top_k": self.top_k,
            "top_p": self.top_p,
            "use_sampling": self.use_sampling,
        }


class AudioBlob(BaseModel):
    """An opaque binary audio payload together with its mime type."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE

    @property
    def size(self) -> int:
        return len(self.data)

    def is_usable(self) -> bool:
        return bool(self.data)


class Track(BaseModel):
    """One generated audio artifact plus its generation metadata."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: int | None = None
    prompt: str
    duration: str
    date: str
    audio_blob: AudioBlob = Field(alias="audioBlob")
    advanced_settings: AdvancedSettings | None = Field(None, alias="advancedSettings")
    is_edited: bool = Field(False, alias="isEdited")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("Track id must be a positive integer.")
        return v


class LegacyEntry(BaseModel):
    """
    One row of the superseded flat history format, where audio was kept as a base64
    string inside a JSON array.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    prompt: str = ""
    duration: str = ""
    date: str = ""
    base64_audio: str | None = Field(None, alias="base64Audio")
    advanced_settings: AdvancedSettings | None = Field(None, alias="advancedSettings")
    is_edited: bool = Field(False, alias="isEdited")

    @field_validator("duration", mode="before")
    @classmethod
    def coerce_duration(cls, v):
        """Early archive rows stored the duration as a bare number of seconds."""
        if isinstance(v, (int, float)):
            return f"{int(v)}s"
        return v
