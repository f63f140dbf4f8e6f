"""
Pydantic model for the store configuration.
Provides robust validation for all settings.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .track import DEFAULT_MIME_TYPE

DEFAULT_RETENTION_LADDER = (20, 10, 5)
DEFAULT_LEGACY_KEY = "musicGenerationHistory"


class StoreConfig(BaseModel):
    """A validated configuration model for the track store."""

    # Storage locations
    data_dir: str
    database_name: str = "tracks.sqlite"

    # Flat fallback storage
    flat_quota_kb: int = 5120  # Mirrors the usual 5 MB browser localStorage limit
    retention_ladder: list[int] = Field(
        default_factory=lambda: list(DEFAULT_RETENTION_LADDER)
    )
    legacy_key: str = DEFAULT_LEGACY_KEY
    persist_flat_history: bool = False

    # Generation service
    api_base_url: str = ""
    default_mime_type: str = DEFAULT_MIME_TYPE

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    @field_validator("data_dir")
    @classmethod
    def validate_data_dir(cls, v: str) -> str:
        if not v:
            raise ValueError("Data directory cannot be empty.")
        return str(Path(v).expanduser())

    @field_validator("database_name")
    @classmethod
    def validate_database_name(cls, v: str) -> str:
        """The database must live directly inside the data directory."""
        if not v or "/" in v or "\\" in v or v.startswith("."):
            raise ValueError("Database name must be a plain file name.")
        return v

    @field_validator("flat_quota_kb")
    @classmethod
    def validate_quota(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Flat storage quota must be at least 1 KB.")
        return v

    @field_validator("retention_ladder")
    @classmethod
    def validate_ladder(cls, v: list[int]) -> list[int]:
        """Ensures the retention rungs are positive and strictly decreasing."""
        if not v:
            raise ValueError("Retention ladder needs at least one rung.")
        if any(n < 1 for n in v):
            raise ValueError("Retention ladder rungs must be positive.")
        if any(a <= b for a, b in zip(v, v[1:])):
            raise ValueError("Retention ladder rungs must be strictly decreasing.")
        return v

    @field_validator("api_base_url")
    @classmethod
    def validate_api_base_url(cls, v: str) -> str:
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("API base URL must start with http:// or https://.")
        return v.rstrip("/")

    @property
    def database_path(self) -> Path:
        return Path(self.data_dir) / self.database_name

    @property
    def flat_store_dir(self) -> Path:
        return Path(self.data_dir) / "flat"

    @property
    def flat_quota_bytes(self) -> int:
        return self.flat_quota_kb * 1024

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
