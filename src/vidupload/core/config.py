"""Uploader configuration."""

import os
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from .exceptions import ConfigurationError

RESUMABLE_UPLOAD_PATH = "/storage/v1/upload/resumable"
DEFAULT_CHUNK_SIZE = 6 * 1024 * 1024


class UploaderConfig(BaseModel):
    """Tunables for the resumable uploader."""

    storage_url: Optional[str] = Field(
        None, description="Base URL of the storage service", examples=["https://xyz.supabase.co"]
    )
    endpoint_url: Optional[str] = Field(
        None, description="Explicit resumable upload endpoint (overrides storage_url)"
    )
    bucket: str = Field("videos", min_length=1, description="Destination bucket")
    chunk_size: int = Field(
        DEFAULT_CHUNK_SIZE,
        ge=256 * 1024,
        description="Bytes per PATCH request",
    )
    retry_delays: Tuple[float, ...] = Field(
        (0, 1, 3, 5), description="Seconds to wait before each automatic retry"
    )
    max_retries: int = Field(3, ge=0, description="Automatic retries for transient failures")
    chunk_timeout: float = Field(300, gt=0, description="Timeout in seconds for one chunk request")
    checkpoint_interval_percent: int = Field(10, ge=1, le=100)
    state_dir: Path = Field(Path.home() / ".vidupload", description="Where upload state is kept")
    state_ttl_hours: float = Field(24, gt=0)
    cache_control: str = "3600"
    upload_data_during_creation: bool = True

    @field_validator("retry_delays")
    @classmethod
    def validate_retry_delays(cls, v: Tuple[float, ...]) -> Tuple[float, ...]:
        if not v:
            raise ValueError("retry_delays must contain at least one delay")
        if any(delay < 0 for delay in v):
            raise ValueError("retry_delays must not be negative")
        return v

    @property
    def endpoint(self) -> str:
        """The tus endpoint new uploads are created against."""
        if self.endpoint_url:
            return self.endpoint_url
        if not self.storage_url:
            raise ConfigurationError(
                "Upload endpoint required. Set VIDUPLOAD_STORAGE_URL or "
                "VIDUPLOAD_ENDPOINT environment variable."
            )
        return f"{self.storage_url.rstrip('/')}{RESUMABLE_UPLOAD_PATH}"

    @property
    def state_ttl_seconds(self) -> float:
        return self.state_ttl_hours * 3600

    @classmethod
    def from_env(cls, **overrides) -> "UploaderConfig":
        """Build a config from VIDUPLOAD_* environment variables."""
        values = {
            "storage_url": os.getenv("VIDUPLOAD_STORAGE_URL"),
            "endpoint_url": os.getenv("VIDUPLOAD_ENDPOINT"),
            "bucket": os.getenv("VIDUPLOAD_BUCKET"),
            "chunk_size": os.getenv("VIDUPLOAD_CHUNK_SIZE"),
            "max_retries": os.getenv("VIDUPLOAD_MAX_RETRIES"),
            "chunk_timeout": os.getenv("VIDUPLOAD_CHUNK_TIMEOUT"),
            "state_dir": os.getenv("VIDUPLOAD_STATE_DIR"),
        }
        values = {key: value for key, value in values.items() if value}
        values.update(overrides)
        try:
            return cls(**values)
        except ValueError as e:
            raise ConfigurationError(f"Invalid uploader configuration: {e}") from e
