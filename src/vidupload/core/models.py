"""
Pydantic models for vidupload.

``UploadState`` is the only persisted entity; it serializes with the camelCase
keys used by the on-disk record. The remaining models describe local files,
controller snapshots and the events published while an upload runs.
"""

import mimetypes
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import ErrorKind


class UploadStatus(str, Enum):
    """Session controller states."""

    IDLE = "idle"
    UPLOADING = "uploading"
    PAUSED = "paused"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def progress_percent(bytes_uploaded: int, bytes_total: int) -> int:
    """Whole-number percentage, 100 for empty files."""
    if bytes_total <= 0:
        return 100
    return round(bytes_uploaded / bytes_total * 100)


class UploadState(BaseModel):
    """Durable record of the single in-flight upload."""

    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(..., alias="fileId", description="Metadata fingerprint of (user, file)")
    file_name: str = Field(..., alias="fileName")
    file_size: int = Field(..., ge=0, alias="fileSizeBytes")
    remote_object_path: str = Field(
        ..., min_length=1, alias="remoteObjectPath", description="Destination key in the bucket"
    )
    remote_upload_url: Optional[str] = Field(
        None, alias="remoteUploadUrl", description="Upload session URL once allocated"
    )
    bytes_uploaded: int = Field(0, ge=0, alias="bytesUploaded")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")

    @field_validator("created_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def check_bytes_within_size(self) -> "UploadState":
        if self.bytes_uploaded > self.file_size:
            raise ValueError(
                f"bytesUploaded ({self.bytes_uploaded}) exceeds fileSizeBytes ({self.file_size})"
            )
        return self

    @property
    def progress(self) -> int:
        return progress_percent(self.bytes_uploaded, self.file_size)

    def is_expired(self, now: datetime, ttl_seconds: float) -> bool:
        return (now - self.created_at).total_seconds() > ttl_seconds

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class LocalFile(BaseModel):
    """A file on local disk selected for upload."""

    model_config = ConfigDict(frozen=True)

    path: Path
    name: str
    size: int = Field(..., ge=0)
    last_modified: int = Field(..., description="Modification time in milliseconds since epoch")
    content_type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: Union[str, Path], content_type: Optional[str] = None) -> "LocalFile":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Local file not found: {path}")
        if path.is_dir():
            raise ValueError(f"Path is a directory, not a file: {path}")

        stat = path.stat()
        if content_type is None:
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(
            path=path,
            name=path.name,
            size=stat.st_size,
            last_modified=int(stat.st_mtime * 1000),
            content_type=content_type,
        )


# Events
class ProgressEvent(BaseModel):
    """Published on every chunk boundary."""

    model_config = ConfigDict(frozen=True)

    percent: int = Field(..., ge=0, le=100)
    bytes_uploaded: int = Field(..., ge=0)
    bytes_total: int = Field(..., ge=0)


class StatusEvent(BaseModel):
    """Published on every controller state transition."""

    model_config = ConfigDict(frozen=True)

    status: UploadStatus
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    remote_object_path: Optional[str] = None


class RetryEvent(BaseModel):
    """Published before an automatic retry of a transient failure."""

    model_config = ConfigDict(frozen=True)

    attempt: int = Field(..., ge=1, description="Retry number, starting at 1")
    delay: float = Field(..., ge=0)
    error_kind: ErrorKind
    message: str


class UploadSnapshot(BaseModel):
    """Point-in-time view of an upload session."""

    model_config = ConfigDict(frozen=True)

    status: UploadStatus = UploadStatus.IDLE
    progress: int = 0
    bytes_uploaded: int = 0
    bytes_total: int = 0
    retry_attempt: int = 0
    can_resume: bool = False
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    remote_object_path: Optional[str] = None
    resumable_state: Optional[UploadState] = None

    @property
    def is_paused(self) -> bool:
        return self.status == UploadStatus.PAUSED

    @property
    def uploading(self) -> bool:
        return self.status == UploadStatus.UPLOADING
