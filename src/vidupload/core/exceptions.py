"""
Exception classes for vidupload.

Every error raised by the upload path carries an ``ErrorKind`` so the retry
policy can decide what to do with it without inspecting messages.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Classification of upload failures."""

    NETWORK_TRANSIENT = "network_transient"
    PROTOCOL_FATAL = "protocol_fatal"
    USER_CANCELLED = "user_cancelled"
    USER_PAUSED = "user_paused"
    AUTH_EXPIRED = "auth_expired"
    FILE_MISMATCH = "file_mismatch"
    NO_RESUMABLE_UPLOAD = "no_resumable_upload"
    STATE_PERSISTENCE_DEGRADED = "state_persistence_degraded"


class VidUploadError(Exception):
    """Base exception for all vidupload errors."""

    kind: ErrorKind = ErrorKind.PROTOCOL_FATAL

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class AuthExpiredError(VidUploadError):
    """Raised when no valid access credential is available."""

    kind = ErrorKind.AUTH_EXPIRED

    def __init__(self, message: str = "Authentication session expired, please sign in again") -> None:
        super().__init__(message)


class FileMismatchError(VidUploadError):
    """Raised when the file supplied for resume is not the one recorded."""

    kind = ErrorKind.FILE_MISMATCH

    def __init__(self, expected_file_id: str, actual_file_id: str) -> None:
        super().__init__(
            "Selected file does not match the previous upload",
            {"expected": expected_file_id, "actual": actual_file_id},
        )
        self.expected_file_id = expected_file_id
        self.actual_file_id = actual_file_id


class NetworkTransientError(VidUploadError):
    """Raised for connectivity problems, timeouts and retryable server replies."""

    kind = ErrorKind.NETWORK_TRANSIENT

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        details = {"status_code": status_code} if status_code else {}
        super().__init__(message, details)
        self.status_code = status_code


class ProtocolFatalError(VidUploadError):
    """Raised when the endpoint rejects a request for non-connectivity reasons."""

    kind = ErrorKind.PROTOCOL_FATAL

    def __init__(
        self, message: str, status_code: Optional[int] = None, body: Optional[str] = None
    ) -> None:
        details: Dict[str, Any] = {}
        if status_code:
            details["status_code"] = status_code
        if body:
            details["body"] = body[:200]
        super().__init__(message, details)
        self.status_code = status_code
        self.body = body


class UserCancelledError(VidUploadError):
    """Raised inside the transfer when the user cancelled the upload."""

    kind = ErrorKind.USER_CANCELLED

    def __init__(self, message: str = "Upload cancelled") -> None:
        super().__init__(message)


class UploadPausedError(VidUploadError):
    """Raised inside the transfer when the user paused the upload."""

    kind = ErrorKind.USER_PAUSED

    def __init__(self, message: str = "Upload paused") -> None:
        super().__init__(message)


class NoResumableUploadError(VidUploadError):
    """Raised when resume is requested but no upload state is persisted."""

    kind = ErrorKind.NO_RESUMABLE_UPLOAD

    def __init__(self, message: str = "There is no upload to resume") -> None:
        super().__init__(message)


class StatePersistenceDegradedError(VidUploadError):
    """Raised by store backends when a checkpoint could not be written."""

    kind = ErrorKind.STATE_PERSISTENCE_DEGRADED

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        details = {"path": path} if path else {}
        super().__init__(message, details)
        self.path = path


class SessionStateError(VidUploadError):
    """Raised when a controller operation is not valid in the current state."""

    def __init__(self, operation: str, status: str) -> None:
        super().__init__(
            f"Cannot {operation} while upload is {status}",
            {"operation": operation, "status": status},
        )
        self.operation = operation
        self.status = status


class ConfigurationError(VidUploadError):
    """Raised for configuration-related errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
