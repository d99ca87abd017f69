"""
vidupload - Resumable chunked uploads of large video files.

This package provides:
- Session controller with start / pause / resume / cancel
- tus resumable upload protocol client
- Durable, expiring upload state for resuming across restarts
- CLI tool for uploading from the terminal
"""

__version__ = "1.0.0"

from .core.auth import (
    CredentialProvider,
    Credentials,
    EnvCredentialProvider,
    StaticCredentialProvider,
)
from .core.cancellation import CancellationToken, CancelReason
from .core.client import TusClient
from .core.config import UploaderConfig
from .core.events import EventStream
from .core.exceptions import (
    AuthExpiredError,
    ConfigurationError,
    ErrorKind,
    FileMismatchError,
    NetworkTransientError,
    NoResumableUploadError,
    ProtocolFatalError,
    SessionStateError,
    StatePersistenceDegradedError,
    UploadPausedError,
    UserCancelledError,
    VidUploadError,
)
from .core.fingerprint import fingerprint
from .core.models import (
    LocalFile,
    ProgressEvent,
    RetryEvent,
    StatusEvent,
    UploadSnapshot,
    UploadState,
    UploadStatus,
)
from .core.retry import RetryAction, RetryDecision, RetryPolicy, classify_error
from .core.session import UploadSession, upload_file
from .core.state_store import FileStateStore, InMemoryStateStore, UploadStateStore
from .core.transfer import ChunkedTransferEngine

__all__ = [
    # Core classes
    "UploadSession",
    "ChunkedTransferEngine",
    "TusClient",
    "UploaderConfig",
    "EventStream",
    "CancellationToken",
    "CancelReason",
    "RetryPolicy",
    "RetryAction",
    "RetryDecision",
    # State
    "UploadStateStore",
    "InMemoryStateStore",
    "FileStateStore",
    # Auth
    "CredentialProvider",
    "Credentials",
    "EnvCredentialProvider",
    "StaticCredentialProvider",
    # Models
    "LocalFile",
    "UploadState",
    "UploadStatus",
    "UploadSnapshot",
    "ProgressEvent",
    "StatusEvent",
    "RetryEvent",
    # Exceptions
    "ErrorKind",
    "VidUploadError",
    "AuthExpiredError",
    "FileMismatchError",
    "NetworkTransientError",
    "ProtocolFatalError",
    "UserCancelledError",
    "UploadPausedError",
    "NoResumableUploadError",
    "StatePersistenceDegradedError",
    "SessionStateError",
    "ConfigurationError",
    # Functions
    "fingerprint",
    "classify_error",
    "upload_file",
    # Metadata
    "__version__",
]
