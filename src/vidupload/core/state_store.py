"""Durable storage for the single in-flight upload record."""

import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from pydantic import ValidationError

from .exceptions import StatePersistenceDegradedError
from .models import UploadState, utcnow

logger = logging.getLogger(__name__)

UPLOAD_STATE_KEY = "resumable_upload_state"
DEFAULT_TTL_SECONDS = 24 * 60 * 60


class UploadStateStore(ABC):
    """Keeps at most one ``UploadState``; expired records read as absent."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    @abstractmethod
    def _read(self) -> Optional[UploadState]:
        """Return the stored record without expiry checks."""

    @abstractmethod
    def _write(self, state: UploadState) -> None:
        """Replace the stored record. Raises StatePersistenceDegradedError."""

    @abstractmethod
    def _delete(self) -> None:
        """Remove the stored record. Raises StatePersistenceDegradedError."""

    def save(self, state: UploadState) -> bool:
        """Persist ``state``; returns False when the checkpoint could not be written."""
        try:
            self._write(state)
            return True
        except StatePersistenceDegradedError as e:
            logger.warning(f"Failed to save upload state, progress not checkpointed: {e}")
            return False

    def load(self) -> Optional[UploadState]:
        state = self._read()
        if state is None:
            return None
        if state.is_expired(self.clock(), self.ttl_seconds):
            logger.info(f"Discarding expired upload state for {state.file_name}")
            self.clear()
            return None
        return state

    def clear(self) -> None:
        try:
            self._delete()
        except StatePersistenceDegradedError as e:
            logger.warning(f"Failed to clear upload state: {e}")


class InMemoryStateStore(UploadStateStore):
    """Process-local store, used for tests and ephemeral sessions."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._state: Optional[UploadState] = None

    def _read(self) -> Optional[UploadState]:
        return self._state

    def _write(self, state: UploadState) -> None:
        self._state = state.model_copy()

    def _delete(self) -> None:
        self._state = None


class FileStateStore(UploadStateStore):
    """JSON record on local disk; survives process restarts on this machine."""

    def __init__(self, state_dir: Union[str, Path], *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.state_dir = Path(state_dir).expanduser()
        self.path = self.state_dir / f"{UPLOAD_STATE_KEY}.json"
        self._lock = threading.Lock()

    def _read(self) -> Optional[UploadState]:
        with self._lock:
            try:
                raw = self.path.read_bytes()
            except FileNotFoundError:
                return None
            except OSError as e:
                logger.warning(f"Failed to read upload state from {self.path}: {e}")
                return None

        try:
            return UploadState.model_validate_json(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValidationError) as e:
            logger.warning(f"Discarding unreadable upload state in {self.path}: {e}")
            self.clear()
            return None

    def _write(self, state: UploadState) -> None:
        with self._lock:
            tmp_path = None
            try:
                self.state_dir.mkdir(parents=True, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(
                    dir=self.state_dir, prefix=f".{UPLOAD_STATE_KEY}.", suffix=".tmp"
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(state.to_json())
                os.replace(tmp_path, self.path)
                tmp_path = None
            except OSError as e:
                raise StatePersistenceDegradedError(str(e), str(self.path)) from e
            finally:
                if tmp_path is not None and os.path.exists(tmp_path):
                    os.remove(tmp_path)

    def _delete(self) -> None:
        with self._lock:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StatePersistenceDegradedError(str(e), str(self.path)) from e
