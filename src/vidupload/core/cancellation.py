"""Cooperative cancellation for in-flight transfers."""

import threading
from enum import Enum
from typing import Optional

from .exceptions import UploadPausedError, UserCancelledError, VidUploadError


class CancelReason(str, Enum):
    PAUSE = "pause"
    CANCEL = "cancel"


class CancellationToken:
    """Abort signal handed to one transfer run and checked at chunk boundaries."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[CancelReason] = None

    def cancel(self, reason: CancelReason = CancelReason.CANCEL) -> None:
        with self._lock:
            # cancel outranks an earlier pause
            if self._reason is None or reason == CancelReason.CANCEL:
                self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[CancelReason]:
        with self._lock:
            return self._reason

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile."""
        if seconds <= 0:
            return self.cancelled
        return self._event.wait(seconds)

    def stop_error(self) -> Optional[VidUploadError]:
        """The error a stopped run ends with, or None while it may continue."""
        if not self.cancelled:
            return None
        if self.reason == CancelReason.PAUSE:
            return UploadPausedError()
        return UserCancelledError()

    def raise_if_cancelled(self) -> None:
        error = self.stop_error()
        if error is not None:
            raise error
