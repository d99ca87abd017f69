"""Failure classification and the automatic retry schedule."""

import logging
from enum import Enum
from typing import Callable, Optional, Sequence

import requests
from pydantic import BaseModel

from .cancellation import CancellationToken
from .exceptions import ErrorKind, VidUploadError

logger = logging.getLogger(__name__)


class RetryAction(str, Enum):
    RETRY = "retry"  # wait, then run the transfer again
    SURFACE = "surface"  # fail, keep state for a manual retry
    DISCARD = "discard"  # drop state silently
    SUSPEND = "suspend"  # keep state silently


class RetryDecision(BaseModel):
    action: RetryAction
    kind: ErrorKind
    delay: float = 0


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception raised by a transfer to an ``ErrorKind``."""
    if isinstance(exc, VidUploadError):
        return exc.kind
    if isinstance(exc, (requests.exceptions.RequestException, TimeoutError, ConnectionError)):
        return ErrorKind.NETWORK_TRANSIENT
    return ErrorKind.PROTOCOL_FATAL


class RetryPolicy:
    """Decides retry vs. surface vs. discard for each transfer failure.

    Transient failures are retried ``max_retries`` times. The delay before
    retry ``n`` (1-based) is ``retry_delays[n - 1]``, repeating the last entry
    when the schedule is shorter than ``max_retries``.
    """

    def __init__(
        self,
        retry_delays: Sequence[float] = (0, 1, 3, 5),
        max_retries: int = 3,
        sleep: Optional[Callable[[CancellationToken, float], bool]] = None,
    ):
        if not retry_delays:
            raise ValueError("retry_delays must not be empty")
        self.retry_delays = tuple(retry_delays)
        self.max_retries = max_retries
        self._sleep = sleep

    def delay_for(self, retries_done: int) -> float:
        index = min(retries_done, len(self.retry_delays) - 1)
        return self.retry_delays[index]

    def decide(self, exc: BaseException, retries_done: int) -> RetryDecision:
        """Decide what to do about ``exc`` after ``retries_done`` automatic retries."""
        kind = classify_error(exc)

        if kind == ErrorKind.USER_CANCELLED:
            return RetryDecision(action=RetryAction.DISCARD, kind=kind)
        if kind == ErrorKind.USER_PAUSED:
            return RetryDecision(action=RetryAction.SUSPEND, kind=kind)
        if kind == ErrorKind.NETWORK_TRANSIENT:
            if retries_done < self.max_retries:
                return RetryDecision(
                    action=RetryAction.RETRY, kind=kind, delay=self.delay_for(retries_done)
                )
            logger.error(f"Giving up after {retries_done} retries: {exc}")
        return RetryDecision(action=RetryAction.SURFACE, kind=kind)

    def wait(self, token: CancellationToken, delay: float) -> bool:
        """Wait ``delay`` seconds; returns True if the token fired meanwhile."""
        if self._sleep is not None:
            return self._sleep(token, delay)
        return token.wait(delay)
