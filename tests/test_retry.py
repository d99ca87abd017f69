"""Tests for failure classification and the retry schedule."""

import pytest
import requests

from vidupload.core.cancellation import CancellationToken
from vidupload.core.exceptions import (
    AuthExpiredError,
    ErrorKind,
    FileMismatchError,
    NetworkTransientError,
    NoResumableUploadError,
    ProtocolFatalError,
    UploadPausedError,
    UserCancelledError,
)
from vidupload.core.retry import RetryAction, RetryPolicy, classify_error


@pytest.mark.parametrize(
    "exc, kind",
    [
        (NetworkTransientError("offline"), ErrorKind.NETWORK_TRANSIENT),
        (requests.exceptions.ConnectionError("offline"), ErrorKind.NETWORK_TRANSIENT),
        (TimeoutError("slow"), ErrorKind.NETWORK_TRANSIENT),
        (ProtocolFatalError("quota", 413), ErrorKind.PROTOCOL_FATAL),
        (UserCancelledError(), ErrorKind.USER_CANCELLED),
        (UploadPausedError(), ErrorKind.USER_PAUSED),
        (AuthExpiredError(), ErrorKind.AUTH_EXPIRED),
        (FileMismatchError("a", "b"), ErrorKind.FILE_MISMATCH),
        (NoResumableUploadError(), ErrorKind.NO_RESUMABLE_UPLOAD),
        (KeyError("boom"), ErrorKind.PROTOCOL_FATAL),
    ],
)
def test_classify_error(exc, kind):
    assert classify_error(exc) == kind


def test_transient_errors_follow_delay_schedule():
    policy = RetryPolicy(retry_delays=(0, 1, 3, 5), max_retries=3)
    error = NetworkTransientError("offline")

    decisions = [policy.decide(error, retries) for retries in range(4)]

    assert [d.action for d in decisions] == [RetryAction.RETRY] * 3 + [RetryAction.SURFACE]
    assert [d.delay for d in decisions[:3]] == [0, 1, 3]


def test_short_schedule_repeats_last_delay():
    policy = RetryPolicy(retry_delays=(2,), max_retries=3)

    assert [policy.delay_for(n) for n in range(3)] == [2, 2, 2]


@pytest.mark.parametrize(
    "exc", [ProtocolFatalError("denied", 403), AuthExpiredError(), FileMismatchError("a", "b")]
)
def test_fatal_errors_surface_immediately(exc):
    decision = RetryPolicy().decide(exc, 0)

    assert decision.action == RetryAction.SURFACE
    assert decision.delay == 0


def test_cancel_discards_and_pause_suspends():
    policy = RetryPolicy()

    assert policy.decide(UserCancelledError(), 0).action == RetryAction.DISCARD
    assert policy.decide(UploadPausedError(), 0).action == RetryAction.SUSPEND


def test_zero_retries_surfaces_first_transient_failure():
    assert RetryPolicy(max_retries=0).decide(NetworkTransientError("x"), 0).action == RetryAction.SURFACE


def test_empty_schedule_is_rejected():
    with pytest.raises(ValueError):
        RetryPolicy(retry_delays=())


def test_wait_is_interrupted_by_cancellation():
    token = CancellationToken()
    token.cancel()

    assert RetryPolicy().wait(token, 30) is True
