"""Tests for the error taxonomy and retry classification."""

import pytest

from src.mailflow.core.exceptions import (
    NotFoundError,
    RateLimitExceededError,
    TransientError,
    ValidationError,
    is_retryable,
)
from src.mailflow.jobs.automation import failure_message
from src.mailflow.queue import Job

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("exc", "retryable"),
    [
        (ValidationError("bad config"), False),
        (NotFoundError("missing"), False),
        (TransientError("timeout"), True),
        (RateLimitExceededError("slow down", retry_after=60), True),
        (ConnectionError("redis down"), True),
        (RuntimeError("surprise"), True),
    ],
)
def test_is_retryable(exc, retryable):
    assert is_retryable(exc) is retryable


def test_rate_limit_error_carries_retry_after():
    exc = RateLimitExceededError("slow down", retry_after=60)
    assert exc.retry_after == 60
    assert exc.message == "slow down"


def test_failure_message_names_the_error_kind():
    assert failure_message(ValidationError("Invalid workflow")) == "ValidationError: Invalid workflow"
    assert failure_message(TimeoutError("slow")) == "TimeoutError: slow"


def test_backoff_doubles_per_attempt():
    job = Job(id="j", queue_name="email", name="send-email", data={}, backoff_delay=2000)
    assert [job.backoff_for(n) for n in (1, 2, 3)] == [2000, 4000, 8000]
