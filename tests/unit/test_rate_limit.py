"""Tests for composing rate limit checks (src/mailflow/services/rate_limit_service.py)."""

from datetime import datetime

import pytest

from src.mailflow.schemas.rate_limit import RateLimitResult
from src.mailflow.services.rate_limit_service import compose

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 1, 12, 0, 0)


def result(check: str, remaining: int, allowed: bool = True, limit: int | None = 100) -> RateLimitResult:
    return RateLimitResult(
        check=check,
        allowed=allowed,
        limit=limit,
        remaining=remaining,
        reset_time=NOW,
        retry_after=None if allowed else 60,
    )


def test_all_allowed_picks_smallest_remaining():
    composite = compose([result("tenant_minute", 40), result("tenant_hour", 7), result("burst", 90)])

    assert composite.allowed
    assert composite.most_restrictive.check == "tenant_hour"
    assert len(composite.checks) == 3


def test_inactive_checks_are_ignored():
    composite = compose([result("api_key", -1, limit=None), result("tenant_minute", 12)])

    assert composite.most_restrictive.check == "tenant_minute"


def test_only_inactive_checks():
    composite = compose([result("api_key", -1, limit=None)])

    assert composite.allowed
    assert composite.most_restrictive.check == "api_key"
    assert not composite.most_restrictive.is_active


def test_denied_check_wins():
    composite = compose(
        [
            result("api_key", 3),
            result("tenant_minute", 0, allowed=False),
            result("burst", 0, allowed=False),
        ]
    )

    assert not composite.allowed
    assert composite.most_restrictive.check == "tenant_minute"
    assert composite.most_restrictive.retry_after == 60
