"""Multi-tier fixed-window rate limiting over the usage log.

Each check counts usage rows inside a window that ends now. A check allows
while ``count < limit``. Fixed windows admit up to twice the limit across a
window boundary.
"""

from datetime import datetime, timedelta
from uuid import UUID

from src.mailflow.core.config import Settings, get_settings
from src.mailflow.core.logging import get_logger
from src.mailflow.models import ApiKey, UsageRecord
from src.mailflow.models.base import utc_now
from src.mailflow.repositories import UsageRepository
from src.mailflow.schemas.rate_limit import (
    CompositeRateLimitResult,
    EndpointUsage,
    IpUsage,
    RateLimitCheck,
    RateLimitResult,
    UsageStats,
)

logger = get_logger(__name__)

EMAIL_SEND_ENDPOINT = "email.send"

_MINUTE = 60
_HOUR = 60 * 60
_DAY = 24 * 60 * 60


def _result(
    check: RateLimitCheck, limit: int, count: int, window_seconds: int, now: datetime
) -> RateLimitResult:
    allowed = count < limit
    return RateLimitResult(
        check=check,
        allowed=allowed,
        limit=limit,
        remaining=max(0, limit - count),
        reset_time=now + timedelta(seconds=window_seconds),
        retry_after=None if allowed else window_seconds,
    )


class RateLimitService:
    """Rate limiter - stateless computation over ``UsageRecord`` rows."""

    def __init__(self, usage_repo: UsageRepository, settings: Settings | None = None):
        self.usage_repo = usage_repo
        self.settings = settings or get_settings()

    async def check_api_key(
        self,
        api_key: ApiKey,
        ip_address: str | None,
        endpoint: str | None = None,
        now: datetime | None = None,
    ) -> RateLimitResult:
        """Check the key's own fixed window.

        Args:
            api_key: The authenticated key; ``rate_limit=None`` means unlimited.
            ip_address: Client address; usage is counted per key and IP.
            endpoint: Optional path to narrow the count to one endpoint.
            now: Window end, defaults to the current time.

        Returns:
            The check result; an unlimited key reports ``remaining=-1``.
        """
        now = now or utc_now()
        window = api_key.rate_limit_window
        if api_key.rate_limit is None:
            return RateLimitResult(
                check="api_key",
                allowed=True,
                limit=None,
                remaining=-1,
                reset_time=now + timedelta(seconds=window),
            )
        count = await self.usage_repo.count_for_api_key(
            api_key.id, now - timedelta(seconds=window), ip_address=ip_address, endpoint=endpoint
        )
        return _result("api_key", api_key.rate_limit, count, window, now)

    async def check_tenant(
        self,
        tenant_id: UUID,
        now: datetime | None = None,
        *,
        per_minute: int | None = None,
        per_hour: int | None = None,
        per_day: int | None = None,
    ) -> list[RateLimitResult]:
        """Minute, hour and day windows. Limits default to settings."""
        now = now or utc_now()
        windows: list[tuple[RateLimitCheck, int, int]] = [
            ("tenant_minute", per_minute or self.settings.tenant_requests_per_minute, _MINUTE),
            ("tenant_hour", per_hour or self.settings.tenant_requests_per_hour, _HOUR),
            ("tenant_day", per_day or self.settings.tenant_requests_per_day, _DAY),
        ]
        results = []
        for check, limit, window in windows:
            count = await self.usage_repo.count_for_tenant(tenant_id, now - timedelta(seconds=window))
            results.append(_result(check, limit, count, window, now))
        return results

    async def check_burst(
        self,
        tenant_id: UUID,
        ip_address: str | None,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> RateLimitResult:
        now = now or utc_now()
        window = self.settings.burst_window_seconds
        count = await self.usage_repo.count_for_tenant(
            tenant_id, now - timedelta(seconds=window), ip_address=ip_address
        )
        return _result("burst", limit or self.settings.tenant_burst_limit, count, window, now)

    async def check_request(
        self,
        tenant_id: UUID,
        api_key: ApiKey | None,
        ip_address: str | None,
        endpoint: str | None = None,
        now: datetime | None = None,
    ) -> CompositeRateLimitResult:
        """Run every check; the request passes only if all allow."""
        now = now or utc_now()
        checks: list[RateLimitResult] = []
        if api_key is not None:
            checks.append(await self.check_api_key(api_key, ip_address, endpoint, now))
        checks.extend(await self.check_tenant(tenant_id, now))
        checks.append(await self.check_burst(tenant_id, ip_address, now))
        return compose(checks)

    async def check_email_send(self, tenant_id: UUID, now: datetime | None = None) -> RateLimitResult:
        """Tenant email sends per minute, counted from ``email.send`` rows."""
        now = now or utc_now()
        count = await self.usage_repo.count_for_tenant(
            tenant_id, now - timedelta(seconds=_MINUTE), endpoint=EMAIL_SEND_ENDPOINT
        )
        return _result("email", self.settings.email_sends_per_minute, count, _MINUTE, now)

    def record_usage(
        self,
        tenant_id: UUID,
        endpoint: str,
        status_code: int = 200,
        api_key_id: UUID | None = None,
        ip_address: str | None = None,
    ) -> UsageRecord:
        """Append a usage row to the session (caller commits)."""
        record = UsageRecord(
            tenant_id=tenant_id,
            api_key_id=api_key_id,
            ip_address=ip_address,
            endpoint=endpoint,
            status_code=status_code,
        )
        self.usage_repo.add(record)
        return record

    async def get_usage_stats(
        self, tenant_id: UUID, since: datetime | None = None, top: int = 10
    ) -> UsageStats:
        since = since or utc_now() - timedelta(days=1)
        total = await self.usage_repo.count_for_tenant(tenant_id, since)
        limited = await self.usage_repo.count_rate_limited(tenant_id, since)
        endpoints = await self.usage_repo.top_endpoints(tenant_id, since, top)
        ips = await self.usage_repo.top_ips(tenant_id, since, top)
        return UsageStats(
            total_requests=total,
            rate_limited_requests=limited,
            top_endpoints=[EndpointUsage(endpoint=e, count=c) for e, c in endpoints],
            top_ips=[IpUsage(ip_address=ip, count=c) for ip, c in ips],
        )

    async def cleanup_usage(self, retention_days: int | None = None) -> int:
        """Delete usage rows older than the retention period (caller commits)."""
        days = retention_days or self.settings.usage_retention_days
        deleted = await self.usage_repo.delete_older_than(utc_now() - timedelta(days=days))
        logger.info("Usage records cleaned up", deleted=deleted, retention_days=days)
        return deleted


def compose(checks: list[RateLimitResult]) -> CompositeRateLimitResult:
    """Combine checks: the first denied check wins, else the active check with
    the smallest remaining count."""
    denied = [check for check in checks if not check.allowed]
    if denied:
        return CompositeRateLimitResult(allowed=False, most_restrictive=denied[0], checks=checks)

    active = [check for check in checks if check.is_active]
    most_restrictive = min(active, key=lambda check: check.remaining) if active else checks[0]
    return CompositeRateLimitResult(allowed=True, most_restrictive=most_restrictive, checks=checks)
