"""Rate limit check results."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

RateLimitCheck = Literal["api_key", "tenant_minute", "tenant_hour", "tenant_day", "burst", "email"]


class RateLimitResult(BaseModel):
    """Outcome of one fixed-window check.

    ``remaining == -1`` marks an inactive check (no limit configured).
    """

    check: RateLimitCheck
    allowed: bool
    limit: int | None
    remaining: int
    reset_time: datetime
    retry_after: int | None = None  # seconds, set when denied

    @property
    def is_active(self) -> bool:
        return self.remaining >= 0


class CompositeRateLimitResult(BaseModel):
    allowed: bool
    most_restrictive: RateLimitResult
    checks: list[RateLimitResult] = Field(default_factory=list)


class EndpointUsage(BaseModel):
    endpoint: str
    count: int


class IpUsage(BaseModel):
    ip_address: str
    count: int


class UsageStats(BaseModel):
    total_requests: int
    rate_limited_requests: int
    top_endpoints: list[EndpointUsage]
    top_ips: list[IpUsage]
