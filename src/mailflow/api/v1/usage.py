"""Per-tenant API usage and rate limiting statistics."""

from datetime import timedelta
from typing import Literal

from fastapi import APIRouter, Query

from src.mailflow.api.dependencies import AuthenticatedKey, RateLimitServiceDep
from src.mailflow.models.base import utc_now
from src.mailflow.schemas.rate_limit import UsageStats

router = APIRouter(prefix="/usage", tags=["usage"])

TIME_RANGES = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
}


@router.get("/stats", response_model=UsageStats)
async def get_usage_stats(
    api_key: AuthenticatedKey,
    limiter: RateLimitServiceDep,
    time_range: Literal["hour", "day", "week"] = "day",
    top: int = Query(default=10, ge=1, le=100),
) -> UsageStats:
    """Request and 429 counts for the caller's tenant, with top endpoints and IPs."""
    since = utc_now() - TIME_RANGES[time_range]
    return await limiter.get_usage_stats(api_key.tenant_id, since=since, top=top)
