"""API key authentication and request rate limiting."""

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader

from src.mailflow.api.dependencies.db import DBSession
from src.mailflow.api.dependencies.services import RateLimitServiceDep
from src.mailflow.core.config import get_settings
from src.mailflow.core.exceptions import RateLimitExceededError
from src.mailflow.core.logging import get_logger
from src.mailflow.models import ApiKey
from src.mailflow.repositories import ApiKeyRepository

logger = get_logger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
admin_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


async def get_api_key(
    session: DBSession,
    raw_key: Annotated[str | None, Depends(api_key_header)],
) -> ApiKey:
    if not raw_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")
    api_key = await ApiKeyRepository(session).get_active_by_raw_key(raw_key)
    if api_key is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    return api_key


AuthenticatedKey = Annotated[ApiKey, Depends(get_api_key)]


async def rate_limited_api_key(
    request: Request,
    session: DBSession,
    api_key: AuthenticatedKey,
    limiter: RateLimitServiceDep,
) -> ApiKey:
    """Authenticate, run the composite rate limit and log the request's usage."""
    ip_address = _client_ip(request)
    endpoint = request.url.path
    result = await limiter.check_request(api_key.tenant_id, api_key, ip_address, endpoint)
    limiter.record_usage(
        api_key.tenant_id,
        endpoint,
        status_code=200 if result.allowed else 429,
        api_key_id=api_key.id,
        ip_address=ip_address,
    )
    await session.commit()

    if not result.allowed:
        logger.warning(
            "Request rate limited",
            tenant_id=str(api_key.tenant_id),
            check=result.most_restrictive.check,
        )
        raise RateLimitExceededError(
            f"Rate limit exceeded ({result.most_restrictive.check})",
            retry_after=result.most_restrictive.retry_after,
        )
    return api_key


RateLimitedKey = Annotated[ApiKey, Depends(rate_limited_api_key)]


async def require_admin_key(
    admin_key: Annotated[str | None, Depends(admin_key_header)],
) -> None:
    """Guard operational endpoints when ADMIN_API_KEY is configured."""
    expected = get_settings().admin_api_key
    if expected is None:
        return
    if admin_key is None or not secrets.compare_digest(admin_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin key",
        )
