"""FastAPI dependency injection definitions."""

from src.mailflow.api.dependencies.auth import (
    AuthenticatedKey,
    RateLimitedKey,
    get_api_key,
    rate_limited_api_key,
    require_admin_key,
)
from src.mailflow.api.dependencies.db import DBSession, get_db_session
from src.mailflow.api.dependencies.services import (
    QueueServiceDep,
    RateLimitServiceDep,
    WorkflowEngineDep,
    get_queue_service,
    get_rate_limit_service,
    get_workflow_engine,
)

__all__ = [
    # Database
    "DBSession",
    "get_db_session",
    # Auth
    "AuthenticatedKey",
    "RateLimitedKey",
    "get_api_key",
    "rate_limited_api_key",
    "require_admin_key",
    # Services
    "QueueServiceDep",
    "RateLimitServiceDep",
    "WorkflowEngineDep",
    "get_queue_service",
    "get_rate_limit_service",
    "get_workflow_engine",
]
