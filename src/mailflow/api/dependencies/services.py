"""Service dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from src.mailflow.api.dependencies.db import DBSession
from src.mailflow.core.config import get_settings
from src.mailflow.queue.service import QueueService
from src.mailflow.repositories import UsageRepository
from src.mailflow.services.rate_limit_service import RateLimitService
from src.mailflow.workflow.engine import WorkflowEngine


def get_queue_service(request: Request) -> QueueService:
    return request.app.state.queue_service


QueueServiceDep = Annotated[QueueService, Depends(get_queue_service)]


def get_workflow_engine(
    request: Request, session: DBSession, queue_service: QueueServiceDep
) -> WorkflowEngine:
    return WorkflowEngine(session, queue_service, request.app.state.graph_cache, get_settings())


WorkflowEngineDep = Annotated[WorkflowEngine, Depends(get_workflow_engine)]


def get_rate_limit_service(session: DBSession) -> RateLimitService:
    return RateLimitService(UsageRepository(session), get_settings())


RateLimitServiceDep = Annotated[RateLimitService, Depends(get_rate_limit_service)]
