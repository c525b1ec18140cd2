"""Execution inspection and control endpoints (tenant-scoped)."""

from uuid import UUID

from fastapi import APIRouter

from src.mailflow.api.dependencies import AuthenticatedKey, WorkflowEngineDep
from src.mailflow.models import AutomationExecution
from src.mailflow.schemas.api import ExecutionRead, TimelineResponse

router = APIRouter(prefix="/executions", tags=["executions"])


def _to_read(execution: AutomationExecution) -> ExecutionRead:
    return ExecutionRead.model_validate(execution)


@router.get("/{execution_id}", response_model=ExecutionRead)
async def get_execution(
    execution_id: UUID, api_key: AuthenticatedKey, engine: WorkflowEngineDep
) -> ExecutionRead:
    return _to_read(await engine.get_execution(execution_id, api_key.tenant_id))


@router.get("/{execution_id}/timeline", response_model=TimelineResponse)
async def get_execution_timeline(
    execution_id: UUID, api_key: AuthenticatedKey, engine: WorkflowEngineDep
) -> TimelineResponse:
    """Per-node status of an execution, in execution order."""
    entries = await engine.get_timeline(execution_id, api_key.tenant_id)
    return TimelineResponse(execution_id=execution_id, entries=entries)


@router.post("/{execution_id}/pause", response_model=ExecutionRead)
async def pause_execution(
    execution_id: UUID, api_key: AuthenticatedKey, engine: WorkflowEngineDep
) -> ExecutionRead:
    return _to_read(await engine.pause_execution(execution_id, api_key.tenant_id))


@router.post("/{execution_id}/resume", response_model=ExecutionRead)
async def resume_execution(
    execution_id: UUID, api_key: AuthenticatedKey, engine: WorkflowEngineDep
) -> ExecutionRead:
    return _to_read(await engine.resume_execution(execution_id, api_key.tenant_id))


@router.post("/{execution_id}/cancel", response_model=ExecutionRead)
async def cancel_execution(
    execution_id: UUID, api_key: AuthenticatedKey, engine: WorkflowEngineDep
) -> ExecutionRead:
    return _to_read(await engine.cancel_execution(execution_id, api_key.tenant_id))
