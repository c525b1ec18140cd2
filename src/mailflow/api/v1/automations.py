"""Automation execution entry point."""

from uuid import UUID

from fastapi import APIRouter, status

from src.mailflow.api.dependencies import RateLimitedKey, WorkflowEngineDep
from src.mailflow.schemas.api import StartExecutionRequest, StartExecutionResponse

router = APIRouter(prefix="/automations", tags=["automations"])


@router.post(
    "/{automation_id}/executions",
    response_model=StartExecutionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        404: {"description": "Automation or subscriber not found"},
        422: {"description": "Automation not active or workflow invalid"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def start_execution(
    automation_id: UUID,
    request: StartExecutionRequest,
    api_key: RateLimitedKey,
    engine: WorkflowEngineDep,
) -> StartExecutionResponse:
    """Enter a subscriber into an automation.

    Returns immediately; the first step runs on the automation queue.
    """
    execution_id = await engine.start_execution(
        api_key.tenant_id,
        automation_id,
        request.subscriber_id,
        request.variables,
    )
    return StartExecutionResponse(execution_id=execution_id)
