"""Queue operations."""

from fastapi import APIRouter, Depends

from src.mailflow.api.dependencies import QueueServiceDep, require_admin_key
from src.mailflow.schemas.api import MessageResponse, QueueCounts, QueueStatsResponse

router = APIRouter(
    prefix="/queues",
    tags=["queues"],
    dependencies=[Depends(require_admin_key)],
)


@router.get("/stats", response_model=QueueStatsResponse)
async def get_queue_stats(queue_service: QueueServiceDep) -> QueueStatsResponse:
    """Job counts per state for each queue."""
    stats = await queue_service.get_queue_stats()
    return QueueStatsResponse(**{name: QueueCounts(**counts) for name, counts in stats.items()})


@router.post("/{queue_name}/pause", response_model=MessageResponse)
async def pause_queue(queue_name: str, queue_service: QueueServiceDep) -> MessageResponse:
    await queue_service.pause_queue(queue_name)
    return MessageResponse(message=f"Queue {queue_name} paused")


@router.post("/{queue_name}/resume", response_model=MessageResponse)
async def resume_queue(queue_name: str, queue_service: QueueServiceDep) -> MessageResponse:
    await queue_service.resume_queue(queue_name)
    return MessageResponse(message=f"Queue {queue_name} resumed")
