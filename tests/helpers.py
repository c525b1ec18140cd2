"""Test helpers for driving workers and reading committed state."""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.mailflow.models import AutomationExecution
from src.mailflow.queue import Worker


class FakeClock:
    """Controllable wall clock for the queues (seconds since the epoch)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms / 1000

    def advance_to(self, ms: int) -> None:
        self.now = max(self.now, ms / 1000)


async def next_delayed_ms(workers: list[Worker]) -> int | None:
    """Earliest ready time among the workers' delayed jobs."""
    due: list[int] = []
    for worker in workers:
        queue = worker.queue
        head = await queue.redis.zrange(queue._key("delayed"), 0, 0, withscores=True)
        if head:
            due.append(int(head[0][1]))
    return min(due) if due else None


async def run_until_idle(workers: list[Worker], clock: FakeClock, max_rounds: int = 100) -> int:
    """Run poll cycles until nothing is waiting or delayed.

    When only delayed jobs remain, the clock jumps to the earliest one.
    Returns the number of jobs processed.
    """
    processed = 0
    for _ in range(max_rounds):
        claimed = 0
        for worker in workers:
            claimed += await worker.run_once()
        processed += claimed
        if claimed:
            continue
        due = await next_delayed_ms(workers)
        if due is None:
            return processed
        clock.advance_to(due)
    raise AssertionError(f"Workers still busy after {max_rounds} rounds")


async def load_execution(
    session_factory: async_sessionmaker[AsyncSession], execution_id: UUID
) -> AutomationExecution:
    """Read an execution in a fresh session."""
    async with session_factory() as session:
        execution = await session.get(AutomationExecution, execution_id)
        assert execution is not None
        return execution
