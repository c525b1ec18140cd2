"""Bounded-concurrency worker pool for one queue."""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any

from structlog.contextvars import clear_contextvars

from src.mailflow.core.exceptions import is_retryable
from src.mailflow.core.logging import bind_job_context, get_logger
from src.mailflow.queue.job import Continuation, Job, JobStatus
from src.mailflow.queue.redis_queue import JobQueue

logger = get_logger(__name__)

# A processor returns a Continuation to chain the next job, or any JSON value
Processor = Callable[[Job], Awaitable[Any]]
FailureHook = Callable[[Job, BaseException], Awaitable[None]]


class Worker:
    """Claims jobs from a queue and runs them with at most ``concurrency`` in flight.

    Retryable exceptions go through the job's attempts/backoff policy; other
    exceptions fail the job immediately. ``on_failed`` runs once a job has
    failed for good.
    """

    def __init__(
        self,
        queue: JobQueue,
        processor: Processor,
        *,
        concurrency: int,
        poll_interval: float = 1.0,
        on_failed: FailureHook | None = None,
    ):
        self.queue = queue
        self.processor = processor
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self.on_failed = on_failed
        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: set[asyncio.Task[None]] = set()
        self._stopping = asyncio.Event()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def run(self) -> None:
        """Poll until ``stop`` is called."""
        logger.info(
            "Worker started", queue=self.queue.name, concurrency=self.concurrency
        )
        while not self._stopping.is_set():
            claimed = await self._fill_slots()
            if claimed == 0:
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
        logger.info("Worker stopped", queue=self.queue.name)

    async def run_once(self) -> int:
        """Run one poll cycle and wait for the claimed jobs to finish.

        Returns the number of jobs processed.
        """
        claimed = await self._fill_slots()
        await self.drain()
        return claimed

    async def stop(self, timeout: float | None = None) -> bool:
        """Stop claiming and wait for in-flight jobs.

        Returns False if jobs were still running when ``timeout`` expired;
        their leases expire and another worker recovers them.
        """
        self._stopping.set()
        return await self.drain(timeout)

    async def drain(self, timeout: float | None = None) -> bool:
        if not self._tasks:
            return True
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning(
                "Worker stopped with jobs in flight", queue=self.queue.name, in_flight=len(pending)
            )
            return False
        return True

    async def _fill_slots(self) -> int:
        await self.queue.promote_delayed()
        await self.queue.recover_stalled()

        claimed = 0
        while not self._stopping.is_set() and not self._semaphore.locked():
            await self._semaphore.acquire()
            try:
                job = await self.queue.claim()
            except BaseException:
                self._semaphore.release()
                raise
            if job is None:
                self._semaphore.release()
                break
            claimed += 1
            task = asyncio.create_task(self._run_job(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return claimed

    async def _run_job(self, job: Job) -> None:
        try:
            await self._process(job)
        except Exception:
            # Queue bookkeeping failed (e.g. Redis down); the lease expires and
            # the job is recovered as stalled.
            logger.exception("Job bookkeeping failed", queue=self.queue.name, job_id=job.id)
        finally:
            self._semaphore.release()
            clear_contextvars()

    async def _process(self, job: Job) -> None:
        bind_job_context(self.queue.name, job.id, job.attempt)
        renewal = asyncio.create_task(self._renew_lease(job))
        try:
            result = await self.processor(job)
        except Exception as exc:
            await _cancel(renewal)
            await self._handle_failure(job, exc)
            return
        await _cancel(renewal)

        if isinstance(result, Continuation):
            await self.queue.complete(job, continuation=result)
        else:
            await self.queue.complete(job, return_value=result)
        logger.debug("Job completed", job_name=job.name)

    async def _handle_failure(self, job: Job, exc: Exception) -> None:
        retryable = is_retryable(exc)
        reason = str(exc) or type(exc).__name__
        status = await self.queue.fail(job, reason, retryable=retryable)
        if status is JobStatus.FAILED:
            logger.error(
                "Job failed",
                job_name=job.name,
                error=reason,
                error_type=type(exc).__name__,
                retryable=retryable,
                attempts_made=job.attempts_made,
            )
            if self.on_failed is not None:
                try:
                    await self.on_failed(job, exc)
                except Exception:
                    logger.exception("Failure hook raised", job_name=job.name)
        else:
            logger.warning(
                "Job attempt failed, will retry",
                job_name=job.name,
                error=reason,
                error_type=type(exc).__name__,
                attempts_made=job.attempts_made,
                max_attempts=job.max_attempts,
            )

    async def _renew_lease(self, job: Job) -> None:
        interval = max(self.queue.lease_ms / 3000, 0.1)
        while True:
            await asyncio.sleep(interval)
            if not await self.queue.renew_lease(job):
                logger.warning("Lost job lease", job_name=job.name)
                return


async def _cancel(task: asyncio.Task[None]) -> None:
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
