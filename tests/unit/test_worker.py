"""Tests for the queue worker pool (src/mailflow/queue/worker.py)."""

import asyncio

import pytest

from src.mailflow.core.exceptions import NotFoundError, TransientError
from src.mailflow.queue import Continuation, Job, JobOptions, JobQueue, JobStatus, Worker

pytestmark = pytest.mark.unit


@pytest.fixture
def queue(queue_service) -> JobQueue:
    return queue_service.get_queue("analytics")


class TestConcurrency:
    async def test_never_exceeds_concurrency(self, queue: JobQueue) -> None:
        running = 0
        peak = 0

        async def processor(job: Job) -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        for n in range(5):
            await queue.add("track-event", {"n": n})
        worker = Worker(queue, processor, concurrency=2)

        assert [await worker.run_once() for _ in range(4)] == [2, 2, 1, 0]
        assert peak == 2
        assert (await queue.get_job_counts())["completed"] == 5

    async def test_run_until_stopped(self, queue: JobQueue) -> None:
        done = asyncio.Event()

        async def processor(job: Job) -> None:
            done.set()

        await queue.add("track-event", {})
        worker = Worker(queue, processor, concurrency=1, poll_interval=0.01)
        task = asyncio.create_task(worker.run())

        await asyncio.wait_for(done.wait(), timeout=2)
        assert await worker.stop(timeout=1)
        await asyncio.wait_for(task, timeout=1)
        assert worker.in_flight == 0


class TestOutcomes:
    async def test_return_value_is_stored(self, queue: JobQueue) -> None:
        async def processor(job: Job) -> dict:
            return {"seen": job.data["n"]}

        job = await queue.add("track-event", {"n": 7})
        await Worker(queue, processor, concurrency=1).run_once()

        stored = await queue.get_job(job.id)
        assert stored.status is JobStatus.COMPLETED
        assert stored.return_value == {"seen": 7}

    async def test_continuation_is_enqueued(self, queue: JobQueue) -> None:
        async def processor(job: Job) -> Continuation | None:
            if job.data["page"] < 2:
                page = job.data["page"] + 1
                return Continuation(name="track-event", data={"page": page}, job_id=f"page-{page}")
            return None

        await queue.add("track-event", {"page": 0}, JobOptions(job_id="page-0"))
        worker = Worker(queue, processor, concurrency=4)

        assert [await worker.run_once() for _ in range(4)] == [1, 1, 1, 0]
        for page in range(3):
            assert (await queue.get_job(f"page-{page}")).status is JobStatus.COMPLETED

    async def test_retryable_error_is_rescheduled(self, queue: JobQueue) -> None:
        failures: list[BaseException] = []

        async def processor(job: Job) -> None:
            raise TransientError("provider timeout")

        async def on_failed(job: Job, exc: BaseException) -> None:
            failures.append(exc)

        job = await queue.add("track-event", {})
        await Worker(queue, processor, concurrency=1, on_failed=on_failed).run_once()

        stored = await queue.get_job(job.id)
        assert stored.status is JobStatus.DELAYED
        assert stored.failed_reason == "provider timeout"
        assert failures == []

    async def test_unexpected_exception_is_retried(self, queue: JobQueue) -> None:
        async def processor(job: Job) -> None:
            raise ConnectionError("database went away")

        job = await queue.add("track-event", {})
        await Worker(queue, processor, concurrency=1).run_once()

        assert (await queue.get_job(job.id)).status is JobStatus.DELAYED

    async def test_non_retryable_error_fails_once_and_calls_hook(self, queue: JobQueue) -> None:
        failures: list[tuple[str, BaseException]] = []

        async def processor(job: Job) -> None:
            raise NotFoundError("Campaign 42 not found")

        async def on_failed(job: Job, exc: BaseException) -> None:
            failures.append((job.id, exc))

        job = await queue.add("track-event", {})
        await Worker(queue, processor, concurrency=1, on_failed=on_failed).run_once()

        stored = await queue.get_job(job.id)
        assert stored.status is JobStatus.FAILED
        assert stored.attempts_made == 1
        assert len(failures) == 1
        assert failures[0][0] == job.id
        assert isinstance(failures[0][1], NotFoundError)

    async def test_hook_runs_after_attempts_are_exhausted(self, queue: JobQueue, clock) -> None:
        failures: list[BaseException] = []

        async def processor(job: Job) -> None:
            raise TransientError("still down")

        async def on_failed(job: Job, exc: BaseException) -> None:
            failures.append(exc)

        job = await queue.add("track-event", {}, JobOptions(attempts=2, backoff=100))
        worker = Worker(queue, processor, concurrency=1, on_failed=on_failed)

        await worker.run_once()
        assert failures == []
        clock.advance(100)
        await worker.run_once()

        assert (await queue.get_job(job.id)).status is JobStatus.FAILED
        assert len(failures) == 1

    async def test_paused_queue_is_not_drained(self, queue: JobQueue) -> None:
        calls = 0

        async def processor(job: Job) -> None:
            nonlocal calls
            calls += 1

        await queue.add("track-event", {})
        await queue.pause()

        assert await Worker(queue, processor, concurrency=1).run_once() == 0
        assert calls == 0
