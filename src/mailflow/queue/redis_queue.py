"""Redis-backed job queue.

Layout under ``{prefix}:{queue}``:

- ``:job:{id}``  hash with the job record
- ``:waiting``   zset scored by priority rank then enqueue sequence
- ``:delayed``   zset scored by ready time (ms)
- ``:active``    zset scored by lease deadline (ms)
- ``:completed`` / ``:failed``  zsets scored by finish time, trimmed
- ``:paused``    flag, ``:seq`` enqueue counter

Every state transition runs in a MULTI transaction, guarded by WATCH on the
job hash, so two workers can never both move the same job.
"""

import json
import time
from collections.abc import Callable
from typing import Any
from uuid import uuid4

from redis.asyncio import Redis
from redis.asyncio.client import Pipeline
from redis.exceptions import WatchError

from src.mailflow.core.logging import get_logger
from src.mailflow.queue.definitions import QueueDefinition
from src.mailflow.queue.job import Continuation, Job, JobOptions, JobStatus

logger = get_logger(__name__)

# Waiting score = rank * 2^31 + sequence. Unprioritized jobs (priority 0) get
# the highest rank so they run after every prioritized job.
_SEQ_SPACE = 2**31
_UNPRIORITIZED_RANK = 2**21


def waiting_score(priority: int, seq: int) -> int:
    rank = min(priority, _UNPRIORITIZED_RANK - 1) if priority > 0 else _UNPRIORITIZED_RANK
    return rank * _SEQ_SPACE + seq % _SEQ_SPACE


class JobQueue:
    """One named queue."""

    def __init__(
        self,
        redis: Redis,
        definition: QueueDefinition,
        *,
        prefix: str = "mailflow",
        lease_ms: int = 30_000,
        clock: Callable[[], float] | None = None,
    ):
        self.redis = redis
        self.definition = definition
        self.name = definition.name.value
        self.lease_ms = lease_ms
        self._clock = clock or time.time
        self._base = f"{prefix}:{self.name}"

    def _key(self, suffix: str) -> str:
        return f"{self._base}:{suffix}"

    def _job_key(self, job_id: str) -> str:
        return f"{self._base}:job:{job_id}"

    def now_ms(self) -> int:
        return round(self._clock() * 1000)

    def default_options(self, **overrides: Any) -> JobOptions:
        options = JobOptions(
            attempts=self.definition.attempts,
            backoff=self.definition.backoff_ms,
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(options, key, value)
        return options

    # --- Enqueue ---

    async def add(self, name: str, data: dict[str, Any], options: JobOptions | None = None) -> Job:
        """Enqueue a job.

        With a deterministic ``job_id``, an existing job of that id is
        returned instead of enqueueing a duplicate.
        """
        options = options or self.default_options()
        job_id = options.job_id or uuid4().hex
        job_key = self._job_key(job_id)

        async with self.redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(job_key)
                    existing = await self.get_job(job_id)
                    if existing is not None:
                        logger.debug("Duplicate job ignored", queue=self.name, job_id=job_id)
                        return existing
                    job = self._new_job(job_id, name, data, options)
                    seq = await self.redis.incr(self._key("seq"))
                    pipe.multi()
                    self._enqueue(pipe, job, seq, options.delay)
                    await pipe.execute()
                    return job
                except WatchError:
                    continue

    def _new_job(self, job_id: str, name: str, data: dict[str, Any], options: JobOptions) -> Job:
        return Job(
            id=job_id,
            queue_name=self.name,
            name=name,
            data=data,
            max_attempts=max(options.attempts, 1),
            backoff_delay=max(options.backoff, 0),
            priority=max(options.priority, 0),
            created_at=self.now_ms(),
        )

    def _enqueue(self, pipe: Pipeline, job: Job, seq: int, delay: int) -> None:
        job.waiting_score = waiting_score(job.priority, seq)
        if delay > 0:
            job.status = JobStatus.DELAYED
            job.delay_until = self.now_ms() + delay
            pipe.hset(self._job_key(job.id), mapping=job.to_hash())
            pipe.zadd(self._key("delayed"), {job.id: job.delay_until})
        else:
            job.status = JobStatus.WAITING
            pipe.hset(self._job_key(job.id), mapping=job.to_hash())
            pipe.zadd(self._key("waiting"), {job.id: job.waiting_score})

    # --- Claim / ack ---

    async def claim(self) -> Job | None:
        """Move the next waiting job to active under a lease.

        Returns None when the queue is empty or paused.
        """
        if await self.is_paused():
            return None

        waiting = self._key("waiting")
        async with self.redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(waiting)
                    head = await pipe.zrange(waiting, 0, 0)
                    if not head:
                        return None
                    job_id = head[0]
                    now = self.now_ms()
                    pipe.multi()
                    pipe.zrem(waiting, job_id)
                    pipe.zadd(self._key("active"), {job_id: now + self.lease_ms})
                    pipe.hset(
                        self._job_key(job_id),
                        mapping={
                            "status": JobStatus.ACTIVE.value,
                            "processed_at": str(now),
                            "progress": "0",
                        },
                    )
                    pipe.hgetall(self._job_key(job_id))
                    results = await pipe.execute()
                    return Job.from_hash(self.name, job_id, results[-1])
                except WatchError:
                    continue

    async def renew_lease(self, job: Job) -> bool:
        """Push the lease deadline of an active job. False if the lease was lost."""
        changed = await self.redis.zadd(
            self._key("active"), {job.id: self.now_ms() + self.lease_ms}, xx=True, ch=True
        )
        return bool(changed)

    async def complete(
        self,
        job: Job,
        return_value: Any = None,
        continuation: Continuation | None = None,
    ) -> bool:
        """Acknowledge a job, enqueueing its continuation in the same transaction.

        Returns False when the job no longer holds its lease (it was recovered
        as stalled); the ack and continuation are then dropped.
        """
        job_key = self._job_key(job.id)
        watch_keys = [job_key]
        next_job: Job | None = None
        next_delay = 0
        if continuation is not None:
            next_id = continuation.job_id or uuid4().hex
            options = self.default_options(priority=continuation.priority, job_id=next_id)
            next_job = self._new_job(next_id, continuation.name, continuation.data, options)
            next_delay = continuation.delay
            watch_keys.append(self._job_key(next_id))

        async with self.redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(*watch_keys)
                    if await pipe.zscore(self._key("active"), job.id) is None:
                        logger.warning(
                            "Job lease lost before completion", queue=self.name, job_id=job.id
                        )
                        return False
                    if next_job is not None and await pipe.exists(self._job_key(next_job.id)):
                        logger.debug(
                            "Duplicate continuation ignored", queue=self.name, job_id=next_job.id
                        )
                        next_job = None
                    seq = await self.redis.incr(self._key("seq")) if next_job is not None else 0
                    now = self.now_ms()
                    mapping = {
                        "status": JobStatus.COMPLETED.value,
                        "finished_at": str(now),
                        "progress": "100",
                    }
                    if return_value is not None:
                        mapping["return_value"] = json.dumps(return_value)
                    pipe.multi()
                    pipe.zrem(self._key("active"), job.id)
                    pipe.zadd(self._key("completed"), {job.id: now})
                    pipe.hset(job_key, mapping=mapping)
                    if next_job is not None:
                        self._enqueue(pipe, next_job, seq, next_delay)
                    await pipe.execute()
                    break
                except WatchError:
                    continue

        job.status = JobStatus.COMPLETED
        await self._trim(self._key("completed"), self.definition.keep_completed)
        return True

    async def fail(self, job: Job, reason: str, retryable: bool = True) -> JobStatus:
        """Record a failed attempt.

        Retryable failures with attempts left are rescheduled with exponential
        backoff; everything else moves the job to failed. Returns the job's new
        status.
        """
        job_key = self._job_key(job.id)
        attempts_made = job.attempts_made + 1
        retry = retryable and attempts_made < job.max_attempts
        delay = job.backoff_for(attempts_made) if retry else 0

        async with self.redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(job_key)
                    if await pipe.zscore(self._key("active"), job.id) is None:
                        logger.warning("Job lease lost before failure", queue=self.name, job_id=job.id)
                        return JobStatus(await self.redis.hget(job_key, "status") or JobStatus.WAITING.value)
                    now = self.now_ms()
                    mapping = {"attempts_made": str(attempts_made), "failed_reason": reason}
                    pipe.multi()
                    pipe.zrem(self._key("active"), job.id)
                    if retry and delay > 0:
                        status = JobStatus.DELAYED
                        mapping["delay_until"] = str(now + delay)
                        pipe.zadd(self._key("delayed"), {job.id: now + delay})
                    elif retry:
                        status = JobStatus.WAITING
                        pipe.zadd(self._key("waiting"), {job.id: job.waiting_score})
                    else:
                        status = JobStatus.FAILED
                        mapping["finished_at"] = str(now)
                        pipe.zadd(self._key("failed"), {job.id: now})
                    mapping["status"] = status.value
                    pipe.hset(job_key, mapping=mapping)
                    await pipe.execute()
                    break
                except WatchError:
                    continue

        job.attempts_made = attempts_made
        job.failed_reason = reason
        job.status = status
        if status is JobStatus.FAILED:
            await self._trim(self._key("failed"), self.definition.keep_failed)
        return status

    # --- Maintenance ---

    async def promote_delayed(self) -> int:
        """Move delayed jobs whose time has come to waiting."""
        due = await self.redis.zrangebyscore(self._key("delayed"), "-inf", self.now_ms())
        promoted = 0
        for job_id in due:
            if await self._move_to_waiting(job_id, self._key("delayed")):
                promoted += 1
        return promoted

    async def recover_stalled(self) -> int:
        """Return jobs whose lease expired (crashed worker) to waiting."""
        expired = await self.redis.zrangebyscore(self._key("active"), "-inf", self.now_ms())
        recovered = 0
        for job_id in expired:
            if await self._move_to_waiting(job_id, self._key("active"), stalled=True):
                recovered += 1
                logger.warning("Recovered stalled job", queue=self.name, job_id=job_id)
        return recovered

    async def _move_to_waiting(self, job_id: str, source: str, stalled: bool = False) -> bool:
        job_key = self._job_key(job_id)
        async with self.redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(job_key)
                    score = await pipe.zscore(source, job_id)
                    if score is None or score > self.now_ms():
                        return False
                    mapping = await pipe.hgetall(job_key)
                    if not mapping:
                        pipe.multi()
                        pipe.zrem(source, job_id)
                        await pipe.execute()
                        return False
                    pipe.multi()
                    pipe.zrem(source, job_id)
                    pipe.zadd(self._key("waiting"), {job_id: int(mapping.get("waiting_score", 0))})
                    pipe.hset(job_key, "status", JobStatus.WAITING.value)
                    if stalled:
                        pipe.hincrby(job_key, "stalled_count", 1)
                    await pipe.execute()
                    return True
                except WatchError:
                    continue

    async def _trim(self, key: str, keep: int) -> None:
        """Drop the oldest finished jobs beyond ``keep``."""
        stale = await self.redis.zrange(key, 0, -(keep + 1))
        if not stale:
            return
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zrem(key, *stale)
            pipe.delete(*(self._job_key(job_id) for job_id in stale))
            await pipe.execute()

    async def update_progress(self, job: Job, progress: int) -> int:
        """Raise a job's progress (0-100). Lower values are ignored."""
        progress = max(0, min(100, int(progress)))
        if progress > job.progress:
            await self.redis.hset(self._job_key(job.id), "progress", str(progress))
            job.progress = progress
        return job.progress

    # --- Control / introspection ---

    async def pause(self) -> None:
        await self.redis.set(self._key("paused"), "1")
        logger.info("Queue paused", queue=self.name)

    async def resume(self) -> None:
        await self.redis.delete(self._key("paused"))
        logger.info("Queue resumed", queue=self.name)

    async def is_paused(self) -> bool:
        return bool(await self.redis.exists(self._key("paused")))

    async def get_job(self, job_id: str) -> Job | None:
        mapping = await self.redis.hgetall(self._job_key(job_id))
        if not mapping:
            return None
        return Job.from_hash(self.name, job_id, mapping)

    async def get_job_counts(self) -> dict[str, int]:
        async with self.redis.pipeline(transaction=False) as pipe:
            for state in ("waiting", "active", "completed", "failed", "delayed"):
                pipe.zcard(self._key(state))
            waiting, active, completed, failed, delayed = await pipe.execute()
        return {
            "waiting": waiting,
            "active": active,
            "completed": completed,
            "failed": failed,
            "delayed": delayed,
        }

    async def get_waiting_ids(self) -> list[str]:
        """Waiting job ids in claim order."""
        return list(await self.redis.zrange(self._key("waiting"), 0, -1))
