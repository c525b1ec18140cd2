"""Job records and enqueue options."""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DELAYED = "delayed"


@dataclass
class JobOptions:
    """Per-job enqueue options. Times are milliseconds."""

    delay: int = 0
    priority: int = 0  # lower runs first, 0 = unprioritized
    attempts: int = 3
    backoff: int = 1000  # base delay of the exponential backoff
    job_id: str | None = None  # deterministic id, deduplicates enqueues


@dataclass
class Continuation:
    """Next job a handler asks for, enqueued atomically with its own ack."""

    name: str
    data: dict[str, Any]
    delay: int = 0
    priority: int = 0
    job_id: str | None = None


@dataclass
class Job:
    id: str
    queue_name: str
    name: str
    data: dict[str, Any]
    max_attempts: int = 3
    backoff_delay: int = 1000
    priority: int = 0
    attempts_made: int = 0
    status: JobStatus = JobStatus.WAITING
    progress: int = 0
    waiting_score: int = 0
    delay_until: int | None = None
    failed_reason: str | None = None
    return_value: Any = None
    stalled_count: int = 0
    created_at: int = 0
    processed_at: int | None = None
    finished_at: int | None = None

    @property
    def attempt(self) -> int:
        """1-based number of the current attempt."""
        return self.attempts_made + 1

    def backoff_for(self, attempts_made: int) -> int:
        """Exponential backoff: ``delay * 2^(attempts_made - 1)``."""
        return self.backoff_delay * 2 ** max(attempts_made - 1, 0)

    def to_hash(self) -> dict[str, str]:
        mapping = {
            "name": self.name,
            "data": json.dumps(self.data),
            "max_attempts": str(self.max_attempts),
            "backoff_delay": str(self.backoff_delay),
            "priority": str(self.priority),
            "attempts_made": str(self.attempts_made),
            "status": self.status.value,
            "progress": str(self.progress),
            "waiting_score": str(self.waiting_score),
            "stalled_count": str(self.stalled_count),
            "created_at": str(self.created_at),
        }
        if self.delay_until is not None:
            mapping["delay_until"] = str(self.delay_until)
        if self.failed_reason is not None:
            mapping["failed_reason"] = self.failed_reason
        if self.return_value is not None:
            mapping["return_value"] = json.dumps(self.return_value)
        if self.processed_at is not None:
            mapping["processed_at"] = str(self.processed_at)
        if self.finished_at is not None:
            mapping["finished_at"] = str(self.finished_at)
        return mapping

    @classmethod
    def from_hash(cls, queue_name: str, job_id: str, mapping: dict[str, str]) -> "Job":
        def optional_int(key: str) -> int | None:
            value = mapping.get(key)
            return int(value) if value not in (None, "") else None

        return_value = mapping.get("return_value")
        return cls(
            id=job_id,
            queue_name=queue_name,
            name=mapping["name"],
            data=json.loads(mapping.get("data") or "{}"),
            max_attempts=int(mapping.get("max_attempts", 1)),
            backoff_delay=int(mapping.get("backoff_delay", 0)),
            priority=int(mapping.get("priority", 0)),
            attempts_made=int(mapping.get("attempts_made", 0)),
            status=JobStatus(mapping.get("status", JobStatus.WAITING.value)),
            progress=int(mapping.get("progress", 0)),
            waiting_score=int(mapping.get("waiting_score", 0)),
            delay_until=optional_int("delay_until"),
            failed_reason=mapping.get("failed_reason"),
            return_value=json.loads(return_value) if return_value else None,
            stalled_count=int(mapping.get("stalled_count", 0)),
            created_at=int(mapping.get("created_at", 0)),
            processed_at=optional_int("processed_at"),
            finished_at=optional_int("finished_at"),
        )
