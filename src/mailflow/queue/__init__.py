from src.mailflow.queue.definitions import JobName, QueueDefinition, QueueName, queue_definitions
from src.mailflow.queue.job import Continuation, Job, JobOptions, JobStatus
from src.mailflow.queue.redis_queue import JobQueue
from src.mailflow.queue.service import QueueService, automation_job_id
from src.mailflow.queue.worker import Worker

__all__ = [
    "Continuation",
    "Job",
    "JobName",
    "JobOptions",
    "JobQueue",
    "JobStatus",
    "QueueDefinition",
    "QueueName",
    "QueueService",
    "Worker",
    "automation_job_id",
    "queue_definitions",
]
