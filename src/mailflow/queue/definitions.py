"""The four logical queues and their defaults."""

from dataclasses import dataclass
from enum import Enum

from src.mailflow.core.config import Settings


class QueueName(str, Enum):
    EMAIL = "email"
    CAMPAIGN = "campaign"
    AUTOMATION = "automation"
    ANALYTICS = "analytics"


class JobName(str, Enum):
    SEND_EMAIL = "send-email"
    SEND_CAMPAIGN = "send-campaign"
    PROCESS_AUTOMATION = "process-automation"
    TRACK_EVENT = "track-event"


@dataclass(frozen=True)
class QueueDefinition:
    name: QueueName
    concurrency: int
    attempts: int
    backoff_ms: int
    keep_completed: int
    keep_failed: int


def queue_definitions(settings: Settings) -> dict[QueueName, QueueDefinition]:
    """Queue defaults. Concurrency ceilings come from settings."""
    return {
        QueueName.EMAIL: QueueDefinition(
            name=QueueName.EMAIL,
            concurrency=settings.email_queue_concurrency,
            attempts=3,
            backoff_ms=2000,
            keep_completed=100,
            keep_failed=50,
        ),
        QueueName.CAMPAIGN: QueueDefinition(
            name=QueueName.CAMPAIGN,
            concurrency=settings.campaign_queue_concurrency,
            attempts=2,
            backoff_ms=5000,
            keep_completed=50,
            keep_failed=25,
        ),
        QueueName.AUTOMATION: QueueDefinition(
            name=QueueName.AUTOMATION,
            concurrency=settings.automation_queue_concurrency,
            attempts=3,
            backoff_ms=1000,
            keep_completed=100,
            keep_failed=50,
        ),
        QueueName.ANALYTICS: QueueDefinition(
            name=QueueName.ANALYTICS,
            concurrency=settings.analytics_queue_concurrency,
            attempts=5,
            backoff_ms=500,
            keep_completed=200,
            keep_failed=100,
        ),
    }
