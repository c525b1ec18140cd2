"""Queue processors and worker assembly."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.mailflow.core.config import Settings, get_settings
from src.mailflow.core.notifications.email import EmailTransport
from src.mailflow.jobs.analytics import AnalyticsJobHandler
from src.mailflow.jobs.automation import AutomationJobHandler
from src.mailflow.jobs.campaign import CampaignJobHandler
from src.mailflow.jobs.email import EmailJobHandler
from src.mailflow.queue import QueueName, QueueService, Worker
from src.mailflow.workflow.graph import GraphCache


def build_workers(
    queue_service: QueueService,
    session_factory: async_sessionmaker[AsyncSession],
    transport: EmailTransport,
    queues: list[QueueName] | None = None,
    settings: Settings | None = None,
    graph_cache: GraphCache | None = None,
) -> list[Worker]:
    """One worker per selected queue, sized from the queue definitions."""
    settings = settings or get_settings()
    automation = AutomationJobHandler(session_factory, queue_service, graph_cache, settings)
    processors = {
        QueueName.EMAIL: (EmailJobHandler(session_factory, queue_service, transport, settings), None),
        QueueName.CAMPAIGN: (CampaignJobHandler(session_factory, queue_service, settings), None),
        QueueName.AUTOMATION: (automation, automation.on_failed),
        QueueName.ANALYTICS: (AnalyticsJobHandler(session_factory, queue_service, settings), None),
    }

    workers = []
    for name in queues or list(QueueName):
        processor, on_failed = processors[name]
        workers.append(
            Worker(
                queue_service.get_queue(name),
                processor,
                concurrency=queue_service.definitions[name].concurrency,
                poll_interval=settings.queue_poll_interval_seconds,
                on_failed=on_failed,
            )
        )
    return workers


__all__ = [
    "AnalyticsJobHandler",
    "AutomationJobHandler",
    "CampaignJobHandler",
    "EmailJobHandler",
    "build_workers",
]
