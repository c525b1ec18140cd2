"""Repository layer - data access abstraction."""

from src.mailflow.repositories.automation_repository import AutomationRepository
from src.mailflow.repositories.base import BaseRepository
from src.mailflow.repositories.campaign_repository import (
    CampaignRepository,
    EmailEventRepository,
)
from src.mailflow.repositories.execution_repository import ExecutionRepository
from src.mailflow.repositories.subscriber_repository import (
    ListMembershipRepository,
    MailingListRepository,
    SubscriberRepository,
)
from src.mailflow.repositories.usage_repository import (
    ApiKeyRepository,
    UsageRepository,
    hash_api_key,
)

__all__ = [
    "ApiKeyRepository",
    "AutomationRepository",
    "BaseRepository",
    "CampaignRepository",
    "EmailEventRepository",
    "ExecutionRepository",
    "ListMembershipRepository",
    "MailingListRepository",
    "SubscriberRepository",
    "UsageRepository",
    "hash_api_key",
]
