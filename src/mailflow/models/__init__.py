"""Model exports.

Import from here: `from src.mailflow.models import Automation, Subscriber`
"""

from src.mailflow.models.automation import Automation, AutomationExecution
from src.mailflow.models.campaign import Campaign, EmailEvent
from src.mailflow.models.enums import (
    ActionType,
    AutomationStatus,
    CampaignStatus,
    ConnectionCondition,
    EmailEventType,
    ExecutionStatus,
    NodeType,
    SubscriberStatus,
)
from src.mailflow.models.subscriber import ListMembership, MailingList, Subscriber
from src.mailflow.models.usage import ApiKey, UsageRecord

__all__ = [
    # Enums
    "ActionType",
    "AutomationStatus",
    "CampaignStatus",
    "ConnectionCondition",
    "EmailEventType",
    "ExecutionStatus",
    "NodeType",
    "SubscriberStatus",
    # Models
    "ApiKey",
    "Automation",
    "AutomationExecution",
    "Campaign",
    "EmailEvent",
    "ListMembership",
    "MailingList",
    "Subscriber",
    "UsageRecord",
]
