"""Shared enums for models."""

from enum import Enum


class NodeType(str, Enum):
    """Workflow graph node types."""

    TRIGGER = "TRIGGER"
    ACTION = "ACTION"
    CONDITION = "CONDITION"
    DELAY = "DELAY"
    EMAIL = "EMAIL"
    WAIT = "WAIT"


class ConnectionCondition(str, Enum):
    """Branch guard on a workflow connection."""

    ALWAYS = "always"
    CONDITIONAL = "conditional"


class ActionType(str, Enum):
    SEND_EMAIL = "send_email"
    ADD_TO_LIST = "add_to_list"
    REMOVE_FROM_LIST = "remove_from_list"
    UPDATE_FIELD = "update_field"


class ExecutionStatus(str, Enum):
    """Automation execution lifecycle."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )


class AutomationStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"


class SubscriberStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNSUBSCRIBED = "unsubscribed"
    BOUNCED = "bounced"


class CampaignStatus(str, Enum):
    DRAFT = "DRAFT"
    SENDING = "SENDING"
    SENT = "SENT"


class EmailEventType(str, Enum):
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    OPENED = "OPENED"
    CLICKED = "CLICKED"
    BOUNCED = "BOUNCED"
    COMPLAINED = "COMPLAINED"
    UNSUBSCRIBED = "UNSUBSCRIBED"
    FAILED = "FAILED"
