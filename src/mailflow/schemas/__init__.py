from src.mailflow.schemas.jobs import (
    AnalyticsJobData,
    AutomationJobData,
    CampaignJobData,
    EmailJobData,
    EmailMessage,
    SendingResult,
)
from src.mailflow.schemas.rate_limit import CompositeRateLimitResult, RateLimitResult, UsageStats
from src.mailflow.schemas.workflow import (
    ExecutionContext,
    StepRecord,
    StepResult,
    TimelineEntry,
    WorkflowConnection,
    WorkflowGraph,
    WorkflowNode,
)

__all__ = [
    "AnalyticsJobData",
    "AutomationJobData",
    "CampaignJobData",
    "CompositeRateLimitResult",
    "EmailJobData",
    "EmailMessage",
    "ExecutionContext",
    "RateLimitResult",
    "SendingResult",
    "StepRecord",
    "StepResult",
    "TimelineEntry",
    "UsageStats",
    "WorkflowConnection",
    "WorkflowGraph",
    "WorkflowNode",
]
