"""Step executor: runs one workflow node.

Domain failures (missing list, rate-limited send) come back as a failed
``StepResult``; infrastructure exceptions propagate to the worker, which
retries them.
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.mailflow.core.config import Settings, get_settings
from src.mailflow.core.exceptions import NotFoundError
from src.mailflow.core.logging import get_logger
from src.mailflow.models import ListMembership, NodeType
from src.mailflow.queue.service import QueueService
from src.mailflow.repositories import (
    ListMembershipRepository,
    MailingListRepository,
    SubscriberRepository,
    UsageRepository,
)
from src.mailflow.schemas.jobs import EmailJobData, EmailMessage
from src.mailflow.schemas.workflow import (
    AddToListAction,
    ConditionConfig,
    DelayConfig,
    EmailConfig,
    ExecutionContext,
    RemoveFromListAction,
    SendEmailAction,
    StepResult,
    UpdateFieldAction,
    WorkflowGraph,
    WorkflowNode,
)
from src.mailflow.services.rate_limit_service import RateLimitService
from src.mailflow.workflow.conditions import evaluate_subscriber_condition
from src.mailflow.workflow.graph import resolve_next
from src.mailflow.workflow.personalization import personalize

logger = get_logger(__name__)


class StepExecutor:
    def __init__(
        self,
        session: AsyncSession,
        queue_service: QueueService,
        settings: Settings | None = None,
    ):
        self.session = session
        self.queue_service = queue_service
        self.settings = settings or get_settings()
        self.rate_limiter = RateLimitService(UsageRepository(session), self.settings)
        self.subscriber_repo = SubscriberRepository(session)
        self.list_repo = MailingListRepository(session)
        self.membership_repo = ListMembershipRepository(session)

    async def execute(
        self, context: ExecutionContext, node: WorkflowNode, graph: WorkflowGraph
    ) -> StepResult:
        """Run ``node`` and resolve the next node on success."""
        try:
            result = await self._dispatch(context, node)
        except NotFoundError as e:
            result = StepResult(success=False, error=e.message, retryable=False)

        if result.success and result.next_node_id is None:
            result.next_node_id = resolve_next(graph, node.id, result.condition_result)
        return result

    async def _dispatch(self, context: ExecutionContext, node: WorkflowNode) -> StepResult:
        config = node.config
        if isinstance(config, (SendEmailAction, EmailConfig)):
            return await self._send_email(context, config)
        if isinstance(config, AddToListAction):
            return await self._add_to_list(context, config)
        if isinstance(config, RemoveFromListAction):
            return await self._remove_from_list(context, config)
        if isinstance(config, UpdateFieldAction):
            return await self._update_field(context, config)
        if isinstance(config, ConditionConfig):
            result = evaluate_subscriber_condition(
                context.subscriber, config.field, config.operator, config.value
            )
            return StepResult(success=True, data={"condition_result": result})
        if isinstance(config, DelayConfig):
            return StepResult(success=True, delay=config.delay_ms())
        if node.type is NodeType.TRIGGER:
            return StepResult(success=True)
        return StepResult(success=False, error=f"Unknown node type: {node.type}", retryable=False)

    async def _send_email(
        self, context: ExecutionContext, config: SendEmailAction | EmailConfig
    ) -> StepResult:
        gate = await self.rate_limiter.check_email_send(context.tenant_id)
        if not gate.allowed:
            logger.warning(
                "Email send rate limited",
                node_id=context.current_node_id,
                retry_after=gate.retry_after,
            )
            return StepResult(
                success=False,
                error="Tenant email rate limit exceeded",
                retryable=True,
            )

        subscriber = context.subscriber
        message = EmailMessage(
            to=subscriber.email,
            from_email=config.from_email or self.settings.email_from,
            from_name=config.from_name or self.settings.email_from_name,
            subject=personalize(config.subject, subscriber, context.variables),
            html=personalize(config.content, subscriber, context.variables),
        )
        job = await self.queue_service.add_email_job(
            EmailJobData(
                tenant_id=context.tenant_id,
                message=message,
                subscriber_id=subscriber.id,
                metadata={
                    "automation_id": str(context.automation_id),
                    "execution_id": str(context.execution_id),
                    "node_id": context.current_node_id,
                },
            ),
            job_id=f"{context.execution_id}:{context.step}:email",
        )
        return StepResult(success=True, data={"email_job_id": job.id})

    async def _add_to_list(self, context: ExecutionContext, config: AddToListAction) -> StepResult:
        await self._require_list(context, config.list_id)
        subscriber_id = context.subscriber.id
        if await self.membership_repo.get_membership(config.list_id, subscriber_id) is None:
            self.membership_repo.add(ListMembership(list_id=config.list_id, subscriber_id=subscriber_id))
            await self.session.flush()
            return StepResult(success=True, data={"added": True})
        return StepResult(success=True, data={"added": False})

    async def _remove_from_list(
        self, context: ExecutionContext, config: RemoveFromListAction
    ) -> StepResult:
        await self._require_list(context, config.list_id)
        removed = await self.membership_repo.remove(config.list_id, context.subscriber.id)
        return StepResult(success=True, data={"removed": removed > 0})

    async def _update_field(
        self, context: ExecutionContext, config: UpdateFieldAction
    ) -> StepResult:
        subscriber = context.subscriber
        # Reassign so the JSON column is flagged dirty
        subscriber.custom_fields = {**(subscriber.custom_fields or {}), config.field_name: config.value}
        self.subscriber_repo.add(subscriber)
        await self.session.flush()
        return StepResult(success=True)

    async def _require_list(self, context: ExecutionContext, list_id: UUID) -> None:
        if await self.list_repo.get_for_tenant(list_id, context.tenant_id) is None:
            raise NotFoundError(f"List {list_id} not found")
