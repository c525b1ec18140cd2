"""Workflow engine: drives executions through their graph one job at a time.

Each automation job runs exactly one node. On success the engine commits the
step and hands the next step back to the worker as a ``Continuation``, which
the queue enqueues atomically with the ack of the current job. An execution
therefore never has more than one job in flight.
"""

import time
from datetime import timedelta
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from src.mailflow.core.config import Settings, get_settings
from src.mailflow.core.exceptions import NotFoundError, TransientError, ValidationError
from src.mailflow.core.logging import bind_execution_context, get_logger
from src.mailflow.models import (
    AutomationExecution,
    AutomationStatus,
    ExecutionStatus,
    NodeType,
)
from src.mailflow.models.base import utc_now
from src.mailflow.queue.definitions import JobName, QueueName
from src.mailflow.queue.job import Continuation, JobStatus
from src.mailflow.queue.service import QueueService, automation_job_id
from src.mailflow.repositories import (
    AutomationRepository,
    ExecutionRepository,
    SubscriberRepository,
)
from src.mailflow.schemas.jobs import AutomationJobData
from src.mailflow.schemas.workflow import (
    ExecutionContext,
    StepRecord,
    TimelineEntry,
)
from src.mailflow.workflow.executor import StepExecutor
from src.mailflow.workflow.graph import GraphCache, resolve_next
from src.mailflow.workflow.timeline import build_timeline

logger = get_logger(__name__)

_SHORT_CIRCUIT = (
    ExecutionStatus.PAUSED,
    ExecutionStatus.CANCELLED,
    ExecutionStatus.COMPLETED,
    ExecutionStatus.FAILED,
)


class WorkflowEngine:
    """Execution lifecycle and the automation job handler.

    Built per unit of work (one job or one request) around a session; the
    graph cache is long-lived and shared.
    """

    def __init__(
        self,
        session: AsyncSession,
        queue_service: QueueService,
        graph_cache: GraphCache,
        settings: Settings | None = None,
    ):
        self.session = session
        self.queue_service = queue_service
        self.graph_cache = graph_cache
        self.settings = settings or get_settings()
        self.automation_repo = AutomationRepository(session)
        self.execution_repo = ExecutionRepository(session)
        self.subscriber_repo = SubscriberRepository(session)
        self.executor = StepExecutor(session, queue_service, self.settings)

    # --- Execution control ---

    async def start_execution(
        self,
        tenant_id: UUID,
        automation_id: UUID,
        subscriber_id: UUID,
        variables: dict[str, str] | None = None,
    ) -> UUID:
        """Create a PENDING execution and enqueue its first step.

        Raises:
            NotFoundError: Automation or subscriber missing for the tenant.
            ValidationError: Automation not active or its graph is invalid.
        """
        automation = await self.automation_repo.get_for_tenant(automation_id, tenant_id)
        if automation is None:
            raise NotFoundError(f"Automation {automation_id} not found")
        if automation.status != AutomationStatus.ACTIVE.value:
            raise ValidationError(f"Automation {automation_id} is not active")
        graph = self.graph_cache.get(automation)

        if await self.subscriber_repo.get_for_tenant(subscriber_id, tenant_id) is None:
            raise NotFoundError(f"Subscriber {subscriber_id} not found")

        execution = AutomationExecution(
            automation_id=automation_id,
            subscriber_id=subscriber_id,
            tenant_id=tenant_id,
            status=ExecutionStatus.PENDING.value,
            current_node_id=graph.entry_node_id(),
            variables=dict(variables or {}),
        )
        self.execution_repo.add(execution)
        await self.session.commit()

        bind_execution_context(execution.id, tenant_id, automation_id)
        try:
            await self.queue_service.add_automation_job(self._job_data(execution, execution.current_node_id))
        except Exception as e:
            logger.error("Failed to enqueue first step", error=str(e))
            await self._finish(execution, ExecutionStatus.FAILED, "Failed to enqueue first step")
            raise TransientError("Failed to enqueue first step") from e

        logger.info("Execution started", subscriber_id=str(subscriber_id))
        return execution.id

    async def get_execution(self, execution_id: UUID, tenant_id: UUID | None = None) -> AutomationExecution:
        if tenant_id is None:
            execution = await self.execution_repo.get_by_id(execution_id)
        else:
            execution = await self.execution_repo.get_for_tenant(execution_id, tenant_id)
        if execution is None:
            raise NotFoundError(f"Execution {execution_id} not found")
        return execution

    async def pause_execution(self, execution_id: UUID, tenant_id: UUID | None = None) -> AutomationExecution:
        """Pause a PENDING or RUNNING execution; the next job short-circuits."""
        execution = await self.get_execution(execution_id, tenant_id)
        if ExecutionStatus(execution.status) not in (ExecutionStatus.PENDING, ExecutionStatus.RUNNING):
            raise ValidationError(f"Cannot pause execution in status {execution.status}")
        execution.status = ExecutionStatus.PAUSED.value
        await self.session.commit()
        logger.info("Execution paused", execution_id=str(execution_id))
        return execution

    async def resume_execution(self, execution_id: UUID, tenant_id: UUID | None = None) -> AutomationExecution:
        """Resume a PAUSED execution.

        The current node is re-enqueued only when its step job has already run
        and short-circuited; a job still waiting or delayed picks the execution
        back up itself.
        """
        execution = await self.get_execution(execution_id, tenant_id)
        if execution.status != ExecutionStatus.PAUSED.value:
            raise ValidationError(f"Cannot resume execution in status {execution.status}")
        execution.status = (
            ExecutionStatus.RUNNING.value if execution.started_at else ExecutionStatus.PENDING.value
        )
        await self.session.commit()

        delay = 0
        if execution.next_run_at is not None:
            delay = max(0, int((execution.next_run_at - utc_now()).total_seconds() * 1000))
        data = self._job_data(execution, execution.current_node_id)
        step_job = await self.queue_service.get_queue(QueueName.AUTOMATION).get_job(
            automation_job_id(data)
        )
        if step_job is not None and step_job.status in (JobStatus.WAITING, JobStatus.DELAYED):
            # Still queued: it will find the execution runnable when claimed
            logger.info("Execution resumed", execution_id=str(execution_id), requeued=False)
            return execution

        # The step's own id is taken by the job that observed the pause
        await self.queue_service.add_automation_job(
            data, delay=delay, job_id=f"{automation_job_id(data)}:resume-{uuid4().hex[:8]}"
        )
        logger.info("Execution resumed", execution_id=str(execution_id), delay_ms=delay, requeued=True)
        return execution

    async def cancel_execution(self, execution_id: UUID, tenant_id: UUID | None = None) -> AutomationExecution:
        execution = await self.get_execution(execution_id, tenant_id)
        if ExecutionStatus(execution.status).is_terminal:
            raise ValidationError(f"Cannot cancel execution in status {execution.status}")
        execution.status = ExecutionStatus.CANCELLED.value
        execution.completed_at = utc_now()
        await self.session.commit()
        logger.info("Execution cancelled", execution_id=str(execution_id))
        return execution

    async def get_timeline(self, execution_id: UUID, tenant_id: UUID | None = None) -> list[TimelineEntry]:
        execution = await self.get_execution(execution_id, tenant_id)
        automation = await self.automation_repo.get_by_id(execution.automation_id)
        if automation is None:
            raise NotFoundError(f"Automation {execution.automation_id} not found")
        return build_timeline(execution, self.graph_cache.get(automation))

    # --- Job handling ---

    async def process_job(self, data: AutomationJobData) -> Continuation | None:
        """Run one step of an execution.

        Returns the continuation for the next step, or None when the execution
        reached a terminal or paused state.

        Raises:
            NotFoundError, ValidationError: Unrecoverable; the job fails
                without retry and the execution is marked FAILED.
            TransientError: Retryable step failure.
        """
        bind_execution_context(data.execution_id, data.tenant_id, data.automation_id)
        execution = await self.execution_repo.get_for_update(data.execution_id)
        if execution is None:
            raise NotFoundError(f"Execution {data.execution_id} not found")

        status = ExecutionStatus(execution.status)
        if status in _SHORT_CIRCUIT:
            logger.info("Execution not runnable, skipping step", status=status.value, step=data.step)
            return None

        if data.step != execution.step_count:
            return self._recover_stale_step(execution, data)

        if execution.step_count >= self.settings.max_steps_per_execution:
            await self._finish(
                execution,
                ExecutionStatus.FAILED,
                f"Maximum steps exceeded ({self.settings.max_steps_per_execution})",
            )
            logger.warning("Execution hit the step limit", step_count=execution.step_count)
            return None

        automation = await self.automation_repo.get_by_id(execution.automation_id)
        if automation is None:
            raise NotFoundError(f"Automation {execution.automation_id} not found")
        graph = self.graph_cache.get(automation)

        node_id = data.current_node_id or execution.current_node_id or graph.entry_node_id()
        node = graph.get_node(node_id) if node_id else None
        if node is not None and node.type is NodeType.TRIGGER:
            node_id = resolve_next(graph, node.id)
            node = graph.get_node(node_id) if node_id else None
        if node_id is None:
            await self._finish(execution, ExecutionStatus.COMPLETED)
            return None
        if node is None:
            raise ValidationError(f"Unknown node: {node_id}")

        subscriber = await self.subscriber_repo.get_for_tenant(execution.subscriber_id, execution.tenant_id)
        if subscriber is None:
            raise NotFoundError(f"Subscriber {execution.subscriber_id} not found")

        if status is ExecutionStatus.PENDING:
            execution.status = ExecutionStatus.RUNNING.value
            execution.started_at = utc_now()

        context = ExecutionContext(
            tenant_id=execution.tenant_id,
            automation_id=execution.automation_id,
            execution_id=execution.id,
            subscriber=subscriber,
            current_node_id=node.id,
            step=execution.step_count,
            variables=dict(execution.variables or {}),
        )
        started = time.monotonic()
        executed_at = utc_now()
        result = await self.executor.execute(context, node, graph)
        duration_ms = int((time.monotonic() - started) * 1000)

        if not result.success and result.retryable:
            await self.session.rollback()
            logger.warning("Step failed, will retry", node_id=node.id, error=result.error)
            raise TransientError(result.error or f"Step {node.id} failed")

        record = StepRecord(
            node_id=node.id,
            node_type=node.type,
            status="completed" if result.success else "failed",
            executed_at=executed_at,
            duration_ms=duration_ms,
            error=result.error,
            data=result.data,
        )
        execution.step_log = [*(execution.step_log or []), record.model_dump(mode="json")]
        execution.step_count += 1
        execution.last_executed_node_id = node.id

        if not result.success:
            logger.warning("Step failed", node_id=node.id, error=result.error)
            await self._finish(execution, ExecutionStatus.FAILED, result.error)
            return None

        if result.next_node_id is None:
            await self._finish(execution, ExecutionStatus.COMPLETED)
            return None

        delay = result.delay or 0
        execution.current_node_id = result.next_node_id
        execution.next_run_at = utc_now() + timedelta(milliseconds=delay)
        await self.session.commit()
        logger.info(
            "Step completed",
            node_id=node.id,
            node_type=node.type.value,
            next_node_id=result.next_node_id,
            delay_ms=delay,
            step=execution.step_count,
        )
        return self._continuation(execution, result.next_node_id, delay)

    async def handle_job_failure(self, data: AutomationJobData, error: str) -> None:
        """Mark the execution FAILED once its job has failed for good."""
        execution = await self.execution_repo.get_for_update(data.execution_id)
        if execution is None or ExecutionStatus(execution.status).is_terminal:
            return
        await self._finish(execution, ExecutionStatus.FAILED, error)
        logger.error("Execution failed", execution_id=str(data.execution_id), error=error)

    # --- Internals ---

    def _recover_stale_step(
        self, execution: AutomationExecution, data: AutomationJobData
    ) -> Continuation | None:
        """Handle a redelivered job whose step was already committed.

        Only the job for the latest committed step may re-issue the
        continuation; its deterministic id makes the re-issue a no-op when the
        continuation was already enqueued.
        """
        if (
            data.step == execution.step_count - 1
            and execution.status == ExecutionStatus.RUNNING.value
            and execution.current_node_id
        ):
            delay = 0
            if execution.next_run_at is not None:
                delay = max(0, int((execution.next_run_at - utc_now()).total_seconds() * 1000))
            logger.info("Re-issuing continuation for redelivered step", step=data.step)
            return self._continuation(execution, execution.current_node_id, delay)
        logger.info("Ignoring stale step", step=data.step, step_count=execution.step_count)
        return None

    def _job_data(self, execution: AutomationExecution, node_id: str | None) -> AutomationJobData:
        return AutomationJobData(
            tenant_id=execution.tenant_id,
            automation_id=execution.automation_id,
            subscriber_id=execution.subscriber_id,
            execution_id=execution.id,
            current_node_id=node_id,
            step=execution.step_count,
        )

    def _continuation(self, execution: AutomationExecution, node_id: str, delay: int) -> Continuation:
        data = self._job_data(execution, node_id)
        return Continuation(
            name=JobName.PROCESS_AUTOMATION.value,
            data=data.model_dump(mode="json"),
            delay=delay,
            job_id=automation_job_id(data),
        )

    async def _finish(
        self, execution: AutomationExecution, status: ExecutionStatus, error: str | None = None
    ) -> None:
        execution.status = status.value
        execution.completed_at = utc_now()
        execution.next_run_at = None
        if status is ExecutionStatus.COMPLETED:
            execution.current_node_id = None
        if error:
            execution.error_message = error[:1000]
        await self.session.commit()
        logger.info("Execution finished", status=status.value, step_count=execution.step_count)
