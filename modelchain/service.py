"""Workflow execution service used by the invoking layer."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel

from .access import Caller, TrialGate
from .billing import BalanceLedger, InMemoryLedger, charged_cost
from .catalog import ModelCatalog, default_catalog
from .config import ModelChainConfig, load_config
from .contracts import (
    ExecutionInput,
    ExecutionRecord,
    ExecutionStatus,
    MediaType,
    ProgressEvent,
    StepKind,
    Workflow,
    WorkflowComplete,
)
from .engine import CancellationToken, ExecutionController, ExecutionReport
from .errors import (
    ExecutionNotFoundError,
    ForbiddenError,
    InsufficientBalanceError,
    InvalidInputError,
)
from .executors import StepDispatcher
from .persistence import ExecutionRepository, InMemoryExecutionRepository, get_repository
from .progress import CheckpointEmitter, ProgressEmitter, StreamingEmitter
from .providers import ProviderClients, build_clients
from .store import FileWorkflowStore, WorkflowStore

logger = logging.getLogger(__name__)


class JobStep(BaseModel):
    index: int
    step_id: str
    step_name: str
    kind: StepKind
    output_media_type: MediaType
    model: Optional[str] = None
    model_name: Optional[str] = None
    status: Literal["pending", "running", "completed", "error"]
    output: Optional[str] = None
    duration_ms: Optional[int] = None


class JobProgress(BaseModel):
    completed: int
    total: int
    percentage: int


class JobStatus(BaseModel):
    """Polling view of a detached execution."""

    execution_id: str
    status: ExecutionStatus
    workflow_id: str
    workflow_name: str
    progress: JobProgress
    steps: List[JobStep]
    credits_used: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    result: Optional[str] = None
    error: Optional[str] = None


class WorkflowService:
    """Admits callers, runs executions and settles them afterwards.

    ``start_execution`` streams progress events to a connected caller;
    ``start_background_execution`` detaches the run and checkpoints every
    step so ``get_job_status`` can report it later. Both drive the same
    ``ExecutionController``.
    """

    def __init__(
        self,
        store: WorkflowStore,
        controller: ExecutionController,
        catalog: ModelCatalog,
        repository: Optional[ExecutionRepository] = None,
        ledger: Optional[BalanceLedger] = None,
        trial_gate: Optional[TrialGate] = None,
    ) -> None:
        self._store = store
        self._controller = controller
        self._catalog = catalog
        self._repository = repository or InMemoryExecutionRepository()
        self._ledger = ledger or InMemoryLedger()
        self._trial_gate = trial_gate or TrialGate()
        self._tasks: Dict[str, asyncio.Task[ExecutionReport]] = {}
        self._tokens: Dict[str, CancellationToken] = {}

    # ------------------------------------------------------------------
    # Admission and settlement
    async def _admit(
        self, workflow_id: str, execution_input: ExecutionInput, caller: Caller
    ) -> Tuple[Workflow, int]:
        """Reject the run before any step executes, or return its cost."""
        if execution_input.is_empty():
            raise InvalidInputError("Input is required")

        workflow = await self._store.get_workflow(workflow_id)

        if caller.is_anonymous:
            if not workflow.is_public:
                raise ForbiddenError(f"Workflow {workflow_id} is not public")
            await self._trial_gate.admit(caller)
            return workflow, 0

        cost = charged_cost(workflow, self._catalog)
        if cost > 0 and not await self._ledger.has_balance(caller.user_id, cost):
            raise InsufficientBalanceError(cost, await self._ledger.balance(caller.user_id))
        return workflow, cost

    async def _create_record(
        self, workflow: Workflow, execution_input: ExecutionInput, caller: Caller
    ) -> ExecutionRecord:
        record = ExecutionRecord(
            workflow_id=workflow.id,
            user_id=caller.user_id,
            inputs=execution_input.model_dump(mode="json"),
        )
        await self._repository.create_execution(record)
        return record

    async def _settle(
        self, workflow: Workflow, caller: Caller, report: ExecutionReport, cost: int
    ) -> int:
        """Charge a completed run and persist the terminal record.

        The step results are always persisted. A charge that fails after the
        run completed is recorded on the execution instead of failing it.
        """
        credits_used = 0
        error_message = report.error
        if report.status == ExecutionStatus.COMPLETED:
            if not caller.is_anonymous and cost > 0:
                try:
                    receipt = await self._ledger.deduct(
                        caller.user_id, workflow.id, cost, creator_id=workflow.creator_id
                    )
                    credits_used = receipt.cost
                except InsufficientBalanceError as e:
                    logger.error(f"Could not charge execution {report.execution_id}: {e}")
                    error_message = f"Charge failed: {e}"
            await self._store.increment_uses(workflow.id)

        await self._repository.complete_execution(
            report.execution_id,
            report.status,
            report.step_results,
            final_output=report.final_output,
            error_message=error_message,
            credits_used=credits_used,
        )
        return credits_used

    async def _run(
        self,
        workflow: Workflow,
        record: ExecutionRecord,
        execution_input: ExecutionInput,
        caller: Caller,
        cost: int,
        emitter: ProgressEmitter,
        token: CancellationToken,
    ) -> ExecutionReport:
        try:
            try:
                report = await self._controller.run(
                    workflow, execution_input, emitter=emitter, execution_id=record.id, token=token
                )
            except Exception as e:
                logger.error(f"Execution {record.id} aborted: {e}")
                await self._repository.complete_execution(
                    record.id, ExecutionStatus.FAILED, [], error_message=str(e)
                )
                raise
            credits_used = await self._settle(workflow, caller, report, cost)
            if report.status != ExecutionStatus.CANCELLED:
                await emitter.emit(
                    WorkflowComplete(
                        execution_id=record.id, status=report.status, final_cost=credits_used
                    )
                )
            return report
        finally:
            await emitter.close()
            self._tokens.pop(record.id, None)

    # ------------------------------------------------------------------
    # Streaming mode
    async def start_execution(
        self,
        workflow_id: str,
        execution_input: ExecutionInput,
        caller: Caller,
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[ProgressEvent]:
        """Admit the caller, start the run and return its live event stream.

        Admission errors are raised here, before any event is produced. The
        run starts immediately and finishes even if the stream is never read;
        leaving the stream early cancels it at the next step boundary.
        """
        workflow, cost = await self._admit(workflow_id, execution_input, caller)
        record = await self._create_record(workflow, execution_input, caller)
        token = token or CancellationToken()
        self._tokens[record.id] = token
        emitter = StreamingEmitter()
        task = asyncio.create_task(
            self._run(workflow, record, execution_input, caller, cost, emitter, token)
        )
        self._track(record.id, task)
        logger.info(f"Streaming execution {record.id} of workflow {workflow.id}")
        return self._stream(record.id, emitter, task, token)

    async def _stream(
        self,
        execution_id: str,
        emitter: StreamingEmitter,
        task: asyncio.Task[ExecutionReport],
        token: CancellationToken,
    ) -> AsyncIterator[ProgressEvent]:
        try:
            async for event in emitter.events():
                yield event
            await task
        finally:
            if not task.done():
                logger.info(f"Consumer left execution {execution_id}, cancelling")
                token.cancel()

    # ------------------------------------------------------------------
    # Detached mode
    async def start_background_execution(
        self,
        workflow_id: str,
        execution_input: ExecutionInput,
        caller: Caller,
    ) -> str:
        """Admit the caller, start the run in the background, return its id."""
        workflow, cost = await self._admit(workflow_id, execution_input, caller)
        record = await self._create_record(workflow, execution_input, caller)
        token = CancellationToken()
        self._tokens[record.id] = token
        emitter = CheckpointEmitter(self._repository, record.id)
        task = asyncio.create_task(
            self._run(workflow, record, execution_input, caller, cost, emitter, token)
        )
        self._track(record.id, task)
        logger.info(f"Started background execution {record.id} of workflow {workflow.id}")
        return record.id

    def _track(self, execution_id: str, task: asyncio.Task[ExecutionReport]) -> None:
        """Hold the task while it runs; finished runs are read back from the repository."""
        self._tasks[execution_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(execution_id, None))

    def cancel_execution(self, execution_id: str) -> bool:
        """Request cancellation; returns ``False`` when the run is not active."""
        token = self._tokens.get(execution_id)
        if token is None:
            return False
        token.cancel()
        return True

    async def wait_for(self, execution_id: str) -> ExecutionReport:
        """Wait for a run to finish and return its report."""
        task = self._tasks.get(execution_id)
        if task is not None:
            return await task

        record = await self._repository.get_execution(execution_id)
        if record is None or not record.status.is_terminal:
            raise ExecutionNotFoundError(execution_id)
        return ExecutionReport(
            execution_id=record.id,
            status=record.status,
            step_results=record.step_results,
            final_output=record.final_output,
            error=record.error_message,
        )

    async def get_job_status(self, execution_id: str, user_id: Optional[str]) -> JobStatus:
        record = await self._repository.get_execution(execution_id)
        if record is None:
            raise ExecutionNotFoundError(execution_id)
        if user_id is None or record.user_id != user_id:
            raise ForbiddenError(f"Execution {execution_id} belongs to another user")

        workflow = await self._store.get_workflow(record.workflow_id)
        results = {r.step_id: r for r in record.step_results}
        visible = workflow.visible_steps
        finished_visible = sum(1 for s in visible if s.id in results)

        steps: List[JobStep] = []
        for index, step in enumerate(visible, start=1):
            result = results.get(step.id)
            if result is not None:
                status = "error" if result.error else "completed"
            elif record.status == ExecutionStatus.RUNNING and index == finished_visible + 1:
                status = "running"
            else:
                status = "pending"
            steps.append(
                JobStep(
                    index=index,
                    step_id=step.id,
                    step_name=step.name,
                    kind=step.kind,
                    output_media_type=step.output_media_type,
                    model=step.model_id,
                    model_name=self._catalog.display_name(step.model_id),
                    status=status,
                    output=result.output if result else None,
                    duration_ms=result.duration_ms if result else None,
                )
            )

        completed = sum(1 for s in steps if s.status == "completed")
        total = len(steps)
        return JobStatus(
            execution_id=record.id,
            status=record.status,
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            progress=JobProgress(
                completed=completed,
                total=total,
                percentage=round(completed / total * 100) if total else 0,
            ),
            steps=steps,
            credits_used=record.credits_used,
            started_at=record.started_at,
            completed_at=record.completed_at,
            result=record.final_output if record.status.is_terminal else None,
            error=record.error_message if record.status == ExecutionStatus.FAILED else None,
        )


def build_service(
    config: Optional[ModelChainConfig] = None,
    clients: Optional[ProviderClients] = None,
    store: Optional[WorkflowStore] = None,
    repository: Optional[ExecutionRepository] = None,
    ledger: Optional[BalanceLedger] = None,
) -> WorkflowService:
    """Factory function wiring a service from configuration."""

    config = config or load_config()
    catalog = default_catalog()
    clients = clients or build_clients(config)
    dispatcher = StepDispatcher(clients, catalog)
    return WorkflowService(
        store=store or FileWorkflowStore(config.workflows_dir),
        controller=ExecutionController(dispatcher, catalog),
        catalog=catalog,
        repository=repository or get_repository(config=config),
        ledger=ledger,
    )
