"""Execution controller for modelchain workflows."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .catalog import ModelCatalog
from .contracts import (
    ExecutionInput,
    ExecutionStatus,
    StepComplete,
    StepDefinition,
    StepError,
    StepOutput,
    StepResult,
    StepStart,
    StepSummary,
    Workflow,
    WorkflowStart,
)
from .dependencies import (
    DependencyResolver,
    add_custom_params,
    add_step_anchors,
    dedupe_files,
    resolve_file_bindings,
    seed_table,
    step_input_override,
)
from .executors import StepDispatcher
from .progress import NullEmitter, ProgressEmitter
from .templating import resolve_step

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag checked before each step starts.

    Cancelling never interrupts a provider call that is already in flight.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class ExecutionReport(BaseModel):
    """Outcome of one run of the controller."""

    execution_id: str
    status: ExecutionStatus
    step_results: List[StepResult] = Field(default_factory=list)
    final_output: Optional[str] = None
    error: Optional[str] = None


def step_summaries(workflow: Workflow, catalog: ModelCatalog) -> List[StepSummary]:
    return [
        StepSummary(
            step_id=step.id,
            step_name=step.name,
            kind=step.kind,
            output_media_type=step.output_media_type,
            model=step.model_id,
            model_name=catalog.display_name(step.model_id),
            index=index,
        )
        for index, step in enumerate(workflow.visible_steps, start=1)
    ]


class ExecutionController:
    """Runs the steps of a workflow strictly one after another.

    Steps execute in their declared ``order``; data flows along the edges.
    The substitution table and the per-step outputs live only for the
    duration of one ``run`` call.
    """

    def __init__(self, dispatcher: StepDispatcher, catalog: Optional[ModelCatalog] = None) -> None:
        self._dispatcher = dispatcher
        self._catalog = catalog or dispatcher.catalog

    async def run(
        self,
        workflow: Workflow,
        execution_input: ExecutionInput,
        emitter: Optional[ProgressEmitter] = None,
        execution_id: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> ExecutionReport:
        emitter = emitter or NullEmitter()
        token = token or CancellationToken()
        execution_id = execution_id or str(uuid.uuid4())

        summaries = step_summaries(workflow, self._catalog)
        total = len(summaries)
        await emitter.emit(
            WorkflowStart(execution_id=execution_id, total_steps=total, steps=summaries)
        )

        resolver = DependencyResolver(workflow.edges)
        table = seed_table(workflow.steps, execution_input)
        outputs: Dict[str, StepOutput] = {}
        results: List[StepResult] = []
        current = execution_input.as_step_output()
        status = ExecutionStatus.COMPLETED
        error: Optional[str] = None
        visible_index = 0

        logger.info(f"Execution {execution_id} started for workflow {workflow.id} ({len(workflow.steps)} steps)")

        for step in workflow.steps:
            if token.cancelled:
                logger.info(f"Execution {execution_id} cancelled after {len(results)} steps")
                status = ExecutionStatus.CANCELLED
                break

            override = step_input_override(step, execution_input)
            if override is not None:
                current = override
            current = resolver.resolve(step, current, outputs, override)

            add_custom_params(table, step)
            resolved = resolve_step(step, table)
            bound = resolve_file_bindings(step.file_bindings, table)
            if bound:
                current = current.model_copy(update={"files": dedupe_files(list(current.files) + bound)})

            if step.is_visible:
                visible_index += 1
                await emitter.emit(self._start_event(step, visible_index, total))

            output, failure, duration_ms = await self._execute_step(resolved, current)

            if failure is not None:
                text = output.text if output is not None and output.text else f"Error: {failure}"
                result = self._result(step, text, duration_ms, failure)
                results.append(result)
                if step.is_visible:
                    await emitter.emit(
                        StepError(
                            step_id=step.id,
                            step_name=step.name,
                            output=text,
                            error=failure,
                            index=visible_index,
                            total_steps=total,
                        )
                    )
                await emitter.checkpoint(list(results))
                logger.error(f"Step {step.id} of execution {execution_id} failed: {failure}")
                status = ExecutionStatus.FAILED
                error = failure
                break

            results.append(self._result(step, output.text, duration_ms))
            outputs[step.id] = output
            add_step_anchors(table, step.id, output)
            current = output
            if step.is_visible:
                await emitter.emit(
                    StepComplete(
                        step_id=step.id,
                        step_name=step.name,
                        output=output.text,
                        duration_ms=duration_ms,
                        index=visible_index,
                        total_steps=total,
                    )
                )
            await emitter.checkpoint(list(results))

        logger.info(f"Execution {execution_id} finished with status {status.value}")
        return ExecutionReport(
            execution_id=execution_id,
            status=status,
            step_results=results,
            final_output=self._final_output(workflow, results),
            error=error,
        )

    async def _execute_step(
        self, step: StepDefinition, step_input: StepOutput
    ) -> tuple[Optional[StepOutput], Optional[str], int]:
        started = time.monotonic()
        try:
            output = await self._dispatcher.execute(step, step_input)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Executor for step {step.id} raised", exc_info=True)
            return None, str(e) or type(e).__name__, self._elapsed(started)
        return output, output.error, self._elapsed(started)

    @staticmethod
    def _elapsed(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    def _start_event(self, step: StepDefinition, index: int, total: int) -> StepStart:
        return StepStart(
            step_id=step.id,
            step_name=step.name,
            kind=step.kind,
            output_media_type=step.output_media_type,
            model=step.model_id,
            model_name=self._catalog.display_name(step.model_id),
            index=index,
            total_steps=total,
        )

    @staticmethod
    def _result(
        step: StepDefinition, output: str, duration_ms: int, error: Optional[str] = None
    ) -> StepResult:
        return StepResult(
            step_id=step.id,
            step_name=step.name,
            kind=step.kind,
            output=output,
            output_media_type=step.output_media_type,
            duration_ms=duration_ms,
            error=error,
        )

    @staticmethod
    def _final_output(workflow: Workflow, results: List[StepResult]) -> Optional[str]:
        """The last visible step's output, else the last recorded output."""
        visible_ids = {s.id for s in workflow.visible_steps}
        for result in reversed(results):
            if result.step_id in visible_ids:
                return result.output
        return results[-1].output if results else None
