"""Repository abstraction for execution record persistence."""

from __future__ import annotations

from typing import List, Optional, Protocol

from ..contracts import ExecutionRecord, ExecutionStatus, StepResult


class ExecutionRepository(Protocol):
    """Protocol for execution record persistence backends.

    Records are immutable once their status is terminal; backends ignore
    writes to a finished execution.
    """

    async def create_execution(self, record: ExecutionRecord) -> None:
        """Persist a new execution in ``running`` state."""

    async def save_step_results(self, execution_id: str, results: List[StepResult]) -> None:
        """Checkpoint the step results produced so far."""

    async def complete_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        step_results: List[StepResult],
        final_output: Optional[str] = None,
        error_message: Optional[str] = None,
        credits_used: int = 0,
    ) -> None:
        """Move the execution to a terminal state."""

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        """Retrieve an execution by id."""

    async def list_executions(
        self, workflow_id: Optional[str] = None, user_id: Optional[str] = None
    ) -> List[ExecutionRecord]:
        """Return persisted executions, newest first."""
