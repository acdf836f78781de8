"""In-memory implementation of the execution repository."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..contracts import ExecutionRecord, ExecutionStatus, StepResult
from .repository import ExecutionRepository

logger = logging.getLogger(__name__)


class InMemoryExecutionRepository(ExecutionRepository):
    """Store execution records in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._executions: Dict[str, ExecutionRecord] = {}

    def _open(self, execution_id: str) -> ExecutionRecord | None:
        record = self._executions.get(execution_id)
        if record is None:
            return None
        if record.status.is_terminal:
            logger.warning(f"Ignoring write to finished execution {execution_id}")
            return None
        return record

    # ------------------------------------------------------------------
    async def create_execution(self, record: ExecutionRecord) -> None:
        self._executions[record.id] = record.model_copy(deep=True)

    async def save_step_results(self, execution_id: str, results: List[StepResult]) -> None:
        record = self._open(execution_id)
        if record:
            record.step_results = [r.model_copy() for r in results]

    async def complete_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        step_results: List[StepResult],
        final_output: Optional[str] = None,
        error_message: Optional[str] = None,
        credits_used: int = 0,
    ) -> None:
        record = self._open(execution_id)
        if not record:
            return
        record.status = status
        record.step_results = [r.model_copy() for r in step_results]
        record.final_output = final_output
        record.error_message = error_message
        record.credits_used = credits_used
        record.completed_at = datetime.now(timezone.utc)

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        record = self._executions.get(execution_id)
        return record.model_copy(deep=True) if record else None

    async def list_executions(
        self, workflow_id: Optional[str] = None, user_id: Optional[str] = None
    ) -> List[ExecutionRecord]:
        records = [
            r.model_copy(deep=True)
            for r in self._executions.values()
            if (workflow_id is None or r.workflow_id == workflow_id)
            and (user_id is None or r.user_id == user_id)
        ]
        return sorted(records, key=lambda r: r.started_at, reverse=True)
