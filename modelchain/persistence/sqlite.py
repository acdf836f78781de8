"""SQLite implementation of the execution repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from ..contracts import ExecutionRecord, ExecutionStatus, StepResult
from .repository import ExecutionRepository

_COLUMNS = (
    "id, workflow_id, user_id, status, inputs, step_results, final_output, "
    "error_message, credits_used, started_at, completed_at"
)
_TERMINAL = tuple(s.value for s in ExecutionStatus if s.is_terminal)


class SQLiteExecutionRepository(ExecutionRepository):
    """Persist execution records using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                user_id TEXT,
                status TEXT NOT NULL,
                inputs TEXT,
                step_results TEXT,
                final_output TEXT,
                error_message TEXT,
                credits_used INTEGER NOT NULL DEFAULT 0,
                started_at TEXT NOT NULL,
                completed_at TEXT
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _dump_results(results: List[StepResult]) -> str:
        return json.dumps([r.model_dump(mode="json") for r in results])

    @staticmethod
    def _to_record(row: sqlite3.Row) -> ExecutionRecord:
        return ExecutionRecord(
            id=row["id"],
            workflow_id=row["workflow_id"],
            user_id=row["user_id"],
            status=ExecutionStatus(row["status"]),
            inputs=json.loads(row["inputs"]) if row["inputs"] else {},
            step_results=[
                StepResult.model_validate(r) for r in json.loads(row["step_results"] or "[]")
            ],
            final_output=row["final_output"],
            error_message=row["error_message"],
            credits_used=row["credits_used"],
            started_at=datetime.fromisoformat(row["started_at"]),
            completed_at=datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None,
        )

    # ------------------------------------------------------------------
    # Repository API
    async def create_execution(self, record: ExecutionRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO executions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            record.id,
            record.workflow_id,
            record.user_id,
            record.status.value,
            json.dumps(record.inputs),
            self._dump_results(record.step_results),
            record.final_output,
            record.error_message,
            record.credits_used,
            record.started_at.isoformat(),
            record.completed_at.isoformat() if record.completed_at else None,
        )

    async def save_step_results(self, execution_id: str, results: List[StepResult]) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE executions SET step_results = ? WHERE id = ? AND status NOT IN (?, ?, ?)",
            self._dump_results(results),
            execution_id,
            *_TERMINAL,
        )

    async def complete_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        step_results: List[StepResult],
        final_output: Optional[str] = None,
        error_message: Optional[str] = None,
        credits_used: int = 0,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE executions
            SET status = ?, step_results = ?, final_output = ?, error_message = ?,
                credits_used = ?, completed_at = ?
            WHERE id = ? AND status NOT IN (?, ?, ?)
            """,
            status.value,
            self._dump_results(step_results),
            final_output,
            error_message,
            credits_used,
            datetime.now(timezone.utc).isoformat(),
            execution_id,
            *_TERMINAL,
        )

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_COLUMNS} FROM executions WHERE id = ?",
            execution_id,
        )
        return self._to_record(row) if row else None

    async def list_executions(
        self, workflow_id: Optional[str] = None, user_id: Optional[str] = None
    ) -> List[ExecutionRecord]:
        query = f"SELECT {_COLUMNS} FROM executions"
        clauses: list[str] = []
        params: list[Any] = []
        if workflow_id is not None:
            clauses.append("workflow_id = ?")
            params.append(workflow_id)
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY started_at DESC"
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        return [self._to_record(r) for r in rows]
