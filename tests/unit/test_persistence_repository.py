import pytest

import modelchain.persistence as persistence
from modelchain.contracts import (
    ExecutionRecord,
    ExecutionStatus,
    MediaType,
    StepKind,
    StepResult,
)
from modelchain.persistence import (
    InMemoryExecutionRepository,
    SQLiteExecutionRepository,
    get_repository,
)


def _result(step_id: str, error: str | None = None) -> StepResult:
    return StepResult(
        step_id=step_id,
        step_name=step_id.upper(),
        kind=StepKind.HOSTED_MODEL,
        output=f"out-{step_id}",
        output_media_type=MediaType.TEXT,
        duration_ms=5,
        error=error,
    )


@pytest.mark.parametrize("backend", ["sqlite", "memory"])
@pytest.mark.asyncio
async def test_repository_lifecycle(tmp_path, backend):
    repo = (
        SQLiteExecutionRepository(tmp_path / "exec.db")
        if backend == "sqlite"
        else InMemoryExecutionRepository()
    )
    record = ExecutionRecord(workflow_id="wf", user_id="u1", inputs={"text": "hi"})

    await repo.create_execution(record)
    await repo.save_step_results(record.id, [_result("a")])

    running = await repo.get_execution(record.id)
    assert running is not None
    assert running.status == ExecutionStatus.RUNNING
    assert [r.step_id for r in running.step_results] == ["a"]
    assert running.inputs == {"text": "hi"}

    await repo.complete_execution(
        record.id,
        ExecutionStatus.COMPLETED,
        [_result("a"), _result("b")],
        final_output="out-b",
        credits_used=7,
    )
    done = await repo.get_execution(record.id)
    assert done.status == ExecutionStatus.COMPLETED
    assert done.final_output == "out-b"
    assert done.credits_used == 7
    assert done.completed_at is not None
    assert len(done.step_results) == 2

    listed = await repo.list_executions(workflow_id="wf")
    assert [r.id for r in listed] == [record.id]
    assert await repo.list_executions(user_id="someone-else") == []


@pytest.mark.parametrize("backend", ["sqlite", "memory"])
@pytest.mark.asyncio
async def test_terminal_records_are_immutable(tmp_path, backend):
    repo = (
        SQLiteExecutionRepository(tmp_path / "exec.db")
        if backend == "sqlite"
        else InMemoryExecutionRepository()
    )
    record = ExecutionRecord(workflow_id="wf")
    await repo.create_execution(record)
    await repo.complete_execution(
        record.id, ExecutionStatus.FAILED, [_result("a", error="boom")], error_message="boom"
    )

    await repo.save_step_results(record.id, [])
    await repo.complete_execution(record.id, ExecutionStatus.COMPLETED, [])

    stored = await repo.get_execution(record.id)
    assert stored.status == ExecutionStatus.FAILED
    assert stored.error_message == "boom"
    assert stored.step_results[0].error == "boom"


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("MODELCHAIN_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("MODELCHAIN_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setattr(persistence, "_repository_instance", None)

    sqlite_repo = get_repository(f"sqlite://{tmp_path / 'x.db'}")
    assert isinstance(sqlite_repo, SQLiteExecutionRepository)

    monkeypatch.setattr(persistence, "_repository_instance", None)
    memory_repo = get_repository()
    assert isinstance(memory_repo, InMemoryExecutionRepository)
    assert get_repository() is memory_repo

    with pytest.raises(ValueError):
        get_repository("mongodb://nowhere")
