"""Tests for workflow storage and the anonymous trial gate."""

import pytest
import yaml
from conftest import summarize_workflow

from modelchain.access import Caller, InMemoryTrialRegistry, TrialGate
from modelchain.contracts import HostedModelStep, StepKind
from modelchain.errors import SignupRequiredError, WorkflowNotFoundError
from modelchain.store import FileWorkflowStore, InMemoryWorkflowStore


WORKFLOW_YAML = """
name: Caption
is_public: false
declared_price: 4
steps:
  - {id: out, kind: output, order: 2}
  - {id: in, kind: input, order: 0}
  - {id: llm, kind: hosted_model, order: 1, model: gpt-4o, prompt: "Caption {{input}}"}
edges:
  - {source: in, target: llm}
  - {source: llm, target: out}
"""


@pytest.mark.asyncio
async def test_file_store_loads_yaml_and_uses_stem_as_id(tmp_path):
    (tmp_path / "caption.yaml").write_text(WORKFLOW_YAML)
    store = FileWorkflowStore(tmp_path)

    workflow = await store.get_workflow("caption")

    assert workflow.id == "caption"
    assert workflow.is_public is False
    assert [s.id for s in workflow.steps] == ["in", "llm", "out"]
    assert isinstance(workflow.steps[1], HostedModelStep)
    assert workflow.steps[1].kind == StepKind.HOSTED_MODEL


@pytest.mark.asyncio
async def test_file_store_missing_workflow(tmp_path):
    with pytest.raises(WorkflowNotFoundError):
        await FileWorkflowStore(tmp_path).get_workflow("nope")


@pytest.mark.asyncio
async def test_file_store_lists_only_yaml_documents(tmp_path):
    (tmp_path / "caption.yaml").write_text(WORKFLOW_YAML)
    (tmp_path / "notes.txt").write_text("not a workflow")
    store = FileWorkflowStore(tmp_path)
    await store.save_workflow(summarize_workflow())

    workflows = await store.list_workflows()

    assert sorted(w.id for w in workflows) == ["caption", "summarize"]
    assert await FileWorkflowStore(tmp_path / "missing").list_workflows() == []


@pytest.mark.asyncio
async def test_file_store_increment_uses_writes_back(tmp_path):
    store = FileWorkflowStore(tmp_path)
    await store.save_workflow(summarize_workflow())

    await store.increment_uses("summarize")
    await store.increment_uses("summarize")
    await store.increment_uses("unknown")

    on_disk = yaml.safe_load((tmp_path / "summarize.yaml").read_text())
    assert on_disk["total_uses"] == 2
    assert (await store.get_workflow("summarize")).total_uses == 2


@pytest.mark.asyncio
async def test_in_memory_store_returns_copies():
    store = InMemoryWorkflowStore([summarize_workflow()])

    loaded = await store.get_workflow("summarize")
    loaded.name = "changed"
    await store.increment_uses("summarize")

    fresh = await store.get_workflow("summarize")
    assert fresh.name == "Summarize"
    assert fresh.total_uses == 1
    with pytest.raises(WorkflowNotFoundError):
        await store.get_workflow("missing")


@pytest.mark.asyncio
async def test_trial_gate_allows_one_run_per_identity():
    registry = InMemoryTrialRegistry()
    gate = TrialGate(registry)
    visitor = Caller(identity="203.0.113.7")

    await gate.admit(visitor)
    with pytest.raises(SignupRequiredError):
        await gate.admit(visitor)

    await gate.admit(Caller(identity="198.51.100.2"))
    assert await registry.has_used("198.51.100.2")


@pytest.mark.asyncio
async def test_trial_gate_ignores_authenticated_callers():
    registry = InMemoryTrialRegistry()
    gate = TrialGate(registry)
    member = Caller(user_id="u1", identity="203.0.113.7")

    await gate.admit(member)
    await gate.admit(member)

    assert member.is_anonymous is False
    assert not await registry.has_used("203.0.113.7")
