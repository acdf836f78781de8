"""Workflow definition storage."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

import yaml

from .contracts import Workflow
from .errors import WorkflowNotFoundError

logger = logging.getLogger(__name__)

WORKFLOW_SUFFIXES = (".yaml", ".yml")


class WorkflowStore(Protocol):
    """Protocol for workflow definition backends."""

    async def get_workflow(self, workflow_id: str) -> Workflow:
        """Return the workflow with steps sorted by ``order``.

        Raises ``WorkflowNotFoundError`` when it does not exist.
        """

    async def list_workflows(self) -> List[Workflow]:
        """Return every stored workflow."""

    async def increment_uses(self, workflow_id: str) -> None:
        """Record one more successful run of the workflow."""


class InMemoryWorkflowStore(WorkflowStore):
    def __init__(self, workflows: Iterable[Workflow] = ()) -> None:
        self._workflows: Dict[str, Workflow] = {w.id: w for w in workflows}

    def add(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = workflow

    async def get_workflow(self, workflow_id: str) -> Workflow:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow.model_copy(deep=True)

    async def list_workflows(self) -> List[Workflow]:
        return [w.model_copy(deep=True) for w in self._workflows.values()]

    async def increment_uses(self, workflow_id: str) -> None:
        workflow = self._workflows.get(workflow_id)
        if workflow:
            workflow.total_uses += 1


class FileWorkflowStore(WorkflowStore):
    """Workflows stored as one YAML document per file in a directory.

    The file stem is used as the workflow id when the document has none.
    Use counts are written back to the file.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path_for(self, workflow_id: str) -> Optional[Path]:
        for suffix in WORKFLOW_SUFFIXES:
            path = self.directory / f"{workflow_id}{suffix}"
            if path.is_file():
                return path
        return None

    def _load(self, path: Path) -> Workflow:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        data.setdefault("id", path.stem)
        return Workflow.model_validate(data)

    def _dump(self, path: Path, workflow: Workflow) -> None:
        with open(path, "w") as f:
            yaml.safe_dump(workflow.model_dump(mode="json"), f, sort_keys=False)

    async def get_workflow(self, workflow_id: str) -> Workflow:
        path = self._path_for(workflow_id)
        if path is None:
            raise WorkflowNotFoundError(workflow_id)
        return await asyncio.to_thread(self._load, path)

    async def list_workflows(self) -> List[Workflow]:
        if not self.directory.is_dir():
            return []
        paths = sorted(p for p in self.directory.iterdir() if p.suffix in WORKFLOW_SUFFIXES)
        return [await asyncio.to_thread(self._load, p) for p in paths]

    async def save_workflow(self, workflow: Workflow) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(workflow.id) or self.directory / f"{workflow.id}.yaml"
        await asyncio.to_thread(self._dump, path, workflow)

    async def increment_uses(self, workflow_id: str) -> None:
        path = self._path_for(workflow_id)
        if path is None:
            logger.warning(f"Cannot count use of unknown workflow {workflow_id}")
            return
        workflow = await asyncio.to_thread(self._load, path)
        workflow.total_uses += 1
        await asyncio.to_thread(self._dump, path, workflow)
