"""Progress emitters: how an execution reports step lifecycle transitions.

The execution controller drives one emitter per run. ``StreamingEmitter``
forwards events to a live consumer, ``CheckpointEmitter`` persists the growing
list of step results so a detached caller can poll for them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, List, Optional

from .contracts import ProgressEvent, StepResult
from .persistence import ExecutionRepository

logger = logging.getLogger(__name__)


class ProgressEmitter:
    """Base emitter. Subclasses override the hooks they care about."""

    async def emit(self, event: ProgressEvent) -> None:
        """Report one progress event."""

    async def checkpoint(self, results: List[StepResult]) -> None:
        """Called after every attempted step with all results so far."""

    async def close(self) -> None:
        """Called once the run has finished."""


class NullEmitter(ProgressEmitter):
    """Discards everything."""


class CollectingEmitter(ProgressEmitter):
    """Keeps every event in memory."""

    def __init__(self) -> None:
        self.events: List[ProgressEvent] = []

    async def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)


class StreamingEmitter(ProgressEmitter):
    """Forward events to an async iterator consumer through a queue."""

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[Optional[ProgressEvent]] = asyncio.Queue(maxsize)
        self._closed = False

    async def emit(self, event: ProgressEvent) -> None:
        if not self._closed:
            await self._queue.put(event)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._queue.put(None)

    async def events(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event


class CheckpointEmitter(ProgressEmitter):
    """Persist the step results after every step for later polling."""

    def __init__(self, repository: ExecutionRepository, execution_id: str) -> None:
        self._repository = repository
        self._execution_id = execution_id

    async def checkpoint(self, results: List[StepResult]) -> None:
        await self._repository.save_step_results(self._execution_id, results)
        logger.debug(f"Checkpointed {len(results)} step results for {self._execution_id}")
