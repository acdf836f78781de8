"""Input and output steps forward their data unchanged."""

from __future__ import annotations

from ..contracts import StepDefinition, StepOutput
from .base import StepExecutor


class PassthroughExecutor(StepExecutor):
    async def execute(self, step: StepDefinition, step_input: StepOutput) -> StepOutput:
        return step_input.model_copy(deep=True)
