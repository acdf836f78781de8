"""Example showing a streamed workflow run with live progress events."""

import asyncio

from modelchain import Caller, ExecutionInput, build_service
from modelchain.contracts import (
    Edge,
    HostedModelStep,
    InputStep,
    OutputStep,
    Workflow,
)
from modelchain.store import InMemoryWorkflowStore


async def main():
    """Summarize a text and print every progress frame."""
    workflow = Workflow(
        id="summarize",
        name="Summarize",
        steps=[
            InputStep(id="in", order=0),
            HostedModelStep(
                id="summary",
                name="Summary",
                order=1,
                model="gpt-4o-mini",
                prompt="Summarize: {{input}}",
            ),
            OutputStep(id="out", order=2),
        ],
        edges=[Edge(source="in", target="summary"), Edge(source="summary", target="out")],
    )
    service = build_service(store=InMemoryWorkflowStore([workflow]))

    events = await service.start_execution(
        "summarize",
        ExecutionInput(text="The quick brown fox jumps over the lazy dog."),
        Caller(identity="guide"),
    )
    async for event in events:
        print(event.to_sse(), end="")


if __name__ == "__main__":
    asyncio.run(main())
