"""Example showing a detached run that is polled for its status."""

import asyncio
import sys

from modelchain import Caller, ExecutionInput, build_service
from modelchain.billing import InMemoryLedger


async def main():
    workflow_id = sys.argv[1]
    text = sys.argv[2] if len(sys.argv) > 2 else "Hello"

    ledger = InMemoryLedger()
    ledger.credit("guide-user", 100, reason="guide top-up")
    service = build_service(ledger=ledger)

    execution_id = await service.start_background_execution(
        workflow_id, ExecutionInput(text=text), Caller(user_id="guide-user")
    )
    print(f"Started execution {execution_id}")

    while True:
        status = await service.get_job_status(execution_id, "guide-user")
        print(f"{status.status.value}: {status.progress.completed}/{status.progress.total}")
        if status.status.is_terminal:
            break
        await asyncio.sleep(1)

    print(status.result or status.error)


if __name__ == "__main__":
    asyncio.run(main())
