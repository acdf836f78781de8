"""Command line interface for running modelchain workflows."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import typer

from modelchain.access import Caller
from modelchain.catalog import default_catalog
from modelchain.config import load_config
from modelchain.contracts import (
    ExecutionInput,
    FileInput,
    MediaType,
    StepComplete,
    StepError,
    StepStart,
    WorkflowComplete,
    WorkflowStart,
)
from modelchain.errors import ModelChainError
from modelchain.persistence import get_repository
from modelchain.providers import build_clients
from modelchain.service import build_service
from modelchain.store import FileWorkflowStore

app = typer.Typer(help="CLI for modelchain workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for stored workflows")
models_app = typer.Typer(help="Commands for the model catalog")
execution_app = typer.Typer(help="Commands for persisted executions")

app.add_typer(workflow_app, name="workflow")
app.add_typer(models_app, name="models")
app.add_typer(execution_app, name="execution")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Logging level (DEBUG, INFO, WARNING, ERROR)"),
) -> None:
    """modelchain CLI entry point."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_file(value: str) -> FileInput:
    media, _, url = value.partition("=")
    if not url:
        raise typer.BadParameter(f"Expected TYPE=URL, got {value!r}")
    try:
        media_type = MediaType(media)
    except ValueError:
        raise typer.BadParameter(f"Unknown media type {media!r}")
    return FileInput(url=url, media_type=media_type, name=url.rsplit("/", 1)[-1])


def _parse_params(values: List[str]) -> dict:
    params = {}
    for value in values:
        key, sep, item = value.partition("=")
        if not sep:
            raise typer.BadParameter(f"Expected KEY=VALUE, got {value!r}")
        params[key] = item
    return params


@app.command("run")
def run(
    workflow_id: str,
    text: str = typer.Option("", "--input", "-i", help="Input text"),
    files: List[str] = typer.Option([], "--file", "-f", help="Input file as TYPE=URL"),
    params: List[str] = typer.Option([], "--param", "-p", help="Named parameter as KEY=VALUE"),
    user: Optional[str] = typer.Option(None, help="Run as this user instead of anonymously"),
    workflows_dir: Optional[str] = typer.Option(None, help="Directory with workflow YAML files"),
) -> None:
    """
    Execute a stored workflow and print its progress.

    Example:
        modelchain run summarize --input "The quick brown fox"
        modelchain run caption --file image=https://example.com/cat.png --param tone=dry
    """
    config = load_config()
    if workflows_dir:
        config.workflows_dir = workflows_dir
    execution_input = ExecutionInput(
        text=text,
        files=[_parse_file(f) for f in files],
        params=_parse_params(params),
    )
    caller = Caller(user_id=user, identity="cli")

    async def _run() -> int:
        async with build_clients(config) as clients:
            service = build_service(config, clients=clients)
            events = await service.start_execution(workflow_id, execution_input, caller)
            exit_code = 0
            async for event in events:
                if isinstance(event, WorkflowStart):
                    typer.echo(f"Execution {event.execution_id}: {event.total_steps} steps")
                elif isinstance(event, StepStart):
                    typer.echo(f"[{event.index}/{event.total_steps}] {event.step_name or event.step_id} ...")
                elif isinstance(event, StepComplete):
                    typer.echo(f"[{event.index}/{event.total_steps}] done in {event.duration_ms}ms")
                    typer.echo(event.output)
                elif isinstance(event, StepError):
                    typer.secho(
                        f"[{event.index}/{event.total_steps}] failed: {event.error}",
                        fg=typer.colors.RED,
                    )
                    exit_code = 1
                elif isinstance(event, WorkflowComplete):
                    typer.echo(f"Status: {event.status.value} (credits used: {event.final_cost})")
            return exit_code

    try:
        exit_code = asyncio.run(_run())
    except ModelChainError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if exit_code:
        raise typer.Exit(code=exit_code)


@workflow_app.command("list")
def workflow_list(
    workflows_dir: Optional[str] = typer.Option(None, help="Directory with workflow YAML files"),
) -> None:
    """List stored workflows with their step count and use count."""
    directory = workflows_dir or load_config().workflows_dir
    workflows = asyncio.run(FileWorkflowStore(directory).list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{wf.name}\t{len(wf.steps)} steps\t{wf.total_uses} uses")


@models_app.command("list")
def models_list(
    category: Optional[MediaType] = typer.Option(None, help="Only show this category"),
) -> None:
    """List catalog models and their per-use cost."""
    for model in default_catalog().models(category):
        typer.echo(f"{model.id}\t{model.category.value}\t{model.provider}\t{model.cost_per_use}")


@execution_app.command("list")
def execution_list(
    workflow: Optional[str] = typer.Option(None, help="Only show executions of this workflow"),
) -> None:
    """List persisted executions with their status."""
    repo = get_repository()
    executions = asyncio.run(repo.list_executions(workflow_id=workflow))
    if not executions:
        typer.echo("No executions found")
        return
    for record in executions:
        typer.echo(f"{record.id}\t{record.workflow_id}\t{record.status.value}")


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """Show an execution and the result of every step."""
    repo = get_repository()
    record = asyncio.run(repo.get_execution(execution_id))
    if record is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    typer.echo(f"Execution {record.id}: {record.status.value}")
    typer.echo(f"Workflow: {record.workflow_id}")
    for result in record.step_results:
        line = f"- {result.step_name or result.step_id} ({result.kind.value}, {result.duration_ms}ms)"
        if result.error:
            line += f": error: {result.error}"
        typer.echo(line)
    if record.final_output is not None:
        typer.echo(f"Result: {record.final_output}")
    if record.error_message:
        typer.echo(f"Error: {record.error_message}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
