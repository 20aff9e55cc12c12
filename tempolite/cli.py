"""Command line interface for running tempolite workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

import typer

from tempolite import WorkflowEngine, get_store, load_config
from tempolite.cli_utils.loader import load_registry
from tempolite.contracts import StepKind, WorkflowStatus
from tempolite.errors import TempoliteError, describe_error
from tempolite.outcome import Completed, Failed, Suspended, WorkflowOutcome

app = typer.Typer(help="CLI for tempolite workflows")

workflow_app = typer.Typer(help="Commands for inspecting workflow history")
app.add_typer(workflow_app, name="workflow")


@app.callback()
def main() -> None:
    """Tempolite CLI entry point."""
    pass


def _build_engine(app_ref: str) -> WorkflowEngine:
    config = load_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        registry = load_registry(app_ref)
    except (ImportError, FileNotFoundError, TypeError) as exc:
        typer.secho(f"Cannot load registry {app_ref}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return WorkflowEngine(
        registry, get_store(), save_attempts=config.persistence.save_attempts
    )


def _parse_json(value: Optional[str], option: str) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid JSON for {option}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _echo_outcome(outcome: WorkflowOutcome) -> None:
    if isinstance(outcome, Completed):
        typer.echo(
            f"Workflow {outcome.workflow_id}: completed -> {json.dumps(outcome.result)}"
        )
    elif isinstance(outcome, Suspended):
        reason = (
            f"until {outcome.wake_at.isoformat()}"
            if outcome.wake_at
            else f"awaiting signal {outcome.awaiting_signal}"
        )
        typer.echo(f"Workflow {outcome.workflow_id}: suspended {reason}")
    elif isinstance(outcome, Failed):
        typer.secho(
            f"Workflow {outcome.workflow_id}: failed - {outcome.error}",
            fg=typer.colors.RED,
        )


async def _serve(engine: WorkflowEngine, action, lifespan: Optional[float]) -> bool:
    """Serve workflows; return False if any workflow failed to recover."""
    try:
        for outcome in (await engine.recover()).values():
            _echo_outcome(outcome)
        for workflow_id, exc in engine.recovery_failures.items():
            typer.secho(
                f"Workflow {workflow_id}: recovery failed - {describe_error(exc)}",
                fg=typer.colors.RED,
            )
        if action is not None:
            outcome = await action()
            if outcome is not None:
                _echo_outcome(outcome)
        await engine.run_until_idle(lifespan)
    finally:
        await engine.shutdown()
    return not engine.recovery_failures


def _run(engine: WorkflowEngine, action, lifespan: Optional[float]) -> None:
    try:
        recovered = asyncio.run(_serve(engine, action, lifespan))
    except TempoliteError as exc:
        typer.secho(f"{type(exc).__name__}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not recovered:
        raise typer.Exit(code=1)


@app.command("run")
def run(
    app_ref: str = typer.Argument(..., help="Registry reference, module:attribute"),
    lifespan: Optional[float] = typer.Option(
        None, help="Stop serving wakes after this many seconds"
    ),
) -> None:
    """
    Recover persisted workflows and serve their timers.

    Workflows with elapsed timers are resumed immediately; the others are
    resumed as their timers fire.

    Example:
        tempolite run guides.notify_workflow:registry --lifespan 60
    """
    engine = _build_engine(app_ref)
    _run(engine, None, lifespan)


@app.command("start")
def start(
    app_ref: str = typer.Argument(..., help="Registry reference, module:attribute"),
    workflow_name: str = typer.Argument(..., help="Registered workflow name"),
    workflow_id: str = typer.Option(..., "--id", help="Workflow instance id"),
    args: Optional[str] = typer.Option(None, help="JSON list of workflow arguments"),
    lifespan: Optional[float] = typer.Option(
        None, help="Stop serving wakes after this many seconds"
    ),
) -> None:
    """
    Start a workflow and serve it until idle.

    Example:
        tempolite start guides.notify_workflow:registry notify --id wf-1 --args '["hello"]'
    """
    parsed = _parse_json(args, "--args")
    if parsed is None:
        parsed = []
    elif not isinstance(parsed, list):
        parsed = [parsed]
    engine = _build_engine(app_ref)
    _run(engine, lambda: engine.start_workflow(workflow_id, workflow_name, *parsed), lifespan)


@app.command("signal")
def signal(
    app_ref: str = typer.Argument(..., help="Registry reference, module:attribute"),
    workflow_id: str = typer.Argument(..., help="Workflow instance id"),
    signal_name: str = typer.Argument(..., help="Signal name"),
    payload: Optional[str] = typer.Option(None, help="JSON signal payload"),
    lifespan: Optional[float] = typer.Option(
        None, help="Stop serving wakes after this many seconds"
    ),
) -> None:
    """Deliver a signal to a workflow, resuming it if it is waiting for it."""
    parsed = _parse_json(payload, "--payload")
    engine = _build_engine(app_ref)
    _run(
        engine,
        lambda: engine.signal_workflow(workflow_id, signal_name, parsed),
        lifespan,
    )


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List all persisted workflows with their current status.

    Example:
        tempolite workflow list
        # Output: wf-1    suspended    3 steps
    """
    store = get_store()
    logs = asyncio.run(store.load())
    if not logs:
        typer.echo("No workflows found")
        return
    for log in logs.values():
        typer.echo(f"{log.workflow_id}\t{log.status.value}\t{len(log)} steps")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """
    Show the recorded history of a workflow.

    Example:
        tempolite workflow show wf-1
        # Output: Workflow wf-1 (notify): suspended
        #         [0] send_message: completed -> {"sent": true}
        #         [1] timer:sleep: completed
    """
    store = get_store()
    log = asyncio.run(store.load()).get(workflow_id)
    if log is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {log.workflow_id} ({log.workflow_name}): {log.status.value}")
    if log.awaiting_signal:
        typer.echo(f"Awaiting signal: {log.awaiting_signal}")
    if log.error:
        typer.echo(f"Error: {log.error}")
    for entry in log.entries:
        label = (
            entry.step_name
            if entry.kind is StepKind.ACTIVITY
            else f"{entry.kind.value}:{entry.step_name}"
        )
        line = f"[{entry.sequence}] {label}: {entry.status.value}"
        if entry.error:
            line += f" ({entry.error})"
        elif entry.output is not None:
            line += f" -> {json.dumps(entry.output)}"
        typer.echo(line)
    if log.status is WorkflowStatus.COMPLETED:
        typer.echo(f"Result: {json.dumps(log.result)}")


@workflow_app.command("delete")
def workflow_delete(workflow_id: str) -> None:
    """Delete the persisted history of a workflow."""
    store = get_store()
    asyncio.run(store.delete(workflow_id))
    typer.echo(f"Deleted {workflow_id}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
