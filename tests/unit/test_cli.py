import asyncio
from pathlib import Path

from typer.testing import CliRunner

import tempolite.persistence as persistence
from tempolite.cli import app
from tempolite.contracts import HistoryLog, StepKind, WorkflowStatus
from tempolite.persistence import InMemoryHistoryStore

APP_REF = f"{Path(__file__).resolve().parents[1] / 'sample_workflows.py'}:registry"


def _setup_store() -> InMemoryHistoryStore:
    store = InMemoryHistoryStore()
    persistence._store_instance = store
    return store


def _save(store: InMemoryHistoryStore, log: HistoryLog) -> None:
    asyncio.run(store.save({log.workflow_id: log}))


def test_workflow_list_shows_status(tmp_path, monkeypatch):
    store = _setup_store()
    done = HistoryLog(workflow_id="wf-1", workflow_name="notify", status=WorkflowStatus.COMPLETED)
    waiting = HistoryLog(workflow_id="wf-2", workflow_name="notify", status=WorkflowStatus.SUSPENDED)
    _save(store, done)
    _save(store, waiting)

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "list"])

    assert result.exit_code == 0, result.stdout
    assert "wf-1\tcompleted" in result.stdout
    assert "wf-2\tsuspended" in result.stdout


def test_workflow_list_empty():
    _setup_store()
    result = CliRunner().invoke(app, ["workflow", "list"])
    assert result.exit_code == 0
    assert "No workflows found" in result.stdout


def test_workflow_show_details_and_missing():
    store = _setup_store()
    log = HistoryLog(workflow_id="wf-3", workflow_name="notify")
    log.append("send_message", StepKind.ACTIVITY, "hi").complete({"sent": "hi"})
    log.append("sleep", StepKind.TIMER, {}).complete(None)
    log.append("flaky", StepKind.ACTIVITY, 1).fail("RuntimeError: boom")
    _save(store, log)

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "show", "wf-3"])

    assert result.exit_code == 0, result.stdout
    assert "Workflow wf-3 (notify): running" in result.stdout
    assert '[0] send_message: completed -> {"sent": "hi"}' in result.stdout
    assert "[1] timer:sleep: completed" in result.stdout
    assert "[2] flaky: failed (RuntimeError: boom)" in result.stdout

    missing = runner.invoke(app, ["workflow", "show", "missing-id"])
    assert missing.exit_code == 1
    assert "Workflow not found" in missing.stdout


def test_start_runs_workflow_until_idle(tmp_path, monkeypatch):
    monkeypatch.setenv("TEMPOLITE_CONFIG", str(tmp_path / "missing.yaml"))
    store = _setup_store()

    result = CliRunner().invoke(
        app,
        ["start", APP_REF, "double_twice", "--id", "cli-1", "--args", "[5, 0]"],
    )

    assert result.exit_code == 0, result.stdout
    assert "Workflow cli-1: suspended until" in result.stdout
    saved = asyncio.run(store.load())["cli-1"]
    assert saved.status is WorkflowStatus.COMPLETED
    assert saved.result == 20


def test_start_rejects_existing_id(tmp_path, monkeypatch):
    monkeypatch.setenv("TEMPOLITE_CONFIG", str(tmp_path / "missing.yaml"))
    store = _setup_store()
    _save(store, HistoryLog(workflow_id="dup", workflow_name="notify", status=WorkflowStatus.COMPLETED))

    result = CliRunner().invoke(
        app, ["start", APP_REF, "double_twice", "--id", "dup", "--args", "1"]
    )

    assert result.exit_code == 1
    assert "WorkflowAlreadyExistsError" in result.stdout


def test_signal_resumes_waiting_workflow(tmp_path, monkeypatch):
    monkeypatch.setenv("TEMPOLITE_CONFIG", str(tmp_path / "missing.yaml"))
    store = _setup_store()
    runner = CliRunner()

    started = runner.invoke(app, ["start", APP_REF, "approval", "--id", "order-9", "--args", '["A-9"]'])
    assert started.exit_code == 0, started.stdout
    assert "awaiting signal approve" in started.stdout

    signalled = runner.invoke(
        app, ["signal", APP_REF, "order-9", "approve", "--payload", '"yes"']
    )

    assert signalled.exit_code == 0, signalled.stdout
    assert 'completed -> {"order": "A-9", "decision": "yes"}' in signalled.stdout
    assert asyncio.run(store.load())["order-9"].status is WorkflowStatus.COMPLETED


def test_invalid_registry_reference_exits(tmp_path, monkeypatch):
    monkeypatch.setenv("TEMPOLITE_CONFIG", str(tmp_path / "missing.yaml"))
    _setup_store()

    result = CliRunner().invoke(app, ["run", str(tmp_path / "nope.py")])

    assert result.exit_code == 1
    assert "Cannot load registry" in result.stdout


def test_workflow_delete():
    store = _setup_store()
    _save(store, HistoryLog(workflow_id="old", workflow_name="notify"))

    result = CliRunner().invoke(app, ["workflow", "delete", "old"])

    assert result.exit_code == 0
    assert asyncio.run(store.load()) == {}


def test_run_exits_non_zero_when_recovery_fails(tmp_path, monkeypatch):
    monkeypatch.setenv("TEMPOLITE_CONFIG", str(tmp_path / "missing.yaml"))
    store = _setup_store()
    log = HistoryLog(
        workflow_id="drifted",
        workflow_name="double_twice",
        args=[1, 0],
        status=WorkflowStatus.SUSPENDED,
    )
    log.append("renamed", StepKind.ACTIVITY, 1).complete(2)
    _save(store, log)

    result = CliRunner().invoke(app, ["run", APP_REF])

    assert result.exit_code == 1
    assert "Workflow drifted: recovery failed - DeterminismViolation" in result.stdout
    saved = asyncio.run(store.load())["drifted"]
    assert saved.status is WorkflowStatus.NONDETERMINISTIC
