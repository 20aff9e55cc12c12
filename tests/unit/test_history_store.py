"""History store backend tests."""

import asyncio

import pytest

from tempolite.contracts import HistoryLog, PendingSignal, StepKind, WorkflowStatus
from tempolite.persistence import (
    InMemoryHistoryStore,
    JsonFileHistoryStore,
    SQLiteHistoryStore,
    get_store,
)


def _sample_log(workflow_id: str = "wf-1") -> HistoryLog:
    log = HistoryLog(workflow_id=workflow_id, workflow_name="notify", args=[3, 1000])
    log.append("send_message", StepKind.ACTIVITY, "message 0").complete({"sent": True})
    log.append(
        "sleep",
        StepKind.TIMER,
        {"now": "2025-01-01T00:00:00+00:00", "wake_at": "2025-01-01T00:00:01+00:00"},
    ).complete(None)
    log.append("flaky", StepKind.ACTIVITY, 0).fail("RuntimeError: boom")
    log.pending_signals.append(PendingSignal(name="approve", payload={"by": "ops"}))
    log.status = WorkflowStatus.SUSPENDED
    return log


def _assert_same(loaded: HistoryLog, original: HistoryLog) -> None:
    assert loaded.model_dump(mode="json") == original.model_dump(mode="json")


@pytest.mark.asyncio
async def test_sqlite_store_round_trip(tmp_path):
    store = SQLiteHistoryStore(tmp_path / "history.db")
    log = _sample_log()

    await store.save({log.workflow_id: log})
    loaded = await store.load()

    _assert_same(loaded["wf-1"], log)
    assert loaded["wf-1"].entries[2].error == "RuntimeError: boom"


@pytest.mark.asyncio
async def test_sqlite_store_appends_and_updates_entries(tmp_path):
    store = SQLiteHistoryStore(tmp_path / "history.db")
    log = _sample_log()
    await store.save({log.workflow_id: log})

    log.append("step_b", StepKind.ACTIVITY, 2).complete(4)
    log.status = WorkflowStatus.COMPLETED
    log.result = 4
    await store.save({log.workflow_id: log})

    loaded = (await store.load())["wf-1"]
    assert len(loaded) == 4
    assert loaded.status is WorkflowStatus.COMPLETED
    assert loaded.result == 4

    await store.delete("wf-1")
    assert await store.load() == {}


@pytest.mark.asyncio
async def test_json_file_store_round_trip_and_merge(tmp_path):
    path = tmp_path / "nested" / "history.json"
    store = JsonFileHistoryStore(path)
    first, second = _sample_log("wf-1"), _sample_log("wf-2")

    await store.save({"wf-1": first})
    await store.save({"wf-2": second})

    reopened = JsonFileHistoryStore(path)
    loaded = await reopened.load()
    assert sorted(loaded) == ["wf-1", "wf-2"]
    _assert_same(loaded["wf-1"], first)
    assert list(path.parent.glob("*.tmp")) == []

    await reopened.delete("wf-1")
    assert sorted(await store.load()) == ["wf-2"]


@pytest.mark.asyncio
async def test_json_file_store_concurrent_saves_keep_every_workflow(tmp_path):
    store = JsonFileHistoryStore(tmp_path / "history.json")
    logs = [_sample_log(f"wf-{i}") for i in range(40)]

    await asyncio.gather(*(store.save({log.workflow_id: log}) for log in logs))
    loaded = await JsonFileHistoryStore(tmp_path / "history.json").load()

    assert sorted(loaded) == sorted(log.workflow_id for log in logs)
    for log in logs:
        _assert_same(loaded[log.workflow_id], log)


@pytest.mark.asyncio
async def test_json_file_store_missing_file_loads_empty(tmp_path):
    store = JsonFileHistoryStore(tmp_path / "absent.json")
    assert await store.load() == {}


@pytest.mark.asyncio
async def test_in_memory_store_isolates_saved_copies():
    store = InMemoryHistoryStore()
    log = _sample_log()
    await store.save({log.workflow_id: log})

    log.append("unflushed", StepKind.ACTIVITY, None)

    assert len((await store.load())["wf-1"]) == 3


def test_get_store_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("TEMPOLITE_DATABASE_URL", raising=False)
    assert isinstance(get_store("memory://"), InMemoryHistoryStore)
    assert isinstance(
        get_store(f"sqlite://{tmp_path / 'wf.db'}"), SQLiteHistoryStore
    )
    file_store = get_store(f"file://{tmp_path / 'h.json'}")
    assert isinstance(file_store, JsonFileHistoryStore)
    assert file_store.path == tmp_path / "h.json"

    with pytest.raises(ValueError):
        get_store("mysql://nowhere")


def test_get_store_defaults_to_history_file(tmp_path, monkeypatch):
    monkeypatch.delenv("TEMPOLITE_DATABASE_URL", raising=False)
    monkeypatch.setenv("TEMPOLITE_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("TEMPOLITE_HISTORY_PATH", str(tmp_path / "history.json"))

    from tempolite.config import load_config

    store = get_store(config=load_config())

    assert isinstance(store, JsonFileHistoryStore)
    assert store.path == tmp_path / "history.json"
