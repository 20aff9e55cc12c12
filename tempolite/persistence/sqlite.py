"""SQLite implementation of the history store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from pathlib import Path
from typing import Any, Mapping

from ..contracts import HistoryEntry, HistoryLog, PendingSignal
from .store import HistoryStore


class SQLiteHistoryStore(HistoryStore):
    """Persist workflow history using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = asyncio.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                workflow_id TEXT PRIMARY KEY,
                workflow_name TEXT NOT NULL,
                args TEXT NOT NULL,
                status TEXT NOT NULL,
                result TEXT,
                error TEXT,
                awaiting_signal TEXT,
                pending_signals TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS history_entries (
                workflow_id TEXT NOT NULL,
                sequence INTEGER NOT NULL,
                step_name TEXT NOT NULL,
                kind TEXT NOT NULL,
                status TEXT NOT NULL,
                input TEXT,
                output TEXT,
                error TEXT,
                recorded_at TEXT NOT NULL,
                PRIMARY KEY (workflow_id, sequence)
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    @staticmethod
    def _workflow_row(log: HistoryLog) -> tuple[Any, ...]:
        data = log.model_dump(mode="json", exclude={"entries"})
        return (
            data["workflow_id"],
            data["workflow_name"],
            json.dumps(data["args"]),
            data["status"],
            json.dumps(data["result"]),
            data["error"],
            data["awaiting_signal"],
            json.dumps(data["pending_signals"]),
            data["created_at"],
            data["updated_at"],
        )

    @staticmethod
    def _entry_rows(log: HistoryLog) -> list[tuple[Any, ...]]:
        rows = []
        for entry in log.entries:
            data = entry.model_dump(mode="json")
            rows.append(
                (
                    data["workflow_id"],
                    data["sequence"],
                    data["step_name"],
                    data["kind"],
                    data["status"],
                    json.dumps(data["input"]),
                    json.dumps(data["output"]),
                    data["error"],
                    data["recorded_at"],
                )
            )
        return rows

    def _write(self, rows: list[tuple[tuple[Any, ...], list[tuple[Any, ...]]]]) -> None:
        with self._conn:
            for workflow_row, entry_rows in rows:
                self._conn.execute(
                    "INSERT OR REPLACE INTO workflows VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    workflow_row,
                )
                self._conn.executemany(
                    "INSERT OR REPLACE INTO history_entries VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    entry_rows,
                )

    def _read(self) -> dict[str, HistoryLog]:
        cur = self._conn.cursor()
        workflow_rows = cur.execute("SELECT * FROM workflows").fetchall()
        entry_rows = cur.execute(
            "SELECT * FROM history_entries ORDER BY workflow_id, sequence"
        ).fetchall()

        entries: dict[str, list[HistoryEntry]] = {}
        for r in entry_rows:
            entries.setdefault(r["workflow_id"], []).append(
                HistoryEntry(
                    workflow_id=r["workflow_id"],
                    sequence=r["sequence"],
                    step_name=r["step_name"],
                    kind=r["kind"],
                    status=r["status"],
                    input=json.loads(r["input"]) if r["input"] else None,
                    output=json.loads(r["output"]) if r["output"] else None,
                    error=r["error"],
                    recorded_at=r["recorded_at"],
                )
            )

        logs: dict[str, HistoryLog] = {}
        for r in workflow_rows:
            logs[r["workflow_id"]] = HistoryLog(
                workflow_id=r["workflow_id"],
                workflow_name=r["workflow_name"],
                args=json.loads(r["args"]),
                status=r["status"],
                entries=entries.get(r["workflow_id"], []),
                result=json.loads(r["result"]) if r["result"] else None,
                error=r["error"],
                awaiting_signal=r["awaiting_signal"],
                pending_signals=[
                    PendingSignal.model_validate(s)
                    for s in json.loads(r["pending_signals"])
                ],
                created_at=r["created_at"],
                updated_at=r["updated_at"],
            )
        return logs

    def _delete(self, workflow_id: str) -> None:
        with self._conn:
            self._conn.execute(
                "DELETE FROM history_entries WHERE workflow_id = ?", (workflow_id,)
            )
            self._conn.execute(
                "DELETE FROM workflows WHERE workflow_id = ?", (workflow_id,)
            )

    # ------------------------------------------------------------------
    # Store API
    async def save(self, logs: Mapping[str, HistoryLog]) -> None:
        rows = [(self._workflow_row(log), self._entry_rows(log)) for log in logs.values()]
        async with self._lock:
            await asyncio.to_thread(self._write, rows)

    async def load(self) -> dict[str, HistoryLog]:
        async with self._lock:
            return await asyncio.to_thread(self._read)

    async def delete(self, workflow_id: str) -> None:
        async with self._lock:
            await asyncio.to_thread(self._delete, workflow_id)

    def close(self) -> None:
        self._conn.close()
