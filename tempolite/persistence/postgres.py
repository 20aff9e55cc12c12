"""PostgreSQL implementation of the history store."""

from __future__ import annotations

import json
from typing import Mapping

import asyncpg

from ..contracts import HistoryEntry, HistoryLog, PendingSignal
from .store import HistoryStore


class PostgresHistoryStore(HistoryStore):
    """Persist workflow history using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                workflow_id TEXT PRIMARY KEY,
                workflow_name TEXT NOT NULL,
                args JSONB NOT NULL,
                status TEXT NOT NULL,
                result JSONB,
                error TEXT,
                awaiting_signal TEXT,
                pending_signals JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS history_entries (
                workflow_id TEXT NOT NULL,
                sequence INTEGER NOT NULL,
                step_name TEXT NOT NULL,
                kind TEXT NOT NULL,
                status TEXT NOT NULL,
                input JSONB,
                output JSONB,
                error TEXT,
                recorded_at TIMESTAMPTZ NOT NULL,
                PRIMARY KEY (workflow_id, sequence)
            )
            """
        )

    # ------------------------------------------------------------------
    async def save(self, logs: Mapping[str, HistoryLog]) -> None:
        snapshots = [log.model_copy(deep=True) for log in logs.values()]
        conn = await self._connect()
        try:
            async with conn.transaction():
                for log in snapshots:
                    await conn.execute(
                        """
                        INSERT INTO workflows (workflow_id, workflow_name, args, status,
                            result, error, awaiting_signal, pending_signals,
                            created_at, updated_at)
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                        ON CONFLICT (workflow_id) DO UPDATE SET
                            status = EXCLUDED.status,
                            result = EXCLUDED.result,
                            error = EXCLUDED.error,
                            awaiting_signal = EXCLUDED.awaiting_signal,
                            pending_signals = EXCLUDED.pending_signals,
                            updated_at = EXCLUDED.updated_at
                        """,
                        log.workflow_id,
                        log.workflow_name,
                        json.dumps(log.model_dump(mode="json")["args"]),
                        log.status.value,
                        json.dumps(log.result),
                        log.error,
                        log.awaiting_signal,
                        json.dumps(
                            [s.model_dump(mode="json") for s in log.pending_signals]
                        ),
                        log.created_at,
                        log.updated_at,
                    )
                    await conn.executemany(
                        """
                        INSERT INTO history_entries (workflow_id, sequence, step_name,
                            kind, status, input, output, error, recorded_at)
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                        ON CONFLICT (workflow_id, sequence) DO UPDATE SET
                            status = EXCLUDED.status,
                            input = EXCLUDED.input,
                            output = EXCLUDED.output,
                            error = EXCLUDED.error
                        """,
                        [
                            (
                                e.workflow_id,
                                e.sequence,
                                e.step_name,
                                e.kind.value,
                                e.status.value,
                                json.dumps(e.input),
                                json.dumps(e.output),
                                e.error,
                                e.recorded_at,
                            )
                            for e in log.entries
                        ],
                    )
        finally:
            await conn.close()

    async def load(self) -> dict[str, HistoryLog]:
        conn = await self._connect()
        try:
            workflow_rows = await conn.fetch("SELECT * FROM workflows")
            entry_rows = await conn.fetch(
                "SELECT * FROM history_entries ORDER BY workflow_id, sequence"
            )
        finally:
            await conn.close()

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
        return {
            r["workflow_id"]: HistoryLog(
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
            for r in workflow_rows
        }

    async def delete(self, workflow_id: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "DELETE FROM history_entries WHERE workflow_id = $1", workflow_id
            )
            await conn.execute("DELETE FROM workflows WHERE workflow_id = $1", workflow_id)
        finally:
            await conn.close()
