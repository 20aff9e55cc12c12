"""JSON file implementation of the history store."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping

from ..contracts import HistoryLog
from .store import HistoryStore

logger = logging.getLogger(__name__)


class JsonFileHistoryStore(HistoryStore):
    """Persist all workflow histories in a single JSON document.

    The document maps workflow ids to serialized logs. Each save is a
    read-merge-write of the whole document, serialized by a lock; writes go
    to a temporary file that atomically replaces the document.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # File helpers
    def _read_raw(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        return json.loads(text)

    def _write_raw(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _merge(self, snapshot: Dict[str, Any]) -> None:
        data = self._read_raw()
        data.update(snapshot)
        self._write_raw(data)

    def _delete(self, workflow_id: str) -> None:
        data = self._read_raw()
        if data.pop(workflow_id, None) is not None:
            self._write_raw(data)

    # ------------------------------------------------------------------
    # Store API
    async def save(self, logs: Mapping[str, HistoryLog]) -> None:
        # serialize on the loop; passes may mutate logs while the thread writes
        snapshot = {
            workflow_id: log.model_dump(mode="json")
            for workflow_id, log in logs.items()
        }
        async with self._lock:
            await asyncio.to_thread(self._merge, snapshot)
        logger.debug(f"Saved {len(snapshot)} workflow histories to {self.path}")

    async def load(self) -> dict[str, HistoryLog]:
        async with self._lock:
            data = await asyncio.to_thread(self._read_raw)
        return {
            workflow_id: HistoryLog.model_validate(raw)
            for workflow_id, raw in data.items()
        }

    async def delete(self, workflow_id: str) -> None:
        async with self._lock:
            await asyncio.to_thread(self._delete, workflow_id)
