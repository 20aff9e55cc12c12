"""In-memory implementation of the history store."""

from __future__ import annotations

from typing import Dict, Mapping

from ..contracts import HistoryLog
from .store import HistoryStore


class InMemoryHistoryStore(HistoryStore):
    """Keep saved history in local memory.

    Saved logs are deep copies, so a new engine sharing this store sees only
    what was flushed, as it would after a restart. Data does not survive
    the process.
    """

    def __init__(self) -> None:
        self._logs: Dict[str, HistoryLog] = {}
        self.save_count = 0

    async def save(self, logs: Mapping[str, HistoryLog]) -> None:
        for workflow_id, log in logs.items():
            self._logs[workflow_id] = log.model_copy(deep=True)
        self.save_count += 1

    async def load(self) -> dict[str, HistoryLog]:
        return {
            workflow_id: log.model_copy(deep=True)
            for workflow_id, log in self._logs.items()
        }

    async def delete(self, workflow_id: str) -> None:
        self._logs.pop(workflow_id, None)
