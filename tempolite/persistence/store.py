"""Persistence bridge abstraction for workflow history."""

from __future__ import annotations

from typing import Mapping, Protocol

from ..contracts import HistoryLog


class HistoryStore(Protocol):
    """Protocol for durable history backends."""

    async def save(self, logs: Mapping[str, HistoryLog]) -> None:
        """Durably write every log in ``logs``, replacing stored copies."""

    async def load(self) -> dict[str, HistoryLog]:
        """Return every stored log keyed by workflow id."""

    async def delete(self, workflow_id: str) -> None:
        """Remove the stored history of ``workflow_id``."""
