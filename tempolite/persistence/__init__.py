"""Persistence bridge for tempolite workflow history."""

from __future__ import annotations

from typing import Optional

from ..config import TempoliteConfig, load_config
from .inmemory import InMemoryHistoryStore
from .jsonfile import JsonFileHistoryStore
from .sqlite import SQLiteHistoryStore
from .store import HistoryStore

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresHistoryStore
except ImportError:  # pragma: no cover - optional dependency
    PostgresHistoryStore = None  # type: ignore

_store_instance: HistoryStore | None = None


def get_store(
    database_url: Optional[str] = None, config: Optional[TempoliteConfig] = None
) -> HistoryStore:
    """Factory function to obtain a history store.

    The backend is selected from ``database_url``, which can be provided
    explicitly, via the ``TEMPOLITE_DATABASE_URL`` environment variable, or
    from loaded configuration. Without a URL, the JSON file at
    ``persistence.history_path`` is used.
    """

    global _store_instance
    if _store_instance is not None and database_url is None and config is None:
        return _store_instance

    config = config or load_config()
    database_url = database_url or config.persistence.database_url

    if not database_url:
        _store_instance = JsonFileHistoryStore(config.persistence.history_path)
    elif database_url.startswith("memory://"):
        _store_instance = InMemoryHistoryStore()
    elif database_url.startswith("file://"):
        _store_instance = JsonFileHistoryStore(database_url.replace("file://", "", 1))
    elif database_url.startswith("sqlite://"):
        _store_instance = SQLiteHistoryStore(database_url.replace("sqlite://", "", 1))
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresHistoryStore is None:
            raise RuntimeError("Postgres support not available")
        _store_instance = PostgresHistoryStore(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _store_instance


__all__ = [
    "HistoryStore",
    "InMemoryHistoryStore",
    "JsonFileHistoryStore",
    "SQLiteHistoryStore",
    "PostgresHistoryStore",
    "get_store",
]
