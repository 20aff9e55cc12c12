"""Tempolite: deterministic replay engine for durable workflows."""

from .config import load_config
from .context import WorkflowContext
from .contracts import (
    ExecutionCursor,
    HistoryEntry,
    HistoryLog,
    StepKind,
    StepStatus,
    WakeRequest,
    WorkflowStatus,
)
from .engine import WorkflowEngine
from .errors import (
    DeterminismViolation,
    PersistenceError,
    StepFailure,
    TempoliteError,
    WorkflowAlreadyExistsError,
    WorkflowNotFoundError,
)
from .outcome import Completed, Failed, Suspended, WorkflowOutcome
from .persistence import get_store
from .registry import WorkflowRegistry
from .scheduler import WakeScheduler

__version__ = "0.1.0"
__all__ = [
    "Completed",
    "DeterminismViolation",
    "ExecutionCursor",
    "Failed",
    "HistoryEntry",
    "HistoryLog",
    "PersistenceError",
    "StepFailure",
    "StepKind",
    "StepStatus",
    "Suspended",
    "TempoliteError",
    "WakeRequest",
    "WakeScheduler",
    "WorkflowAlreadyExistsError",
    "WorkflowContext",
    "WorkflowEngine",
    "WorkflowNotFoundError",
    "WorkflowOutcome",
    "WorkflowRegistry",
    "WorkflowStatus",
    "get_store",
    "load_config",
]
