"""Core history contracts for tempolite workflows."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from .constants import TIMER_STEP_NAME


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepKind(str, Enum):
    """Kind of step that produced a history entry."""

    ACTIVITY = "activity"
    TIMER = "timer"
    SIGNAL = "signal"


class StepStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkflowStatus(str, Enum):
    """Lifecycle status of a workflow instance."""

    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"
    NONDETERMINISTIC = "nondeterministic"


class HistoryEntry(BaseModel):
    """Outcome of one step, recorded at its position in the history."""

    workflow_id: str
    sequence: int
    step_name: str
    kind: StepKind = StepKind.ACTIVITY
    status: StepStatus = StepStatus.RUNNING
    input: Any = None
    output: Any = None
    error: Optional[str] = None
    recorded_at: datetime = Field(default_factory=utcnow)

    @property
    def is_resolved(self) -> bool:
        """``True`` once the entry can be served from history on replay."""
        return self.status in (StepStatus.COMPLETED, StepStatus.FAILED)

    def complete(self, output: Any) -> None:
        self.status = StepStatus.COMPLETED
        self.output = output

    def fail(self, error: str) -> None:
        self.status = StepStatus.FAILED
        self.error = error


class PendingSignal(BaseModel):
    """Signal delivered to a workflow but not yet consumed by it."""

    name: str
    payload: Any = None
    received_at: datetime = Field(default_factory=utcnow)


class HistoryLog(BaseModel):
    """Append-only history of a single workflow instance."""

    workflow_id: str
    workflow_name: str
    args: List[Any] = Field(default_factory=list)
    status: WorkflowStatus = WorkflowStatus.RUNNING
    entries: List[HistoryEntry] = Field(default_factory=list)
    result: Any = None
    error: Optional[str] = None
    awaiting_signal: Optional[str] = None
    pending_signals: List[PendingSignal] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def __len__(self) -> int:
        return len(self.entries)

    def entry_at(self, position: int) -> Optional[HistoryEntry]:
        if 0 <= position < len(self.entries):
            return self.entries[position]
        return None

    def append(
        self, step_name: str, kind: StepKind, input: Any = None
    ) -> HistoryEntry:
        """Append a ``running`` entry and return it for later completion."""
        entry = HistoryEntry(
            workflow_id=self.workflow_id,
            sequence=len(self.entries),
            step_name=step_name,
            kind=kind,
            input=input,
        )
        self.entries.append(entry)
        return entry

    def last_entry(self) -> Optional[HistoryEntry]:
        return self.entries[-1] if self.entries else None

    def pending_wake_at(self) -> Optional[datetime]:
        """Return the recorded wake time when the history ends on a timer."""
        last = self.last_entry()
        if last is None or last.kind is not StepKind.TIMER:
            return None
        if last.step_name != TIMER_STEP_NAME or not isinstance(last.input, dict):
            return None
        wake_at = last.input.get("wake_at")
        return datetime.fromisoformat(wake_at) if wake_at else None

    def take_signal(self, name: str) -> Optional[PendingSignal]:
        """Remove and return the oldest pending signal named ``name``."""
        for index, signal in enumerate(self.pending_signals):
            if signal.name == name:
                return self.pending_signals.pop(index)
        return None

    def has_signal(self, name: str) -> bool:
        return any(signal.name == name for signal in self.pending_signals)

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            WorkflowStatus.COMPLETED,
            WorkflowStatus.NONDETERMINISTIC,
        )

    def touch(self) -> None:
        self.updated_at = utcnow()


class ExecutionCursor(BaseModel):
    """Position of the current execution pass within the history.

    Never persisted; every pass starts at zero.
    """

    sequence: int = 0

    def advance(self) -> int:
        """Return the current position and move past it."""
        position = self.sequence
        self.sequence += 1
        return position


class WakeRequest(BaseModel):
    """Request to resume ``workflow_id`` no earlier than ``fire_at``."""

    workflow_id: str
    fire_at: datetime
