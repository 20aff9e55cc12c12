"""Exception types raised by the tempolite engine."""

from __future__ import annotations

from datetime import datetime
from typing import Optional


class TempoliteError(Exception):
    """Base class for all engine errors."""


class StepFailure(TempoliteError):
    """A step's operation raised; recorded as a ``failed`` history entry.

    Raised into the workflow body both when the failure happens live and
    when a recorded failure is replayed, so workflow retry logic sees the
    same exception type on every pass.
    """

    def __init__(self, step_name: str, sequence: int, error: str) -> None:
        self.step_name = step_name
        self.sequence = sequence
        self.error = error
        super().__init__(f"Step {step_name!r} at position {sequence} failed: {error}")


class DeterminismViolation(TempoliteError):
    """Replayed history does not match the step the workflow code invoked."""

    def __init__(
        self, workflow_id: str, position: int, expected: str, actual: str
    ) -> None:
        self.workflow_id = workflow_id
        self.position = position
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Workflow {workflow_id!r} diverged from its history at position "
            f"{position}: recorded {expected!r}, invoked {actual!r}"
        )


class PersistenceError(TempoliteError):
    """The history store could not save or load workflow history."""


class WorkflowNotFoundError(TempoliteError):
    """No history exists for the requested workflow id."""


class WorkflowAlreadyExistsError(TempoliteError):
    """A history already exists for the workflow id being started."""


class WorkflowSuspended(BaseException):
    """Unwinds a workflow body up to the engine without completing it.

    Derives from ``BaseException`` so ``except Exception`` blocks inside
    workflow code cannot swallow it. Never escapes the engine.
    """

    def __init__(
        self,
        wake_at: Optional[datetime] = None,
        awaiting_signal: Optional[str] = None,
    ) -> None:
        self.wake_at = wake_at
        self.awaiting_signal = awaiting_signal
        super().__init__("workflow suspended")


def describe_error(exc: BaseException) -> str:
    """Render ``exc`` the way it is stored in history."""
    return f"{type(exc).__name__}: {exc}"
