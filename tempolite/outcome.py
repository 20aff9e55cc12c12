"""Outcome of a single workflow execution pass."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel


class Completed(BaseModel):
    """The workflow function returned."""

    kind: Literal["completed"] = "completed"
    workflow_id: str
    result: Any = None


class Suspended(BaseModel):
    """The pass stopped at a timer or signal wait; history was persisted."""

    kind: Literal["suspended"] = "suspended"
    workflow_id: str
    wake_at: Optional[datetime] = None
    awaiting_signal: Optional[str] = None


class Failed(BaseModel):
    """The workflow function raised."""

    kind: Literal["failed"] = "failed"
    workflow_id: str
    error: str


WorkflowOutcome = Union[Completed, Suspended, Failed]

