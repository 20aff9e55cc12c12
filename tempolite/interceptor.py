"""Cache-or-execute interception of workflow steps."""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from pydantic_core import to_jsonable_python

from .constants import TIMER_STEP_NAME
from .contracts import (
    ExecutionCursor,
    HistoryEntry,
    HistoryLog,
    StepKind,
    StepStatus,
    WakeRequest,
)
from .errors import DeterminismViolation, StepFailure, WorkflowSuspended, describe_error

logger = logging.getLogger(__name__)


def _label(kind: StepKind, step_name: str) -> str:
    return step_name if kind is StepKind.ACTIVITY else f"{kind.value}:{step_name}"


class StepInterceptor:
    """Routes every step of one execution pass through the history log.

    A resolved entry at the cursor position is returned (or re-raised) from
    history without running the step; otherwise the step runs live and its
    outcome is recorded at that position.
    """

    def __init__(
        self,
        log: HistoryLog,
        cursor: ExecutionCursor,
        schedule_wake: Callable[[WakeRequest], None],
        clock: Callable[[], datetime],
    ) -> None:
        self.log = log
        self.cursor = cursor
        self._schedule_wake = schedule_wake
        self._clock = clock
        self.violation: Optional[DeterminismViolation] = None

    @property
    def workflow_id(self) -> str:
        return self.log.workflow_id

    def _replay(self, kind: StepKind, step_name: str) -> Optional[HistoryEntry]:
        """Return the recorded entry for the current position, if resolved."""
        position = self.cursor.sequence
        entry = self.log.entry_at(position)
        if entry is None or not entry.is_resolved:
            return None
        self._check_matches(entry, kind, step_name, position)
        self.cursor.advance()
        logger.debug(
            f"Replayed {_label(kind, step_name)} at position {position} "
            f"for workflow_id={self.workflow_id}"
        )
        if entry.status is StepStatus.FAILED:
            raise StepFailure(step_name, position, entry.error or "unknown error")
        return entry

    def _check_matches(
        self, entry: HistoryEntry, kind: StepKind, step_name: str, position: int
    ) -> None:
        if entry.kind is not kind or entry.step_name != step_name:
            self.violation = DeterminismViolation(
                self.workflow_id,
                position,
                expected=_label(entry.kind, entry.step_name),
                actual=_label(kind, step_name),
            )
            raise self.violation

    def _record(self, kind: StepKind, step_name: str, input: Any) -> HistoryEntry:
        """Advance the cursor and return the entry for a live step."""
        position = self.cursor.advance()
        entry = self.log.entry_at(position)
        if entry is not None:
            # interrupted step at the tail of history: re-run it in place
            self._check_matches(entry, kind, step_name, position)
            entry.input = input
            return entry
        return self.log.append(step_name, kind, input)

    async def run_activity(
        self, step_name: str, operation: Callable[[Any], Any], input: Any = None
    ) -> Any:
        """Run ``operation(input)`` at most once across all passes."""
        cached = self._replay(StepKind.ACTIVITY, step_name)
        if cached is not None:
            return cached.output

        recorded_input = to_jsonable_python(input)
        entry = self._record(StepKind.ACTIVITY, step_name, recorded_input)
        logger.debug(
            f"Executing {step_name} at position {entry.sequence} "
            f"for workflow_id={self.workflow_id}"
        )
        try:
            if inspect.iscoroutinefunction(operation):
                result = await operation(input)
            else:
                result = await asyncio.to_thread(operation, input)
                if inspect.isawaitable(result):
                    result = await result
            output = to_jsonable_python(result)
        except Exception as exc:
            entry.fail(describe_error(exc))
            logger.warning(
                f"Step {step_name} failed at position {entry.sequence} "
                f"for workflow_id={self.workflow_id}: {entry.error}"
            )
            raise StepFailure(step_name, entry.sequence, entry.error) from exc

        entry.complete(output)
        return entry.output

    async def sleep(self, duration_ms: int) -> None:
        """Durable timer: schedule a wake and suspend the current pass."""
        if duration_ms < 0:
            raise ValueError("duration_ms must be non-negative")
        if self._replay(StepKind.TIMER, TIMER_STEP_NAME) is not None:
            return None

        now = self._clock()
        wake_at = now + timedelta(milliseconds=duration_ms)
        entry = self._record(
            StepKind.TIMER,
            TIMER_STEP_NAME,
            {
                "now": now.isoformat(),
                "wake_at": wake_at.isoformat(),
                "duration_ms": duration_ms,
            },
        )
        self._schedule_wake(WakeRequest(workflow_id=self.workflow_id, fire_at=wake_at))
        entry.complete(None)
        logger.info(
            f"Timer at position {entry.sequence} suspends workflow_id="
            f"{self.workflow_id} until {wake_at.isoformat()}"
        )
        raise WorkflowSuspended(wake_at=wake_at)

    async def wait_for_signal(self, name: str) -> Any:
        """Return the payload of the next ``name`` signal, suspending until one arrives."""
        cached = self._replay(StepKind.SIGNAL, name)
        if cached is not None:
            return cached.output

        signal = self.log.take_signal(name)
        if signal is None:
            logger.info(
                f"Workflow_id={self.workflow_id} suspended awaiting signal {name}"
            )
            raise WorkflowSuspended(awaiting_signal=name)

        entry = self._record(StepKind.SIGNAL, name, {"signal": name})
        entry.complete(to_jsonable_python(signal.payload))
        logger.debug(
            f"Consumed signal {name} at position {entry.sequence} "
            f"for workflow_id={self.workflow_id}"
        )
        return entry.output
