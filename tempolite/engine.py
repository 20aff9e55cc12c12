"""Workflow driver: start, resume and recover workflows by replaying history."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pydantic_core import to_jsonable_python

from .constants import DEFAULT_SAVE_ATTEMPTS
from .context import WorkflowContext
from .contracts import (
    ExecutionCursor,
    HistoryLog,
    PendingSignal,
    WakeRequest,
    WorkflowStatus,
)
from .errors import (
    DeterminismViolation,
    PersistenceError,
    WorkflowAlreadyExistsError,
    WorkflowNotFoundError,
    WorkflowSuspended,
    describe_error,
)
from .interceptor import StepInterceptor
from .outcome import Completed, Failed, Suspended, WorkflowOutcome
from .persistence import HistoryStore
from .registry import WorkflowRegistry
from .scheduler import WakeScheduler
from .utils.retry import schedule_retry

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowEngine:
    """Drives workflow functions to completion across suspensions and restarts.

    Every pass re-runs the workflow function from its entry point; steps
    already recorded in history are served from it, so execution
    fast-forwards to the first unresolved step and continues live. History
    is flushed to the store only when a pass suspends, completes or fails.
    """

    def __init__(
        self,
        registry: WorkflowRegistry,
        store: HistoryStore,
        scheduler: Optional[WakeScheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
        save_attempts: int = DEFAULT_SAVE_ATTEMPTS,
    ) -> None:
        self._registry = registry
        self._store = store
        self._clock = clock or _utcnow
        self._scheduler = scheduler or WakeScheduler(clock=self._clock)
        self._scheduler.bind(self._on_wake)
        self._save_attempts = max(1, save_attempts)
        self._logs: Dict[str, HistoryLog] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self.recovery_failures: Dict[str, BaseException] = {}

    @property
    def scheduler(self) -> WakeScheduler:
        return self._scheduler

    def _lock_for(self, workflow_id: str) -> asyncio.Lock:
        lock = self._locks.get(workflow_id)
        if lock is None:
            lock = self._locks[workflow_id] = asyncio.Lock()
        return lock

    def get_history(self, workflow_id: str) -> HistoryLog:
        """Return the in-memory log for ``workflow_id``."""
        try:
            return self._logs[workflow_id]
        except KeyError:
            raise WorkflowNotFoundError(workflow_id) from None

    # ------------------------------------------------------------------
    # Trigger interface
    async def start_workflow(
        self, workflow_id: str, workflow_name: str, *args: Any
    ) -> WorkflowOutcome:
        """Create an empty history for ``workflow_id`` and run its first pass."""
        self._registry.get_workflow(workflow_name)
        async with self._lock_for(workflow_id):
            if workflow_id in self._logs:
                raise WorkflowAlreadyExistsError(workflow_id)
            log = HistoryLog(
                workflow_id=workflow_id,
                workflow_name=workflow_name,
                args=to_jsonable_python(list(args)),
            )
            self._logs[workflow_id] = log
            logger.info(f"Starting workflow {workflow_name} workflow_id={workflow_id}")
            return await self._run_pass(log)

    async def resume_workflow(self, workflow_id: str) -> WorkflowOutcome:
        """Replay ``workflow_id`` from its history and continue live.

        Raises:
            DeterminismViolation: The workflow code no longer matches its
                recorded history. The log is marked ``nondeterministic``.
        """
        async with self._lock_for(workflow_id):
            log = self.get_history(workflow_id)
            if log.status is WorkflowStatus.COMPLETED:
                logger.debug(f"Workflow_id={workflow_id} already completed")
                return Completed(workflow_id=workflow_id, result=log.result)
            logger.info(
                f"Resuming workflow {log.workflow_name} workflow_id={workflow_id} "
                f"with {len(log)} recorded steps"
            )
            return await self._run_pass(log)

    async def signal_workflow(
        self, workflow_id: str, signal_name: str, payload: Any = None
    ) -> Optional[WorkflowOutcome]:
        """Deliver a signal; resume the workflow if it is waiting for it.

        Returns the outcome of the resumed pass, or ``None`` when the signal
        was only queued.
        """
        async with self._lock_for(workflow_id):
            log = self.get_history(workflow_id)
            log.pending_signals.append(
                PendingSignal(
                    name=signal_name,
                    payload=to_jsonable_python(payload),
                    received_at=self._clock(),
                )
            )
            log.touch()
            await self._flush(log)
            logger.info(f"Signal {signal_name} delivered to workflow_id={workflow_id}")
            waiting = (
                log.status is WorkflowStatus.SUSPENDED
                and log.awaiting_signal == signal_name
            )
        if not waiting:
            return None
        return await self.resume_workflow(workflow_id)

    # ------------------------------------------------------------------
    # Startup protocol
    async def recover(self) -> Dict[str, WorkflowOutcome]:
        """Load persisted history and re-establish every unfinished workflow.

        Workflows whose history ends on a timer that has not fired yet get a
        wake scheduled for the recorded time; workflows waiting for a signal
        that has not arrived stay idle; all others are resumed now. Resumes
        that raise (a determinism violation or a persistence failure) are
        left out of the returned outcomes and collected in
        ``recovery_failures``.
        """
        try:
            loaded = await self._store.load()
        except Exception as exc:
            raise PersistenceError(f"Failed to load history: {exc}") from exc
        self._logs.update(loaded)
        logger.info(f"Loaded {len(loaded)} workflow histories")

        now = self._clock()
        to_resume: list[str] = []
        for workflow_id, log in loaded.items():
            if log.is_terminal:
                if log.status is WorkflowStatus.NONDETERMINISTIC:
                    logger.warning(
                        f"Skipping workflow_id={workflow_id}: history does not match code"
                    )
                continue
            if log.awaiting_signal and not log.has_signal(log.awaiting_signal):
                logger.info(
                    f"Workflow_id={workflow_id} waits for signal {log.awaiting_signal}"
                )
                continue
            wake_at = log.pending_wake_at()
            if (
                log.status is WorkflowStatus.SUSPENDED
                and wake_at is not None
                and wake_at > now
            ):
                self._scheduler.schedule(
                    WakeRequest(workflow_id=workflow_id, fire_at=wake_at)
                )
                continue
            to_resume.append(workflow_id)

        results = await asyncio.gather(
            *(self.resume_workflow(workflow_id) for workflow_id in to_resume),
            return_exceptions=True,
        )
        outcomes: Dict[str, WorkflowOutcome] = {}
        for workflow_id, result in zip(to_resume, results):
            if isinstance(result, BaseException):
                self.recovery_failures[workflow_id] = result
                logger.error(
                    f"Recovery of workflow_id={workflow_id} failed: {describe_error(result)}"
                )
                continue
            outcomes[workflow_id] = result
        return outcomes

    async def run_until_idle(self, timeout: Optional[float] = None) -> None:
        """Serve pending wakes until none remain or ``timeout`` expires."""
        if timeout is None:
            await self._scheduler.join()
            return
        try:
            await asyncio.wait_for(self._scheduler.join(), timeout)
        except asyncio.TimeoutError:
            logger.info(f"Stopped serving wakes after {timeout}s")

    async def shutdown(self) -> None:
        """Cancel pending wakes; they can be rebuilt from history."""
        await self._scheduler.close()

    async def delete_workflow(self, workflow_id: str) -> None:
        async with self._lock_for(workflow_id):
            self._scheduler.cancel(workflow_id)
            self._logs.pop(workflow_id, None)
            await self._store.delete(workflow_id)
        self._locks.pop(workflow_id, None)

    # ------------------------------------------------------------------
    # Execution
    async def _on_wake(self, workflow_id: str) -> None:
        await self.resume_workflow(workflow_id)

    async def _invoke(
        self,
        workflow: Callable[..., Any],
        ctx: WorkflowContext,
        interceptor: StepInterceptor,
        args: list,
    ) -> Any:
        try:
            return await workflow(ctx, *args)
        finally:
            # workflow code may have caught the violation
            if interceptor.violation is not None:
                raise interceptor.violation

    async def _run_pass(self, log: HistoryLog) -> WorkflowOutcome:
        workflow_id = log.workflow_id
        workflow = self._registry.get_workflow(log.workflow_name)
        interceptor = StepInterceptor(
            log, ExecutionCursor(), self._scheduler.schedule, self._clock
        )
        ctx = WorkflowContext(workflow_id, interceptor, self._registry)

        log.status = WorkflowStatus.RUNNING
        log.awaiting_signal = None
        try:
            result = await self._invoke(workflow, ctx, interceptor, log.args)
        except WorkflowSuspended as suspension:
            log.status = WorkflowStatus.SUSPENDED
            log.awaiting_signal = suspension.awaiting_signal
            log.touch()
            await self._flush(log)
            logger.info(f"Workflow_id={workflow_id} suspended after {len(log)} steps")
            return Suspended(
                workflow_id=workflow_id,
                wake_at=suspension.wake_at,
                awaiting_signal=suspension.awaiting_signal,
            )
        except DeterminismViolation as violation:
            log.status = WorkflowStatus.NONDETERMINISTIC
            log.error = str(violation)
            log.touch()
            logger.error(str(violation))
            await self._flush(log)
            raise
        except Exception as exc:
            log.status = WorkflowStatus.FAILED
            log.error = describe_error(exc)
            log.touch()
            logger.error(f"Workflow_id={workflow_id} failed: {log.error}")
            await self._flush(log)
            return Failed(workflow_id=workflow_id, error=log.error)

        log.status = WorkflowStatus.COMPLETED
        log.result = to_jsonable_python(result)
        log.error = None
        log.touch()
        await self._flush(log)
        logger.info(f"Workflow_id={workflow_id} completed")
        return Completed(workflow_id=workflow_id, result=log.result)

    async def _flush(self, log: HistoryLog) -> None:
        """Save ``log``; a pass is not reported until this succeeds."""
        for attempt in range(self._save_attempts):
            try:
                await self._store.save({log.workflow_id: log})
                return
            except Exception as exc:
                if attempt + 1 >= self._save_attempts:
                    raise PersistenceError(
                        f"Failed to persist history for {log.workflow_id}: {exc}"
                    ) from exc
                logger.warning(
                    f"Saving history for workflow_id={log.workflow_id} failed "
                    f"(attempt {attempt + 1}/{self._save_attempts}): {exc}"
                )
                await schedule_retry(attempt)
