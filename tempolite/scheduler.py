"""In-memory wake scheduler for suspended workflows."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from .contracts import WakeRequest

logger = logging.getLogger(__name__)

WakeCallback = Callable[[str], Awaitable[object]]


class WakeScheduler:
    """Fires a callback for a workflow id once its wake time is reached.

    Not durable: pending wakes are lost when the process exits and must be
    rebuilt from history on startup.
    """

    def __init__(
        self,
        callback: Optional[WakeCallback] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._callback = callback
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._requests: Dict[str, WakeRequest] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._running: set[asyncio.Task] = set()

    def bind(self, callback: WakeCallback) -> None:
        self._callback = callback

    def schedule(self, request: WakeRequest) -> None:
        """Arrange for ``request`` to fire, replacing any earlier wake for its id."""
        self.cancel(request.workflow_id)
        task = asyncio.get_running_loop().create_task(self._fire(request))
        self._requests[request.workflow_id] = request
        self._tasks[request.workflow_id] = task
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        logger.debug(
            f"Scheduled wake for workflow_id={request.workflow_id} at "
            f"{request.fire_at.isoformat()}"
        )

    def cancel(self, workflow_id: str) -> bool:
        task = self._tasks.pop(workflow_id, None)
        self._requests.pop(workflow_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def pending(self) -> List[WakeRequest]:
        return sorted(self._requests.values(), key=lambda r: r.fire_at)

    async def _fire(self, request: WakeRequest) -> None:
        delay = (request.fire_at - self._clock()).total_seconds()
        if delay > 0:
            await asyncio.sleep(delay)

        # the callback may schedule a new wake for the same id
        if self._tasks.get(request.workflow_id) is asyncio.current_task():
            self._tasks.pop(request.workflow_id)
            self._requests.pop(request.workflow_id, None)

        if self._callback is None:
            logger.warning(f"No wake callback bound for {request.workflow_id}")
            return
        logger.info(f"Wake fired for workflow_id={request.workflow_id}")
        try:
            await self._callback(request.workflow_id)
        except Exception:
            logger.exception(f"Wake callback failed for {request.workflow_id}")

    async def join(self) -> None:
        """Wait until no wake is pending or firing."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def close(self) -> None:
        """Cancel every pending wake."""
        for workflow_id in list(self._tasks):
            self.cancel(workflow_id)
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
