"""Handle passed to workflow functions for invoking durable steps."""

from __future__ import annotations

from typing import Any

from .interceptor import StepInterceptor
from .registry import WorkflowRegistry


class WorkflowContext:
    """Durable operations available inside a workflow body.

    Workflow code must be deterministic: every branch has to depend only on
    its arguments and on values returned by these methods.
    """

    def __init__(
        self, workflow_id: str, interceptor: StepInterceptor, registry: WorkflowRegistry
    ) -> None:
        self.workflow_id = workflow_id
        self._interceptor = interceptor
        self._registry = registry

    @property
    def sequence(self) -> int:
        """Number of steps this pass has invoked so far."""
        return self._interceptor.cursor.sequence

    @property
    def is_replaying(self) -> bool:
        """``True`` while the pass is still being served from history."""
        return self.sequence < len(self._interceptor.log)

    async def execute_activity(self, name: str, input: Any = None) -> Any:
        """Run the registered activity ``name`` with ``input``."""
        operation = self._registry.get_activity(name)
        return await self._interceptor.run_activity(name, operation, input)

    async def sleep(self, duration_ms: int) -> None:
        """Durably wait ``duration_ms`` milliseconds."""
        await self._interceptor.sleep(duration_ms)

    async def wait_for_signal(self, name: str) -> Any:
        """Wait for an external signal and return its payload."""
        return await self._interceptor.wait_for_signal(name)
