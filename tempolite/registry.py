"""Explicit registry mapping names to workflow and activity functions."""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from .errors import TempoliteError

Activity = Callable[[Any], Any]
Workflow = Callable[..., Awaitable[Any]]
F = TypeVar("F", bound=Callable[..., Any])


class WorkflowRegistry:
    """Names every workflow and activity an engine can run.

    Names are what history records, so renaming a registered function
    changes its history identity.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}
        self._activities: Dict[str, Activity] = {}

    def workflow(self, func: Optional[F] = None, *, name: Optional[str] = None):
        """Register an ``async def workflow(ctx, *args)`` function.

        Usable as ``@registry.workflow`` or ``@registry.workflow(name=...)``.
        """

        def decorator(fn: F) -> F:
            if not inspect.iscoroutinefunction(fn):
                raise TypeError(f"Workflow {fn.__name__} must be an async function")
            self._register(self._workflows, name or fn.__name__, fn, "workflow")
            return fn

        return decorator(func) if func is not None else decorator

    def activity(self, func: Optional[F] = None, *, name: Optional[str] = None):
        """Register a sync or async ``activity(input)`` function."""

        def decorator(fn: F) -> F:
            self._register(self._activities, name or fn.__name__, fn, "activity")
            return fn

        return decorator(func) if func is not None else decorator

    @staticmethod
    def _register(table: Dict[str, Any], name: str, fn: Any, kind: str) -> None:
        existing = table.get(name)
        if existing is not None and existing is not fn:
            raise TempoliteError(f"Duplicate {kind} name: {name}")
        table[name] = fn

    def get_workflow(self, name: str) -> Workflow:
        try:
            return self._workflows[name]
        except KeyError:
            raise TempoliteError(f"Unknown workflow: {name}") from None

    def get_activity(self, name: str) -> Activity:
        try:
            return self._activities[name]
        except KeyError:
            raise TempoliteError(f"Unknown activity: {name}") from None

    @property
    def workflow_names(self) -> list[str]:
        return sorted(self._workflows)

    @property
    def activity_names(self) -> list[str]:
        return sorted(self._activities)
