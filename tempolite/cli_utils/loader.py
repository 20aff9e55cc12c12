"""Resolve ``module:attribute`` references to workflow registries."""

from __future__ import annotations

import sys
from importlib import import_module
from importlib.util import module_from_spec, spec_from_file_location
from pathlib import Path
from types import ModuleType

from tempolite.registry import WorkflowRegistry


def _import_target(target: str) -> ModuleType:
    path = Path(target)
    if path.suffix == ".py":
        if not path.exists():
            raise FileNotFoundError(target)
        loaded = sys.modules.get(path.stem)
        loaded_file = getattr(loaded, "__file__", None)
        if loaded_file and Path(loaded_file).resolve() == path.resolve():
            return loaded
        spec = spec_from_file_location(path.stem, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot import {target}")
        module = module_from_spec(spec)
        sys.modules[path.stem] = module
        spec.loader.exec_module(module)
        return module

    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)
    return import_module(target)


def load_registry(ref: str) -> WorkflowRegistry:
    """Load the registry named by ``ref``.

    ``ref`` is ``<module or file.py>[:attribute]``; the attribute defaults
    to ``registry``.
    """

    target, sep, attribute = ref.rpartition(":")
    if not sep:
        target, attribute = ref, "registry"
    module = _import_target(target)
    registry = getattr(module, attribute, None)
    if not isinstance(registry, WorkflowRegistry):
        raise TypeError(f"{ref} does not reference a WorkflowRegistry")
    return registry
