"""Staged toolchain resolution and build orchestration."""

from __future__ import annotations

from importlib import import_module
from types import ModuleType

_SUBMODULES: dict[str, str] = {
    "config": "zigd.pipeline.config",
    "errors": "zigd.pipeline.errors",
    "logging_utils": "zigd.pipeline.logging_utils",
    "orchestrator": "zigd.pipeline.orchestrator",
    "paths": "zigd.pipeline.paths",
    "process": "zigd.pipeline.process",
    "progress": "zigd.pipeline.progress",
    "stages": "zigd.pipeline.stages",
    "toolchain": "zigd.pipeline.toolchain",
}

__all__ = list(_SUBMODULES)


def __getattr__(name: str) -> ModuleType:
    if name in _SUBMODULES:
        module = import_module(_SUBMODULES[name])
        globals()[name] = module
        return module
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(list(globals().keys()) + list(_SUBMODULES.keys()))
