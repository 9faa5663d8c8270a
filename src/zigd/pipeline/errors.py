"""Unified error types for the zigd build pipeline.

Every failure surfaced by the pipeline derives from :class:`ZigdError`, which
carries the stage it happened in and a serialisable context payload so the
CLI can print something actionable.  External tool failures additionally keep
the command line, the exit outcome and whatever diagnostic output was
captured before the tool died.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - import cycle guard for type checkers only
    from .process import ExitOutcome

__all__ = [
    "ZigdError",
    "ConfigurationError",
    "MissingTreeRootError",
    "ExternalToolError",
    "NotGitManagedError",
    "FilesystemError",
    "StageExecutionError",
    "attach_context",
    "coerce_stage_error",
]


@dataclass(slots=True)
class ZigdError(RuntimeError):
    """Base class for pipeline level failures.

    Attributes
    ----------
    message:
        Human readable description of the failure.
    stage:
        Stage identifier, ``None`` until the orchestrator stamps it.
    context:
        JSON serialisable dictionary with granular diagnostics.
    cause:
        Underlying exception (kept for debugging, not included in ``__str__``).
    """

    message: str
    stage: str | None = None
    context: MutableMapping[str, Any] = field(default_factory=dict)
    cause: Exception | None = None

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class ConfigurationError(ZigdError):
    """Raised when the captured configuration is unusable."""


class MissingTreeRootError(ConfigurationError):
    """Raised when the tree-root environment variable is absent."""


@dataclass(slots=True)
class ExternalToolError(ZigdError):
    """A spawned tool could not start, was killed, or exited non-zero."""

    command: tuple[str, ...] = ()
    outcome: ExitOutcome | None = None
    diagnostics: str = ""

    @property
    def code(self) -> int | None:
        """Exit code of the tool, ``None`` when it never exited normally."""

        return getattr(self.outcome, "code", None)

    @property
    def program(self) -> str:
        return self.command[0] if self.command else "<unknown>"

    @classmethod
    def from_outcome(
        cls,
        command: Sequence[str],
        outcome: ExitOutcome,
        *,
        diagnostics: str = "",
    ) -> ExternalToolError:
        command = tuple(str(part) for part in command)
        program = command[0] if command else "<unknown>"
        return cls(
            message=f'"{program}" {outcome.describe()}',
            context={"command": list(command), "outcome": outcome.describe()},
            command=command,
            outcome=outcome,
            diagnostics=diagnostics,
        )


class NotGitManagedError(ZigdError):
    """The bootstrap directory exists but is not a git checkout."""


class FilesystemError(ZigdError):
    """Path resolution or a non-tolerated directory operation failed."""


class StageExecutionError(ZigdError):
    """An unexpected exception escaped a stage body."""


def attach_context(error: ZigdError, context: Mapping[str, Any] | None) -> ZigdError:
    """Merge ``context`` into ``error.context`` preserving existing keys."""

    if not context:
        return error
    for key, value in context.items():
        error.context.setdefault(key, value)
    return error


def coerce_stage_error(
    stage: str,
    message: str,
    *,
    context: Mapping[str, Any] | None = None,
    cause: Exception | None = None,
) -> StageExecutionError:
    """Create :class:`StageExecutionError` with a rich context payload."""

    payload: MutableMapping[str, Any] = {}
    if context:
        payload.update(context)
    if cause:
        payload.setdefault("cause", repr(cause))
    return StageExecutionError(message=message, stage=stage, context=payload, cause=cause)
