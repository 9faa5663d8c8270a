"""Compiler invocation strings used to build each stage.

The bootstrap stage is built with the host toolchain (``CC``/``CXX``/``ASM``
or ``cc``/``c++``, optionally behind ``ccache``).  Every later stage is built
with the zig binary produced by the stage before it, driven as
``<zig> cc -target <triple> -mcpu=<cpu>``.
"""

from __future__ import annotations

import logging
import os
import shlex
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Final

from .config import ZigdConfig
from .errors import ExternalToolError
from .process import OutputMode, ProcessRunner

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_CC",
    "DEFAULT_CXX",
    "DEFAULT_ROOT",
    "DEFAULT_ZIG",
    "COMPILER_CACHE",
    "Ownership",
    "ToolString",
    "Toolchain",
    "is_tool_available",
    "from_environment",
    "from_previous_stage",
    "apply_to_environment",
]

DEFAULT_CC: Final = "cc"
DEFAULT_CXX: Final = "c++"
DEFAULT_ROOT: Final = "/"
DEFAULT_ZIG: Final = "zig"
COMPILER_CACHE: Final = "ccache"


class Ownership(Enum):
    BORROWED = "borrowed"
    OWNED = "owned"


@dataclass(slots=True)
class ToolString:
    """An invocation string tagged with who owns it.

    Borrowed values are shared well-known defaults and are never released.
    Owned values were composed for one stage and are released exactly once.
    """

    text: str
    ownership: Ownership = Ownership.OWNED
    released: bool = False

    @classmethod
    def borrowed(cls, text: str) -> ToolString:
        return cls(text, Ownership.BORROWED)

    @classmethod
    def owned(cls, text: str | os.PathLike[str]) -> ToolString:
        return cls(os.fspath(text), Ownership.OWNED)

    @property
    def is_borrowed(self) -> bool:
        return self.ownership is Ownership.BORROWED

    def release(self) -> bool:
        """Release an owned value; return ``True`` when something was freed."""

        if self.is_borrowed:
            return False
        if self.released:
            raise RuntimeError(f"tool string {self.text!r} released twice")
        self.released = True
        return True

    def argv(self) -> list[str]:
        return shlex.split(self.text)

    def __str__(self) -> str:
        return self.text


@dataclass(slots=True)
class Toolchain:
    """C, C++ and assembler invocations plus the prefix/compiler of a stage."""

    cc: ToolString
    cxx: ToolString
    asm: ToolString
    root: ToolString = field(default_factory=lambda: ToolString.borrowed(DEFAULT_ROOT))
    zig: ToolString = field(default_factory=lambda: ToolString.borrowed(DEFAULT_ZIG))

    def values(self) -> tuple[ToolString, ...]:
        return (self.root, self.cc, self.cxx, self.asm, self.zig)

    def release(self) -> int:
        """Release every owned string; return how many were released."""

        return sum(1 for value in self.values() if value.release())

    def __enter__(self) -> Toolchain:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def is_tool_available(name: str, runner: ProcessRunner | None = None) -> bool:
    """Return ``True`` when ``name`` can be started from ``PATH``.

    The exit status is irrelevant; only a failure to start counts.
    """

    runner = runner or ProcessRunner()
    try:
        runner.run([name], mode=OutputMode.BUFFERED, check=False)
    except ExternalToolError as exc:
        logger.debug("%s is not available: %s", name, exc)
        return False
    return True


def from_environment(
    config: ZigdConfig,
    runner: ProcessRunner | None = None,
    *,
    wrapper: str = COMPILER_CACHE,
) -> Toolchain:
    """Host toolchain for the bootstrap stage.

    ``CC``/``CXX``/``ASM`` overrides always win; otherwise the defaults are
    ``cc``/``c++``, prefixed with ``wrapper`` when it is installed.  The
    assembler default mirrors the C compiler default.  The wrapper is not
    probed when all three are overridden.
    """

    overridden = config.cc and config.cxx and config.asm
    cached = not overridden and is_tool_available(wrapper, runner)
    if cached:
        default_cc = ToolString.borrowed(f"{wrapper} {DEFAULT_CC}")
        default_cxx = ToolString.borrowed(f"{wrapper} {DEFAULT_CXX}")
    else:
        default_cc = ToolString.borrowed(DEFAULT_CC)
        default_cxx = ToolString.borrowed(DEFAULT_CXX)

    return Toolchain(
        cc=ToolString.owned(config.cc) if config.cc else default_cc,
        cxx=ToolString.owned(config.cxx) if config.cxx else default_cxx,
        asm=ToolString.owned(config.asm) if config.asm else ToolString.borrowed(default_cc.text),
    )


def from_previous_stage(
    stage_root: str | os.PathLike[str],
    compiler: str | os.PathLike[str],
    target_triple: str,
    cpu: str,
) -> Toolchain:
    """Toolchain driving the zig binary ``compiler`` built by the previous stage."""

    zig = os.fspath(compiler)
    flags = f"-target {target_triple} -mcpu={cpu}"
    return Toolchain(
        cc=ToolString.owned(f"{zig} cc {flags}"),
        cxx=ToolString.owned(f"{zig} c++ {flags}"),
        asm=ToolString.owned(f"{zig} cc {flags}"),
        root=ToolString.owned(Path(stage_root)),
        zig=ToolString.owned(zig),
    )


def apply_to_environment(toolchain: Toolchain, env: MutableMapping[str, str]) -> None:
    """Write ``CC``/``CXX``/``ASM`` into ``env`` unless they are the bare defaults."""

    for key, value, default in (
        ("CC", toolchain.cc, DEFAULT_CC),
        ("CXX", toolchain.cxx, DEFAULT_CXX),
        ("ASM", toolchain.asm, DEFAULT_CC),
    ):
        if value.text != default:
            env[key] = value.text
