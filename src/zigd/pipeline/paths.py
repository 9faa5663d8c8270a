"""Canonical directory layout of a zig source tree and its build stages."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import NamedTuple

__all__ = ["StageId", "StageDirectories", "Tree", "resolve"]


class StageId(Enum):
    """Build stages in dependency order."""

    BOOTSTRAP = "bootstrap"
    STAGE1 = "stage1"
    STAGE2 = "stage2"
    STAGE3 = "stage3"

    @property
    def order(self) -> int:
        return _STAGE_ORDER.index(self)

    @property
    def previous(self) -> StageId | None:
        index = self.order
        return _STAGE_ORDER[index - 1] if index else None

    @property
    def dirname(self) -> str:
        if self is StageId.BOOTSTRAP:
            return "zig-bootstrap"
        return self.value

    @classmethod
    def parse(cls, value: str | StageId) -> StageId:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(stage.value for stage in cls)
            raise ValueError(f"unknown stage {value!r} (expected one of: {names})") from None


_STAGE_ORDER: tuple[StageId, ...] = tuple(StageId)


class StageDirectories(NamedTuple):
    bootstrap: Path
    stage1: Path
    stage2: Path
    stage3: Path


def _absolute(root: str | os.PathLike[str]) -> Path:
    return Path(os.path.normpath(os.path.abspath(os.fspath(root))))


def resolve(root: str | os.PathLike[str]) -> StageDirectories:
    """Return ``root/build/<name>`` for every stage, absolute and normalised."""

    base = _absolute(root)
    return StageDirectories(
        *(Path(os.path.normpath(base / "build" / stage.dirname)) for stage in StageId)
    )


@dataclass(frozen=True, slots=True)
class Tree:
    """A zig source checkout and the stage directories derived from it.

    Only ``root`` is stored; every other path is recomputed on access.
    """

    root: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "root", _absolute(self.root))

    @property
    def directories(self) -> StageDirectories:
        return resolve(self.root)

    def stage_dir(self, stage: StageId | str) -> Path:
        stage = StageId.parse(stage)
        return self.directories[stage.order]

    @property
    def lib_dir(self) -> Path:
        return self.root / "lib"

    def bootstrap_prefix(self, triple: str, cpu: str) -> Path:
        """Install prefix of the LLVM/zig libraries built by zig-bootstrap."""

        return self.stage_dir(StageId.BOOTSTRAP) / "out" / f"{triple}-{cpu}"

    def stage_compiler(self, stage: StageId | str, triple: str, cpu: str) -> Path:
        """Path of the zig binary produced by ``stage``."""

        stage = StageId.parse(stage)
        base = self.stage_dir(stage)
        if stage is StageId.BOOTSTRAP:
            return base / "out" / f"zig-{triple}-{cpu}" / "zig"
        if stage is StageId.STAGE1:
            # cmake installs into <build>/stage3 by default
            return base / "stage3" / "bin" / "zig"
        return base / "bin" / "zig"
