"""Shared state and definitions for build stages."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ..config import ZigdConfig
from ..logging_utils import CoreLogger
from ..paths import StageId, Tree
from ..process import ProcessRunner
from ..progress import ProgressNode
from ..toolchain import Toolchain, apply_to_environment, from_previous_stage


@dataclass(slots=True)
class BuildContext:
    """Everything a stage body needs, shared read-only across stages."""

    config: ZigdConfig
    tree: Tree
    runner: ProcessRunner
    corelog: CoreLogger

    @classmethod
    def create(
        cls,
        config: ZigdConfig,
        corelog: CoreLogger,
        runner: ProcessRunner | None = None,
    ) -> BuildContext:
        return cls(
            config=config,
            tree=Tree(config.tree_root),
            runner=runner or ProcessRunner(),
            corelog=corelog,
        )

    @property
    def triple(self) -> str:
        return self.config.target_triple

    @property
    def cpu(self) -> str:
        return self.config.cpu

    @property
    def library_prefix(self) -> Path:
        return self.tree.bootstrap_prefix(self.triple, self.cpu)

    def compiler(self, stage: StageId) -> Path:
        return self.tree.stage_compiler(stage, self.triple, self.cpu)

    def chained_toolchain(self, stage: StageId) -> Toolchain:
        """Toolchain for ``stage`` built from the zig binary of the stage before it."""

        previous = stage.previous
        if previous is None:
            raise ValueError(f"{stage.value} has no previous stage")
        return from_previous_stage(
            self.library_prefix,
            self.compiler(previous),
            self.triple,
            self.cpu,
        )

    def environment(self, toolchain: Toolchain, **extra: str) -> dict[str, str]:
        """Child environment: captured environ, ``extra`` values, then the toolchain."""

        env = self.config.child_environ()
        env.update(extra)
        apply_to_environment(toolchain, env)
        return env


StageRunner = Callable[[BuildContext, Toolchain, ProgressNode], None]
ToolchainFactory = Callable[[BuildContext], Toolchain]


@dataclass(frozen=True)
class StageDefinition:
    stage: StageId
    runner: StageRunner
    toolchain: ToolchainFactory

    @property
    def name(self) -> str:
        return self.stage.value


__all__ = [
    "BuildContext",
    "StageDefinition",
    "StageId",
    "StageRunner",
    "ToolchainFactory",
]
