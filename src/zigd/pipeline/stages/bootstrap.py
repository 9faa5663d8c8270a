"""Bootstrap stage: LLVM and a first zig from zig-bootstrap."""

from __future__ import annotations

from pathlib import Path
from typing import Final

from ..errors import NotGitManagedError
from ..process import OutputMode
from ..progress import ProgressNode
from ..toolchain import Toolchain, from_environment
from .base import BuildContext, StageId
from .utils import NINJA_STATUS, remove_tree

__all__ = ["ZIG_BOOTSTRAP_URL", "build_script", "resolve_toolchain", "run"]

ZIG_BOOTSTRAP_URL: Final = "https://github.com/ziglang/zig-bootstrap.git"


def build_script(os_tag: str) -> str:
    return "build.bat" if os_tag == "windows" else "build"


def resolve_toolchain(ctx: BuildContext) -> Toolchain:
    return from_environment(ctx.config, ctx.runner)


def _clone(ctx: BuildContext, directory: Path, progress: ProgressNode) -> None:
    progress.increase_estimated_total(1)
    with progress.start(f"git clone {ZIG_BOOTSTRAP_URL}"):
        ctx.runner.run(["git", "clone", ZIG_BOOTSTRAP_URL, directory])
    progress.complete_one()


def _pull(ctx: BuildContext, directory: Path, progress: ProgressNode) -> None:
    if not (directory / ".git").exists():
        raise NotGitManagedError(
            message=f"{directory} exists but is not a git checkout of zig-bootstrap",
            context={"path": str(directory)},
        )
    progress.increase_estimated_total(1)
    with progress.start("git pull"):
        ctx.runner.run(["git", "pull"], cwd=directory)
    progress.complete_one()


def run(ctx: BuildContext, toolchain: Toolchain, progress: ProgressNode) -> None:
    directory = ctx.tree.stage_dir(StageId.BOOTSTRAP)
    if directory.is_dir():
        _pull(ctx, directory, progress)
    else:
        _clone(ctx, directory, progress)

    remove_tree(directory / "out")

    script = build_script(ctx.config.target_os)
    env = ctx.environment(toolchain, NINJA_STATUS=NINJA_STATUS, CMAKE_GENERATOR="Ninja")
    progress.increase_estimated_total(1)
    with progress.start(f"./{script}") as node:
        ctx.runner.run(
            [directory / script, ctx.triple, ctx.cpu],
            cwd=directory,
            env=env,
            mode=OutputMode.STREAMED,
            progress=node,
        )
    progress.complete_one()
