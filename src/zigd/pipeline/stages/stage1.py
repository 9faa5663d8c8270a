"""Stage 1: zig from source with cmake and ninja."""

from __future__ import annotations

from ..process import OutputMode
from ..progress import ProgressNode
from ..toolchain import Toolchain
from .base import BuildContext, StageId
from .utils import NINJA_STATUS, make_directory, remove_tree

__all__ = ["cmake_command", "resolve_toolchain", "run"]


def resolve_toolchain(ctx: BuildContext) -> Toolchain:
    return ctx.chained_toolchain(StageId.STAGE1)


def cmake_command(ctx: BuildContext, toolchain: Toolchain) -> list[str]:
    return [
        "cmake",
        str(ctx.tree.root),
        f"-DCMAKE_PREFIX_PATH={toolchain.root}",
        "-DCMAKE_BUILD_TYPE=Release",
        f"-DZIG_TARGET_TRIPLE={ctx.triple}",
        f"-DZIG_TARGET_MCPU={ctx.cpu}",
        "-DZIG_STATIC=ON",
        "-GNinja",
    ]


def run(ctx: BuildContext, toolchain: Toolchain, progress: ProgressNode) -> None:
    directory = ctx.tree.stage_dir(StageId.STAGE1)
    progress.set_estimated_total(3)

    with progress.start("rm -rf", 2) as node:
        remove_tree(directory)
        node.complete_one()
        make_directory(directory)
        node.complete_one()
    progress.complete_one()

    env = ctx.environment(toolchain, NINJA_STATUS=NINJA_STATUS)

    with progress.start("cmake"):
        ctx.runner.run(cmake_command(ctx, toolchain), cwd=directory, env=env)
    progress.complete_one()

    with progress.start("ninja install") as node:
        ctx.runner.run(
            ["ninja", "install"],
            cwd=directory,
            env=env,
            mode=OutputMode.STREAMED,
            progress=node,
        )
    progress.complete_one()
