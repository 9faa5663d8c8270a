"""Stages 2 and 3: zig built by the zig of the previous stage."""

from __future__ import annotations

from dataclasses import dataclass

from ..process import OutputMode
from ..progress import ProgressNode
from ..toolchain import Toolchain
from .base import BuildContext, StageId
from .utils import reset_directory

__all__ = [
    "DEBUG",
    "RELEASE_FAST",
    "ZigBuildProfile",
    "resolve_stage2_toolchain",
    "resolve_stage3_toolchain",
    "run_stage2",
    "run_stage3",
    "zig_build_command",
]


@dataclass(frozen=True, slots=True)
class ZigBuildProfile:
    optimize: str
    extra_flags: tuple[str, ...] = ()


RELEASE_FAST = ZigBuildProfile("ReleaseFast")
# Debug builds skip the language reference and the bundled std lib install;
# --zig-lib-dir points the compiler at the source tree's lib instead.
DEBUG = ZigBuildProfile("Debug", ("-Dno-langref", "-Dno-lib"))


def zig_build_command(
    ctx: BuildContext,
    toolchain: Toolchain,
    stage: StageId,
    profile: ZigBuildProfile,
) -> list[str]:
    return [
        toolchain.zig.text,
        "build",
        f"-Doptimize={profile.optimize}",
        f"-Dtarget={ctx.triple}",
        f"-Dcpu={ctx.cpu}",
        *profile.extra_flags,
        "-Dstatic-llvm",
        "--search-prefix",
        toolchain.root.text,
        "-p",
        str(ctx.tree.stage_dir(stage)),
        "--zig-lib-dir",
        str(ctx.tree.lib_dir),
        "-freference-trace",
    ]


def _run_zig_build(
    ctx: BuildContext,
    toolchain: Toolchain,
    progress: ProgressNode,
    stage: StageId,
    profile: ZigBuildProfile,
) -> None:
    progress.set_estimated_total(2)

    with progress.start("rm -rf"):
        reset_directory(ctx.tree.stage_dir(stage))
    progress.complete_one()

    with progress.start(f"zig build -Doptimize={profile.optimize}") as node:
        ctx.runner.run(
            zig_build_command(ctx, toolchain, stage, profile),
            cwd=ctx.tree.root,
            env=ctx.environment(toolchain),
            mode=OutputMode.STREAMED,
            progress=node,
        )
    progress.complete_one()


def resolve_stage2_toolchain(ctx: BuildContext) -> Toolchain:
    return ctx.chained_toolchain(StageId.STAGE2)


def resolve_stage3_toolchain(ctx: BuildContext) -> Toolchain:
    return ctx.chained_toolchain(StageId.STAGE3)


def run_stage2(ctx: BuildContext, toolchain: Toolchain, progress: ProgressNode) -> None:
    _run_zig_build(ctx, toolchain, progress, StageId.STAGE2, RELEASE_FAST)


def run_stage3(ctx: BuildContext, toolchain: Toolchain, progress: ProgressNode) -> None:
    _run_zig_build(ctx, toolchain, progress, StageId.STAGE3, DEBUG)
