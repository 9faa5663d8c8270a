"""Stage registry for the zigd build pipeline."""

from __future__ import annotations

from . import bootstrap, stage1, zig_build
from .base import BuildContext, StageDefinition, StageId

PIPELINE_STAGES: list[StageDefinition] = [
    StageDefinition(StageId.BOOTSTRAP, bootstrap.run, bootstrap.resolve_toolchain),
    StageDefinition(StageId.STAGE1, stage1.run, stage1.resolve_toolchain),
    StageDefinition(StageId.STAGE2, zig_build.run_stage2, zig_build.resolve_stage2_toolchain),
    StageDefinition(StageId.STAGE3, zig_build.run_stage3, zig_build.resolve_stage3_toolchain),
]

__all__ = ["PIPELINE_STAGES", "BuildContext", "StageDefinition", "StageId"]
