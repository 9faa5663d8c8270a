"""Core orchestration logic for the zigd staged build."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Any

from .config import ZigdConfig
from .errors import FilesystemError, ZigdError, attach_context, coerce_stage_error
from .logging_utils import CoreLogger, RunStats, StageGuard, _fmt_hms_ms
from .process import ProcessRunner
from .progress import LoggingProgressListener, ProgressNode
from .stages import PIPELINE_STAGES, BuildContext, StageDefinition, StageId

__all__ = [
    "BuildPipeline",
    "StageStatus",
    "order_stages",
    "run_build",
]


class StageStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def order_stages(requested: Iterable[StageId | str]) -> list[StageId]:
    """Deduplicate ``requested`` and sort it into build dependency order."""

    wanted = {StageId.parse(stage) for stage in requested}
    return sorted(wanted, key=lambda stage: stage.order)


class BuildPipeline:
    """Run requested stages one after another, stopping at the first failure."""

    def __init__(
        self,
        config: ZigdConfig,
        *,
        runner: ProcessRunner | None = None,
        corelog: CoreLogger | None = None,
        progress: ProgressNode | None = None,
        stage_definitions: Sequence[StageDefinition] | None = None,
    ):
        self.config = config
        self.run_id = time.strftime("%Y%m%d-%H%M%S") + "-" + uuid.uuid4().hex[:6]
        self.corelog = corelog or CoreLogger(
            self.run_id,
            config.log_dir / "run.jsonl" if config.log_dir else None,
            console_level=(logging.WARNING if config.quiet else logging.INFO),
        )
        self.stats = RunStats(run_id=self.run_id)
        self.context = BuildContext.create(config, self.corelog, runner)
        self.progress = progress or ProgressNode(
            "zigd build", listener=LoggingProgressListener(self.corelog.log)
        )
        self.definitions = {
            definition.stage: definition
            for definition in (stage_definitions or PIPELINE_STAGES)
        }
        self.statuses: dict[StageId, StageStatus] = {}

    def run(self, requested: Iterable[StageId | str]) -> dict[str, Any]:
        stages = order_stages(requested)
        self.statuses = {stage: StageStatus.PENDING for stage in stages}
        self.progress.increase_estimated_total(len(stages))
        self.corelog.info(
            "Building %s in %s",
            ", ".join(stage.value for stage in stages) or "nothing",
            self.context.tree.root,
        )

        try:
            for stage in stages:
                self._run_stage(self.definitions[stage])
        finally:
            self.progress.end()
            self._log_summary(stages)

        return self.report()

    def _run_stage(self, definition: StageDefinition) -> None:
        stage = definition.stage
        self.statuses[stage] = StageStatus.RUNNING
        try:
            with StageGuard(self.corelog, self.stats, definition.name):
                try:
                    self._execute(definition)
                except ZigdError:
                    raise
                except OSError as exc:
                    raise FilesystemError(
                        message=str(exc),
                        context={"filename": getattr(exc, "filename", None)},
                        cause=exc,
                    ) from exc
                except Exception as exc:
                    raise coerce_stage_error(
                        definition.name,
                        f"Stage '{definition.name}' execution failed",
                        context={"tree": str(self.context.tree.root)},
                        cause=exc,
                    ) from exc
        except ZigdError as exc:
            self.statuses[stage] = StageStatus.FAILED
            if exc.stage is None:
                exc.stage = definition.name
            attach_context(exc, {"run_id": self.run_id})
            raise
        except BaseException:
            self.statuses[stage] = StageStatus.FAILED
            raise
        self.statuses[stage] = StageStatus.SUCCEEDED
        self.progress.complete_one()

    def _execute(self, definition: StageDefinition) -> None:
        # The toolchain lives exactly as long as this stage.
        with definition.toolchain(self.context) as toolchain:
            with self.progress.start(definition.name) as node:
                definition.runner(self.context, toolchain, node)

    def report(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "tree": str(self.context.tree.root),
            "config": self.config.describe(),
            "stages": {stage.value: status.value for stage, status in self.statuses.items()},
            "timings_ms": dict(self.stats.stage_timings_ms),
            "failures": list(self.stats.failures),
            "progress": self.progress.snapshot(),
        }

    def _log_summary(self, stages: Sequence[StageId]) -> None:
        if not stages:
            return
        failures = {f.get("stage"): f for f in self.stats.failures}
        self.corelog.info("Stage summary:")
        for stage in stages:
            status = self.statuses.get(stage, StageStatus.PENDING)
            elapsed = _fmt_hms_ms(self.stats.stage_timings_ms.get(stage.value, 0.0))
            if status is StageStatus.FAILED:
                failure = failures.get(stage.value, {})
                self.corelog.warn(
                    f"  - {stage.value}: FAIL in {elapsed} | Fix: {failure.get('suggestion')}"
                )
            elif status is StageStatus.SUCCEEDED:
                self.corelog.info(f"  - {stage.value}: PASS in {elapsed}")
            else:
                self.corelog.info(f"  - {stage.value}: NOT RUN")
        self.corelog.event("done", "stop", **self.report())


def run_build(
    requested: Iterable[StageId | str],
    *,
    config: ZigdConfig | None = None,
    runner: ProcessRunner | None = None,
) -> dict[str, Any]:
    """Build ``requested`` stages for the tree named by the environment."""

    pipeline = BuildPipeline(config or ZigdConfig.from_environ(), runner=runner)
    return pipeline.run(requested)
