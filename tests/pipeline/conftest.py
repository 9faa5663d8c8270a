from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import pytest

from zigd.pipeline.config import ZigdConfig
from zigd.pipeline.errors import ExternalToolError
from zigd.pipeline.logging_utils import CoreLogger
from zigd.pipeline.process import Code, OutputMode, ProcessResult
from zigd.pipeline.stages import BuildContext


@dataclass
class Call:
    command: tuple[str, ...]
    cwd: Path | None
    env: dict[str, str] | None
    mode: OutputMode
    check: bool


class FakeRunner:
    """Records commands instead of spawning them."""

    def __init__(
        self,
        *,
        missing: tuple[str, ...] = ("ccache",),
        fail_on: str | None = None,
        code: int = 1,
    ) -> None:
        self.missing = set(missing)
        self.fail_on = fail_on
        self.code = code
        self.calls: list[Call] = []

    @property
    def programs(self) -> list[str]:
        return [Path(call.command[0]).name for call in self.calls]

    def find(self, program: str) -> Call:
        for call in self.calls:
            if Path(call.command[0]).name == program:
                return call
        raise AssertionError(f"{program} was never run: {self.programs}")

    def run(
        self,
        argv,
        *,
        cwd=None,
        env=None,
        mode: OutputMode = OutputMode.BUFFERED,
        progress=None,
        check: bool = True,
    ) -> ProcessResult:
        command = tuple(os.fspath(part) for part in argv)
        if command[0] in self.missing:
            raise ExternalToolError(message=f"{command[0]} could not be started", command=command)
        self.calls.append(
            Call(
                command=command,
                cwd=None if cwd is None else Path(cwd),
                env=None if env is None else dict(env),
                mode=mode,
                check=check,
            )
        )
        if progress is not None:
            progress.set_estimated_total(4)
            progress.set_completed(4)
        if self.fail_on is not None and self.fail_on in command:
            outcome = Code(self.code)
            if check:
                raise ExternalToolError.from_outcome(command, outcome, diagnostics="tool said no")
            return ProcessResult(command, outcome)
        return ProcessResult(command, Code(0))


@pytest.fixture
def tree_root(tmp_path: Path) -> Path:
    root = tmp_path / "zig"
    root.mkdir()
    return root


@pytest.fixture
def config(tree_root: Path) -> ZigdConfig:
    return ZigdConfig.from_environ({"ZIGD_TREE": str(tree_root)}, platform="linux")


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def context(config: ZigdConfig, fake_runner: FakeRunner) -> BuildContext:
    return BuildContext.create(config, CoreLogger("test"), fake_runner)  # type: ignore[arg-type]


@pytest.fixture
def make_runner():
    return FakeRunner
