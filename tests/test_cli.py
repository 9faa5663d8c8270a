"""Regression tests for the zigd Typer CLI."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from zigd import cli
from zigd.pipeline import toolchain as toolchain_module
from zigd.pipeline.config import ZigdConfig
from zigd.pipeline.errors import ExternalToolError
from zigd.pipeline.process import Code

runner = CliRunner()


@pytest.fixture
def tree_root(tmp_path, monkeypatch):
    root = tmp_path / "zig"
    root.mkdir()
    monkeypatch.setenv("ZIGD_TREE", str(root))
    for name in ("CC", "CXX", "ASM", "ZIGD_LOG_DIR", "ZIG_LIB_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(toolchain_module, "is_tool_available", lambda name, runner=None: False)
    return root


@pytest.fixture
def exec_calls(monkeypatch):
    calls: list[tuple[list[str], dict[str, str]]] = []
    monkeypatch.setattr(cli, "_exec", lambda argv, env: calls.append((argv, env)))
    return calls


def test_build_passes_requested_stages(monkeypatch, tree_root):
    captured: dict[str, object] = {}
    expected = {"run_id": "test", "stages": {"stage1": "succeeded"}}

    def _fake_run_build(stages, *, config):
        captured["stages"] = list(stages)
        captured["config"] = config
        return expected

    monkeypatch.setattr(cli, "core_run_build", _fake_run_build)

    result = runner.invoke(cli.app, ["build", "stage3", "bootstrap"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == expected
    assert captured["stages"] == ["stage3", "bootstrap"]
    config = captured["config"]
    assert isinstance(config, ZigdConfig)
    assert str(config.tree_root) == str(tree_root)


def test_build_without_stages_is_a_no_op(monkeypatch, tree_root):
    monkeypatch.setattr(cli, "core_run_build", pytest.fail)

    result = runner.invoke(cli.app, ["build"])

    assert result.exit_code == 0
    assert "No stages requested." in result.output


def test_build_rejects_unknown_stage(tree_root):
    result = runner.invoke(cli.app, ["build", "stage4"])
    assert result.exit_code == 2


def test_build_failure_prints_tool_diagnostics(monkeypatch, tree_root):
    def _failing_run_build(stages, *, config):
        error = ExternalToolError.from_outcome(
            ["ninja", "install"], Code(1), diagnostics="FAILED: src/main.o\n"
        )
        error.stage = "stage1"
        raise error

    monkeypatch.setattr(cli, "core_run_build", _failing_run_build)

    result = runner.invoke(cli.app, ["build", "stage1"])

    assert result.exit_code == 1
    assert "FAILED: src/main.o" in result.output
    assert 'Build failed: [stage1] "ninja" exited with 1' in result.output


def test_tree_prints_root(tree_root):
    result = runner.invoke(cli.app, ["tree"])

    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == str(tree_root)


def test_missing_tree_root_exits_with_error(monkeypatch):
    monkeypatch.delenv("ZIGD_TREE", raising=False)

    result = runner.invoke(cli.app, ["tree"])

    assert result.exit_code == 1
    assert "ZIGD_TREE is not set" in result.output


def test_env_lists_configuration(tree_root, monkeypatch):
    monkeypatch.setenv("CC", "clang")

    result = runner.invoke(cli.app, ["env"])

    assert result.exit_code == 0, result.output
    lines = dict(line.split("=", 1) for line in result.stdout.splitlines())
    assert lines["ZIGD_TREE"] == str(tree_root)
    assert lines["CC"] == "clang"
    assert lines["CXX"] == "c++"
    assert lines["ASM"] == "cc"
    assert lines["CPU"] == "baseline"
    assert lines["STAGE2_DIR"] == str(tree_root / "build" / "stage2")
    assert lines["BOOTSTRAP_DIR"] == str(tree_root / "build" / "zig-bootstrap")


@pytest.mark.parametrize(
    ("alias", "expected"),
    [("gcc", ["cc"]), ("clang++", ["c++"]), ("asm", ["cc"])],
)
def test_stage0_runs_host_compiler(tree_root, exec_calls, alias, expected):
    result = runner.invoke(cli.app, ["stage0", alias, "-c", "main.c", "-o", "main.o"])

    assert result.exit_code == 0, result.output
    [(argv, env)] = exec_calls
    assert argv == [*expected, "-c", "main.c", "-o", "main.o"]
    assert env["ZIGD_TREE"] == str(tree_root)


def test_stage0_splits_compiler_overrides(tree_root, exec_calls, monkeypatch):
    monkeypatch.setenv("CC", "ccache clang -fcolor-diagnostics")

    result = runner.invoke(cli.app, ["stage0", "cc", "--version"])

    assert result.exit_code == 0, result.output
    assert exec_calls[0][0] == ["ccache", "clang", "-fcolor-diagnostics", "--version"]


def test_stage0_rejects_unknown_compiler(tree_root, exec_calls):
    result = runner.invoke(cli.app, ["stage0", "rustc"])

    assert result.exit_code == 2
    assert 'Unknown compiler "rustc"' in result.output
    assert exec_calls == []


def test_stage_commands_exec_stage_compilers(tree_root, exec_calls):
    triple = ZigdConfig.from_environ().target_triple

    for command in ("bootstrap", "stage1", "stage2"):
        result = runner.invoke(cli.app, [command, "build", "-Doptimize=ReleaseSafe"])
        assert result.exit_code == 0, result.output

    build = tree_root / "build"
    assert [argv for argv, _ in exec_calls] == [
        [
            str(build / "zig-bootstrap" / "out" / f"zig-{triple}-baseline" / "zig"),
            "build",
            "-Doptimize=ReleaseSafe",
        ],
        [str(build / "stage1" / "stage3" / "bin" / "zig"), "build", "-Doptimize=ReleaseSafe"],
        [str(build / "stage2" / "bin" / "zig"), "build", "-Doptimize=ReleaseSafe"],
    ]
    assert all("ZIG_LIB_DIR" not in env for _, env in exec_calls)


def test_stage3_points_at_tree_lib_dir(tree_root, exec_calls):
    result = runner.invoke(cli.app, ["stage3", "test", "lib/std/std.zig"])

    assert result.exit_code == 0, result.output
    [(argv, env)] = exec_calls
    assert argv == [str(tree_root / "build" / "stage3" / "bin" / "zig"), "test", "lib/std/std.zig"]
    assert env["ZIG_LIB_DIR"] == str(tree_root / "lib")


def test_stage_command_reports_missing_compiler(tree_root):
    compiler = tree_root / "build" / "stage2" / "bin" / "zig"

    result = runner.invoke(cli.app, ["stage2", "version"])

    assert result.exit_code == 1
    assert f"Cannot run {compiler}" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)
