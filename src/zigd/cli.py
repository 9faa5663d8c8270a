"""Command line interface for zigd."""

from __future__ import annotations

import json
import os
from collections.abc import Sequence
from enum import Enum

import typer

from .pipeline.config import TREE_ENV_VAR, ZigdConfig
from .pipeline.errors import ExternalToolError, ZigdError
from .pipeline.logging_utils import _make_json_safe
from .pipeline.orchestrator import run_build
from .pipeline.paths import StageId, Tree
from .pipeline.toolchain import Toolchain, from_environment

app = typer.Typer(
    help=(
        "Build and manage the zig compiler from the source tree. "
        f"Use {TREE_ENV_VAR} to specify the zig source tree."
    ),
    no_args_is_help=True,
)

_PASSTHROUGH = {"allow_extra_args": True, "ignore_unknown_options": True}

_STAGE0_ALIASES: dict[str, str] = {
    "cc": "cc",
    "clang": "cc",
    "gcc": "cc",
    "c++": "cxx",
    "clang++": "cxx",
    "g++": "cxx",
    "asm": "asm",
}


class StageChoice(str, Enum):
    bootstrap = "bootstrap"
    stage1 = "stage1"
    stage2 = "stage2"
    stage3 = "stage3"


def core_run_build(stages: Sequence[str], *, config: ZigdConfig) -> dict:
    return run_build(stages, config=config)


def _exec(argv: list[str], env: dict[str, str]) -> None:
    try:
        os.execvpe(argv[0], argv, env)
    except OSError as exc:
        message = f"Cannot run {argv[0]}: {exc.strerror or exc}"
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


def _load_config() -> ZigdConfig:
    try:
        return ZigdConfig.from_environ()
    except ZigdError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


def _fail(prefix: str, exc: ZigdError) -> typer.Exit:
    if isinstance(exc, ExternalToolError) and exc.diagnostics:
        typer.echo(exc.diagnostics.rstrip(), err=True)
    typer.secho(f"{prefix}: {exc}", fg=typer.colors.RED, err=True)
    return typer.Exit(code=1)


@app.command(
    help=(
        "Build the given stages (bootstrap, stage1, stage2, stage3). "
        "They always run in dependency order regardless of the order given."
    )
)
def build(
    stages: list[StageChoice] = typer.Argument(None, help="Stages to build"),
):
    if not stages:
        typer.echo("No stages requested.")
        return
    config = _load_config()
    try:
        report = core_run_build([stage.value for stage in stages], config=config)
    except ZigdError as exc:
        raise _fail("Build failed", exc) from exc
    typer.echo(json.dumps(_make_json_safe(report), indent=2))


@app.command(help="Print the active tree root.")
def tree():
    typer.echo(str(_load_config().tree_root))


@app.command(help="Print the resolved configuration and host toolchain.")
def env():
    config = _load_config()
    toolchain = from_environment(config)
    layout = Tree(config.tree_root)
    values = {
        TREE_ENV_VAR: str(config.tree_root),
        "CC": toolchain.cc.text,
        "CXX": toolchain.cxx.text,
        "ASM": toolchain.asm.text,
        "TARGET": config.target_triple,
        "CPU": config.cpu,
    }
    for stage in StageId:
        values[f"{stage.value.upper()}_DIR"] = str(layout.stage_dir(stage))
    for key, value in values.items():
        typer.echo(f"{key}={value}")


@app.command(
    context_settings=_PASSTHROUGH,
    add_help_option=False,
    help="Invoke a stage 0 (host) compiler: cc|clang|gcc, c++|clang++|g++, or asm.",
)
def stage0(ctx: typer.Context):
    args = list(ctx.args)
    if not args or args[0] in {"-h", "--help"}:
        typer.echo(ctx.get_help())
        return
    slot = _STAGE0_ALIASES.get(args[0])
    if slot is None:
        typer.secho(f'Unknown compiler "{args[0]}".', fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)

    config = _load_config()
    toolchain: Toolchain = from_environment(config)
    argv = getattr(toolchain, slot).argv() + args[1:]
    _exec(argv, config.child_environ())


def _invoke_stage_compiler(stage: StageId, args: Sequence[str]) -> None:
    config = _load_config()
    layout = Tree(config.tree_root)
    compiler = layout.stage_compiler(stage, config.target_triple, config.cpu)
    env = config.child_environ()
    if stage is StageId.STAGE3:
        env["ZIG_LIB_DIR"] = str(layout.lib_dir)
    _exec([str(compiler), *args], env)


def _register_stage_command(stage: StageId, help_text: str) -> None:
    @app.command(
        name=stage.value,
        context_settings=_PASSTHROUGH,
        add_help_option=False,
        help=help_text,
    )
    def _command(ctx: typer.Context):
        _invoke_stage_compiler(stage, ctx.args)


_register_stage_command(StageId.BOOTSTRAP, "Invoke the bootstrap zig compiler.")
_register_stage_command(StageId.STAGE1, "Invoke the stage 1 zig compiler.")
_register_stage_command(StageId.STAGE2, "Invoke the stage 2 zig compiler.")
_register_stage_command(StageId.STAGE3, "Invoke the development (stage 3) zig compiler.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
