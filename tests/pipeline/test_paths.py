from __future__ import annotations

import os
from pathlib import Path

import pytest

from zigd.pipeline.paths import StageId, Tree, resolve


def test_resolve_is_pure_and_idempotent(tmp_path: Path) -> None:
    first = resolve(tmp_path)
    second = resolve(tmp_path)

    assert first == second
    assert first.bootstrap == tmp_path / "build" / "zig-bootstrap"
    assert first.stage1 == tmp_path / "build" / "stage1"
    assert first.stage2 == tmp_path / "build" / "stage2"
    assert first.stage3 == tmp_path / "build" / "stage3"
    assert not (tmp_path / "build").exists()


def test_resolve_normalises_relative_roots(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    dirs = resolve(os.path.join("src", "..", "zig"))

    for path in dirs:
        assert path.is_absolute()
        assert ".." not in path.parts
        assert path.parent == tmp_path / "zig" / "build"


def test_tree_recomputes_directories_from_root(tmp_path: Path) -> None:
    tree = Tree(tmp_path / "zig")

    assert tree.directories == resolve(tmp_path / "zig")
    assert tree.stage_dir("stage2") == tmp_path / "zig" / "build" / "stage2"
    assert tree.stage_dir(StageId.BOOTSTRAP) == tmp_path / "zig" / "build" / "zig-bootstrap"
    assert tree.lib_dir == tmp_path / "zig" / "lib"


def test_stage_compilers(tmp_path: Path) -> None:
    tree = Tree(tmp_path)
    triple, cpu = "native-linux-musl", "baseline"
    build = tmp_path / "build"

    assert tree.stage_compiler(StageId.BOOTSTRAP, triple, cpu) == (
        build / "zig-bootstrap" / "out" / "zig-native-linux-musl-baseline" / "zig"
    )
    assert tree.stage_compiler(StageId.STAGE1, triple, cpu) == build / "stage1" / "stage3" / "bin" / "zig"
    assert tree.stage_compiler(StageId.STAGE2, triple, cpu) == build / "stage2" / "bin" / "zig"
    assert tree.stage_compiler(StageId.STAGE3, triple, cpu) == build / "stage3" / "bin" / "zig"
    assert tree.bootstrap_prefix(triple, cpu) == (
        build / "zig-bootstrap" / "out" / "native-linux-musl-baseline"
    )


def test_stage_ids_are_ordered_by_dependency() -> None:
    assert [stage.value for stage in sorted(StageId, key=lambda s: s.order)] == [
        "bootstrap",
        "stage1",
        "stage2",
        "stage3",
    ]
    assert StageId.BOOTSTRAP.previous is None
    assert StageId.STAGE3.previous is StageId.STAGE2
    assert StageId.parse(" Stage1 ") is StageId.STAGE1


def test_unknown_stage_is_rejected() -> None:
    with pytest.raises(ValueError, match="unknown stage"):
        StageId.parse("stage4")
