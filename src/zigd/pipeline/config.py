"""Configuration captured once from the process environment."""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Final

from .errors import MissingTreeRootError

__all__ = [
    "TREE_ENV_VAR",
    "LOG_DIR_ENV_VAR",
    "QUIET_ENV_VAR",
    "BOOTSTRAP_CPU",
    "ZigdConfig",
    "host_os_tag",
    "bootstrap_target",
]

TREE_ENV_VAR: Final = "ZIGD_TREE"
LOG_DIR_ENV_VAR: Final = "ZIGD_LOG_DIR"
QUIET_ENV_VAR: Final = "ZIGD_QUIET"
BOOTSTRAP_CPU: Final = "baseline"

_OS_TAGS: Final[dict[str, str]] = {
    "linux": "linux",
    "darwin": "macos",
    "win32": "windows",
    "cygwin": "windows",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
    "netbsd": "netbsd",
}

_TRUTHY: Final = {"1", "true", "yes", "on"}


def host_os_tag(platform: str | None = None) -> str:
    """Return the compiler's OS name for ``platform`` (``sys.platform``)."""

    platform = platform or sys.platform
    for prefix, tag in _OS_TAGS.items():
        if platform.startswith(prefix):
            return tag
    return platform


def bootstrap_target(os_tag: str) -> str:
    return f"native-{os_tag}-musl"


def _coerce_tree_root(value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    return Path(os.path.normpath(path))


def _optional(environ: Mapping[str, str], key: str) -> str | None:
    value = environ.get(key)
    if value is None or not value.strip():
        return None
    return value


@dataclass(frozen=True, slots=True)
class ZigdConfig:
    """Immutable snapshot of everything the pipeline reads from the environment."""

    tree_root: Path
    cc: str | None = None
    cxx: str | None = None
    asm: str | None = None
    target_os: str = field(default_factory=host_os_tag)
    cpu: str = BOOTSTRAP_CPU
    log_dir: Path | None = None
    quiet: bool = False
    environ: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def target_triple(self) -> str:
        return bootstrap_target(self.target_os)

    @classmethod
    def from_environ(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        platform: str | None = None,
    ) -> ZigdConfig:
        env = dict(os.environ if environ is None else environ)

        tree = _optional(env, TREE_ENV_VAR)
        if tree is None:
            raise MissingTreeRootError(
                message=f"{TREE_ENV_VAR} is not set; point it at the zig source tree",
                context={"variable": TREE_ENV_VAR},
            )

        log_dir = _optional(env, LOG_DIR_ENV_VAR)
        return cls(
            tree_root=_coerce_tree_root(tree),
            cc=_optional(env, "CC"),
            cxx=_optional(env, "CXX"),
            asm=_optional(env, "ASM"),
            target_os=host_os_tag(platform),
            log_dir=Path(log_dir).expanduser() if log_dir else None,
            quiet=env.get(QUIET_ENV_VAR, "").strip().lower() in _TRUTHY,
            environ=MappingProxyType(env),
        )

    def child_environ(self) -> dict[str, str]:
        """Fresh mutable copy of the captured environment for one subprocess."""

        return dict(self.environ)

    def describe(self) -> dict[str, Any]:
        return {
            "tree_root": str(self.tree_root),
            "cc": self.cc,
            "cxx": self.cxx,
            "asm": self.asm,
            "target_triple": self.target_triple,
            "cpu": self.cpu,
            "log_dir": None if self.log_dir is None else str(self.log_dir),
            "quiet": self.quiet,
        }
