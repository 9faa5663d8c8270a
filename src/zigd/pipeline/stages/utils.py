"""Helpers shared by the stage bodies."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Final

from ..errors import FilesystemError

logger = logging.getLogger(__name__)

NINJA_STATUS: Final = "[%f/%t] "

__all__ = ["NINJA_STATUS", "remove_tree", "make_directory", "reset_directory"]


def remove_tree(path: Path) -> bool:
    """Delete ``path`` recursively, tolerating any failure.

    Returns ``True`` when something was removed.
    """

    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return False
    except OSError as exc:
        logger.debug("could not remove %s: %s", path, exc)
        return False
    return True


def make_directory(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FilesystemError(
            message=f"cannot create {path}: {exc}",
            context={"path": str(path)},
            cause=exc,
        ) from exc


def reset_directory(path: Path) -> None:
    """Leave ``path`` as an empty directory."""

    remove_tree(path)
    make_directory(path)
