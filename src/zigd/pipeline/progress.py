"""Hierarchical progress counters for the build pipeline.

A :class:`ProgressNode` tracks ``completed`` out of ``estimated_total`` items
and may own child nodes for sub-steps.  Each node is written only by the code
that started it; ancestors just read it.  Changes are forwarded to an optional
listener registered on the root, which is how the CLI shows live progress.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

__all__ = [
    "END",
    "START",
    "UPDATE",
    "ProgressNode",
    "ProgressListener",
    "LoggingProgressListener",
]

START = "start"
UPDATE = "update"
END = "end"

# Called with the changed node and one of START, UPDATE or END.
ProgressListener = Callable[["ProgressNode", str], None]


class ProgressNode:
    def __init__(
        self,
        name: str,
        estimated_total: int = 0,
        *,
        parent: ProgressNode | None = None,
        listener: ProgressListener | None = None,
    ):
        self.name = name
        self.estimated_total = max(0, int(estimated_total))
        self.completed = 0
        self.parent = parent
        self.children: list[ProgressNode] = []
        self.ended = False
        self._listener = listener

    @property
    def path(self) -> str:
        if self.parent is None:
            return self.name
        return f"{self.parent.path} / {self.name}"

    @property
    def listener(self) -> ProgressListener | None:
        node: ProgressNode | None = self
        while node is not None:
            if node._listener is not None:
                return node._listener
            node = node.parent
        return None

    def start(self, name: str, estimated_total: int = 0) -> ProgressNode:
        """Create a child node for a sub-step."""

        child = ProgressNode(name, estimated_total, parent=self)
        self.children.append(child)
        child._notify(START)
        return child

    def set_estimated_total(self, total: int) -> None:
        self.estimated_total = max(0, int(total))
        self._notify()

    def increase_estimated_total(self, count: int = 1) -> None:
        self.estimated_total += max(0, int(count))
        self._notify()

    def set_completed(self, completed: int) -> None:
        self.completed = max(0, int(completed))
        self._notify()

    def complete_one(self) -> None:
        self.completed += 1
        self._notify()

    def end(self) -> None:
        if self.ended:
            return
        self.ended = True
        self._notify(END)

    def snapshot(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "completed": self.completed,
            "estimated_total": self.estimated_total,
            "ended": self.ended,
            "children": [child.snapshot() for child in self.children],
        }

    def _notify(self, event: str = UPDATE) -> None:
        listener = self.listener
        if listener is not None:
            listener(self, event)

    def __enter__(self) -> ProgressNode:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.end()

    def __repr__(self) -> str:
        return f"ProgressNode({self.path!r}, {self.completed}/{self.estimated_total})"


class LoggingProgressListener:
    """Log progress updates, throttled to one line per ``interval`` seconds.

    Starting and ending a node is always logged; counter updates in between
    are rate limited so a chatty build tool does not flood the console.
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        *,
        interval: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.logger = logger or logging.getLogger("zigd.progress")
        self.interval = max(0.0, float(interval))
        self._clock = clock
        self._last_emit: float | None = None

    def __call__(self, node: ProgressNode, event: str = UPDATE) -> None:
        now = self._clock()
        if event == UPDATE and self._last_emit is not None:
            if now - self._last_emit < self.interval:
                return
        self._last_emit = now
        if event == END:
            self.logger.info("%s done", node.path)
        elif node.estimated_total:
            self.logger.info("%s [%d/%d]", node.path, node.completed, node.estimated_total)
        else:
            self.logger.info("%s", node.path)
