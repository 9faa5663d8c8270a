"""Spawn external build tools and interpret their exit status and output."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from .errors import ExternalToolError

if TYPE_CHECKING:
    from .progress import ProgressNode

logger = logging.getLogger(__name__)

__all__ = [
    "BUFFERED_OUTPUT_LIMIT",
    "STDERR_RING_SIZE",
    "MAX_PROGRESS_LINE",
    "Code",
    "Signaled",
    "Other",
    "ExitOutcome",
    "OutputMode",
    "ProcessResult",
    "ProcessRunner",
    "RingBuffer",
    "parse_progress_line",
]

BUFFERED_OUTPUT_LIMIT = 64 * 1024
STDERR_RING_SIZE = 16 * 1024
MAX_PROGRESS_LINE = 16 * 1024
_READ_CHUNK = 4096


@dataclass(frozen=True, slots=True)
class Code:
    """The process exited normally with ``code``."""

    code: int

    @property
    def succeeded(self) -> bool:
        return self.code == 0

    def describe(self) -> str:
        return f"exited with {self.code}"


@dataclass(frozen=True, slots=True)
class Signaled:
    """The process was terminated by ``signal``."""

    signal: int

    @property
    def succeeded(self) -> bool:
        return False

    def describe(self) -> str:
        return f"stopped by signal {self.signal}"


@dataclass(frozen=True, slots=True)
class Other:
    """The process ended in a way that is neither an exit nor a signal."""

    detail: str = "unknown termination"

    @property
    def succeeded(self) -> bool:
        return False

    def describe(self) -> str:
        return f"stopped with {self.detail}"


ExitOutcome = Code | Signaled | Other


def outcome_from_returncode(returncode: int | None) -> ExitOutcome:
    """Map a :class:`subprocess.Popen` return code onto :data:`ExitOutcome`."""

    if returncode is None:
        return Other("no return code")
    if returncode < 0:
        return Signaled(-returncode)
    return Code(returncode)


class OutputMode(Enum):
    BUFFERED = "buffered"
    STREAMED = "streamed"


class RingBuffer:
    """Keep the most recent ``capacity`` bytes written to it."""

    def __init__(self, capacity: int = STDERR_RING_SIZE):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = capacity
        self._data = bytearray()

    def __len__(self) -> int:
        return len(self._data)

    def write(self, chunk: bytes) -> None:
        self._data.extend(chunk)
        overflow = len(self._data) - self.capacity
        if overflow > 0:
            del self._data[:overflow]

    def getvalue(self) -> bytes:
        return bytes(self._data)

    def text(self) -> str:
        return self._data.decode("utf-8", errors="replace")


def _is_ascii_number(text: str) -> bool:
    return text.isascii() and text.isdecimal()


def parse_progress_line(line: str) -> tuple[int, int] | None:
    """Extract ``(completed, total)`` from a ``[<completed>/<total>]`` line.

    The markers are searched in order: the first ``[``, then the first ``/``
    after it, then the first ``]`` after that.  Anything else yields ``None``.
    """

    start = line.find("[")
    if start < 0:
        return None
    sep = line.find("/", start)
    if sep < 0:
        return None
    end = line.find("]", sep)
    if end < 0:
        return None
    completed_text = line[start + 1 : sep]
    total_text = line[sep + 1 : end]
    if not (_is_ascii_number(completed_text) and _is_ascii_number(total_text)):
        return None
    return int(completed_text), int(total_text)


def _tail(data: bytes, limit: int) -> str:
    if len(data) > limit:
        data = data[-limit:]
    return data.decode("utf-8", errors="replace")


@dataclass(slots=True)
class ProcessResult:
    """Terminal state of one external command."""

    command: tuple[str, ...]
    outcome: ExitOutcome
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome.succeeded

    @property
    def diagnostics(self) -> str:
        """Output worth printing when the command failed."""

        return self.stderr or self.stdout


class ProcessRunner:
    """Run one external command at a time.

    ``BUFFERED`` collects both streams fully (bounded to the last
    :data:`BUFFERED_OUTPUT_LIMIT` bytes each).  ``STREAMED`` reads stdout and
    stderr concurrently on two reader threads: stdout lines are scanned for
    the ``[done/total]`` progress protocol and fed into ``progress``, stderr
    is kept in a :class:`RingBuffer`.  There is no timeout.
    """

    def __init__(
        self,
        *,
        output_limit: int = BUFFERED_OUTPUT_LIMIT,
        stderr_ring_size: int = STDERR_RING_SIZE,
        max_line: int = MAX_PROGRESS_LINE,
    ):
        self.output_limit = output_limit
        self.stderr_ring_size = stderr_ring_size
        self.max_line = max_line

    def run(
        self,
        argv: Sequence[str | os.PathLike[str]],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        mode: OutputMode = OutputMode.BUFFERED,
        progress: ProgressNode | None = None,
        check: bool = True,
    ) -> ProcessResult:
        command = tuple(os.fspath(part) for part in argv)
        logger.debug("spawn %s (cwd=%s, mode=%s)", " ".join(command), cwd, mode.value)
        try:
            proc = subprocess.Popen(
                command,
                cwd=None if cwd is None else os.fspath(cwd),
                env=None if env is None else dict(env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise ExternalToolError(
                message=f'"{command[0] if command else ""}" could not be started: {exc}',
                context={"command": list(command)},
                cause=exc,
                command=command,
            ) from exc

        if mode is OutputMode.BUFFERED:
            out, err = proc.communicate()
            stdout = _tail(out or b"", self.output_limit)
            stderr = _tail(err or b"", self.output_limit)
        else:
            stdout, stderr = self._stream(proc, progress)

        result = ProcessResult(
            command=command,
            outcome=outcome_from_returncode(proc.returncode),
            stdout=stdout,
            stderr=stderr,
        )
        logger.debug("%s %s", command[0], result.outcome.describe())
        if check and not result.succeeded:
            raise ExternalToolError.from_outcome(
                command, result.outcome, diagnostics=result.diagnostics
            )
        return result

    def _stream(
        self,
        proc: subprocess.Popen[bytes],
        progress: ProgressNode | None,
    ) -> tuple[str, str]:
        ring = RingBuffer(self.stderr_ring_size)
        assert proc.stdout is not None and proc.stderr is not None

        readers = [
            threading.Thread(
                target=self._pump_stdout,
                args=(proc.stdout, progress),
                name="zigd-stdout",
                daemon=True,
            ),
            threading.Thread(
                target=self._pump_stderr,
                args=(proc.stderr, ring),
                name="zigd-stderr",
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()
        try:
            proc.wait()
        finally:
            for reader in readers:
                reader.join()
            proc.stdout.close()
            proc.stderr.close()
        return "", ring.text()

    def _pump_stdout(self, stream, progress: ProgressNode | None) -> None:
        # Sole writer of ``progress`` while the child runs. The pipe is drained
        # to EOF no matter what, or the child blocks on a full pipe.
        for raw in iter(stream.readline, b""):
            if len(raw) > self.max_line or progress is None:
                continue
            try:
                self._report_progress(raw, progress)
            except Exception:
                logger.exception("progress update failed for %r", raw[:80])

    @staticmethod
    def _report_progress(raw: bytes, progress: ProgressNode) -> None:
        parsed = parse_progress_line(raw.decode("utf-8", errors="replace"))
        if parsed is None:
            return
        completed, total = parsed
        progress.set_estimated_total(total)
        progress.set_completed(completed)

    @staticmethod
    def _pump_stderr(stream, ring: RingBuffer) -> None:
        for chunk in iter(lambda: stream.read1(_READ_CHUNK), b""):
            ring.write(chunk)
