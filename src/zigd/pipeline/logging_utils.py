from __future__ import annotations

import hashlib
import json
import logging
import time
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ExternalToolError


def _make_json_safe(obj: Any) -> Any:
    """Recursively convert values into JSON-serialisable types."""
    if isinstance(obj, Path):
        return obj.as_posix()
    if isinstance(obj, dict):
        return {key: _make_json_safe(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_make_json_safe(value) for value in obj]
    return obj


class JSONLWriter:
    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.write_text("", encoding="utf-8")

    def emit(self, record: dict[str, Any]) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(_make_json_safe(record), ensure_ascii=False) + "\n")


@dataclass
class RunStats:
    run_id: str
    stage_timings_ms: dict[str, float] = field(default_factory=dict)
    failures: list[dict[str, Any]] = field(default_factory=list)

    def mark(self, stage: str, elapsed_ms: float) -> None:
        self.stage_timings_ms[stage] = self.stage_timings_ms.get(stage, 0.0) + float(elapsed_ms)


class CoreLogger:
    def __init__(
        self,
        run_id: str,
        jsonl_path: Path | None = None,
        console_level: int = logging.INFO,
    ):
        self.run_id = run_id
        self.jsonl = JSONLWriter(jsonl_path) if jsonl_path is not None else None
        self.log = logging.getLogger(f"zigd.{run_id}")
        self.log.setLevel(console_level)
        if not self.log.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(console_level)
            fmt = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", datefmt="%H:%M")
            handler.setFormatter(fmt)
            self.log.addHandler(handler)

    def event(self, stage: str, event: str, **fields: Any) -> None:
        if self.jsonl is None:
            return
        record = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime()),
            "run_id": self.run_id,
            "stage": stage,
            "event": event,
        }
        record.update(fields)
        self.jsonl.emit(record)

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.log.info(message, *args, **kwargs)

    def warn(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.log.warning(message, *args, **kwargs)

    def error(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.log.error(message, *args, **kwargs)


def _fmt_hms_ms(milliseconds: float) -> str:
    """Return a human readable string with millisecond precision."""

    safe_ms = max(0.0, float(milliseconds))
    seconds = safe_ms / 1000.0
    base_seconds = int(seconds)
    fractional_ms = int(round((seconds - base_seconds) * 1000))

    if fractional_ms == 1000:
        base_seconds += 1
        fractional_ms = 0

    hours, remainder = divmod(base_seconds, 3600)
    minutes, secs = divmod(remainder, 60)

    if hours:
        return f"{hours:d}:{minutes:02d}:{secs:02d}.{fractional_ms:03d}"
    if minutes:
        return f"{minutes:02d}:{secs:02d}.{fractional_ms:03d}"
    return f"00:{secs:02d}.{fractional_ms:03d}"


def _suggest_fix(stage: str, err: BaseException) -> str:
    if isinstance(err, ExternalToolError) and err.outcome is None:
        program = Path(err.program).name
        if program == "git":
            return "Install git and ensure it is on PATH."
        if program in {"cmake", "ninja"}:
            return "Install cmake and ninja and ensure they are on PATH."
        if stage != "bootstrap":
            return "Build the previous stage first; its zig binary is missing."
    if stage == "bootstrap":
        return "Check the zig-bootstrap checkout and the host C/C++ toolchain (CC/CXX/ASM)."
    if stage == "stage1":
        return "Rebuild the bootstrap stage; cmake needs its LLVM prefix."
    return "Inspect the compiler output above; rebuilding the previous stage may help."


class StageGuard(AbstractContextManager["StageGuard"]):
    """Time and log one stage; every failure propagates."""

    def __init__(self, corelog: CoreLogger, stats: RunStats, stage: str):
        self.corelog = corelog
        self.stats = stats
        self.stage = stage
        self.start: float | None = None

    def __enter__(self) -> StageGuard:
        self.start = time.time()
        self.corelog.info(f"[{self.stage}] start")
        self.corelog.event(self.stage, "start")
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[override]
        if self.start is None:
            self.start = time.time()
        elapsed_ms = max(0.0, (time.time() - self.start) * 1000.0)
        self.stats.mark(self.stage, elapsed_ms)
        dur_txt = _fmt_hms_ms(elapsed_ms)

        if exc is None:
            self.corelog.event(self.stage, "stop", elapsed_ms=elapsed_ms)
            self.corelog.info(f"[{self.stage}] ok in {dur_txt}")
            return False

        trace_hash = hashlib.blake2s(
            f"{self.stage}:{type(exc).__name__}".encode(), digest_size=8
        ).hexdigest()
        self.corelog.event(
            self.stage,
            "error",
            elapsed_ms=elapsed_ms,
            error=f"{type(exc).__name__}: {exc}",
            trace_hash=trace_hash,
        )
        self.corelog.error(f"[{self.stage}] {type(exc).__name__}: {exc} ({dur_txt})")
        self.stats.failures.append(
            {
                "stage": self.stage,
                "error": f"{type(exc).__name__}: {exc}",
                "elapsed_ms": elapsed_ms,
                "suggestion": _suggest_fix(self.stage, exc),
            }
        )
        return False


__all__ = [
    "RunStats",
    "CoreLogger",
    "StageGuard",
    "_fmt_hms_ms",
    "_make_json_safe",
]
