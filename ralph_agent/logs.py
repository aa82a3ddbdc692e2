"""Transcript logs and run summaries for Ralph runs."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO, Any

_LOG_DIR = Path(".ralph") / "logs"
_SUMMARY_SUFFIX = ".summary.json"


def resolve_log_dir(root: Path, log_dir: Path | None = None) -> Path:
    """Resolve the directory for run logs."""
    if log_dir is None:
        return root / _LOG_DIR
    return log_dir if log_dir.is_absolute() else root / log_dir


def _timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d-%H%M%S")


class RunLog:
    """Append-only transcript of a run, one tagged line per entry."""

    def __init__(self, log_dir: Path, now: datetime | None = None) -> None:
        self.stem = f"{_timestamp(now)}_ralph"
        self.log_path = log_dir / f"{self.stem}.log"
        self.summary_path = log_dir / f"{self.stem}{_SUMMARY_SUFFIX}"
        self._handle: IO[str] | None = None

    def __enter__(self) -> RunLog:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self.log_path.open("a", encoding="utf-8")
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def line(self, tag: str, text: str) -> None:
        """Write one entry per physical line of text."""
        if self._handle is None:
            return
        for part in text.splitlines() or [""]:
            self._handle.write(f"[{tag}] {part}\n")
        self._handle.flush()

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


@dataclass(frozen=True)
class LogArtifacts:
    """Artifacts produced by a Ralph run."""

    log_path: Path
    summary_path: Path
    summary_payload: dict[str, Any]


def write_summary(
    run_log: RunLog,
    *,
    outcome: str,
    exit_code: int,
    iterations: int,
    agent_id: str | None,
    completion_promise: str | None,
    message: str | None = None,
) -> LogArtifacts:
    """Write the JSON summary next to the transcript log."""
    payload: dict[str, Any] = {
        "outcome": outcome,
        "exit_code": exit_code,
        "iterations": iterations,
        "agent_id": agent_id,
        "completion_promise": completion_promise,
        "log_path": str(run_log.log_path),
    }
    if message:
        payload["message"] = message

    run_log.summary_path.parent.mkdir(parents=True, exist_ok=True)
    run_log.summary_path.write_text(
        json.dumps(payload, ensure_ascii=False),
        encoding="utf-8",
    )
    return LogArtifacts(
        log_path=run_log.log_path,
        summary_path=run_log.summary_path,
        summary_payload=payload,
    )
