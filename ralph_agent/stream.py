"""Resumable consumption of agent response streams."""

from __future__ import annotations

import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from ralph_agent.approvals import PendingApproval
from ralph_agent.platform.base import (
    RunFailedError,
    StreamEvent,
    StreamHandle,
    StreamInterruptedError,
)

if TYPE_CHECKING:
    from ralph_agent.platform.base import AgentPlatform
    from ralph_agent.ui.base import UI

ERROR_STOP_REASONS = {"error", "llm_api_error", "invalid_llm_response"}

# Event kinds that become lines; approval requests are tool calls awaiting a decision.
LINE_KINDS = {
    "assistant": "assistant",
    "reasoning": "reasoning",
    "tool_call": "tool_call",
    "approval_request": "tool_call",
    "tool_return": "tool_return",
    "error": "error",
}


class StopReason(Enum):
    """Classified reason a turn stopped."""

    END_TURN = "end_turn"
    REQUIRES_APPROVAL = "requires_approval"
    ERROR = "error"
    OTHER = "other"

    @classmethod
    def classify(cls, raw: str | None) -> StopReason:
        if raw == "end_turn":
            return cls.END_TURN
        if raw == "requires_approval":
            return cls.REQUIRES_APPROVAL
        if raw in ERROR_STOP_REASONS:
            return cls.ERROR
        return cls.OTHER


@dataclass
class Line:
    """One accumulated output line."""

    kind: str
    text: str = ""
    id: str | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None
    arguments: str = ""
    awaiting_approval: bool = False


@dataclass
class Buffers:
    """Ordered accumulator for stream events.

    Fragments sharing a message id (or tool call id) extend the same line.
    Consecutive id-less fragments of the same kind are merged.
    """

    lines: list[Line] = field(default_factory=list)
    _by_key: dict[str, Line] = field(default_factory=dict)

    def apply(self, event: StreamEvent) -> None:
        kind = LINE_KINDS.get(event.kind)
        if kind is None:
            return

        key = event.tool_call_id if kind == "tool_call" and event.tool_call_id else event.id
        line: Line | None = None
        if key is not None:
            line = self._by_key.get(f"{kind}:{key}")
        elif self.lines and self.lines[-1].kind == kind and self.lines[-1].id is None:
            line = self.lines[-1]

        if line is None:
            line = Line(kind=kind, id=key)
            self.lines.append(line)
            if key is not None:
                self._by_key[f"{kind}:{key}"] = line

        line.text += event.text
        if kind == "tool_call":
            line.tool_call_id = line.tool_call_id or event.tool_call_id
            line.tool_name = line.tool_name or event.tool_name
            line.arguments += event.arguments
            if event.kind == "approval_request":
                line.awaiting_approval = True

    def add_error(self, message: str) -> None:
        self.lines.append(Line(kind="error", text=message))

    def last_assistant_text(self) -> str | None:
        """Return the last non-empty assistant line, searching from the end."""
        for line in reversed(self.lines):
            if line.kind == "assistant" and line.text.strip():
                return line.text
        return None

    def pending_approvals(self) -> list[PendingApproval]:
        return [
            PendingApproval(
                tool_call_id=line.tool_call_id or "",
                tool_name=line.tool_name or "",
                raw_arguments=line.arguments,
            )
            for line in self.lines
            if line.kind == "tool_call" and line.awaiting_approval
        ]


@dataclass(frozen=True)
class TurnResult:
    """Combined outcome of one streamed turn."""

    final_assistant_text: str | None
    stop_reason: StopReason
    pending_approvals: tuple[PendingApproval, ...] = ()
    raw_stop_reason: str | None = None
    lines: tuple[Line, ...] = ()

    def error_messages(self) -> list[str]:
        return [line.text for line in self.lines if line.kind == "error" and line.text]


def _finish(buffers: Buffers, stop: StreamEvent | None, raw_reason: str) -> TurnResult:
    stop_reason = StopReason.classify(raw_reason)
    approvals: list[PendingApproval] = []
    if stop_reason is StopReason.REQUIRES_APPROVAL:
        if stop is not None and stop.approvals is not None:
            approvals = list(stop.approvals)
        else:
            approvals = buffers.pending_approvals()
    return TurnResult(
        final_assistant_text=buffers.last_assistant_text(),
        stop_reason=stop_reason,
        pending_approvals=tuple(approvals),
        raw_stop_reason=raw_reason,
        lines=tuple(buffers.lines),
    )


def drain_stream_with_resume(
    platform: AgentPlatform,
    handle: StreamHandle,
    buffers: Buffers | None = None,
    *,
    max_attempts: int = 5,
    backoff: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    ui: UI | None = None,
) -> TurnResult:
    """Consume a turn's stream, reconnecting after interruptions.

    Events at or below the last committed ``(seq_id, seq_index)`` position
    are dropped, so a resumed stream that replays output never duplicates it. Failures never raise: a
    failed run, a stream without a run id, or exhausted reconnects all yield
    ``StopReason.ERROR``.
    """
    if buffers is None:
        buffers = Buffers()

    run_id = handle.run_id
    # A cursor from the handle commits every event of that chunk.
    last_position = (handle.cursor, sys.maxsize) if handle.cursor is not None else None
    current: StreamHandle | None = handle
    attempts = 0
    interruption = ""

    while True:
        if current is not None:
            interruption = "stream ended without a stop reason"
            try:
                for event in current:
                    if event.run_id:
                        run_id = event.run_id
                    if event.seq_id is not None:
                        position = (event.seq_id, event.seq_index)
                        if last_position is not None and position <= last_position:
                            continue
                        last_position = position
                    attempts = 0
                    if event.kind == "stop":
                        return _finish(buffers, event, event.stop_reason or "")
                    buffers.apply(event)
            except StreamInterruptedError as exc:
                interruption = str(exc) or interruption

        if run_id is None:
            buffers.add_error(f"Stream interrupted and cannot be resumed: {interruption}")
            return _finish(buffers, None, "error")

        attempts += 1
        if attempts > max_attempts:
            buffers.add_error(
                f"Stream interrupted; gave up after {max_attempts} resume attempts: "
                f"{interruption}"
            )
            return _finish(buffers, None, "error")

        if ui is not None:
            ui.warn(f"Stream interrupted ({interruption}); resuming run {run_id}")
        sleep(backoff * attempts)

        try:
            cursor = last_position[0] if last_position is not None else None
            current = platform.resume_stream(StreamHandle(run_id=run_id, cursor=cursor))
        except RunFailedError as exc:
            buffers.add_error(exc.message)
            return _finish(buffers, None, "error")
        except StreamInterruptedError as exc:
            interruption = str(exc) or "reconnect failed"
            current = None
