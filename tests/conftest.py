"""Pytest fixtures for ralph_agent tests."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

import pytest

from ralph_agent.approvals import PendingApproval
from ralph_agent.platform.base import (
    RunFailedError,
    StreamEvent,
    StreamHandle,
    StreamInterruptedError,
)


def assistant(text: str, seq: int | None = None, msg_id: str = "m1", run_id: str = "run-1") -> StreamEvent:
    return StreamEvent("assistant", text=text, id=msg_id, run_id=run_id, seq_id=seq)


def stop(reason: str, seq: int | None = None, run_id: str = "run-1") -> StreamEvent:
    return StreamEvent("stop", stop_reason=reason, run_id=run_id, seq_id=seq)


def approval_request(
    call_id: str,
    name: str,
    arguments: str = "{}",
    seq: int | None = None,
    run_id: str = "run-1",
) -> StreamEvent:
    return StreamEvent(
        "approval_request",
        id=f"msg-{call_id}",
        run_id=run_id,
        seq_id=seq,
        tool_call_id=call_id,
        tool_name=name,
        arguments=arguments,
    )


def interrupted(events: Iterable[StreamEvent], message: str = "connection reset") -> Iterator[StreamEvent]:
    """Yield events, then fail like a dropped connection."""
    yield from events
    raise StreamInterruptedError(message)


def end_turn(text: str) -> list[StreamEvent]:
    """A complete turn: one assistant message then end_turn."""
    return [assistant(text, seq=1), stop("end_turn", seq=2)]


class FakePlatform:
    """Scripted platform that replays prepared streams."""

    def __init__(
        self,
        turns: list[Iterable[StreamEvent]] | None = None,
        resumes: list[Iterable[StreamEvent] | Exception] | None = None,
        pending: list[list[PendingApproval]] | None = None,
        tools: list[dict[str, Any]] | None = None,
    ) -> None:
        self._turns = list(turns or [])
        self._resumes = list(resumes or [])
        self._pending = list(pending or [])
        self._tools = list(tools or [])
        self.sent: list[list[dict[str, Any]]] = []
        self.resume_calls: list[StreamHandle] = []
        self.created_agents = 0
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    def send_turn(self, agent_id: str, turn_input: list[dict[str, Any]]) -> StreamHandle:
        self.sent.append(turn_input)
        if not self._turns:
            raise AssertionError("No scripted turn left")
        return StreamHandle(run_id=None, events=self._turns.pop(0))

    def resume_stream(self, handle: StreamHandle) -> StreamHandle:
        self.resume_calls.append(handle)
        if not self._resumes:
            raise RunFailedError(handle.run_id or "", "No scripted resume left")
        item = self._resumes.pop(0)
        if isinstance(item, Exception):
            raise item
        return StreamHandle(run_id=handle.run_id, events=item, cursor=handle.cursor)

    def pending_approvals(self, agent_id: str) -> list[PendingApproval]:
        if not self._pending:
            return []
        return self._pending.pop(0)

    def list_tools(self, agent_id: str) -> list[dict[str, Any]]:
        return list(self._tools)

    def create_agent(self, model: str | None = None) -> str:
        self.created_agents += 1
        return f"agent-{self.created_agents}"

    def close(self) -> None:
        self.closed = True


def sent_text(turn_input: list[dict[str, Any]]) -> str:
    """Text of a user-message turn input."""
    return turn_input[0]["content"][0]["text"]


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear Ralph-related environment variables."""
    env_vars = [
        "MAX_ITERATIONS",
        "COMPLETION_PROMISE",
        "RALPH_AGENT_ID",
        "RALPH_MODEL",
        "LETTA_BASE_URL",
        "LETTA_API_KEY",
        "RALPH_PERMISSION_MODE",
        "RALPH_ALLOWED_TOOLS",
        "RALPH_DISALLOWED_TOOLS",
        "RALPH_ASK_TOOLS",
        "RALPH_YOLO",
        "RALPH_RESUME_ATTEMPTS",
        "RALPH_LOG_DIR",
        "RALPH_UI",
        "RALPH_FORCE_RICH",
        "NO_COLOR",
        "RALPH_ASCII",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)
