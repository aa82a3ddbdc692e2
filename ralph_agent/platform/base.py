"""Remote agent platform protocol for Ralph."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol

if TYPE_CHECKING:
    from ralph_agent.approvals import PendingApproval

EventKind = Literal[
    "assistant",
    "reasoning",
    "tool_call",
    "approval_request",
    "tool_return",
    "error",
    "stop",
    "ping",
]


class PlatformError(RuntimeError):
    """Request to the agent platform failed."""


class StreamInterruptedError(PlatformError):
    """Response stream ended early because of a connection problem."""


class RunFailedError(PlatformError):
    """The platform reports the run itself failed; resuming is pointless."""

    def __init__(self, run_id: str, message: str) -> None:
        super().__init__(message)
        self.run_id = run_id
        self.message = message


@dataclass(frozen=True)
class StreamEvent:
    """One incremental event from a response stream."""

    kind: EventKind
    text: str = ""
    id: str | None = None
    run_id: str | None = None
    seq_id: int | None = None
    # Position inside a chunk that expands to several events.
    seq_index: int = 0
    tool_call_id: str | None = None
    tool_name: str | None = None
    arguments: str = ""
    stop_reason: str | None = None
    # Only set on stop events that carry the platform's approval batch.
    approvals: list[PendingApproval] | None = None


@dataclass
class StreamHandle:
    """A live response stream plus what is needed to resume it.

    ``cursor`` is the last sequence id the consumer has committed; a resumed
    stream only delivers events after it.
    """

    run_id: str | None
    events: Iterable[StreamEvent] = field(default_factory=list)
    cursor: int | None = None

    def __iter__(self) -> Iterator[StreamEvent]:
        return iter(self.events)


class AgentPlatform(Protocol):
    """Protocol for remote, stateful agent platforms."""

    @property
    def name(self) -> str:
        """Human-readable platform name for display."""
        ...

    def send_turn(self, agent_id: str, turn_input: list[dict[str, Any]]) -> StreamHandle:
        """Send user messages or approval results and open a response stream."""
        ...

    def resume_stream(self, handle: StreamHandle) -> StreamHandle:
        """Reconnect to ``handle.run_id`` after ``handle.cursor``.

        Raises:
            StreamInterruptedError: reconnect failed for a transient reason
            RunFailedError: the run itself failed
        """
        ...

    def pending_approvals(self, agent_id: str) -> list[PendingApproval]:
        """Return tool calls on the agent still waiting for a decision."""
        ...

    def list_tools(self, agent_id: str) -> list[dict[str, Any]]:
        """Return JSON schemas of tools attached to the agent."""
        ...

    def create_agent(self, model: str | None = None) -> str:
        """Create a new agent and return its id."""
        ...

    def close(self) -> None:
        """Release connections held by the platform client."""
        ...
