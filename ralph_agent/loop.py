"""Turn controller for the Ralph agent loop."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from ralph_agent.approvals import (
    Approve,
    ApprovalDecision,
    approval_input,
    deny_all,
    execute_approval_batch,
    resolve,
)
from ralph_agent.mode import LoopState, RalphState
from ralph_agent.platform.base import PlatformError
from ralph_agent.promise import extract_promise
from ralph_agent.stream import StopReason, TurnResult, drain_stream_with_resume
from ralph_agent.tools import SchemaToolRegistry

if TYPE_CHECKING:
    from ralph_agent.config import RalphConfig
    from ralph_agent.logs import RunLog
    from ralph_agent.permissions import PermissionArbiter
    from ralph_agent.platform.base import AgentPlatform
    from ralph_agent.tools import ToolRegistry
    from ralph_agent.ui.base import UI

LINE_TAGS = {
    "assistant": "AI",
    "reasoning": "THINK",
    "tool_call": "TOOL",
    "tool_return": "RESULT",
    "error": "ERROR",
}

_RULE = "=" * 59

MAX_CLEAR_PASSES = 10
STALE_APPROVAL_REASON = "Stale approval from an interrupted session"


class Outcome(Enum):
    """Terminal outcome of a run."""

    COMPLETED = "completed"
    EXHAUSTED = "exhausted"
    FAILED = "failed"

    @property
    def exit_code(self) -> int:
        return {
            Outcome.COMPLETED: 0,
            Outcome.EXHAUSTED: 1,
            Outcome.FAILED: 2,
        }[self]


@dataclass
class LoopResult:
    """Result of running the agent loop."""

    outcome: Outcome
    iterations: int
    message: str = ""

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code

    @property
    def completed(self) -> bool:
        return self.outcome is Outcome.COMPLETED


def build_first_turn_reminder(state: RalphState) -> str:
    """Reminder prepended to the task on the first turn."""
    parts = [
        "<system-reminder>",
        f"Ralph mode activated (iteration {state.iteration_label})",
        "",
    ]
    if state.completion_promise:
        parts.extend(
            [
                _RULE,
                "RALPH LOOP COMPLETION PROMISE",
                _RULE,
                "",
                "To complete this loop, output this EXACT text:",
                f"  <promise>{state.completion_promise}</promise>",
                "",
                "STRICT REQUIREMENTS (DO NOT VIOLATE):",
                "  - Use <promise> XML tags EXACTLY as shown above",
                "  - The statement MUST be completely and unequivocally TRUE",
                "  - Do NOT output false statements to exit the loop",
                "  - Do NOT lie even if you think you should exit",
                "",
                "IMPORTANT - Do not circumvent the loop:",
                "  Even if you believe you're stuck or the task is impossible,",
                "  you MUST NOT output a false promise statement. The loop",
                "  continues until the promise is GENUINELY TRUE.",
                "",
                "  If the loop should stop, the promise statement will become",
                "  true naturally. Do not force it by lying.",
                _RULE,
            ]
        )
    else:
        parts.append(
            "No completion promise set - loop runs until --max-iterations or interrupted."
        )
    parts.append("</system-reminder>")
    return "\n".join(parts)


def build_continuation_reminder(state: RalphState) -> str:
    """Short reminder prepended to the task on every later iteration."""
    return "\n".join(
        [
            "<system-reminder>",
            f"Ralph mode continuation (iteration {state.iteration_label})",
            "",
            "The previous work is preserved in files and git history.",
            "Continue where you left off, building on what you've already done.",
            "</system-reminder>",
        ]
    )


def user_input(text: str) -> list[dict[str, Any]]:
    """Wrap text as a single user message payload."""
    return [{"role": "user", "content": [{"type": "text", "text": text}]}]


def _show_decisions(ui: UI, decisions: list[ApprovalDecision], run_log: RunLog | None) -> None:
    approved = [d for d in decisions if isinstance(d, Approve)]
    denied = [d for d in decisions if not isinstance(d, Approve)]
    if approved:
        content = "\n".join(f"{d.approval.tool_name} ({d.approval.tool_call_id})" for d in approved)
        ui.panel("APPROVE", "Approved tool calls", content)
        if run_log is not None:
            run_log.line("APPROVE", content)
    if denied:
        content = "\n".join(
            f"{d.approval.tool_name} ({d.approval.tool_call_id}): {d.reason}" for d in denied
        )
        ui.panel("DENY", "Denied tool calls", content)
        if run_log is not None:
            run_log.line("DENY", content)


def clear_pending_approvals(
    platform: AgentPlatform,
    agent_id: str,
    ui: UI,
    max_passes: int = MAX_CLEAR_PASSES,
) -> int:
    """Deny approvals left pending on the agent by an earlier session.

    The agent may answer a denial with a new approval request, so pending
    approvals are re-read after every batch until none remain.

    Returns the number of approvals denied.

    Raises:
        PlatformError: approvals are still pending after ``max_passes`` batches
    """
    denied = 0
    for _ in range(max_passes):
        pending = platform.pending_approvals(agent_id)
        if not pending:
            return denied

        ui.warn(f"Denying {len(pending)} stale pending approval(s) on agent {agent_id}")
        results = execute_approval_batch(
            deny_all(pending, STALE_APPROVAL_REASON),
            registry=SchemaToolRegistry(),
        )
        handle = platform.send_turn(agent_id, approval_input(results))
        drain_stream_with_resume(platform, handle, ui=ui)
        denied += len(pending)

    if platform.pending_approvals(agent_id):
        raise PlatformError(
            f"Agent {agent_id} still has pending approvals after {max_passes} denial batches"
        )
    return denied


def _render_turn(ui: UI, turn: TurnResult, title: str, run_log: RunLog | None) -> None:
    ui.channel_header("AI", title)
    for line in turn.lines:
        tag = LINE_TAGS.get(line.kind, "SYS")
        if line.kind == "tool_call":
            text = f"{line.tool_name or '?'} {line.arguments}".rstrip()
        else:
            text = line.text
        for part in text.splitlines() or [""]:
            ui.stream_line(tag, part)
        if run_log is not None:
            run_log.line(tag, text)
    ui.channel_footer("AI", title)


def run_loop(
    config: RalphConfig,
    ui: UI,
    platform: AgentPlatform,
    *,
    agent_id: str,
    arbiter: PermissionArbiter,
    registry: ToolRegistry,
    state: LoopState | None = None,
    run_log: RunLog | None = None,
) -> LoopResult:
    """Drive the agent until it keeps its promise, runs out of iterations, or fails.

    Approval round-trips do not consume iterations. Loop state is always
    deactivated on return, including when interrupted.
    """
    if state is None:
        state = LoopState()

    state.activate(
        config.task,
        completion_promise=config.completion_promise,
        max_iterations=config.max_iterations,
        unrestricted=config.yolo,
    )

    try:
        first = state.snapshot()
        next_input = user_input(f"{build_first_turn_reminder(first)}\n\n{first.original_task}")

        while state.snapshot().active:
            snapshot = state.snapshot()
            ui.section(f"Iteration {snapshot.iteration_label}")

            try:
                handle = platform.send_turn(agent_id, next_input)
            except PlatformError as exc:
                ui.err(f"Failed to send turn: {exc}")
                return LoopResult(Outcome.FAILED, snapshot.current_iteration, str(exc))

            turn = drain_stream_with_resume(
                platform,
                handle,
                max_attempts=config.resume_attempts,
                backoff=config.resume_backoff,
                ui=ui,
            )
            _render_turn(ui, turn, "Agent output", run_log)

            if turn.final_assistant_text is not None and state.check_for_promise(
                turn.final_assistant_text
            ):
                ui.ok(f"Completion promise matched after {snapshot.iteration_label} iteration(s)")
                return LoopResult(Outcome.COMPLETED, snapshot.current_iteration)

            if snapshot.completion_promise and turn.final_assistant_text is not None:
                claimed = extract_promise(turn.final_assistant_text)
                if claimed is not None:
                    ui.warn(f"Promise did not match: {claimed}")
                    if run_log is not None:
                        run_log.line("SYS", f"Promise did not match: {claimed}")

            if turn.stop_reason is StopReason.REQUIRES_APPROVAL:
                if not turn.pending_approvals:
                    message = "Agent requested approval without any pending tool calls"
                    ui.err(message)
                    return LoopResult(Outcome.FAILED, snapshot.current_iteration, message)

                decisions = resolve(
                    list(turn.pending_approvals),
                    snapshot.unrestricted,
                    arbiter=arbiter,
                    registry=registry,
                )
                _show_decisions(ui, decisions, run_log)
                next_input = approval_input(execute_approval_batch(decisions, registry))
                continue

            if turn.stop_reason is StopReason.END_TURN:
                if not state.should_continue():
                    ui.warn(f"Max iterations reached ({snapshot.max_iterations})")
                    return LoopResult(
                        Outcome.EXHAUSTED,
                        snapshot.current_iteration,
                        "Max iterations reached",
                    )
                state.advance()
                reminder = build_continuation_reminder(state.snapshot())
                next_input = user_input(f"{reminder}\n\n{snapshot.original_task}")
                continue

            errors = turn.error_messages()
            message = (
                "; ".join(errors)
                if errors
                else f"Unexpected stop reason: {turn.raw_stop_reason or 'unknown'}"
            )
            ui.err(message)
            return LoopResult(Outcome.FAILED, snapshot.current_iteration, message)

        return LoopResult(Outcome.FAILED, state.snapshot().current_iteration, "Loop deactivated")
    finally:
        state.deactivate()
