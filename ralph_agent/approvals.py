"""Approval arbitration and execution for pending tool calls."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from ralph_agent.permissions import PermissionArbiter
    from ralph_agent.tools import ToolRegistry

ASK_DENY_REASON = "Tool requires approval (Ralph CLI mode)"


@dataclass(frozen=True)
class PendingApproval:
    """A tool call the platform holds until it is approved or denied."""

    tool_call_id: str
    tool_name: str
    raw_arguments: str = ""


@dataclass(frozen=True)
class Approve:
    approval: PendingApproval


@dataclass(frozen=True)
class Deny:
    approval: PendingApproval
    reason: str


ApprovalDecision = Union[Approve, Deny]


def parse_arguments(raw: str) -> dict[str, Any]:
    """Parse tool-call arguments; anything but a JSON object becomes {}."""
    try:
        parsed = json.loads(raw) if raw else {}
    except (TypeError, ValueError):
        return {}
    if not isinstance(parsed, dict):
        return {}
    return parsed


def _missing_required(required: list[str], arguments: dict[str, Any]) -> list[str]:
    return [key for key in required if arguments.get(key) is None]


def _missing_reason(missing: list[str]) -> str:
    noun = "parameters" if len(missing) > 1 else "parameter"
    return f"Missing required {noun}: {', '.join(missing)}"


def resolve(
    pending: list[PendingApproval],
    unrestricted: bool,
    *,
    arbiter: PermissionArbiter,
    registry: ToolRegistry,
) -> list[ApprovalDecision]:
    """Decide every pending approval, preserving input order.

    ``unrestricted`` is accepted for the caller's bookkeeping only: an "ask"
    decision is always denied here because nobody is available to confirm.
    Malformed arguments never raise; errors from the arbiter or registry do.
    """
    _ = unrestricted
    decisions: list[ApprovalDecision] = []

    for approval in pending:
        arguments = parse_arguments(approval.raw_arguments)
        permission = arbiter.check(approval.tool_name, arguments)

        if permission.decision == "deny":
            detail = permission.matched_rule or permission.reason or "denied"
            decisions.append(Deny(approval, f"Permission denied: {detail}"))
            continue

        if permission.decision == "ask":
            decisions.append(Deny(approval, ASK_DENY_REASON))
            continue

        missing = _missing_required(registry.required_arguments(approval.tool_name), arguments)
        if missing:
            decisions.append(Deny(approval, _missing_reason(missing)))
            continue

        decisions.append(Approve(approval))

    return decisions


def _run_local(approval: PendingApproval, registry: ToolRegistry) -> dict[str, Any] | None:
    handler = registry.handler(approval.tool_name)
    if handler is None:
        return None
    try:
        output = handler(parse_arguments(approval.raw_arguments))
        status = "success"
    except Exception as exc:
        # A failing tool is a result for the agent, not a loop failure.
        output = f"{type(exc).__name__}: {exc}"
        status = "error"
    return {
        "type": "tool",
        "tool_call_id": approval.tool_call_id,
        "tool_return": str(output),
        "status": status,
    }


def execute_approval_batch(
    decisions: list[ApprovalDecision],
    registry: ToolRegistry,
) -> list[dict[str, Any]]:
    """Turn decisions into approval results for the next turn.

    Approved calls with a local handler run here and report their output;
    other approved calls are handed back to the platform to execute.
    """
    results: list[dict[str, Any]] = []
    for decision in decisions:
        approval = decision.approval
        if isinstance(decision, Deny):
            results.append(
                {
                    "type": "approval",
                    "tool_call_id": approval.tool_call_id,
                    "approve": False,
                    "reason": decision.reason,
                }
            )
            continue

        local = _run_local(approval, registry)
        if local is not None:
            results.append(local)
            continue
        results.append(
            {
                "type": "approval",
                "tool_call_id": approval.tool_call_id,
                "approve": True,
            }
        )
    return results


def approval_input(results: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Wrap approval results as a turn input payload."""
    return [{"type": "approval", "approvals": results}]


def deny_all(pending: list[PendingApproval], reason: str = ASK_DENY_REASON) -> list[ApprovalDecision]:
    """Deny every pending approval with the same reason."""
    return [Deny(approval, reason) for approval in pending]
