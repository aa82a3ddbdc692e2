"""Tests for approvals module."""

from __future__ import annotations

from ralph_agent.approvals import (
    ASK_DENY_REASON,
    Approve,
    Deny,
    PendingApproval,
    approval_input,
    deny_all,
    execute_approval_batch,
    parse_arguments,
    resolve,
)
from ralph_agent.permissions import PermissionPolicy
from ralph_agent.tools import SchemaToolRegistry


def _registry() -> SchemaToolRegistry:
    return SchemaToolRegistry.from_schemas(
        [
            {"name": "Bash", "parameters": {"required": ["command"]}},
            {"name": "Write", "parameters": {"required": ["file_path", "content"]}},
            {"name": "Read", "parameters": {"required": ["file_path"]}},
        ]
    )


class TestParseArguments:
    """Tests for parse_arguments."""

    def test_object(self) -> None:
        assert parse_arguments('{"command": "ls"}') == {"command": "ls"}

    def test_malformed_or_non_object(self) -> None:
        assert parse_arguments("{not json") == {}
        assert parse_arguments("[1, 2]") == {}
        assert parse_arguments("") == {}


class TestResolve:
    """Tests for resolve."""

    def test_mixed_batch_of_deny_missing_and_allow(self) -> None:
        """Deny rule, missing argument and an allowed call in one batch."""
        policy = PermissionPolicy(mode="bypassPermissions", deny=["Bash(rm:*)"])
        pending = [
            PendingApproval("A", "Bash", '{"command": "rm -rf /"}'),
            PendingApproval("B", "Write", '{"file_path": "x"}'),
            PendingApproval("C", "Read", '{"file_path": "y"}'),
        ]

        decisions = resolve(pending, True, arbiter=policy, registry=_registry())

        assert decisions == [
            Deny(pending[0], "Permission denied: Bash(rm:*)"),
            Deny(pending[1], "Missing required parameter: content"),
            Approve(pending[2]),
        ]

    def test_preserves_order_and_length(self) -> None:
        policy = PermissionPolicy(mode="bypassPermissions")
        pending = [PendingApproval(str(i), "Read", '{"file_path": "f"}') for i in range(5)]
        decisions = resolve(pending, True, arbiter=policy, registry=_registry())
        assert [d.approval.tool_call_id for d in decisions] == ["0", "1", "2", "3", "4"]

    def test_ask_is_denied(self) -> None:
        pending = [PendingApproval("A", "Bash", '{"command": "ls"}')]
        decisions = resolve(pending, False, arbiter=PermissionPolicy(), registry=_registry())
        assert decisions == [Deny(pending[0], ASK_DENY_REASON)]

    def test_ask_is_denied_even_when_unrestricted(self) -> None:
        policy = PermissionPolicy(ask=["Bash"])
        pending = [PendingApproval("A", "Bash", '{"command": "ls"}')]
        decisions = resolve(pending, True, arbiter=policy, registry=_registry())
        assert decisions == [Deny(pending[0], ASK_DENY_REASON)]

    def test_deny_without_rule_uses_reason(self) -> None:
        pending = [PendingApproval("A", "Write", '{"file_path": "a", "content": "b"}')]
        decisions = resolve(pending, False, arbiter=PermissionPolicy(mode="plan"), registry=_registry())
        assert decisions == [
            Deny(pending[0], "Permission denied: Plan mode: only read-only tools may run")
        ]

    def test_multiple_missing_arguments(self) -> None:
        policy = PermissionPolicy(mode="bypassPermissions")
        pending = [PendingApproval("A", "Write", "{}")]
        decisions = resolve(pending, True, arbiter=policy, registry=_registry())
        assert decisions == [Deny(pending[0], "Missing required parameters: file_path, content")]

    def test_null_argument_counts_as_missing(self) -> None:
        policy = PermissionPolicy(mode="bypassPermissions")
        pending = [PendingApproval("A", "Bash", '{"command": null}')]
        decisions = resolve(pending, True, arbiter=policy, registry=_registry())
        assert decisions == [Deny(pending[0], "Missing required parameter: command")]

    def test_malformed_arguments_treated_as_empty(self) -> None:
        policy = PermissionPolicy(mode="bypassPermissions")
        pending = [PendingApproval("A", "Bash", "{oops")]
        decisions = resolve(pending, True, arbiter=policy, registry=_registry())
        assert decisions == [Deny(pending[0], "Missing required parameter: command")]

    def test_unknown_tool_has_no_required_arguments(self) -> None:
        policy = PermissionPolicy(mode="bypassPermissions")
        pending = [PendingApproval("A", "Mystery", "{}")]
        decisions = resolve(pending, True, arbiter=policy, registry=_registry())
        assert decisions == [Approve(pending[0])]

    def test_empty_batch(self) -> None:
        assert resolve([], False, arbiter=PermissionPolicy(), registry=_registry()) == []


class TestExecuteApprovalBatch:
    """Tests for execute_approval_batch."""

    def test_denials_and_remote_approvals(self) -> None:
        first = PendingApproval("A", "Bash", "{}")
        second = PendingApproval("B", "Read", "{}")
        results = execute_approval_batch(
            [Deny(first, "nope"), Approve(second)],
            SchemaToolRegistry(),
        )
        assert results == [
            {"type": "approval", "tool_call_id": "A", "approve": False, "reason": "nope"},
            {"type": "approval", "tool_call_id": "B", "approve": True},
        ]

    def test_local_handler_runs(self) -> None:
        registry = SchemaToolRegistry()
        registry.register("Echo", lambda args: f"echo {args['text']}")
        pending = PendingApproval("A", "Echo", '{"text": "hi"}')

        results = execute_approval_batch([Approve(pending)], registry)

        assert results == [
            {"type": "tool", "tool_call_id": "A", "tool_return": "echo hi", "status": "success"}
        ]

    def test_local_handler_error_becomes_result(self) -> None:
        def boom(args: dict) -> str:
            raise ValueError("bad input")

        registry = SchemaToolRegistry()
        registry.register("Boom", boom)
        results = execute_approval_batch([Approve(PendingApproval("A", "Boom"))], registry)

        assert results[0]["status"] == "error"
        assert results[0]["tool_return"] == "ValueError: bad input"


class TestHelpers:
    """Tests for approval_input and deny_all."""

    def test_approval_input_wraps_results(self) -> None:
        results = [{"type": "approval", "tool_call_id": "A", "approve": True}]
        assert approval_input(results) == [{"type": "approval", "approvals": results}]

    def test_deny_all(self) -> None:
        pending = [PendingApproval("A", "Bash"), PendingApproval("B", "Read")]
        decisions = deny_all(pending)
        assert decisions == [Deny(pending[0], ASK_DENY_REASON), Deny(pending[1], ASK_DENY_REASON)]
