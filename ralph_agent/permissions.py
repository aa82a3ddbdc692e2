"""Tool permission policy for Ralph approvals."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from typing import Any, Literal, Protocol

Decision = Literal["allow", "deny", "ask"]

PERMISSION_MODES = ("default", "acceptEdits", "plan", "bypassPermissions")

READ_ONLY_TOOLS = frozenset(
    {
        "Read",
        "Glob",
        "Grep",
        "LS",
        "read_file",
        "list_dir",
        "glob",
        "grep",
        "search_files",
    }
)
EDIT_TOOLS = frozenset(
    {
        "Edit",
        "MultiEdit",
        "Write",
        "edit_file",
        "write_file",
        "str_replace",
    }
)

# Argument inspected by `Tool(pattern)` rules, first present key wins.
PRIMARY_ARGUMENT_KEYS = ("command", "file_path", "path", "pattern")

RULE_RE = re.compile(r"^\s*([^()\s]+)\s*(?:\((.*)\))?\s*$")


@dataclass(frozen=True)
class PermissionResult:
    """Decision for a single tool call."""

    decision: Decision
    matched_rule: str | None = None
    reason: str | None = None


class PermissionArbiter(Protocol):
    """Protocol for deciding whether a tool call may run."""

    def check(self, tool_name: str, arguments: Mapping[str, Any]) -> PermissionResult:
        """Return allow/deny/ask for the call."""
        ...


def parse_rules(value: str | None) -> list[str]:
    """Split a comma-separated rule list, ignoring commas inside parentheses."""
    if not value:
        return []

    rules: list[str] = []
    depth = 0
    current: list[str] = []
    for char in value:
        if char == "(":
            depth += 1
        elif char == ")" and depth > 0:
            depth -= 1
        if char == "," and depth == 0:
            rules.append("".join(current))
            current = []
            continue
        current.append(char)
    rules.append("".join(current))
    return [rule.strip() for rule in rules if rule.strip()]


def _primary_argument(arguments: Mapping[str, Any]) -> str | None:
    for key in PRIMARY_ARGUMENT_KEYS:
        value = arguments.get(key)
        if isinstance(value, str):
            return value
    return None


def rule_matches(rule: str, tool_name: str, arguments: Mapping[str, Any]) -> bool:
    """Check whether a `Tool` or `Tool(pattern)` rule covers a call.

    Pattern forms:
    - "git status:*" prefix match on the primary argument
    - "src/" directory prefix
    - anything else is a glob
    """
    match = RULE_RE.match(rule)
    if not match:
        return False
    name, pattern = match.group(1), match.group(2)
    if name != "*" and name != tool_name:
        return False
    if pattern is None or pattern.strip() in {"", "*"}:
        return True

    target = _primary_argument(arguments)
    if target is None:
        return False
    pattern = pattern.strip()
    if pattern.endswith(":*"):
        return target.startswith(pattern[:-2])
    if pattern.endswith("/"):
        return target.startswith(pattern) or target + "/" == pattern
    return fnmatchcase(target, pattern)


def _first_match(rules: list[str], tool_name: str, arguments: Mapping[str, Any]) -> str | None:
    for rule in rules:
        if rule_matches(rule, tool_name, arguments):
            return rule
    return None


@dataclass
class PermissionPolicy:
    """Rule-based permission arbiter.

    Evaluation order: deny rules, bypass mode, allow rules, ask rules,
    read-only tools, plan mode, acceptEdits mode, then ask.
    """

    mode: str = "default"
    allow: list[str] = field(default_factory=list)
    deny: list[str] = field(default_factory=list)
    ask: list[str] = field(default_factory=list)

    def check(self, tool_name: str, arguments: Mapping[str, Any]) -> PermissionResult:
        rule = _first_match(self.deny, tool_name, arguments)
        if rule:
            return PermissionResult("deny", matched_rule=rule, reason="Matched deny rule")

        if self.mode == "bypassPermissions":
            return PermissionResult("allow", reason="Permission mode: bypassPermissions")

        rule = _first_match(self.allow, tool_name, arguments)
        if rule:
            return PermissionResult("allow", matched_rule=rule, reason="Matched allow rule")

        rule = _first_match(self.ask, tool_name, arguments)
        if rule:
            return PermissionResult("ask", matched_rule=rule, reason="Matched ask rule")

        if tool_name in READ_ONLY_TOOLS:
            return PermissionResult("allow", reason="Read-only tool")

        if self.mode == "plan":
            return PermissionResult("deny", reason="Plan mode: only read-only tools may run")

        if self.mode == "acceptEdits" and tool_name in EDIT_TOOLS:
            return PermissionResult("allow", reason="Permission mode: acceptEdits")

        return PermissionResult("ask", reason="No matching permission rule")

    def validate(self) -> list[str]:
        """Validate policy, returning list of errors."""
        errors: list[str] = []
        if self.mode not in PERMISSION_MODES:
            errors.append(
                f"Invalid permission mode: {self.mode}. "
                f"Valid modes: {', '.join(PERMISSION_MODES)}"
            )
        for rule in [*self.allow, *self.deny, *self.ask]:
            if not RULE_RE.match(rule):
                errors.append(f"Invalid permission rule: {rule}")
        return errors
