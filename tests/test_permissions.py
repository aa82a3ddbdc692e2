"""Tests for permissions module."""

from __future__ import annotations

from ralph_agent.permissions import PermissionPolicy, parse_rules, rule_matches


class TestParseRules:
    """Tests for parse_rules."""

    def test_none_and_empty(self) -> None:
        assert parse_rules(None) == []
        assert parse_rules("") == []

    def test_splits_and_trims(self) -> None:
        assert parse_rules(" Read , Grep ,,") == ["Read", "Grep"]

    def test_commas_inside_parentheses_are_kept(self) -> None:
        assert parse_rules("Bash(echo a,b),Read") == ["Bash(echo a,b)", "Read"]


class TestRuleMatches:
    """Tests for rule_matches."""

    def test_bare_tool_name(self) -> None:
        assert rule_matches("Bash", "Bash", {"command": "ls"})
        assert not rule_matches("Bash", "Read", {})

    def test_wildcard_tool(self) -> None:
        assert rule_matches("*", "Anything", {})

    def test_prefix_pattern(self) -> None:
        assert rule_matches("Bash(git status:*)", "Bash", {"command": "git status --short"})
        assert not rule_matches("Bash(git status:*)", "Bash", {"command": "git push"})

    def test_directory_pattern(self) -> None:
        assert rule_matches("Edit(src/)", "Edit", {"file_path": "src/app.py"})
        assert not rule_matches("Edit(src/)", "Edit", {"file_path": "tests/app.py"})

    def test_glob_pattern(self) -> None:
        assert rule_matches("Read(*.env)", "Read", {"file_path": "prod.env"})
        assert not rule_matches("Read(*.env)", "Read", {"file_path": "main.py"})

    def test_pattern_without_primary_argument(self) -> None:
        assert not rule_matches("Bash(ls:*)", "Bash", {"other": "ls"})

    def test_malformed_rule(self) -> None:
        assert not rule_matches("Bash(ls", "Bash", {"command": "ls"})


class TestPermissionPolicy:
    """Tests for PermissionPolicy.check."""

    def test_default_mode_asks_for_unknown_tools(self) -> None:
        result = PermissionPolicy().check("Bash", {"command": "ls"})
        assert result.decision == "ask"

    def test_read_only_tools_allowed(self) -> None:
        assert PermissionPolicy().check("Read", {"file_path": "a"}).decision == "allow"

    def test_deny_rule_wins_over_allow(self) -> None:
        policy = PermissionPolicy(allow=["Bash"], deny=["Bash(rm:*)"])
        result = policy.check("Bash", {"command": "rm -rf /"})
        assert result.decision == "deny"
        assert result.matched_rule == "Bash(rm:*)"

    def test_deny_rule_applies_in_bypass_mode(self) -> None:
        policy = PermissionPolicy(mode="bypassPermissions", deny=["Bash(rm:*)"])
        assert policy.check("Bash", {"command": "rm x"}).decision == "deny"
        assert policy.check("Bash", {"command": "ls"}).decision == "allow"

    def test_allow_rule(self) -> None:
        policy = PermissionPolicy(allow=["Bash(npm test:*)"])
        result = policy.check("Bash", {"command": "npm test -- --watch"})
        assert result.decision == "allow"
        assert result.matched_rule == "Bash(npm test:*)"

    def test_ask_rule_beats_read_only_default(self) -> None:
        policy = PermissionPolicy(ask=["Read(*.env)"])
        assert policy.check("Read", {"file_path": "x.env"}).decision == "ask"

    def test_plan_mode_denies_writes(self) -> None:
        result = PermissionPolicy(mode="plan").check("Write", {"file_path": "a"})
        assert result.decision == "deny"
        assert result.matched_rule is None
        assert "Plan mode" in (result.reason or "")

    def test_accept_edits_mode(self) -> None:
        policy = PermissionPolicy(mode="acceptEdits")
        assert policy.check("Edit", {"file_path": "a"}).decision == "allow"
        assert policy.check("Bash", {"command": "ls"}).decision == "ask"


class TestPermissionPolicyValidate:
    """Tests for PermissionPolicy.validate."""

    def test_valid(self) -> None:
        assert PermissionPolicy(mode="plan", allow=["Read"]).validate() == []

    def test_invalid_mode(self) -> None:
        errors = PermissionPolicy(mode="sometimes").validate()
        assert len(errors) == 1
        assert "Invalid permission mode" in errors[0]

    def test_invalid_rule(self) -> None:
        errors = PermissionPolicy(deny=["Bash(ls"]).validate()
        assert errors == ["Invalid permission rule: Bash(ls"]
