"""Configuration handling for Ralph."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from ralph_agent.mode import DEFAULT_COMPLETION_PROMISE
from ralph_agent.permissions import PermissionPolicy, parse_rules
from ralph_agent.platform.letta import DEFAULT_BASE_URL


def _parse_bool(value: str | None) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return False
    return bool(re.match(r"^(1|true|yes)$", value.lower()))


def _parse_int(value: str | None, default: int) -> int:
    """Parse an integer, falling back to default for missing or junk values."""
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def _parse_mode(value: str | None, default: str, allowed: set[str]) -> str:
    """Parse a mode value with allowed options."""
    if value is None:
        return default
    lowered = value.lower().strip()
    if lowered in allowed:
        return lowered
    return default


@dataclass
class RalphConfig:
    """Configuration for a Ralph run against a remote agent."""

    task: str = ""
    # None disables the completion check.
    completion_promise: str | None = DEFAULT_COMPLETION_PROMISE
    max_iterations: int = 0  # <= 0 means unbounded
    yolo: bool = False

    # Platform config
    base_url: str = DEFAULT_BASE_URL
    api_key: str | None = None
    agent_id: str | None = None
    model: str | None = None
    resume_attempts: int = 5
    resume_backoff: float = 1.0

    # Permission config
    permission_mode: str = "default"
    allowed_tools: list[str] = field(default_factory=list)
    disallowed_tools: list[str] = field(default_factory=list)
    ask_tools: list[str] = field(default_factory=list)

    log_dir: Path = field(default_factory=lambda: Path(".ralph/logs"))

    # UI config
    ui_mode: str = "auto"  # auto|rich|plain
    no_color: bool = False
    ascii_only: bool = False

    @classmethod
    def from_env(cls, root_dir: Path | None = None) -> RalphConfig:
        """Load configuration from environment variables."""
        if root_dir is None:
            root_dir = Path.cwd()

        completion_promise: str | None = DEFAULT_COMPLETION_PROMISE
        if "COMPLETION_PROMISE" in os.environ:
            completion_promise = os.environ["COMPLETION_PROMISE"]

        return cls(
            completion_promise=completion_promise,
            max_iterations=_parse_int(os.environ.get("MAX_ITERATIONS"), 0),
            yolo=_parse_bool(os.environ.get("RALPH_YOLO")),
            base_url=os.environ.get("LETTA_BASE_URL") or DEFAULT_BASE_URL,
            api_key=os.environ.get("LETTA_API_KEY") or None,
            agent_id=os.environ.get("RALPH_AGENT_ID") or None,
            model=os.environ.get("RALPH_MODEL") or None,
            resume_attempts=_parse_int(os.environ.get("RALPH_RESUME_ATTEMPTS"), 5),
            permission_mode=os.environ.get("RALPH_PERMISSION_MODE", "default").strip(),
            allowed_tools=parse_rules(os.environ.get("RALPH_ALLOWED_TOOLS")),
            disallowed_tools=parse_rules(os.environ.get("RALPH_DISALLOWED_TOOLS")),
            ask_tools=parse_rules(os.environ.get("RALPH_ASK_TOOLS")),
            log_dir=root_dir / os.environ.get("RALPH_LOG_DIR", ".ralph/logs"),
            ui_mode=_parse_mode(os.environ.get("RALPH_UI"), "auto", {"auto", "rich", "plain"}),
            no_color="NO_COLOR" in os.environ,
            ascii_only=_parse_bool(os.environ.get("RALPH_ASCII")),
        )

    def permission_policy(self) -> PermissionPolicy:
        """Build the permission policy; yolo bypasses everything but deny rules."""
        mode = "bypassPermissions" if self.yolo else self.permission_mode
        return PermissionPolicy(
            mode=mode,
            allow=list(self.allowed_tools),
            deny=list(self.disallowed_tools),
            ask=list(self.ask_tools),
        )

    def validate(self) -> list[str]:
        """Validate configuration, returning list of errors."""
        errors: list[str] = []

        if not self.task.strip():
            errors.append("Task prompt must not be empty")

        if self.max_iterations < 0:
            errors.append(f"MAX_ITERATIONS must be non-negative (got: {self.max_iterations})")

        if self.resume_attempts < 0:
            errors.append(
                f"RESUME_ATTEMPTS must be non-negative (got: {self.resume_attempts})"
            )

        # Validate the configured mode even when yolo overrides it.
        policy = PermissionPolicy(
            mode=self.permission_mode,
            allow=self.allowed_tools,
            deny=self.disallowed_tools,
            ask=self.ask_tools,
        )
        errors.extend(policy.validate())

        return errors
