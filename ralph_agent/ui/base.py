"""Base UI protocol for Ralph output."""

from __future__ import annotations

from typing import Protocol

# Channel tags used for agent output and approval decisions.
CHANNEL_COLORS = {
    "AI": "cyan",
    "THINK": "magenta",
    "SYS": "bright_black",
    "TOOL": "yellow",
    "RESULT": "white",
    "APPROVE": "green",
    "DENY": "red",
    "ERROR": "red",
}


class UI(Protocol):
    """Protocol for Ralph UI implementations."""

    def title(self, text: str) -> None:
        """Display a large title."""
        ...

    def section(self, text: str) -> None:
        """Display a section header."""
        ...

    def kv(self, key: str, value: str) -> None:
        """Display a key-value pair."""
        ...

    def panel(self, tag: str, title: str, content: str) -> None:
        """Display a titled panel block."""
        ...

    def info(self, text: str) -> None:
        """Display info message (dim)."""
        ...

    def ok(self, text: str) -> None:
        """Display success message (green)."""
        ...

    def warn(self, text: str) -> None:
        """Display warning message (yellow)."""
        ...

    def err(self, text: str) -> None:
        """Display error message (red)."""
        ...

    def channel_header(self, channel: str, title: str = "") -> None:
        """Display channel header with optional title."""
        ...

    def channel_footer(self, channel: str, title: str = "") -> None:
        """Display channel footer."""
        ...

    def stream_line(self, tag: str, line: str) -> None:
        """Display a single prefixed line."""
        ...
