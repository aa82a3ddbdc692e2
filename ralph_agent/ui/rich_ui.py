"""Rich-based terminal UI implementation."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from ralph_agent.ui.base import CHANNEL_COLORS

if TYPE_CHECKING:
    from typing import TextIO

BADGE_STYLES = {
    "AI": "bold cyan",
    "THINK": "bold magenta",
    "SYS": "dim",
    "TOOL": "bold yellow",
    "RESULT": "bold white",
    "APPROVE": "bold green",
    "DENY": "bold red",
    "ERROR": "bold red",
}

LINE_STYLES = {
    "SYS": "dim",
    "THINK": "dim italic",
}


class RichUI:
    """Rich-based terminal UI."""

    def __init__(
        self,
        no_color: bool = False,
        ascii_only: bool = False,
        file: TextIO | None = None,
    ):
        self.no_color = no_color
        self.ascii_only = ascii_only
        self._file = file or sys.stderr
        self.console = Console(
            file=self._file,
            no_color=no_color,
            force_terminal=True,
        )
        self._hr_char = "-" if ascii_only else "─"
        self._block_left = "|" if ascii_only else "│"
        self._block_tl = "+" if ascii_only else "┌"
        self._block_tr = "+" if ascii_only else "┐"
        self._block_bl = "+" if ascii_only else "└"
        self._block_br = "+" if ascii_only else "┘"
        self._dot = "-" if ascii_only else "·"
        self._tag_width = max(len(tag) for tag in CHANNEL_COLORS)
        self._block_active = False

    def _format_tag(self, tag: str) -> str:
        """Pad tag to a stable width for alignment."""
        if len(tag) > self._tag_width:
            self._tag_width = len(tag)
        return tag.ljust(self._tag_width)

    def _badge_style(self, tag: str) -> str:
        return BADGE_STYLES.get(tag, f"bold {CHANNEL_COLORS.get(tag, 'white')}")

    def _block_header_line(self, label: str, style: str) -> Text:
        label_text = f" {label} "
        width = self.console.size.width
        if width <= len(label_text) + 2:
            return Text(label_text, style=style)
        fill_len = width - len(label_text) - 2
        line = Text()
        line.append(self._block_tl, style="dim")
        line.append(label_text, style=style)
        line.append(self._hr_char * fill_len, style="dim")
        line.append(self._block_tr, style="dim")
        return line

    def _block_footer_line(self) -> Text:
        width = self.console.size.width
        if width <= 2:
            return Text(self._block_bl + self._block_br, style="dim")
        line = Text()
        line.append(self._block_bl, style="dim")
        line.append(self._hr_char * (width - 2), style="dim")
        line.append(self._block_br, style="dim")
        return line

    def title(self, text: str) -> None:
        """Display a large title."""
        self._rule()
        self.console.print(text, justify="center", style="bold")
        self._rule()
        self.console.print()

    def section(self, text: str) -> None:
        """Display a section header."""
        self.console.print()
        if self.ascii_only:
            self.console.print(f"== {text} ==", style="bold")
        else:
            self.console.rule(Text(text, style="bold"), style="dim")

    def _rule(self) -> None:
        self.console.print(self._hr_char * self.console.size.width, style="dim")

    def kv(self, key: str, value: str) -> None:
        """Display a key-value pair."""
        padded_key = f"  {key}:".ljust(16)
        self.console.print(Text(padded_key, style="dim") + Text(value))

    def panel(self, tag: str, title: str, content: str) -> None:
        """Display a titled panel block."""
        label = f"{tag} {self._dot} {title}" if title else tag
        self.console.print(
            Panel(
                Text(content),
                title=Text(label, style=self._badge_style(tag)),
                border_style="dim",
                box=box.ASCII if self.ascii_only else box.SQUARE,
                expand=True,
                padding=(0, 1),
            )
        )

    def info(self, text: str) -> None:
        """Display info message (dim)."""
        self.console.print(Text(text, style="dim"))

    def ok(self, text: str) -> None:
        """Display success message (green)."""
        self.console.print(Text(f"OK: {text}", style="green"))

    def warn(self, text: str) -> None:
        """Display warning message (yellow)."""
        self.console.print(Text(f"WARN: {text}", style="yellow"))

    def err(self, text: str) -> None:
        """Display error message (red)."""
        self.console.print(Text(f"ERROR: {text}", style="red bold"))

    def channel_header(self, channel: str, title: str = "") -> None:
        """Display channel header with optional title."""
        full_title = f"{channel} {self._dot} {title}" if title else channel
        self._block_active = True
        self.console.print(self._block_header_line(full_title, self._badge_style(channel)))

    def channel_footer(self, channel: str, title: str = "") -> None:
        """Display channel footer."""
        _ = channel
        _ = title
        self.console.print(self._block_footer_line())
        self._block_active = False

    def stream_line(self, tag: str, line: str) -> None:
        """Display a single prefixed line."""
        sep = "|" if self.ascii_only else "│"
        prefix = Text()
        if self._block_active:
            prefix.append(f"{self._block_left} ", style="dim")
        prefix.append(f"{self._format_tag(tag)} ", style=self._badge_style(tag))
        prefix.append(f"{sep} ", style="dim")
        prefix.append(line, style=LINE_STYLES.get(tag, ""))
        self.console.print(prefix)
