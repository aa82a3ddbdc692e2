"""UI module for Ralph terminal output."""

from ralph_agent.ui.base import UI
from ralph_agent.ui.plain import PlainUI
from ralph_agent.ui.rich_ui import RichUI

__all__ = ["UI", "RichUI", "PlainUI", "get_ui", "normalize_ui_mode"]


def normalize_ui_mode(value: str | None) -> str:
    """Map UI mode aliases onto auto|rich|plain."""
    normalized = (value or "auto").strip().lower()
    if normalized == "gum":
        return "rich"
    if normalized in {"plain", "off", "no", "0"}:
        return "plain"
    if normalized not in {"auto", "rich", "plain"}:
        return "auto"
    return normalized


def get_ui(
    mode: str = "auto",
    no_color: bool = False,
    ascii_only: bool = False,
    force_rich: bool = False,
) -> UI:
    """Get appropriate UI implementation based on mode and environment."""
    import sys

    normalized = normalize_ui_mode(mode)
    if normalized == "plain":
        return PlainUI(no_color=no_color, ascii_only=ascii_only)

    # auto or rich mode
    is_tty = sys.stderr.isatty()
    if normalized == "auto" and not is_tty and not force_rich:
        return PlainUI(no_color=no_color, ascii_only=ascii_only)
    return RichUI(no_color=no_color, ascii_only=ascii_only)
