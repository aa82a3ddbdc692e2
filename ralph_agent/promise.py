"""Completion promise detection in agent output."""

from __future__ import annotations

import re

PROMISE_RE = re.compile(r"<promise>(.*?)</promise>", re.IGNORECASE | re.DOTALL)
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs (newlines included) to single spaces and trim."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def extract_promise(text: str) -> str | None:
    """Return normalized content of the first <promise> tag pair, if any."""
    match = PROMISE_RE.search(text)
    if not match:
        return None
    return normalize_whitespace(match.group(1))


def matches(target: str | None, text: str) -> bool:
    """Check whether text declares the target promise.

    Only the first ``<promise>...</promise>`` pair counts. Tag names are
    matched case-insensitively; tags with attributes and self-closing tags
    never match. Content is compared case-sensitively after whitespace
    normalization of both sides.
    """
    if target is None:
        return False
    content = extract_promise(text)
    if content is None:
        return False
    return content == normalize_whitespace(target)
