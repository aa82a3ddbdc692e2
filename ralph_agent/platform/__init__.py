"""Remote agent platforms for Ralph."""

from __future__ import annotations

from ralph_agent.platform.base import (
    AgentPlatform,
    PlatformError,
    RunFailedError,
    StreamEvent,
    StreamHandle,
    StreamInterruptedError,
)
from ralph_agent.platform.letta import LettaPlatform

__all__ = [
    "AgentPlatform",
    "LettaPlatform",
    "PlatformError",
    "RunFailedError",
    "StreamEvent",
    "StreamHandle",
    "StreamInterruptedError",
    "get_platform",
]


def get_platform(base_url: str, api_key: str | None = None) -> AgentPlatform:
    """Get the platform client for a base URL."""
    return LettaPlatform(base_url=base_url, api_key=api_key)
