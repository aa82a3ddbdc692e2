"""Letta-compatible HTTP platform for Ralph."""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from ralph_agent.approvals import PendingApproval
from ralph_agent.platform.base import (
    PlatformError,
    RunFailedError,
    StreamEvent,
    StreamHandle,
    StreamInterruptedError,
)

DEFAULT_BASE_URL = "https://api.letta.com"
DONE_SENTINEL = "[DONE]"
FAILED_RUN_STATUSES = {"failed", "cancelled"}


class LettaToolCall(BaseModel):
    """Tool call fragment as streamed by the platform."""

    model_config = ConfigDict(extra="ignore")

    tool_call_id: str | None = None
    name: str | None = None
    arguments: str | None = None


class LettaChunk(BaseModel):
    """A single SSE data frame."""

    model_config = ConfigDict(extra="ignore")

    message_type: str
    id: str | None = None
    run_id: str | None = None
    seq_id: int | None = None
    content: str | list[dict[str, Any]] | None = None
    reasoning: str | None = None
    tool_call: LettaToolCall | None = None
    tool_calls: list[LettaToolCall] | None = None
    tool_return: Any = None
    message: str | None = None
    detail: str | None = None
    stop_reason: str | None = None

    def calls(self) -> list[LettaToolCall]:
        if self.tool_calls:
            return list(self.tool_calls)
        if self.tool_call is not None:
            return [self.tool_call]
        return []

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            return "".join(
                str(part.get("text", "")) for part in self.content if part.get("type") == "text"
            )
        return ""


def chunk_to_events(chunk: LettaChunk) -> list[StreamEvent]:
    """Translate a platform chunk into stream events (possibly none)."""
    common: dict[str, Any] = {"id": chunk.id, "run_id": chunk.run_id, "seq_id": chunk.seq_id}
    kind = chunk.message_type

    if kind == "assistant_message":
        return [StreamEvent("assistant", text=chunk.text(), **common)]
    if kind == "reasoning_message":
        return [StreamEvent("reasoning", text=chunk.reasoning or "", **common)]
    if kind in {"tool_call_message", "approval_request_message"}:
        event_kind = "tool_call" if kind == "tool_call_message" else "approval_request"
        events: list[StreamEvent] = []
        for index, call in enumerate(chunk.calls()):
            events.append(
                StreamEvent(
                    event_kind,
                    id=chunk.id,
                    run_id=chunk.run_id,
                    seq_id=chunk.seq_id,
                    seq_index=index,
                    tool_call_id=call.tool_call_id,
                    tool_name=call.name,
                    arguments=call.arguments or "",
                )
            )
        return events
    if kind == "tool_return_message":
        value = chunk.tool_return
        text = value if isinstance(value, str) else json.dumps(value)
        return [StreamEvent("tool_return", text=text, **common)]
    if kind == "error_message":
        text = chunk.message or chunk.detail or "Unknown error"
        return [StreamEvent("error", text=text, **common)]
    if kind == "stop_reason":
        return [StreamEvent("stop", stop_reason=chunk.stop_reason or "", **common)]
    if kind == "ping":
        return [StreamEvent("ping", **common)]
    return []


def parse_sse_lines(lines: Iterator[str]) -> Iterator[StreamEvent]:
    """Parse ``data:`` frames into stream events, skipping malformed frames."""
    for line in lines:
        if not line.startswith("data:"):
            continue
        data = line[5:].strip()
        if not data:
            continue
        if data == DONE_SENTINEL:
            return
        try:
            chunk = LettaChunk.model_validate(json.loads(data))
        except (ValueError, ValidationError):
            continue
        yield from chunk_to_events(chunk)


class LettaPlatform:
    """Agent platform speaking the Letta REST + SSE API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str | None = None,
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout,
        )

    @property
    def name(self) -> str:
        return f"letta ({self._base_url})"

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise PlatformError(
                f"{method} {url} failed with HTTP {exc.response.status_code}: "
                f"{exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise PlatformError(f"{method} {url} failed: {exc}") from exc
        return response.json()

    def _open_stream(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        request = self._client.build_request(method, url, **kwargs)
        request.headers["Accept"] = "text/event-stream"
        response = self._client.send(request, stream=True)
        if response.is_error:
            response.read()
            response.close()
            raise PlatformError(
                f"{method} {url} failed with HTTP {response.status_code}: {response.text[:200]}"
            )
        return response

    def _events(self, response: httpx.Response) -> Iterator[StreamEvent]:
        try:
            yield from parse_sse_lines(response.iter_lines())
        except httpx.TransportError as exc:
            raise StreamInterruptedError(str(exc) or type(exc).__name__) from exc
        finally:
            response.close()

    def send_turn(self, agent_id: str, turn_input: list[dict[str, Any]]) -> StreamHandle:
        url = f"/v1/agents/{agent_id}/messages/stream"
        payload = {
            "messages": turn_input,
            "stream_tokens": True,
            "background": True,
            "include_pings": True,
        }
        try:
            response = self._open_stream("POST", url, json=payload)
        except httpx.HTTPError as exc:
            raise PlatformError(f"POST {url} failed: {exc}") from exc
        return StreamHandle(run_id=None, events=self._events(response))

    def run_status(self, run_id: str) -> str:
        try:
            data = self._request("GET", f"/v1/runs/{run_id}")
        except PlatformError as exc:
            raise StreamInterruptedError(str(exc)) from exc
        return str(data.get("status", "unknown"))

    def resume_stream(self, handle: StreamHandle) -> StreamHandle:
        if handle.run_id is None:
            raise RunFailedError("", "Cannot resume a stream without a run id")

        status = self.run_status(handle.run_id)
        if status in FAILED_RUN_STATUSES:
            raise RunFailedError(handle.run_id, f"Run {handle.run_id} {status}")

        params: dict[str, Any] = {"include_pings": True}
        if handle.cursor is not None:
            params["starting_after"] = handle.cursor
        url = f"/v1/runs/{handle.run_id}/stream"
        try:
            response = self._open_stream("GET", url, params=params)
        except httpx.HTTPError as exc:
            raise StreamInterruptedError(str(exc) or type(exc).__name__) from exc
        except PlatformError as exc:
            raise StreamInterruptedError(str(exc)) from exc
        return StreamHandle(
            run_id=handle.run_id,
            events=self._events(response),
            cursor=handle.cursor,
        )

    def pending_approvals(self, agent_id: str) -> list[PendingApproval]:
        data = self._request(
            "GET",
            f"/v1/agents/{agent_id}/messages",
            params={"limit": 1, "order": "desc"},
        )
        if not isinstance(data, list) or not data:
            return []
        try:
            last = LettaChunk.model_validate(data[0])
        except ValidationError:
            return []
        if last.message_type != "approval_request_message":
            return []
        return [
            PendingApproval(
                tool_call_id=call.tool_call_id or "",
                tool_name=call.name or "",
                raw_arguments=call.arguments or "",
            )
            for call in last.calls()
        ]

    def list_tools(self, agent_id: str) -> list[dict[str, Any]]:
        data = self._request("GET", f"/v1/agents/{agent_id}/tools")
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    def create_agent(self, model: str | None = None) -> str:
        payload: dict[str, Any] = {"name": "ralph", "include_base_tools": True}
        if model:
            payload["model"] = model
        data = self._request("POST", "/v1/agents", json=payload)
        agent_id = data.get("id") if isinstance(data, dict) else None
        if not agent_id:
            raise PlatformError("Agent creation returned no id")
        return str(agent_id)
