"""Tool schema registry used to validate approved tool calls."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ralph_agent.platform.base import AgentPlatform

ToolHandler = Callable[[dict[str, Any]], str]


class ToolRegistry(Protocol):
    """Protocol for looking up tool schemas and local handlers."""

    def required_arguments(self, tool_name: str) -> list[str]:
        """Return the declared required argument names for a tool."""
        ...

    def handler(self, tool_name: str) -> ToolHandler | None:
        """Return a local handler, or None if the platform runs the tool."""
        ...


@dataclass
class ToolSpec:
    """Declared shape of a single tool."""

    name: str
    required: list[str] = field(default_factory=list)
    handler: ToolHandler | None = None


def _required_from_schema(schema: Mapping[str, Any]) -> list[str]:
    # Accept OpenAI-style `parameters`, Anthropic-style `input_schema`, and
    # Letta tool records that nest either under `json_schema`.
    nested = schema.get("json_schema")
    if isinstance(nested, Mapping):
        schema = nested
    params = schema.get("parameters") or schema.get("input_schema") or {}
    required = params.get("required") if isinstance(params, Mapping) else None
    if not isinstance(required, list):
        return []
    return [str(item) for item in required]


class SchemaToolRegistry:
    """In-memory registry built from tool JSON schemas."""

    def __init__(self, specs: Iterable[ToolSpec] = ()) -> None:
        self._specs: dict[str, ToolSpec] = {spec.name: spec for spec in specs}

    @classmethod
    def from_schemas(cls, schemas: Iterable[Mapping[str, Any]]) -> SchemaToolRegistry:
        """Build a registry from tool schema dicts, skipping unnamed entries."""
        specs: list[ToolSpec] = []
        for schema in schemas:
            name = schema.get("name")
            nested = schema.get("json_schema")
            if not name and isinstance(nested, Mapping):
                name = nested.get("name")
            if not name:
                continue
            specs.append(ToolSpec(name=str(name), required=_required_from_schema(schema)))
        return cls(specs)

    @classmethod
    def from_platform(cls, platform: AgentPlatform, agent_id: str) -> SchemaToolRegistry:
        """Load schemas of the tools attached to a remote agent."""
        return cls.from_schemas(platform.list_tools(agent_id))

    def register(
        self,
        name: str,
        handler: ToolHandler,
        required: list[str] | None = None,
    ) -> None:
        """Attach a local handler, keeping known required args unless given."""
        existing = self._specs.get(name)
        if required is None:
            required = existing.required if existing else []
        self._specs[name] = ToolSpec(name=name, required=list(required), handler=handler)

    def names(self) -> list[str]:
        return sorted(self._specs)

    def required_arguments(self, tool_name: str) -> list[str]:
        spec = self._specs.get(tool_name)
        if spec is None:
            return []
        return list(spec.required)

    def handler(self, tool_name: str) -> ToolHandler | None:
        spec = self._specs.get(tool_name)
        if spec is None:
            return None
        return spec.handler
