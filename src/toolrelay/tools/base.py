"""Tool protocols and data types.

Defines the two boundaries to the external tool provider, the
``ToolGateway`` (execute a call) and the ``ToolCatalog`` (list what is
callable), plus the immutable data classes that cross them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """A callable tool as advertised by the tool provider."""

    name: str
    description: str
    parameters_schema: dict[str, Any] = field(default_factory=dict)

    @property
    def properties(self) -> dict[str, Any]:
        """Named parameters from the schema (empty if none)."""
        props = self.parameters_schema.get("properties")
        return props if isinstance(props, dict) else {}

    @property
    def required(self) -> list[str]:
        """Required parameter names from the schema."""
        req = self.parameters_schema.get("required")
        return list(req) if isinstance(req, list) else []

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolDescriptor:
        """Build from an MCP-style listing entry (``inputSchema`` key)."""
        schema = data.get("inputSchema") or data.get("parameters_schema") or {}
        return cls(
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            parameters_schema=dict(schema),
        )


@dataclass(frozen=True, slots=True)
class ToolInvocationRequest:
    """A tool call requested by a model."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolInvocationOutcome:
    """Result of executing a tool call.

    Exactly one of ``value`` (when ``succeeded``) or ``reason`` is meaningful.
    """

    succeeded: bool
    value: Any = None
    reason: str = ""

    @classmethod
    def success(cls, value: Any) -> ToolInvocationOutcome:
        return cls(succeeded=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> ToolInvocationOutcome:
        return cls(succeeded=False, reason=reason)


@runtime_checkable
class ToolGateway(Protocol):
    """Executes tool calls against the external tool provider."""

    async def call_tool(
        self, name: str, arguments: dict[str, Any]
    ) -> ToolInvocationOutcome:
        """Execute ``name`` with ``arguments``.

        Must not raise for tool-level failures: those are returned as a
        failed outcome so the model can react to them.
        """
        ...


@runtime_checkable
class ToolCatalog(ToolGateway, Protocol):
    """A gateway that can also enumerate its tools."""

    async def list_tools(self) -> list[ToolDescriptor]:
        """Return all tools currently exposed by the provider.

        Raises:
            GatewayError: If the provider cannot be reached.
        """
        ...
