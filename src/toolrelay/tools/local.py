"""In-process tool gateway.

Serves tools implemented as Python objects, without any transport. Used
for the CLI demo tool set and as the reference gateway in tests.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from toolrelay.tools.base import ToolDescriptor, ToolInvocationOutcome

logger = logging.getLogger(__name__)


@runtime_checkable
class Tool(Protocol):
    """Protocol that in-process tool implementations must satisfy."""

    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def parameters_schema(self) -> dict[str, Any]: ...

    async def execute(self, **kwargs: Any) -> Any:
        """Run the tool. Any exception becomes a failed outcome."""
        ...


class LocalToolGateway:
    """Gateway over registered :class:`Tool` objects."""

    def __init__(self, tools: list[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Raises:
            ValueError: If a tool with the same name is already registered.
        """
        if tool.name in self._tools:
            msg = f"Tool already registered: {tool.name}"
            raise ValueError(msg)
        self._tools[tool.name] = tool

    async def list_tools(self) -> list[ToolDescriptor]:
        return [
            ToolDescriptor(
                name=t.name,
                description=t.description,
                parameters_schema=t.parameters_schema,
            )
            for t in self._tools.values()
        ]

    async def call_tool(
        self, name: str, arguments: dict[str, Any]
    ) -> ToolInvocationOutcome:
        tool = self._tools.get(name)
        if tool is None:
            return ToolInvocationOutcome.failure(f"Unknown tool: {name}")
        try:
            result = await tool.execute(**arguments)
        except Exception as exc:
            logger.warning("Local tool %s failed: %s", name, exc)
            return ToolInvocationOutcome.failure(f"Tool execution error: {exc}")
        return ToolInvocationOutcome.success(result)

    async def connect(self) -> None:
        """Nothing to open."""

    async def aclose(self) -> None:
        """Nothing to release."""

    async def __aenter__(self) -> LocalToolGateway:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class EchoTool:
    """Echoes its message back with a timestamp."""

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echo a message back to the caller"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "message": {
                    "type": "string",
                    "description": "The message to echo",
                },
            },
            "required": ["message"],
        }

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        if "message" not in kwargs:
            msg = "message is required"
            raise ValueError(msg)
        return {
            "message": kwargs["message"],
            "echoed_at": datetime.now(UTC).isoformat(),
        }


class CurrentTimeTool:
    """Reports the current UTC date and time."""

    @property
    def name(self) -> str:
        return "current_time"

    @property
    def description(self) -> str:
        return "Get the current UTC date and time"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        now = datetime.now(UTC)
        return {"date": now.date().isoformat(), "time": now.time().isoformat("seconds")}


def demo_gateway() -> LocalToolGateway:
    """Gateway with the built-in demo tools."""
    return LocalToolGateway([EchoTool(), CurrentTimeTool()])
