"""MCP tool gateways built on the ``mcp`` client SDK.

Two transports share one session wrapper: a subprocess speaking MCP over
stdio, and a remote server speaking MCP over streamable HTTP.
"""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client

from toolrelay.core.errors import GatewayError
from toolrelay.tools.base import ToolDescriptor, ToolInvocationOutcome

if TYPE_CHECKING:
    from mcp.types import CallToolResult

logger = logging.getLogger(__name__)


def _text_of(result: CallToolResult) -> str:
    """Concatenate the text items of an MCP tool result."""
    parts = [
        item.text
        for item in result.content or []
        if getattr(item, "type", None) == "text"
    ]
    return "\n".join(parts)


def outcome_from_result(result: CallToolResult) -> ToolInvocationOutcome:
    """Convert an MCP ``CallToolResult`` into an outcome.

    Prefers ``structuredContent``; otherwise the text content, decoded as
    JSON when it is JSON.
    """
    text = _text_of(result)
    if result.isError:
        return ToolInvocationOutcome.failure(text or "Tool reported an error")
    structured = getattr(result, "structuredContent", None)
    if structured is not None:
        return ToolInvocationOutcome.success(structured)
    try:
        return ToolInvocationOutcome.success(json.loads(text))
    except (json.JSONDecodeError, ValueError):
        return ToolInvocationOutcome.success(text)


class _McpSessionGateway:
    """Shared session handling; subclasses open the transport streams."""

    def __init__(self, *, timeout: float = 30.0) -> None:
        self._timeout = timeout
        self._stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None

    async def _open_streams(self, stack: AsyncExitStack) -> tuple[Any, Any]:
        raise NotImplementedError

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """Open the transport and initialize the MCP session.

        Raises:
            GatewayError: If the server cannot be started or reached.
        """
        if self._session is not None:
            return
        stack = AsyncExitStack()
        try:
            read, write = await self._open_streams(stack)
            session = await stack.enter_async_context(
                ClientSession(
                    read,
                    write,
                    read_timeout_seconds=timedelta(seconds=self._timeout),
                )
            )
            await session.initialize()
        except Exception as exc:
            await stack.aclose()
            msg = f"Failed to connect to MCP server: {exc}"
            raise GatewayError(msg) from exc
        self._stack = stack
        self._session = session

    async def aclose(self) -> None:
        """Close the session and the transport."""
        stack, self._stack, self._session = self._stack, None, None
        if stack is not None:
            await stack.aclose()

    async def __aenter__(self) -> _McpSessionGateway:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def list_tools(self) -> list[ToolDescriptor]:
        if self._session is None:
            msg = "Not connected to MCP server"
            raise GatewayError(msg)
        try:
            listing = await self._session.list_tools()
        except Exception as exc:
            msg = f"Failed to list MCP tools: {exc}"
            raise GatewayError(msg) from exc
        return [
            ToolDescriptor(
                name=tool.name,
                description=tool.description or "",
                parameters_schema=dict(
                    tool.inputSchema or {"type": "object", "properties": {}}
                ),
            )
            for tool in listing.tools
        ]

    async def call_tool(
        self, name: str, arguments: dict[str, Any]
    ) -> ToolInvocationOutcome:
        if self._session is None:
            return ToolInvocationOutcome.failure("Not connected to tool server")
        try:
            result = await self._session.call_tool(name, arguments=arguments)
        except Exception as exc:
            logger.warning("MCP call %s failed: %s", name, exc)
            return ToolInvocationOutcome.failure(f"Tool call failed: {exc}")
        return outcome_from_result(result)


class McpStdioGateway(_McpSessionGateway):
    """MCP server launched as a subprocess."""

    def __init__(
        self,
        command: str,
        args: list[str] | None = None,
        *,
        env: dict[str, str] | None = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(timeout=timeout)
        self._params = StdioServerParameters(
            command=command, args=list(args or []), env=env
        )

    async def _open_streams(self, stack: AsyncExitStack) -> tuple[Any, Any]:
        logger.debug("Starting MCP server: %s", self._params.command)
        return await stack.enter_async_context(stdio_client(self._params))


class McpHttpGateway(_McpSessionGateway):
    """Remote MCP server over streamable HTTP."""

    def __init__(self, url: str, *, timeout: float = 30.0) -> None:
        super().__init__(timeout=timeout)
        self._url = url

    async def _open_streams(self, stack: AsyncExitStack) -> tuple[Any, Any]:
        logger.debug("Connecting to MCP server: %s", self._url)
        read, write, _session_id = await stack.enter_async_context(
            streamablehttp_client(
                self._url, timeout=timedelta(seconds=self._timeout)
            )
        )
        return read, write
