"""REST tool gateway over ``httpx``.

For tool servers that expose a plain HTTP API instead of MCP:

    GET  {base_url}/tools          -> [{name, description, inputSchema}, ...]
    POST {base_url}/tools/{name}   -> {success, result?, error?}
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from toolrelay.core.errors import GatewayError
from toolrelay.tools.base import ToolDescriptor, ToolInvocationOutcome

logger = logging.getLogger(__name__)


class RestToolGateway:
    """Tool gateway for a REST tool server."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def connect(self) -> None:
        """Verify the server answers its tool listing."""
        await self.list_tools()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> RestToolGateway:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def list_tools(self) -> list[ToolDescriptor]:
        try:
            response = await self._client.get(f"{self._base_url}/tools")
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"Failed to list tools from {self._base_url}: {exc}"
            raise GatewayError(msg) from exc

        entries = payload.get("tools", []) if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            msg = f"Unexpected tool listing from {self._base_url}"
            raise GatewayError(msg)
        try:
            return [ToolDescriptor.from_dict(entry) for entry in entries]
        except (KeyError, TypeError) as exc:
            msg = f"Malformed tool listing from {self._base_url}: {exc}"
            raise GatewayError(msg) from exc

    async def call_tool(
        self, name: str, arguments: dict[str, Any]
    ) -> ToolInvocationOutcome:
        url = f"{self._base_url}/tools/{quote(name, safe='')}"
        try:
            response = await self._client.post(url, json=arguments)
        except httpx.HTTPError as exc:
            logger.warning("REST tool %s unreachable: %s", name, exc)
            return ToolInvocationOutcome.failure(f"Tool call failed: {exc}")

        if response.status_code == 404:
            return ToolInvocationOutcome.failure(f"Unknown tool: {name}")
        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            detail = body.get("error") if isinstance(body, dict) else None
            return ToolInvocationOutcome.failure(
                detail or f"HTTP {response.status_code}: {response.reason_phrase}"
            )
        if isinstance(body, dict) and "success" in body:
            if body["success"]:
                return ToolInvocationOutcome.success(body.get("result"))
            return ToolInvocationOutcome.failure(
                str(body.get("error") or "Tool call failed")
            )
        if body is None:
            return ToolInvocationOutcome.success(response.text)
        return ToolInvocationOutcome.success(body)
