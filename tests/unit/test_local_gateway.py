"""Tests for the in-process tool gateway and demo tools."""

from __future__ import annotations

from typing import Any

import pytest

from toolrelay.tools.local import (
    CurrentTimeTool,
    EchoTool,
    LocalToolGateway,
    Tool,
    demo_gateway,
)


class _BrokenTool:
    name = "broken"
    description = "Always fails"
    parameters_schema: dict[str, Any] = {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> Any:
        msg = "disk on fire"
        raise RuntimeError(msg)


class TestLocalGateway:
    def test_demo_tools_satisfy_protocol(self):
        assert isinstance(EchoTool(), Tool)
        assert isinstance(CurrentTimeTool(), Tool)

    def test_duplicate_registration_rejected(self):
        gw = LocalToolGateway([EchoTool()])
        with pytest.raises(ValueError, match="already registered"):
            gw.register(EchoTool())

    async def test_list_tools(self):
        tools = await demo_gateway().list_tools()
        names = [t.name for t in tools]
        assert names == ["echo", "current_time"]
        assert tools[0].required == ["message"]

    async def test_call_echo(self):
        outcome = await demo_gateway().call_tool("echo", {"message": "hi"})
        assert outcome.succeeded
        assert outcome.value["message"] == "hi"
        assert "echoed_at" in outcome.value

    async def test_echo_missing_message_is_failure(self):
        outcome = await demo_gateway().call_tool("echo", {})
        assert not outcome.succeeded
        assert "message is required" in outcome.reason

    async def test_current_time(self):
        outcome = await demo_gateway().call_tool("current_time", {})
        assert outcome.succeeded
        assert set(outcome.value) == {"date", "time"}

    async def test_unknown_tool(self):
        outcome = await LocalToolGateway().call_tool("nope", {})
        assert not outcome.succeeded
        assert outcome.reason == "Unknown tool: nope"

    async def test_exception_becomes_failure(self):
        gw = LocalToolGateway([_BrokenTool()])
        outcome = await gw.call_tool("broken", {})
        assert not outcome.succeeded
        assert outcome.reason == "Tool execution error: disk on fire"

    async def test_async_context_manager(self):
        async with demo_gateway() as gw:
            assert len(await gw.list_tools()) == 2
