"""Tests for the OpenAI adapter (mocked SDK)."""

from __future__ import annotations

from datetime import date
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest

from tests.fixtures.gateways import FakeGateway
from toolrelay.config.schema import BudgetConfig
from toolrelay.core.errors import (
    BudgetExhaustedError,
    ContextOverflowError,
    ModelNotFoundError,
    ProviderAuthError,
    ProviderOverloadedError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ToolLoopLimitError,
)
from toolrelay.providers.base import AssistantTurn, ProviderAdapter, UserTurn
from toolrelay.providers.budget import BudgetStats
from toolrelay.providers.openai import (
    PROVIDER_ID,
    OpenAIAdapter,
    _map_error,
    _parse_arguments,
    context_window_for,
    system_instruction,
)

TODAY = date(2025, 3, 14)

# ─── Helpers ──────────────────────────────────────────────────


def _tool_call(call_id: str, arguments: str, name: str = "echo") -> SimpleNamespace:
    return SimpleNamespace(
        id=call_id,
        type="function",
        function=SimpleNamespace(name=name, arguments=arguments),
    )


def _response(content: str | None = "", *tool_calls: Any) -> SimpleNamespace:
    message = SimpleNamespace(content=content, tool_calls=list(tool_calls) or None)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _make_client(*responses: Any) -> MagicMock:
    """Create a mocked AsyncOpenAI client returning ``responses`` in order."""
    client = MagicMock(spec=openai.AsyncOpenAI)
    client.chat = MagicMock()
    client.chat.completions = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=list(responses))
    client.close = AsyncMock()
    return client


def _adapter(client: MagicMock, gateway: Any = None, **kwargs: Any) -> OpenAIAdapter:
    gateway = gateway if gateway is not None else FakeGateway()
    return OpenAIAdapter(
        "gpt-4o", gateway.tools, gateway, client=client, today=lambda: TODAY, **kwargs
    )


def _sent_messages(client: MagicMock, call: int) -> list[dict[str, Any]]:
    return client.chat.completions.create.call_args_list[call].kwargs["messages"]


def _api_error(
    cls: type, status_code: int = 400, message: str = "test error", body: Any = None
) -> openai.APIError:
    response = MagicMock()
    response.status_code = status_code
    response.headers = {}
    return cls(message=message, response=response, body=body)


def _overflow() -> openai.BadRequestError:
    return _api_error(
        openai.BadRequestError,
        message="This model's maximum context length is 128000 tokens",
        body={"code": "context_length_exceeded"},
    )


# ─── Protocol & helpers ───────────────────────────────────────


class TestProtocol:
    def test_provider_id(self):
        assert _adapter(_make_client()).provider_id == PROVIDER_ID

    def test_satisfies_protocol(self):
        assert isinstance(_adapter(_make_client()), ProviderAdapter)

    def test_context_window_lookup(self):
        assert context_window_for("gpt-4") == 8_192
        assert context_window_for("gpt-4o") == 128_000
        assert context_window_for("some-future-model") == 128_000

    def test_system_instruction_carries_date(self):
        text = system_instruction(TODAY)
        assert text.startswith("Today's date is 2025-03-14.")

    def test_parse_arguments(self):
        assert _parse_arguments('{"a": 1}') == {"a": 1}
        assert _parse_arguments("") == {}
        assert _parse_arguments(None) == {}
        with pytest.raises(ValueError):
            _parse_arguments("[1, 2]")
        with pytest.raises(ValueError):
            _parse_arguments("{not json")


# ─── Send ─────────────────────────────────────────────────────


class TestSend:
    async def test_plain_answer_with_date_system_message(self):
        client = _make_client(_response("Hello"))
        adapter = _adapter(client)
        assert await adapter.send_message("hi") == "Hello"
        messages = _sent_messages(client, 0)
        assert messages[0]["role"] == "system"
        assert "2025-03-14" in messages[0]["content"]
        assert messages[1] == {"role": "user", "content": "hi"}
        assert adapter.get_history() == [UserTurn("hi"), AssistantTurn(text="Hello")]

    async def test_request_parameters(self):
        client = _make_client(_response("ok"))
        await _adapter(client, max_tokens=222, temperature=0.1).send_message("hi")
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["max_completion_tokens"] == 222
        assert kwargs["temperature"] == 0.1
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["tools"][0]["function"]["name"] == "echo"

    async def test_no_tools_omits_tool_parameters(self):
        client = _make_client(_response("ok"))
        adapter = OpenAIAdapter("gpt-4o", [], FakeGateway([]), client=client)
        await adapter.send_message("hi")
        kwargs = client.chat.completions.create.call_args.kwargs
        assert "tools" not in kwargs
        assert "tool_choice" not in kwargs

    async def test_tool_calls_executed_in_order(self):
        gateway = FakeGateway()
        client = _make_client(
            _response(
                None,
                _tool_call("c1", '{"message": "one"}'),
                _tool_call("c2", '{"message": "two"}'),
            ),
            _response("All done"),
        )
        adapter = _adapter(client, gateway)

        assert await adapter.send_message("go") == "All done"
        assert gateway.calls == [
            ("echo", {"message": "one"}),
            ("echo", {"message": "two"}),
        ]
        assert client.chat.completions.create.await_count == 2

        messages = _sent_messages(client, 1)
        assert [m["role"] for m in messages] == [
            "system",
            "user",
            "assistant",
            "tool",
            "tool",
        ]
        assert messages[2]["tool_calls"][0]["function"]["arguments"] == (
            '{"message": "one"}'
        )
        assert [m["tool_call_id"] for m in messages[3:]] == ["c1", "c2"]

    async def test_malformed_arguments_reported_without_calling_tool(self):
        gateway = FakeGateway()
        client = _make_client(
            _response(None, _tool_call("c1", "{not json")),
            _response("Let me fix that"),
        )
        adapter = _adapter(client, gateway)

        assert await adapter.send_message("go") == "Let me fix that"
        assert gateway.calls == []
        tool_msg = _sent_messages(client, 1)[3]
        assert tool_msg["role"] == "tool"
        assert tool_msg["tool_call_id"] == "c1"
        assert tool_msg["content"].startswith(
            "Error calling tool: Invalid tool arguments"
        )

    async def test_empty_arguments_mean_no_arguments(self):
        gateway = FakeGateway()
        client = _make_client(
            _response(None, _tool_call("c1", "")), _response("done")
        )
        await _adapter(client, gateway).send_message("go")
        assert gateway.calls == [("echo", {})]

    async def test_no_choices_yields_empty_answer(self):
        client = _make_client(SimpleNamespace(choices=[]))
        adapter = _adapter(client)
        assert await adapter.send_message("hi") == ""
        assert adapter.get_history()[-1] == AssistantTurn(text="")

    async def test_null_content_yields_empty_answer(self):
        client = _make_client(_response(None))
        assert await _adapter(client).send_message("hi") == ""

    async def test_tool_loop_limit(self):
        responses = [_response(None, _tool_call(f"c{i}", "{}")) for i in range(2)]
        client = _make_client(*responses)
        adapter = _adapter(client, max_tool_rounds=1)
        with pytest.raises(ToolLoopLimitError):
            await adapter.send_message("loop")

    async def test_stats(self):
        client = _make_client(_response("Hello"))
        adapter = _adapter(client)
        await adapter.send_message("hi")
        stats = adapter.stats()
        assert isinstance(stats, BudgetStats)
        assert stats.message_count == 2
        assert stats.model_limit == 128_000
        assert stats.tool_tokens > 0
        assert stats.system_tokens > 0

    async def test_update_tools_changes_budget(self):
        adapter = _adapter(_make_client())
        before = adapter.budget.tool_tokens
        adapter.update_tools([])
        assert adapter.budget.tool_tokens == 0
        assert before > 0

    async def test_aclose(self):
        client = _make_client()
        await _adapter(client).aclose()
        client.close.assert_awaited_once()


# ─── Context budget ───────────────────────────────────────────


class TestContextBudget:
    async def test_old_turns_trimmed_before_send(self):
        client = _make_client(
            _response("a" * 600), _response("b" * 600), _response("c")
        )
        adapter = _adapter(
            client, max_tokens=100, budget=BudgetConfig(context_window=600)
        )
        await adapter.send_message("first")
        await adapter.send_message("second")
        await adapter.send_message("third")

        messages = _sent_messages(client, 2)
        user_texts = [m["content"] for m in messages if m["role"] == "user"]
        assert user_texts == ["third"]
        assert messages[-1] == {"role": "user", "content": "third"}
        assert adapter.get_history()[-1] == AssistantTurn(text="c")

    async def test_exhausted_budget_fails_before_any_call(self):
        client = _make_client(_response("never"))
        adapter = _adapter(
            client, max_tokens=1000, budget=BudgetConfig(context_window=500)
        )
        with pytest.raises(BudgetExhaustedError):
            await adapter.send_message("hi")
        client.chat.completions.create.assert_not_awaited()

    async def test_overflow_recovers_by_clearing_history(self):
        client = _make_client(_response("old answer"), _overflow(), _response("ok"))
        adapter = _adapter(client)
        await adapter.send_message("earlier")

        assert await adapter.send_message("new question") == "ok"
        assert adapter.get_history() == [
            UserTurn("new question"),
            AssistantTurn(text="ok"),
        ]
        retry = _sent_messages(client, 2)
        assert [m["role"] for m in retry] == ["system", "user"]

    async def test_second_overflow_is_terminal(self):
        client = _make_client(_overflow(), _overflow())
        adapter = _adapter(client)
        with pytest.raises(ContextOverflowError) as exc_info:
            await adapter.send_message("huge")
        err = exc_info.value
        assert err.ceiling == 128_000
        assert "larger context window" in str(err)
        assert client.chat.completions.create.await_count == 2


# ─── Error mapping ────────────────────────────────────────────


class TestErrorMapping:
    def test_auth_error(self):
        err = _api_error(openai.AuthenticationError, 401)
        assert isinstance(_map_error(err), ProviderAuthError)

    def test_rate_limit_with_retry_after(self):
        err = _api_error(openai.RateLimitError, 429)
        err.response.headers = {"retry-after": "7"}
        mapped = _map_error(err)
        assert isinstance(mapped, ProviderRateLimitError)
        assert mapped.retry_after == 7.0

    def test_timeout_error(self):
        err = openai.APITimeoutError(request=MagicMock())
        assert isinstance(_map_error(err), ProviderTimeoutError)

    def test_internal_server_error(self):
        err = _api_error(openai.InternalServerError, 500)
        assert isinstance(_map_error(err), ProviderOverloadedError)

    def test_not_found_error(self):
        err = _api_error(openai.NotFoundError, 404)
        assert isinstance(_map_error(err), ModelNotFoundError)

    def test_context_overflow_by_code(self):
        assert isinstance(_map_error(_overflow()), ContextOverflowError)

    def test_context_overflow_by_message(self):
        err = _api_error(
            openai.BadRequestError, message="maximum context length exceeded"
        )
        assert isinstance(_map_error(err), ContextOverflowError)

    async def test_send_raises_mapped_error(self):
        client = _make_client(_api_error(openai.AuthenticationError, 401))
        adapter = _adapter(client)
        with pytest.raises(ProviderAuthError):
            await adapter.send_message("hi")
        assert adapter.get_history() == [UserTurn("hi")]
