"""OpenAI adapter — inline function calls on Chat Completions.

Tool calls arrive as ``message.tool_calls``, one flat list per reply, each
with JSON-encoded arguments. Every request is prefixed with a system
message carrying today's date, and the transcript is fitted to the
model's context window before each send.
"""

from __future__ import annotations

import contextlib
import json
import logging
from datetime import date
from typing import TYPE_CHECKING, Any

import openai

from toolrelay.core.errors import (
    ContextOverflowError,
    ModelNotFoundError,
    ProviderAuthError,
    ProviderOverloadedError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ToolLoopLimitError,
)
from toolrelay.providers.base import (
    AssistantTurn,
    ToolResultTurn,
    UserTurn,
    invoke_tool,
)
from toolrelay.providers.budget import ContextBudgetManager
from toolrelay.tools.base import ToolInvocationRequest

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from toolrelay.config.schema import BudgetConfig
    from toolrelay.providers.base import Turn
    from toolrelay.providers.budget import BudgetStats
    from toolrelay.tools.base import ToolDescriptor, ToolGateway

logger = logging.getLogger(__name__)

PROVIDER_ID = "openai"

# Context windows of known models; unknown models get _DEFAULT_CONTEXT_WINDOW.
_KNOWN_MODELS: list[dict[str, Any]] = [
    {"model_id": "gpt-5", "context_window": 400_000},
    {"model_id": "gpt-5-mini", "context_window": 400_000},
    {"model_id": "gpt-4.1", "context_window": 1_047_576},
    {"model_id": "gpt-4.1-mini", "context_window": 1_047_576},
    {"model_id": "gpt-4o", "context_window": 128_000},
    {"model_id": "gpt-4o-mini", "context_window": 128_000},
    {"model_id": "gpt-4-turbo", "context_window": 128_000},
    {"model_id": "gpt-4-turbo-preview", "context_window": 128_000},
    {"model_id": "gpt-4", "context_window": 8_192},
    {"model_id": "gpt-3.5-turbo", "context_window": 16_385},
]

_DEFAULT_CONTEXT_WINDOW = 128_000

_CONTEXT_OVERFLOW_MARKERS = ("context_length_exceeded", "maximum context length")


def context_window_for(model_id: str) -> int:
    """Context window of ``model_id``, or the default for unknown models."""
    for m in _KNOWN_MODELS:
        if m["model_id"] == model_id:
            return int(m["context_window"])
    return _DEFAULT_CONTEXT_WINDOW


def _is_context_overflow(e: openai.APIError) -> bool:
    if getattr(e, "code", None) == "context_length_exceeded":
        return True
    text = str(e).lower()
    return any(marker in text for marker in _CONTEXT_OVERFLOW_MARKERS)


def _map_error(e: openai.APIError) -> Exception:
    """Map OpenAI SDK errors to the toolrelay error hierarchy."""
    if isinstance(e, openai.AuthenticationError):
        return ProviderAuthError(PROVIDER_ID, str(e))
    if isinstance(e, openai.RateLimitError):
        retry_after = None
        if hasattr(e, "response") and e.response is not None:
            raw = e.response.headers.get("retry-after")
            if raw is not None:
                with contextlib.suppress(ValueError):
                    retry_after = float(raw)
        return ProviderRateLimitError(PROVIDER_ID, retry_after=retry_after)
    if isinstance(e, openai.APITimeoutError):
        return ProviderTimeoutError(PROVIDER_ID, str(e))
    if isinstance(e, openai.InternalServerError):
        return ProviderOverloadedError(PROVIDER_ID, str(e))
    if isinstance(e, openai.NotFoundError):
        return ModelNotFoundError(PROVIDER_ID, str(e))
    if isinstance(e, openai.BadRequestError) and _is_context_overflow(e):
        return ContextOverflowError(PROVIDER_ID, str(e))
    # Fallback for unknown API errors
    return ProviderOverloadedError(PROVIDER_ID, str(e))


def system_instruction(today: date) -> str:
    """System message sent ahead of every request."""
    return (
        f"Today's date is {today.isoformat()}. Treat this date as ground truth "
        "for any reasoning about time, such as how long ago something happened, "
        "even if it disagrees with your training data. When a tool returns "
        "fresh information, prefer it over your own assumptions."
    )


def _tool_payload(tools: Sequence[ToolDescriptor]) -> list[dict[str, Any]]:
    """Convert descriptors to OpenAI's function-tool format."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters_schema
                or {"type": "object", "properties": {}},
            },
        }
        for tool in tools
    ]


def _turn_message(turn: Turn) -> dict[str, Any]:
    """One chat message per turn."""
    if isinstance(turn, UserTurn):
        return {"role": "user", "content": turn.text}
    if isinstance(turn, ToolResultTurn):
        return {
            "role": "tool",
            "tool_call_id": turn.tool_call_id,
            "content": turn.content,
        }
    if turn.raw is not None:
        return dict(turn.raw)
    msg: dict[str, Any] = {"role": "assistant", "content": turn.text}
    if turn.tool_calls:
        msg["tool_calls"] = [
            {
                "id": c.id,
                "type": "function",
                "function": {"name": c.name, "arguments": json.dumps(c.arguments)},
            }
            for c in turn.tool_calls
        ]
    return msg


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    """Decode a tool call's argument string.

    Raises:
        ValueError: If the string is not a JSON object.
    """
    if not raw or not raw.strip():
        return {}
    args = json.loads(raw)
    if not isinstance(args, dict):
        msg = f"expected a JSON object, got {type(args).__name__}"
        raise ValueError(msg)
    return args


class OpenAIAdapter:
    """Conversation adapter for OpenAI's Chat Completions API."""

    def __init__(
        self,
        model: str,
        tools: Sequence[ToolDescriptor],
        gateway: ToolGateway,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        client: openai.AsyncOpenAI | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        timeout: float | None = None,
        max_tool_rounds: int = 25,
        budget: BudgetConfig | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        if client is None:
            kwargs: dict[str, Any] = {"api_key": api_key}
            if base_url is not None:
                kwargs["base_url"] = base_url
            if timeout is not None:
                kwargs["timeout"] = timeout
            client = openai.AsyncOpenAI(**kwargs)
        self._client = client
        self._model = model
        self._gateway = gateway
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._max_tool_rounds = max_tool_rounds
        self._today = today
        self._budget = ContextBudgetManager(
            PROVIDER_ID,
            context_window_for(model),
            max_tokens,
            config=budget,
            render=_turn_message,
        )
        self._budget.set_system_prompt(system_instruction(today()))
        self._history: list[Turn] = []
        self._tools: tuple[ToolDescriptor, ...] = ()
        self._tools_payload: list[dict[str, Any]] = []
        self.update_tools(tools)

    @property
    def provider_id(self) -> str:
        return PROVIDER_ID

    @property
    def model(self) -> str:
        return self._model

    @property
    def budget(self) -> ContextBudgetManager:
        return self._budget

    def update_tools(self, tools: Sequence[ToolDescriptor]) -> None:
        self._tools = tuple(tools)
        self._tools_payload = _tool_payload(self._tools)
        self._budget.set_tools(self._tools_payload)

    def clear_history(self) -> None:
        self._history = []

    def get_history(self) -> list[Turn]:
        return list(self._history)

    def stats(self) -> BudgetStats:
        """Estimated context usage of the current conversation."""
        return self._budget.stats(self._history)

    async def aclose(self) -> None:
        await self._client.close()

    async def send_message(self, text: str) -> str:
        self._history.append(UserTurn(text))
        overflow_retried = False

        for round_num in range(self._max_tool_rounds + 1):
            try:
                message = await self._create(round_num)
            except ContextOverflowError as e:
                if overflow_retried:
                    raise self._terminal_overflow() from e
                overflow_retried = True
                logger.warning(
                    "[%s] Context overflow despite trimming; "
                    "restarting conversation from the current message",
                    PROVIDER_ID,
                )
                self._history = [UserTurn(text)]
                try:
                    message = await self._create(round_num)
                except ContextOverflowError as retry_error:
                    raise self._terminal_overflow() from retry_error

            if message is None:
                self._history.append(AssistantTurn(text=""))
                return ""

            tool_calls = getattr(message, "tool_calls", None) or []
            content = message.content or ""
            if not tool_calls:
                self._history.append(AssistantTurn(text=content))
                return content

            if round_num >= self._max_tool_rounds:
                raise ToolLoopLimitError(PROVIDER_ID, self._max_tool_rounds)

            await self._run_tool_calls(content, tool_calls)

        raise ToolLoopLimitError(PROVIDER_ID, self._max_tool_rounds)

    async def _run_tool_calls(self, content: str, tool_calls: list[Any]) -> None:
        """Record the assistant's calls, then execute them in order."""
        requests: list[ToolInvocationRequest] = []
        parse_errors: dict[str, str] = {}
        raw_calls: list[dict[str, Any]] = []
        for tc in tool_calls:
            raw_args = tc.function.arguments
            raw_calls.append(
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.function.name, "arguments": raw_args},
                }
            )
            try:
                args = _parse_arguments(raw_args)
            except ValueError as exc:
                args = {}
                parse_errors[tc.id] = f"Invalid tool arguments: {exc}"
            requests.append(
                ToolInvocationRequest(
                    id=tc.id, name=tc.function.name, arguments=args
                )
            )

        raw = {
            "role": "assistant",
            "content": content or None,
            "tool_calls": raw_calls,
        }
        self._history.append(
            AssistantTurn(text=content, tool_calls=tuple(requests), raw=raw)
        )

        for request in requests:
            if request.id in parse_errors:
                logger.warning(
                    "[%s] %s for %s",
                    PROVIDER_ID,
                    parse_errors[request.id],
                    request.name,
                )
                self._history.append(
                    ToolResultTurn(
                        tool_call_id=request.id,
                        tool_name=request.name,
                        error=parse_errors[request.id],
                    )
                )
                continue
            self._history.append(await invoke_tool(self._gateway, request))

    def _fit_history(self) -> None:
        """Refresh the system prompt cost and trim the transcript if needed."""
        self._budget.set_system_prompt(system_instruction(self._today()))
        fitted = self._budget.fit(self._history)
        if len(fitted) != len(self._history):
            self._history = fitted

    async def _create(self, round_num: int) -> Any:
        """Send the transcript; return the first choice's message or None."""
        self._fit_history()
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": system_instruction(self._today())}
        ]
        messages.extend(_turn_message(t) for t in self._history)

        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_completion_tokens": self._max_tokens,
            "temperature": self._temperature,
            "messages": messages,
        }
        if self._tools_payload:
            kwargs["tools"] = self._tools_payload
            kwargs["tool_choice"] = "auto"

        logger.debug(
            "[%s] round %d: %d turns, %d tools",
            PROVIDER_ID,
            round_num,
            len(self._history),
            len(self._tools_payload),
        )
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            raise _map_error(e) from e

        if not response.choices:
            return None
        return response.choices[0].message

    def _terminal_overflow(self) -> ContextOverflowError:
        ceiling = self._budget.context_window
        return ContextOverflowError(
            PROVIDER_ID,
            f"Message does not fit the {ceiling:,}-token context window of "
            f"{self._model} even with the conversation cleared; "
            "use a model with a larger context window",
            ceiling=ceiling,
        )
