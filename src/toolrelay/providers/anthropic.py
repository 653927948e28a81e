"""Anthropic (Claude) adapter — structured tool-call blocks.

Claude returns a list of typed content blocks. Any ``tool_use`` block
starts a tool round: every call in the reply is executed in order, the
results go back as ``tool_result`` blocks in one user message, and the
transcript is sent again until a reply carries no ``tool_use`` blocks.
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Any

import anthropic

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
from toolrelay.tools.base import ToolInvocationRequest

if TYPE_CHECKING:
    from collections.abc import Sequence

    from toolrelay.providers.base import Turn
    from toolrelay.tools.base import ToolDescriptor, ToolGateway

logger = logging.getLogger(__name__)

PROVIDER_ID = "anthropic"


def _map_error(e: anthropic.APIError) -> Exception:
    """Map Anthropic SDK errors to the toolrelay error hierarchy."""
    if isinstance(e, anthropic.AuthenticationError):
        return ProviderAuthError(PROVIDER_ID, str(e))
    if isinstance(e, anthropic.RateLimitError):
        retry_after = None
        if hasattr(e, "response") and e.response is not None:
            raw = e.response.headers.get("retry-after")
            if raw is not None:
                with contextlib.suppress(ValueError):
                    retry_after = float(raw)
        return ProviderRateLimitError(PROVIDER_ID, retry_after=retry_after)
    if isinstance(e, anthropic.APITimeoutError):
        return ProviderTimeoutError(PROVIDER_ID, str(e))
    if isinstance(e, anthropic.InternalServerError):
        return ProviderOverloadedError(PROVIDER_ID, str(e))
    if isinstance(e, anthropic.NotFoundError):
        return ModelNotFoundError(PROVIDER_ID, str(e))
    if isinstance(e, anthropic.BadRequestError) and "prompt is too long" in str(e):
        return ContextOverflowError(PROVIDER_ID, str(e))
    # Fallback for unknown API errors
    return ProviderOverloadedError(PROVIDER_ID, str(e))


def _tool_payload(tools: Sequence[ToolDescriptor]) -> list[dict[str, Any]]:
    """Convert descriptors to Anthropic's ``tools`` format."""
    payload: list[dict[str, Any]] = []
    for tool in tools:
        schema: dict[str, Any] = {"type": "object", "properties": tool.properties}
        if tool.required:
            schema["required"] = tool.required
        payload.append(
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": schema,
            }
        )
    return payload


def _block_to_dict(block: Any) -> dict[str, Any] | None:
    """Reduce a response content block to the params form we send back."""
    block_type = getattr(block, "type", None)
    if block_type == "text":
        return {"type": "text", "text": block.text}
    if block_type == "tool_use":
        return {
            "type": "tool_use",
            "id": block.id,
            "name": block.name,
            "input": dict(block.input or {}),
        }
    return None


def _turn_message(turn: Turn) -> dict[str, Any] | None:
    if isinstance(turn, UserTurn):
        return {"role": "user", "content": [{"type": "text", "text": turn.text}]}
    if isinstance(turn, ToolResultTurn):
        block: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": turn.tool_call_id,
            "content": turn.content,
        }
        if turn.is_error:
            block["is_error"] = True
        return {"role": "user", "content": [block]}
    blocks = list(turn.raw) if turn.raw else []
    if not blocks:
        if turn.text:
            blocks.append({"type": "text", "text": turn.text})
        blocks.extend(
            {"type": "tool_use", "id": c.id, "name": c.name, "input": c.arguments}
            for c in turn.tool_calls
        )
    if not blocks:
        # Claude rejects empty assistant messages
        return None
    return {"role": "assistant", "content": blocks}


def _build_messages(turns: Sequence[Turn]) -> list[dict[str, Any]]:
    """Convert turns to Anthropic messages, merging consecutive same-role ones.

    Result turns for one tool round therefore arrive as a single user
    message holding every ``tool_result`` block.
    """
    messages: list[dict[str, Any]] = []
    for turn in turns:
        msg = _turn_message(turn)
        if msg is None:
            continue
        if messages and messages[-1]["role"] == msg["role"]:
            messages[-1]["content"].extend(msg["content"])
        else:
            messages.append(msg)
    return messages


class AnthropicAdapter:
    """Conversation adapter for Anthropic's Messages API."""

    def __init__(
        self,
        model: str,
        tools: Sequence[ToolDescriptor],
        gateway: ToolGateway,
        *,
        api_key: str | None = None,
        client: anthropic.AsyncAnthropic | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        timeout: float | None = None,
        max_tool_rounds: int = 25,
    ) -> None:
        if client is None:
            kwargs: dict[str, Any] = {"api_key": api_key}
            if timeout is not None:
                kwargs["timeout"] = timeout
            client = anthropic.AsyncAnthropic(**kwargs)
        self._client = client
        self._model = model
        self._gateway = gateway
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._max_tool_rounds = max_tool_rounds
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

    def update_tools(self, tools: Sequence[ToolDescriptor]) -> None:
        self._tools = tuple(tools)
        self._tools_payload = _tool_payload(self._tools)

    def clear_history(self) -> None:
        self._history = []

    def get_history(self) -> list[Turn]:
        return list(self._history)

    async def aclose(self) -> None:
        await self._client.close()

    async def send_message(self, text: str) -> str:
        self._history.append(UserTurn(text))

        for round_num in range(self._max_tool_rounds + 1):
            response = await self._create(round_num)
            blocks = [
                b for b in (_block_to_dict(c) for c in response.content or []) if b
            ]
            calls = [
                ToolInvocationRequest(id=b["id"], name=b["name"], arguments=b["input"])
                for b in blocks
                if b["type"] == "tool_use"
            ]
            answer = "".join(b["text"] for b in blocks if b["type"] == "text")

            if not calls:
                self._history.append(AssistantTurn(text=answer, raw=blocks or None))
                return answer

            if round_num >= self._max_tool_rounds:
                raise ToolLoopLimitError(PROVIDER_ID, self._max_tool_rounds)

            self._history.append(
                AssistantTurn(text=answer, tool_calls=tuple(calls), raw=blocks)
            )
            for call in calls:
                self._history.append(await invoke_tool(self._gateway, call))

        # Unreachable: the last round either returns or raises
        raise ToolLoopLimitError(PROVIDER_ID, self._max_tool_rounds)

    async def _create(self, round_num: int) -> Any:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "messages": _build_messages(self._history),
        }
        if self._tools_payload:
            kwargs["tools"] = self._tools_payload

        logger.debug(
            "[%s] round %d: %d turns, %d tools",
            PROVIDER_ID,
            round_num,
            len(self._history),
            len(self._tools_payload),
        )
        try:
            return await self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise _map_error(e) from e
