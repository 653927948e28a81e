"""Ollama adapter — tool calls recognised in free text.

Local models served through Ollama's plain completion endpoint have no
native tool calling. The tools are described in a system preamble that
asks the model to answer with ``{"tool_name": ..., "parameters": {...}}``
when it wants one; the reply is scanned for the first JSON object and,
if that object has both fields, the tool is run once and the model is
asked to phrase an answer from the result.

Detection is intentionally narrow. Valid JSON that lacks either field is
returned to the user verbatim, and at most one tool runs per message.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import TYPE_CHECKING, Any

import httpx

from toolrelay.core.errors import (
    ModelNotFoundError,
    ProviderError,
    ProviderOverloadedError,
    ProviderTimeoutError,
)
from toolrelay.providers.base import (
    AssistantTurn,
    ToolResultTurn,
    UserTurn,
    invoke_tool,
    serialize_value,
)
from toolrelay.tools.base import ToolInvocationRequest

if TYPE_CHECKING:
    from collections.abc import Sequence

    from toolrelay.providers.base import Turn
    from toolrelay.tools.base import ToolDescriptor, ToolGateway

logger = logging.getLogger(__name__)

PROVIDER_ID = "ollama"

# Local inference is slow; the vendor SDK defaults are far too short.
DEFAULT_TIMEOUT = 60.0

_BASE_SYSTEM_PROMPT = "You are a helpful AI assistant."

_DECODER = json.JSONDecoder()


def _map_error(e: httpx.HTTPError, base_url: str) -> ProviderError:
    """Map httpx errors to the toolrelay error hierarchy."""
    if isinstance(e, httpx.TimeoutException):
        return ProviderTimeoutError(PROVIDER_ID, f"Request timed out: {e}")
    if isinstance(e, httpx.HTTPStatusError):
        detail = e.response.text
        try:
            body = e.response.json()
            if isinstance(body, dict) and body.get("error"):
                detail = str(body["error"])
        except ValueError:
            pass
        if e.response.status_code == 404:
            return ModelNotFoundError(PROVIDER_ID, detail)
        return ProviderOverloadedError(
            PROVIDER_ID, f"HTTP {e.response.status_code}: {detail}"
        )
    if isinstance(e, httpx.ConnectError):
        return ProviderOverloadedError(
            PROVIDER_ID, f"Cannot reach Ollama at {base_url}: {e}"
        )
    return ProviderOverloadedError(PROVIDER_ID, str(e))


def find_json_object(text: str) -> dict[str, Any] | None:
    """Return the first JSON object embedded in ``text``, or None.

    Scans each ``{`` left to right and decodes from there; the first
    position that decodes wins, even if a later one would too.
    """
    start = text.find("{")
    while start != -1:
        try:
            obj, _end = _DECODER.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        return obj if isinstance(obj, dict) else None
    return None


def extract_tool_call(text: str) -> tuple[str, dict[str, Any]] | None:
    """Return ``(tool_name, parameters)`` if ``text`` holds a tool call."""
    obj = find_json_object(text)
    if obj is None:
        return None
    name = obj.get("tool_name")
    params = obj.get("parameters")
    if not isinstance(name, str) or not name or not isinstance(params, dict):
        logger.debug("JSON in completion is not a tool call: %s", list(obj))
        return None
    return name, params


def _flatten_parameters(tool: ToolDescriptor) -> str:
    if not tool.properties:
        return "none"
    parts = []
    for name, schema in tool.properties.items():
        if isinstance(schema, dict):
            detail = schema.get("description") or schema.get("type") or "any"
        else:
            detail = "any"
        parts.append(f"{name}: {detail}")
    return ", ".join(parts)


def build_system_prompt(tools: Sequence[ToolDescriptor]) -> str:
    """Describe the tools and the JSON reply format."""
    if not tools:
        return _BASE_SYSTEM_PROMPT

    descriptions = "\n".join(
        f"- {t.name}: {t.description}. Parameters: {_flatten_parameters(t)}"
        for t in tools
    )
    return (
        "You are a helpful AI assistant with access to the following tools:\n\n"
        f"{descriptions}\n\n"
        "When you need to use a tool, respond with a JSON object in this "
        "exact format:\n"
        "{\n"
        '  "tool_name": "tool_name_here",\n'
        '  "parameters": {\n'
        '    "param1": "value1",\n'
        '    "param2": "value2"\n'
        "  }\n"
        "}\n\n"
        "If you don't need to use a tool, respond normally with text."
    )


def _history_line(turn: Turn) -> str:
    if isinstance(turn, UserTurn):
        return f"user: {turn.text}"
    if isinstance(turn, ToolResultTurn):
        return f"tool: {turn.tool_name} returned {turn.content}"
    return f"assistant: {turn.text}"


class OllamaAdapter:
    """Conversation adapter for a local Ollama server."""

    def __init__(
        self,
        model: str,
        tools: Sequence[ToolDescriptor],
        gateway: ToolGateway,
        *,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        timeout: float | None = None,
        history_window: int = 10,
        fallback_answer: str = "Tool executed successfully.",
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else DEFAULT_TIMEOUT,
            headers={"Content-Type": "application/json"},
        )
        self._model = model
        self._gateway = gateway
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._history_window = history_window
        self._fallback_answer = fallback_answer
        self._history: list[Turn] = []
        self._tools: tuple[ToolDescriptor, ...] = ()
        self._system_prompt = _BASE_SYSTEM_PROMPT
        self.update_tools(tools)

    @property
    def provider_id(self) -> str:
        return PROVIDER_ID

    @property
    def model(self) -> str:
        return self._model

    def update_tools(self, tools: Sequence[ToolDescriptor]) -> None:
        self._tools = tuple(tools)
        self._system_prompt = build_system_prompt(self._tools)

    def clear_history(self) -> None:
        self._history = []

    def get_history(self) -> list[Turn]:
        return list(self._history)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _build_prompt(self, system_prompt: str, message: str) -> str:
        recent = self._history[-self._history_window :] if self._history_window else []
        history = "\n".join(_history_line(t) for t in recent)
        return f"{system_prompt}\n\n{history}\n\nuser: {message}\nassistant:"

    async def send_message(self, text: str) -> str:
        prompt = self._build_prompt(self._system_prompt, text)
        self._history.append(UserTurn(text))

        completion = await self._generate(prompt)
        call = extract_tool_call(completion)
        if call is None:
            self._history.append(AssistantTurn(text=completion))
            return completion

        name, params = call
        request = ToolInvocationRequest(
            id=f"call_{uuid.uuid4().hex[:12]}", name=name, arguments=params
        )
        self._history.append(AssistantTurn(text=completion, tool_calls=(request,)))
        result = await invoke_tool(self._gateway, request)
        self._history.append(result)

        if result.is_error:
            follow_up = (
                f"Tool '{name}' failed: {result.error}\n\n"
                "Please explain this to the user and suggest what to do next."
            )
        else:
            follow_up = (
                f"Tool '{name}' returned: {serialize_value(result.payload)}\n\n"
                "Please provide a helpful response to the user based on this "
                "tool result."
            )
        answer = await self._generate(
            self._build_prompt(_BASE_SYSTEM_PROMPT, follow_up)
        )
        answer = answer or self._fallback_answer
        self._history.append(AssistantTurn(text=answer))
        return answer

    async def _generate(self, prompt: str) -> str:
        """Run one completion; an empty or malformed body yields ``""``."""
        payload = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "num_predict": self._max_tokens,
                "temperature": self._temperature,
            },
        }
        logger.debug("[%s] generate: %d chars", PROVIDER_ID, len(prompt))
        try:
            response = await self._client.post(
                f"{self._base_url}/api/generate", json=payload
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise _map_error(e, self._base_url) from e

        try:
            body = response.json()
        except ValueError:
            logger.warning("[%s] Non-JSON response body", PROVIDER_ID)
            return ""
        if not isinstance(body, dict):
            return ""
        return str(body.get("response") or "")
