"""Provider adapter interface and conversation data classes.

All provider adapters implement the ``ProviderAdapter`` protocol. Each
adapter owns its transcript: an append-only list of turns that is the
model's entire memory. Turns are immutable (frozen dataclasses with slots).

Transcript invariant: every ``ToolInvocationRequest`` carried by an
``AssistantTurn`` is answered by exactly one ``ToolResultTurn`` before the
transcript is sent to the model again.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from toolrelay.tools.base import ToolInvocationOutcome

if TYPE_CHECKING:
    from collections.abc import Sequence

    from toolrelay.tools.base import (
        ToolDescriptor,
        ToolGateway,
        ToolInvocationRequest,
    )

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UserTurn:
    """A message typed by the user."""

    text: str


@dataclass(frozen=True, slots=True)
class AssistantTurn:
    """A model reply, possibly requesting tool calls.

    ``raw`` keeps the provider-native form of the reply so it can be sent
    back verbatim; it is not part of equality.
    """

    text: str
    tool_calls: tuple[ToolInvocationRequest, ...] = ()
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class ToolResultTurn:
    """The outcome of one tool call, addressed to the call that asked for it."""

    tool_call_id: str
    tool_name: str
    payload: Any = None
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def content(self) -> str:
        """Text form sent to the model."""
        if self.error is not None:
            return f"Error calling tool: {self.error}"
        return serialize_value(self.payload)

    @classmethod
    def from_outcome(
        cls, request: ToolInvocationRequest, outcome: ToolInvocationOutcome
    ) -> ToolResultTurn:
        if outcome.succeeded:
            return cls(
                tool_call_id=request.id, tool_name=request.name, payload=outcome.value
            )
        return cls(
            tool_call_id=request.id,
            tool_name=request.name,
            error=outcome.reason or "Tool call failed",
        )


Turn = UserTurn | AssistantTurn | ToolResultTurn


def is_tool_bearing(turn: Turn) -> bool:
    """True for turns that request tool calls or carry tool results."""
    if isinstance(turn, ToolResultTurn):
        return True
    return isinstance(turn, AssistantTurn) and bool(turn.tool_calls)


def serialize_value(value: Any) -> str:
    """Serialize a tool result for the model. Strings pass through."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


async def invoke_tool(
    gateway: ToolGateway, request: ToolInvocationRequest
) -> ToolResultTurn:
    """Execute one tool call and wrap the outcome as a result turn.

    Never raises: a gateway that raises despite its contract is recorded
    as a failed call so the conversation can continue.
    """
    try:
        outcome = await gateway.call_tool(request.name, dict(request.arguments))
    except Exception as exc:
        outcome = ToolInvocationOutcome.failure(f"Tool execution error: {exc}")
    if outcome.succeeded:
        logger.debug("Tool %s (%s) succeeded", request.name, request.id)
    else:
        logger.warning(
            "Tool %s (%s) failed: %s", request.name, request.id, outcome.reason
        )
    return ToolResultTurn.from_outcome(request, outcome)


@runtime_checkable
class ProviderAdapter(Protocol):
    """Protocol that all provider adapters must satisfy.

    Adapters are stateful: each instance owns one conversation. At most
    one ``send_message`` may be in flight per instance.
    """

    @property
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'anthropic', 'openai')."""
        ...

    async def send_message(self, text: str) -> str:
        """Send a user message and drive tool calls until a final answer.

        Returns the final assistant text (possibly empty).
        Raises ProviderError on model-call failure; the transcript keeps
        whatever was appended before the failure.
        """
        ...

    def update_tools(self, tools: Sequence[ToolDescriptor]) -> None:
        """Replace the tool listing used from the next send on."""
        ...

    def clear_history(self) -> None:
        """Forget the conversation."""
        ...

    def get_history(self) -> list[Turn]:
        """Return a copy of the transcript."""
        ...

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""
        ...
