"""Adapter factory — the only place provider identity is branched on."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from toolrelay.core.errors import ConfigError
from toolrelay.providers.anthropic import AnthropicAdapter
from toolrelay.providers.ollama import OllamaAdapter
from toolrelay.providers.openai import OpenAIAdapter

if TYPE_CHECKING:
    from collections.abc import Sequence

    from toolrelay.config.schema import BudgetConfig, FreeTextConfig, LLMConfig
    from toolrelay.providers.base import ProviderAdapter
    from toolrelay.tools.base import ToolDescriptor, ToolGateway

SUPPORTED_PROVIDERS: dict[str, str] = {
    "anthropic": "api_key",
    "openai": "api_key",
    "ollama": "base_url",
}


def _require(value: str | None, provider: str, what: str) -> str:
    if value is None or not value.strip():
        msg = f"[{provider}] {what} is required"
        raise ConfigError(msg)
    return value


def create_adapter(
    config: LLMConfig,
    tools: Sequence[ToolDescriptor],
    gateway: ToolGateway,
    *,
    budget: BudgetConfig | None = None,
    free_text: FreeTextConfig | None = None,
) -> ProviderAdapter:
    """Build the adapter for ``config.provider``.

    Mandatory fields are checked before anything is constructed; no
    network I/O happens here.

    Args:
        config: Provider, model and credentials.
        tools: Initial tool listing.
        gateway: Executes the tools the model asks for.
        budget: Context budget settings (inline-function-call provider only).
        free_text: Prompt-pattern settings (free-text provider only).

    Raises:
        ConfigError: On an unknown provider or a missing mandatory field.
    """
    provider = config.provider
    if provider == "anthropic":
        api_key = _require(config.api_key, provider, "API key")
        return AnthropicAdapter(
            config.model,
            tools,
            gateway,
            api_key=api_key,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
            max_tool_rounds=config.max_tool_rounds,
        )
    if provider == "openai":
        api_key = _require(config.api_key, provider, "API key")
        return OpenAIAdapter(
            config.model,
            tools,
            gateway,
            api_key=api_key,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
            max_tool_rounds=config.max_tool_rounds,
            budget=budget,
        )
    if provider == "ollama":
        base_url = _require(config.base_url, provider, "Base URL")
        kwargs: dict[str, Any] = {}
        if free_text is not None:
            kwargs = {
                "history_window": free_text.history_window,
                "fallback_answer": free_text.fallback_answer,
            }
        return OllamaAdapter(
            config.model,
            tools,
            gateway,
            base_url=base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
            **kwargs,
        )
    msg = (
        f"Unsupported LLM provider: {provider!r} "
        f"(expected one of {', '.join(SUPPORTED_PROVIDERS)})"
    )
    raise ConfigError(msg)
