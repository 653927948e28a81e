"""Pydantic models for toolrelay configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """Which model backend to talk to and how.

    ``provider`` is one of ``"anthropic"``, ``"openai"`` or ``"ollama"``.
    Mandatory fields per provider are checked by the adapter factory,
    not here, so a config file can be written before its key exists.
    """

    provider: str = "anthropic"
    model: str = "claude-sonnet-4-5-20250929"
    api_key: str | None = None
    api_key_env: str | None = None
    base_url: str | None = None
    max_tokens: int = 1000
    temperature: float = 0.7
    timeout: float | None = None
    max_tool_rounds: int = 25


class BudgetConfig(BaseModel):
    """Context budget estimation and trimming constants."""

    context_window: int | None = None  # None = look up from known models
    chars_per_token: int = 3
    turn_overhead: int = 4
    tool_call_overhead: int = 10
    keep_recent: int = 4
    stage_two_threshold: float = 0.8
    stage_two_keep_recent: int = 2
    stage_two_keep_tool_turns: int = 2


class FreeTextConfig(BaseModel):
    """Prompt-pattern settings for models without native tool calling."""

    history_window: int = 10
    fallback_answer: str = "Tool executed successfully."


class GatewayConfig(BaseModel):
    """Tool server connection."""

    transport: str = "none"  # "stdio", "http", "rest", "none"
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] | None = None
    url: str | None = None
    timeout: float = 30.0


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str = ""


class ToolrelayConfig(BaseModel):
    """Top-level configuration for toolrelay."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    free_text: FreeTextConfig = Field(default_factory=FreeTextConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
