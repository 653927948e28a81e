"""Core errors shared by every toolrelay module."""

from toolrelay.core.errors import (
    BudgetExhaustedError,
    ConfigError,
    ContextOverflowError,
    GatewayError,
    ModelNotFoundError,
    ProviderAuthError,
    ProviderError,
    ProviderOverloadedError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    SessionError,
    ToolLoopLimitError,
    ToolrelayError,
)

__all__ = [
    "BudgetExhaustedError",
    "ConfigError",
    "ContextOverflowError",
    "GatewayError",
    "ModelNotFoundError",
    "ProviderAuthError",
    "ProviderError",
    "ProviderOverloadedError",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "SessionError",
    "ToolLoopLimitError",
    "ToolrelayError",
]
