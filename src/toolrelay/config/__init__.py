"""Configuration loading and validation."""

from toolrelay.config.loader import load_config
from toolrelay.config.schema import (
    BudgetConfig,
    FreeTextConfig,
    GatewayConfig,
    LLMConfig,
    LoggingConfig,
    ToolrelayConfig,
)

__all__ = [
    "BudgetConfig",
    "FreeTextConfig",
    "GatewayConfig",
    "LLMConfig",
    "LoggingConfig",
    "ToolrelayConfig",
    "load_config",
]
