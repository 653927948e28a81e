"""LLM provider adapters."""

from toolrelay.providers.base import (
    AssistantTurn,
    ProviderAdapter,
    ToolResultTurn,
    Turn,
    UserTurn,
)
from toolrelay.providers.budget import BudgetStats, ContextBudgetManager
from toolrelay.providers.factory import SUPPORTED_PROVIDERS, create_adapter

__all__ = [
    "SUPPORTED_PROVIDERS",
    "AssistantTurn",
    "BudgetStats",
    "ContextBudgetManager",
    "ProviderAdapter",
    "ToolResultTurn",
    "Turn",
    "UserTurn",
    "create_adapter",
]
