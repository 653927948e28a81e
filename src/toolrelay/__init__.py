"""toolrelay - provider-agnostic tool calling for LLM chat sessions."""

from toolrelay.providers import (
    SUPPORTED_PROVIDERS,
    AssistantTurn,
    ProviderAdapter,
    ToolResultTurn,
    UserTurn,
    create_adapter,
)
from toolrelay.session import SessionController
from toolrelay.tools import ToolDescriptor, ToolInvocationOutcome, ToolRegistry

__version__ = "0.1.0"

__all__ = [
    "SUPPORTED_PROVIDERS",
    "AssistantTurn",
    "ProviderAdapter",
    "SessionController",
    "ToolDescriptor",
    "ToolInvocationOutcome",
    "ToolRegistry",
    "ToolResultTurn",
    "UserTurn",
    "__version__",
    "create_adapter",
]
