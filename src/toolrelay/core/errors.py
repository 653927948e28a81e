"""Exception hierarchy for toolrelay.

Every module imports from here. The hierarchy is:

    ToolrelayError
    ├── ProviderError(provider_id)
    │   ├── ProviderAuthError
    │   ├── ProviderRateLimitError(retry_after)
    │   ├── ProviderTimeoutError
    │   ├── ProviderOverloadedError
    │   ├── ModelNotFoundError
    │   ├── ContextOverflowError(ceiling)
    │   └── ToolLoopLimitError(max_rounds)
    ├── ConfigError
    │   └── BudgetExhaustedError(ceiling, available)
    ├── SessionError
    └── GatewayError

Tool failures are deliberately absent: they travel as values
(:class:`~toolrelay.tools.base.ToolInvocationOutcome`), never as exceptions.
"""

from __future__ import annotations


class ToolrelayError(Exception):
    """Base exception for all toolrelay errors."""


# ─── Provider Errors ──────────────────────────────────────────


class ProviderError(ToolrelayError):
    """Base for model-call errors."""

    def __init__(self, provider_id: str, message: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"[{provider_id}] {message}")


class ProviderAuthError(ProviderError):
    """Invalid or rejected credential."""


class ProviderRateLimitError(ProviderError):
    """Rate limit exceeded. Includes retry_after if available."""

    def __init__(self, provider_id: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        msg = "Rate limited"
        if retry_after is not None:
            msg += f" (retry after {retry_after}s)"
        super().__init__(provider_id, msg)


class ProviderTimeoutError(ProviderError):
    """Model call timed out."""


class ProviderOverloadedError(ProviderError):
    """Provider is overloaded or returned an unexpected failure."""


class ModelNotFoundError(ProviderError):
    """Requested model not available from this provider."""


class ContextOverflowError(ProviderError):
    """The request does not fit the model's context window.

    ``ceiling`` is the context window the request was checked against,
    or ``None`` when the provider rejected it without one being known.
    """

    def __init__(
        self,
        provider_id: str,
        message: str,
        *,
        ceiling: int | None = None,
    ) -> None:
        self.ceiling = ceiling
        super().__init__(provider_id, message)


class ToolLoopLimitError(ProviderError):
    """The model kept requesting tools past the configured round limit."""

    def __init__(self, provider_id: str, max_rounds: int) -> None:
        self.max_rounds = max_rounds
        super().__init__(
            provider_id,
            f"Model still requesting tools after {max_rounds} rounds; giving up",
        )


# ─── Configuration Errors ─────────────────────────────────────


class ConfigError(ToolrelayError):
    """Invalid configuration."""


class BudgetExhaustedError(ConfigError):
    """Tool descriptions and reserved output leave no room for the transcript."""

    def __init__(self, provider_id: str, ceiling: int, available: int) -> None:
        self.provider_id = provider_id
        self.ceiling = ceiling
        self.available = available
        super().__init__(
            f"[{provider_id}] Provider ceiling too small for current tools: "
            f"{ceiling} tokens leaves {available} for the conversation"
        )


# ─── Session Errors ───────────────────────────────────────────


class SessionError(ToolrelayError):
    """Session used before it was configured."""


# ─── Gateway Errors ───────────────────────────────────────────


class GatewayError(ToolrelayError):
    """Tool server unreachable or returned an unusable tool listing."""
