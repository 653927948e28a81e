"""Session controller — one chat session over whichever adapter is active.

Holds at most one adapter. Replacing it discards the old conversation:
transcripts are provider-specific and are never migrated.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from toolrelay.core.errors import SessionError
from toolrelay.providers.factory import create_adapter
from toolrelay.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from toolrelay.config.schema import ToolrelayConfig
    from toolrelay.providers.base import ProviderAdapter, Turn
    from toolrelay.providers.budget import BudgetStats
    from toolrelay.tools.base import ToolCatalog, ToolDescriptor

logger = logging.getLogger(__name__)


class SessionController:
    """Coordinates sends, resets and provider swaps for one session."""

    def __init__(
        self,
        adapter: ProviderAdapter | None = None,
        *,
        registry: ToolRegistry | None = None,
    ) -> None:
        self._adapter = adapter
        self._registry = registry or ToolRegistry()

    @property
    def adapter(self) -> ProviderAdapter | None:
        return self._adapter

    @property
    def configured(self) -> bool:
        return self._adapter is not None

    @property
    def tools(self) -> tuple[ToolDescriptor, ...]:
        return self._registry.tools

    def _require_adapter(self) -> ProviderAdapter:
        if self._adapter is None:
            msg = "Not configured: connect to a provider before sending messages"
            raise SessionError(msg)
        return self._adapter

    async def connect(
        self, config: ToolrelayConfig, gateway: ToolCatalog
    ) -> ProviderAdapter:
        """List tools from ``gateway`` and activate a fresh adapter for them.

        The same gateway executes the tool calls the adapter makes. The
        registry only takes the new listing once the adapter is built, so
        a failed connect leaves both the old adapter and its tools active.

        Raises:
            GatewayError: If the tools cannot be listed.
            ConfigError: If the provider configuration is incomplete.
        """
        staged = ToolRegistry(await gateway.list_tools())
        adapter = create_adapter(
            config.llm,
            staged.tools,
            gateway,
            budget=config.budget,
            free_text=config.free_text,
        )
        self._registry.replace(staged.tools)
        await self.swap_provider(adapter)
        logger.info(
            "Connected to %s (%s) with %d tools",
            adapter.provider_id,
            config.llm.model,
            len(staged),
        )
        return adapter

    async def swap_provider(self, adapter: ProviderAdapter) -> None:
        """Make ``adapter`` active; the previous one is cleared and closed."""
        old, self._adapter = self._adapter, adapter
        if old is not None and old is not adapter:
            old.clear_history()
            await old.aclose()

    async def refresh_tools(self, gateway: ToolCatalog) -> tuple[ToolDescriptor, ...]:
        """Re-list tools and push the new snapshot to the active adapter."""
        tools = await self._registry.refresh(gateway)
        if self._adapter is not None:
            self._adapter.update_tools(tools)
        return tools

    async def send(self, text: str) -> str:
        """Return the final assistant answer to ``text``.

        Raises:
            SessionError: If no adapter is active.
            ProviderError: If the model call fails; the session stays usable.
        """
        adapter = self._require_adapter()
        return await adapter.send_message(text)

    def reset(self) -> None:
        """Clear the active conversation."""
        if self._adapter is not None:
            self._adapter.clear_history()

    def history(self) -> list[Turn]:
        if self._adapter is None:
            return []
        return self._adapter.get_history()

    def stats(self) -> BudgetStats | None:
        """Context usage, for adapters that track a budget."""
        if self._adapter is None:
            return None
        stats = getattr(self._adapter, "stats", None)
        return stats() if callable(stats) else None

    async def aclose(self) -> None:
        """Tear down the active adapter."""
        adapter, self._adapter = self._adapter, None
        if adapter is not None:
            await adapter.aclose()
