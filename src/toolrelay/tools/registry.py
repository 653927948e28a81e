"""Tool registry — holds the current tool listing.

The listing is replaced wholesale on every refresh and never patched in
place, so adapters can share the snapshot read-only.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from toolrelay.tools.base import ToolCatalog, ToolDescriptor

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Immutable-snapshot holder for tool descriptors.

    Raises:
        ValueError: On construction or replacement with duplicate names.
    """

    def __init__(self, tools: Iterable[ToolDescriptor] = ()) -> None:
        self._tools: tuple[ToolDescriptor, ...] = ()
        self.replace(tools)

    def replace(self, tools: Iterable[ToolDescriptor]) -> None:
        """Swap in a new listing."""
        snapshot = tuple(tools)
        seen: set[str] = set()
        for tool in snapshot:
            if tool.name in seen:
                msg = f"Duplicate tool name: {tool.name}"
                raise ValueError(msg)
            seen.add(tool.name)
        self._tools = snapshot

    async def refresh(self, catalog: ToolCatalog) -> tuple[ToolDescriptor, ...]:
        """Re-list tools from ``catalog`` and replace the snapshot."""
        tools = await catalog.list_tools()
        self.replace(tools)
        logger.debug("Tool registry refreshed: %d tools", len(self._tools))
        return self._tools

    @property
    def tools(self) -> tuple[ToolDescriptor, ...]:
        """The current snapshot."""
        return self._tools

    def get(self, name: str) -> ToolDescriptor:
        """Get a descriptor by name.

        Raises:
            KeyError: If the tool is not found.
        """
        for tool in self._tools:
            if tool.name == name:
                return tool
        msg = f"Tool not found: {name}"
        raise KeyError(msg)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return any(t.name == name for t in self._tools)

    def list_names(self) -> list[str]:
        """Return names of all tools in the snapshot."""
        return [t.name for t in self._tools]
