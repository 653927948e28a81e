"""Tool boundary: descriptors, registry and gateways to tool servers.

Gateways connect the conversation core to whatever actually runs the
tools (an MCP server over stdio or HTTP, a REST service, or in-process
Python objects).
"""

from toolrelay.tools.base import (
    ToolCatalog,
    ToolDescriptor,
    ToolGateway,
    ToolInvocationOutcome,
    ToolInvocationRequest,
)
from toolrelay.tools.registry import ToolRegistry

__all__ = [
    "ToolCatalog",
    "ToolDescriptor",
    "ToolGateway",
    "ToolInvocationOutcome",
    "ToolInvocationRequest",
    "ToolRegistry",
]
