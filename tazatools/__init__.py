"""
TazaTools Package

Exposes a payment provider's operations (served by an out-of-process MCP
worker) to chat-style clients: worker lifecycle, request/response
correlation, tool discovery, relevance matching and argument extraction.
"""

from .core.errors import (
    ToolError,
    LaunchError,
    NotConnectedError,
    CallTimeoutError,
    RemoteToolError,
    ChannelClosedError,
)
from .core.config_loader import ServiceConfig, load_config
from .core.registry import Tool, ToolRegistry  # noqa: F401
from .core.service import InvokeResult, ToolInvocationService

__version__ = "0.1.0"

__all__ = [
    "ToolInvocationService",
    "InvokeResult",
    "ServiceConfig",
    "load_config",
    "Tool",
    "ToolRegistry",
    "ToolError",
    "LaunchError",
    "NotConnectedError",
    "CallTimeoutError",
    "RemoteToolError",
    "ChannelClosedError",
]
