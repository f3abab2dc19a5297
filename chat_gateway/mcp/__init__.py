"""MCP client layer and tool providers."""
from .arxiv_client import ArxivTool
from .client import MCPClient
from .client_manager import MCPClientManager
from .config import ServerRegistry, get_server_registry
from .exceptions import (
    EmptyResponseError,
    MCPError,
    ProtocolError,
    ToolExecutionError,
    ToolResolutionError,
    TransportError,
    UnknownServerError,
)
from .models import ServerAuth, ServerConfig, ToolCallResult, ToolDescriptor

__all__ = [
    "ArxivTool",
    "MCPClient",
    "MCPClientManager",
    "ServerRegistry",
    "get_server_registry",
    "MCPError",
    "TransportError",
    "ProtocolError",
    "EmptyResponseError",
    "ToolResolutionError",
    "UnknownServerError",
    "ToolExecutionError",
    "ServerAuth",
    "ServerConfig",
    "ToolCallResult",
    "ToolDescriptor",
]
