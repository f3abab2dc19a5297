"""Error taxonomy for MCP communication and tool dispatch."""
from typing import Any, Optional


class MCPError(Exception):
    """Base class for every MCP-related failure."""


class TransportError(MCPError):
    """The HTTP exchange failed or returned a non-2xx status.
    
    A status code of 0 means no response was received at all.
    """
    
    def __init__(self, status_code: int, reason: str, endpoint: Optional[str] = None):
        self.status_code = status_code
        self.reason = reason
        self.endpoint = endpoint
        super().__init__(f"MCP request failed: {status_code} {reason}".rstrip())


class ProtocolError(MCPError):
    """The server answered with a JSON-RPC error object."""
    
    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"MCP error: {message} (code: {code})")


class EmptyResponseError(MCPError):
    """The response carried no usable JSON-RPC result."""
    
    def __init__(self, message: str = "No valid response data found in SSE stream"):
        super().__init__(message)


class ToolResolutionError(MCPError):
    """A function name could not be mapped to a tool provider."""
    
    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Cannot resolve '{name}': {reason}")


class UnknownServerError(ToolResolutionError):
    """The server id is not present in the server registry."""
    
    def __init__(self, server_id: str):
        self.server_id = server_id
        super().__init__(server_id, "unknown MCP server")


class ToolExecutionError(MCPError):
    """A tool call raised or reported ``isError``."""
    
    def __init__(self, server_id: str, tool_name: str, message: str):
        self.server_id = server_id
        self.tool_name = tool_name
        self.message = message
        super().__init__(f"Tool '{server_id}/{tool_name}' failed: {message}")
