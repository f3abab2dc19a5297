"""MCP Client for talking to a single MCP server over HTTP.

This module provides the MCPClient class, a per-server session object
that initializes the server, caches its tools and forwards tool calls.
"""
from typing import Any, Dict, List, Optional

import httpx
from mcp.types import (
    INTERNAL_ERROR,
    CallToolResult,
    Implementation,
    InitializeResult,
    Tool,
)
from pydantic import ValidationError

from ..config import Settings, get_settings
from ..utils.logger import get_logger
from .codec import send_request
from .exceptions import ProtocolError
from .models import ServerConfig, ToolCallResult, ToolDescriptor

logger = get_logger(__name__)


class MCPClient:
    """Client for a single MCP server.
    
    Two states: uninitialized and initialized. ``initialize()`` moves to
    the initialized state and fills the tool cache; ``disconnect()`` goes
    back and clears it.
    
    Attributes:
        server_id: Unique identifier for this server.
        config: Server configuration.
    """
    
    def __init__(
        self,
        config: ServerConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None
    ):
        """Initialize the MCP client.
        
        Args:
            config: Server configuration object.
            http_client: Shared HTTP client; requests open their own if None.
            settings: Application settings; the cached settings if None.
        """
        settings = settings or get_settings()
        self.server_id = config.id
        self.config = config
        self._http_client = http_client
        self._timeout = settings.mcp_request_timeout
        self._protocol_version = settings.mcp_protocol_version
        self._client_info = Implementation(
            name=settings.mcp_client_name,
            version=settings.mcp_client_version,
        )
        self._tools: List[ToolDescriptor] = []
        self._initialized = False
    
    async def _request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await send_request(
            self.config.endpoint,
            method,
            params,
            self.config.auth,
            http_client=self._http_client,
            timeout=self._timeout,
        )
    
    def is_initialized(self) -> bool:
        return self._initialized
    
    def get_tools(self) -> List[ToolDescriptor]:
        """Return the cached tool list without touching the network."""
        return list(self._tools)
    
    async def initialize(self) -> InitializeResult:
        """Run the MCP handshake and populate the tool cache.
        
        Returns:
            The server's initialize result.
            
        Raises:
            TransportError, ProtocolError, EmptyResponseError: On any
                failure; the client stays uninitialized.
        """
        result = await self._request(
            "initialize",
            {
                "protocolVersion": self._protocol_version,
                "capabilities": {"tools": {}},
                "clientInfo": self._client_info.model_dump(exclude_none=True),
            },
        )
        
        try:
            init_result = InitializeResult.model_validate(result)
        except ValidationError as e:
            raise ProtocolError(INTERNAL_ERROR, f"Malformed initialize result: {e}") from e
        
        self._initialized = True
        try:
            await self.list_tools()
        except Exception:
            self._initialized = False
            self._tools = []
            raise
        
        logger.info(
            f"Initialized MCP server '{self.server_id}' "
            f"({init_result.serverInfo.name} {init_result.serverInfo.version}, "
            f"protocol {init_result.protocolVersion}), {len(self._tools)} tools"
        )
        return init_result
    
    async def list_tools(self) -> List[ToolDescriptor]:
        """Fetch the server's tools and replace the cache.
        
        Tools that do not validate against the MCP tool schema are logged
        and skipped.
        """
        result = await self._request("tools/list", {})
        if result is None:
            result = {}
        if not isinstance(result, dict):
            raise ProtocolError(INTERNAL_ERROR, "Malformed tools/list result")
        
        tools = []
        for raw_tool in result.get("tools") or []:
            try:
                tools.append(ToolDescriptor.from_mcp(Tool.model_validate(raw_tool)))
            except ValidationError as e:
                logger.warning(f"Skipping malformed tool from '{self.server_id}': {e}")
        
        self._tools = tools
        logger.debug(f"Tools from '{self.server_id}': {[t.name for t in tools]}")
        return list(self._tools)
    
    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolCallResult:
        """Call a tool on the server.
        
        Tool-level failures come back as a result with ``is_error`` set;
        JSON-RPC and transport failures raise.
        """
        result = await self._request(
            "tools/call",
            {"name": name, "arguments": arguments or {}},
        )
        try:
            return ToolCallResult.from_mcp(CallToolResult.model_validate(result))
        except ValidationError as e:
            raise ProtocolError(INTERNAL_ERROR, f"Malformed tools/call result: {e}") from e
    
    def disconnect(self) -> None:
        """Reset the session to the uninitialized state."""
        self._initialized = False
        self._tools = []
        logger.info(f"Disconnected from MCP server '{self.server_id}'")
