"""Session registry for MCP clients.

This module provides the MCPClientManager class, the process-lifetime
cache of initialized MCP clients shared by all orchestration requests.
"""
import asyncio
from typing import Callable, Dict, List, Optional

import httpx

from ..config import Settings, get_settings
from ..utils.logger import get_logger
from .client import MCPClient
from .config import ServerRegistry, get_server_registry
from .exceptions import ToolResolutionError, UnknownServerError
from .models import ServerConfig

logger = get_logger(__name__)

ClientFactory = Callable[[ServerConfig], MCPClient]


class MCPClientManager:
    """Process-wide cache of initialized MCP clients keyed by server id.
    
    ``get_or_create`` holds a per-server lock around initialization, so
    concurrent first use of a server initializes it exactly once and every
    waiter receives the same client.
    
    Attributes:
        registry: Directory of known servers.
        clients: Initialized clients keyed by server id.
    """
    
    def __init__(
        self,
        registry: Optional[ServerRegistry] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None
    ):
        """Initialize the client manager.
        
        Args:
            registry: Server registry; the process-wide registry if None.
            http_client: Shared HTTP client handed to every MCPClient.
            settings: Application settings; the cached settings if None.
            client_factory: Builds a client for a server configuration.
        """
        self.registry = registry or get_server_registry()
        self.settings = settings or get_settings()
        self._http_client = http_client
        self._client_factory = client_factory or self._default_factory
        self.clients: Dict[str, MCPClient] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
    
    def _default_factory(self, config: ServerConfig) -> MCPClient:
        return MCPClient(config, http_client=self._http_client, settings=self.settings)
    
    def _lock_for(self, server_id: str) -> asyncio.Lock:
        lock = self._locks.get(server_id)
        if lock is None:
            lock = self._locks[server_id] = asyncio.Lock()
        return lock
    
    def get_client(self, server_id: str) -> Optional[MCPClient]:
        """Return the cached initialized client for a server, if any."""
        client = self.clients.get(server_id)
        if client is not None and client.is_initialized():
            return client
        return None
    
    async def get_or_create(self, server_id: str) -> MCPClient:
        """Return an initialized client, creating and caching it on first use.
        
        Raises:
            UnknownServerError: The id is not in the registry.
            ToolResolutionError: The server is served in-process.
            TransportError, ProtocolError, EmptyResponseError: Initialization
                failed; nothing is cached.
        """
        client = self.get_client(server_id)
        if client is not None:
            return client
        
        # Locks exist only for registered servers
        config = self.registry.get_server(server_id)
        if config is None:
            raise UnknownServerError(server_id)
        if config.local:
            raise ToolResolutionError(server_id, "server is provided locally, not over MCP")
        
        async with self._lock_for(server_id):
            client = self.get_client(server_id)
            if client is not None:
                return client
            
            client = self._client_factory(config)
            await client.initialize()
            self.clients[server_id] = client
            logger.info(f"Cached MCP client for '{server_id}'")
            return client
    
    def disconnect_server(self, server_id: str) -> None:
        """Disconnect a server and drop it from the cache."""
        client = self.clients.pop(server_id, None)
        if client is None:
            logger.warning(f"MCP server '{server_id}' not connected")
            return
        client.disconnect()
    
    def disconnect_all(self) -> None:
        for server_id in list(self.clients):
            self.disconnect_server(server_id)
    
    def get_connected_servers(self) -> List[str]:
        return [
            server_id for server_id, client in self.clients.items()
            if client.is_initialized()
        ]
