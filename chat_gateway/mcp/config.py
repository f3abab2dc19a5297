"""MCP server registry.

Holds the static directory of known MCP servers: a built-in list,
optionally extended from a JSON configuration file at start-up.
"""
import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..config import get_settings
from ..utils.logger import get_logger
from .models import AuthType, ServerAuth, ServerConfig, DEFAULT_API_KEY_HEADER

logger = get_logger(__name__)

ARXIV_SERVER_ID = "arxiv"

BUILTIN_SERVERS = (
    ServerConfig(
        id="microsoft-learn",
        name="Microsoft Learn",
        description="Microsoft documentation and code sample search",
        endpoint="https://learn.microsoft.com/api/mcp",
        icon="M",
        enabled=False,
    ),
    ServerConfig(
        id=ARXIV_SERVER_ID,
        name="arXiv",
        description="Search arXiv papers and read their content",
        endpoint="http://export.arxiv.org/api/query",
        icon="A",
        enabled=False,
        local=True,
    ),
)


def validate_server_id(server_id: str) -> List[str]:
    """Check that a server id keeps namespaced function names unambiguous."""
    errors = []
    if not server_id or not server_id.strip():
        errors.append("Server id cannot be empty")
    elif "__" in server_id:
        errors.append("Server id cannot contain '__'")
    elif server_id.endswith("_"):
        errors.append("Server id cannot end with '_'")
    return errors


def validate_config(config: Dict[str, Any]) -> List[str]:
    """Validate a raw server configuration.
    
    Args:
        config: Raw configuration dictionary to validate.
        
    Returns:
        List of validation error messages. Empty if valid.
    """
    errors = []
    
    # Required field: endpoint
    endpoint = config.get("endpoint")
    if endpoint is None:
        errors.append("Missing required field 'endpoint'")
    elif not isinstance(endpoint, str):
        errors.append("Field 'endpoint' must be a string")
    elif not endpoint.startswith(("http://", "https://")):
        errors.append("Field 'endpoint' must be an http(s) URL")
    
    for key in ("name", "description", "icon"):
        if key in config and not isinstance(config[key], str):
            errors.append(f"Field '{key}' must be a string")
    
    if "enabled" in config and not isinstance(config["enabled"], bool):
        errors.append("Field 'enabled' must be a boolean")
    
    # Optional field: auth
    if "auth" in config:
        auth = config["auth"]
        if not isinstance(auth, dict):
            errors.append("Field 'auth' must be an object")
        else:
            auth_type = auth.get("type", AuthType.NONE.value)
            if auth_type not in {t.value for t in AuthType}:
                errors.append(f"Unsupported auth type '{auth_type}'")
            elif auth_type != AuthType.NONE.value and not auth.get("token"):
                errors.append(f"Auth type '{auth_type}' requires a 'token'")
            if "headerName" in auth and not isinstance(auth["headerName"], str):
                errors.append("Field 'auth.headerName' must be a string")
    
    return errors


def _parse_auth(raw: Optional[Dict[str, Any]]) -> ServerAuth:
    if not raw:
        return ServerAuth()
    return ServerAuth(
        type=AuthType(raw.get("type", AuthType.NONE.value)),
        token=raw.get("token"),
        header_name=raw.get("headerName") or DEFAULT_API_KEY_HEADER,
    )


def load_server_file(config_path: str) -> List[ServerConfig]:
    """Load server configurations from a JSON file.
    
    The file uses the ``{"mcpServers": {"<id>": {...}}}`` layout.
    
    Note:
        Invalid entries are logged and skipped. A missing or unreadable
        file yields an empty list.
    """
    path = Path(config_path)
    if not path.exists():
        logger.warning(f"MCP config file not found: {path}")
        return []
    
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw_config = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in MCP config file: {e}")
        return []
    except OSError as e:
        logger.error(f"Error reading MCP config file: {e}")
        return []
    
    servers = []
    for server_id, server_config in (raw_config.get("mcpServers") or {}).items():
        if not isinstance(server_config, dict):
            logger.error(f"Invalid config for server '{server_id}': entry must be an object")
            continue
        errors = validate_server_id(server_id) + validate_config(server_config)
        if errors:
            logger.error(f"Invalid config for server '{server_id}': {', '.join(errors)}")
            continue
        
        servers.append(ServerConfig(
            id=server_id,
            name=server_config.get("name", server_id),
            endpoint=server_config["endpoint"],
            description=server_config.get("description", ""),
            auth=_parse_auth(server_config.get("auth")),
            enabled=server_config.get("enabled", False),
            icon=server_config.get("icon"),
        ))
    
    logger.info(f"Loaded {len(servers)} MCP server configurations from {path}")
    return servers


class ServerRegistry:
    """Immutable directory of known MCP servers."""
    
    def __init__(self, servers: Iterable[ServerConfig]):
        by_id: Dict[str, ServerConfig] = {}
        for server in servers:
            by_id[server.id] = server
        self._servers = tuple(by_id.values())
    
    def list_servers(self) -> List[ServerConfig]:
        return list(self._servers)
    
    def get_server(self, server_id: str) -> Optional[ServerConfig]:
        for server in self._servers:
            if server.id == server_id:
                return server
        return None
    
    def get_default_enabled(self) -> List[ServerConfig]:
        """Servers enabled by default in the UI."""
        return [server for server in self._servers if server.enabled]


def build_server_registry(config_path: Optional[str] = None) -> ServerRegistry:
    """Build a registry from the built-in servers plus an optional file.
    
    File entries replace built-in entries with the same id.
    """
    servers = list(BUILTIN_SERVERS)
    if config_path:
        servers.extend(load_server_file(config_path))
    return ServerRegistry(servers)


@lru_cache()
def get_server_registry() -> ServerRegistry:
    """Get the process-wide server registry."""
    return build_server_registry(get_settings().mcp_servers_file)
