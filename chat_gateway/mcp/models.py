"""Data models for MCP integration.

This module defines the core data structures shared by the wire codec,
the clients, the local arXiv provider and the orchestration loop.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from mcp.types import CallToolResult, Tool


class AuthType(str, Enum):
    """How requests to an MCP server are authenticated."""
    
    NONE = "none"
    BEARER = "bearer"
    API_KEY = "api-key"


DEFAULT_API_KEY_HEADER = "X-API-Key"


@dataclass(frozen=True)
class ServerAuth:
    """Authentication descriptor for an MCP server.
    
    Attributes:
        type: One of none, bearer or api-key.
        token: Secret sent to the server (unused for none).
        header_name: Header carrying the token for api-key auth.
    """
    
    type: AuthType = AuthType.NONE
    token: Optional[str] = None
    header_name: str = DEFAULT_API_KEY_HEADER
    
    @classmethod
    def bearer(cls, token: str) -> "ServerAuth":
        return cls(type=AuthType.BEARER, token=token)
    
    @classmethod
    def api_key(cls, token: str, header_name: str = DEFAULT_API_KEY_HEADER) -> "ServerAuth":
        return cls(type=AuthType.API_KEY, token=token, header_name=header_name)


@dataclass(frozen=True)
class ServerConfig:
    """Static description of a known MCP server.
    
    Attributes:
        id: Unique key, used as the prefix of namespaced function names.
        name: Display name.
        endpoint: URL receiving JSON-RPC POST requests.
        description: Human-readable description.
        auth: Authentication descriptor.
        enabled: Whether the UI enables this server by default.
        icon: Short icon hint for the UI.
        local: Served in-process instead of over HTTP.
    """
    
    id: str
    name: str
    endpoint: str
    description: str = ""
    auth: ServerAuth = field(default_factory=ServerAuth)
    enabled: bool = False
    icon: Optional[str] = None
    local: bool = False
    
    def to_dict(self) -> Dict[str, Any]:
        """Public view of the configuration (no credentials)."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "endpoint": self.endpoint,
            "icon": self.icon,
            "enabled": self.enabled,
        }


@dataclass
class ToolDescriptor:
    """A tool offered by a provider.
    
    Attributes:
        name: Tool name, unique within its server.
        input_schema: JSON Schema of the tool arguments.
        description: Human-readable description.
    """
    
    name: str
    input_schema: Dict[str, Any]
    description: Optional[str] = None
    
    @classmethod
    def from_mcp(cls, tool: Tool) -> "ToolDescriptor":
        return cls(
            name=tool.name,
            input_schema=dict(tool.inputSchema),
            description=tool.description,
        )
    
    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "inputSchema": self.input_schema}
        if self.description is not None:
            data["description"] = self.description
        return data


@dataclass
class ToolCallResult:
    """Result of a tool call, in MCP ``tools/call`` shape.
    
    Attributes:
        content: Ordered content parts (``{"type": "text", "text": ...}`` etc).
        is_error: Whether the tool reported a failure.
    """
    
    content: List[Dict[str, Any]] = field(default_factory=list)
    is_error: bool = False
    
    @classmethod
    def from_text(cls, text: str, is_error: bool = False) -> "ToolCallResult":
        return cls(content=[{"type": "text", "text": text}], is_error=is_error)
    
    @classmethod
    def from_mcp(cls, result: CallToolResult) -> "ToolCallResult":
        return cls(
            content=[
                part.model_dump(by_alias=True, exclude_none=True)
                for part in result.content
            ],
            is_error=bool(result.isError),
        )
    
    def text(self) -> str:
        """Concatenate the textual parts, separated by blank lines.
        
        Text parts and embedded resources carrying text are kept; images
        and binary resources are skipped.
        """
        parts = []
        for part in self.content:
            if part.get("type") == "text" and part.get("text"):
                parts.append(part["text"])
            elif part.get("type") == "resource":
                resource = part.get("resource") or {}
                if resource.get("text"):
                    parts.append(resource["text"])
        return "\n\n".join(parts)
    
    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content, "isError": self.is_error}


@dataclass
class ArxivEntry:
    """One paper parsed from the arXiv Atom feed.
    
    Attributes:
        id: arXiv identifier, possibly with a version suffix.
        title: Paper title, whitespace collapsed.
        summary: Abstract, whitespace collapsed.
        authors: Author names in feed order.
        published: Publication timestamp (ISO 8601).
        updated: Last update timestamp (ISO 8601).
        links: Link attributes (href, type, title).
        categories: Category terms.
        primary_category: Primary category term.
        pdf_url: PDF link.
        html_url: ar5iv HTML rendering.
    """
    
    id: str
    title: str
    summary: str
    authors: List[str]
    published: str
    updated: str
    links: List[Dict[str, str]] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    primary_category: str = ""
    pdf_url: str = ""
    html_url: str = ""
    
    @property
    def abs_url(self) -> str:
        """Get the arXiv abstract page URL."""
        return f"https://arxiv.org/abs/{self.id}"
