"""Bridge between MCP tool definitions and function-calling tools.

MCP tools are advertised to the chat model as OpenAI-style function tools
whose names are namespaced as ``<server_id>__<tool_name>``.
"""
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

from .models import ToolDescriptor

FUNCTION_NAME_SEPARATOR = "__"


class FunctionName(NamedTuple):
    """A namespaced function name split into its parts."""
    
    server_id: str
    tool_name: str


def build_function_name(server_id: str, tool_name: str) -> str:
    return f"{server_id}{FUNCTION_NAME_SEPARATOR}{tool_name}"


def parse_function_name(name: str) -> Optional[FunctionName]:
    """Split a namespaced function name into server id and tool name.
    
    The split happens on the first separator; the remainder is the tool
    name, so tool names may themselves contain ``__``.
    
    Returns:
        The parsed name, or None when the name has no separator.
    """
    if not name or FUNCTION_NAME_SEPARATOR not in name:
        return None
    server_id, tool_name = name.split(FUNCTION_NAME_SEPARATOR, 1)
    return FunctionName(server_id=server_id, tool_name=tool_name)


def to_function_tool(server_id: str, tool: ToolDescriptor) -> Dict[str, Any]:
    """Convert an MCP tool into a function-calling tool definition."""
    parameters = dict(tool.input_schema or {})
    parameters.setdefault("type", "object")
    return {
        "type": "function",
        "function": {
            "name": build_function_name(server_id, tool.name),
            "description": tool.description or "",
            "parameters": parameters,
        },
    }


def build_function_tools(
    tools_by_server: Iterable[Tuple[str, Iterable[ToolDescriptor]]]
) -> List[Dict[str, Any]]:
    """Flatten per-server tool lists into one function-tool array."""
    return [
        to_function_tool(server_id, tool)
        for server_id, tools in tools_by_server
        for tool in tools
    ]
