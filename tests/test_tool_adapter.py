import pytest

from chat_gateway.mcp.models import ToolDescriptor
from chat_gateway.mcp.tool_adapter import (
    FunctionName,
    build_function_tools,
    parse_function_name,
    to_function_tool,
)


def test_to_function_tool_namespaces_the_name():
    tool = ToolDescriptor(
        name="search",
        description="Search docs",
        input_schema={"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"]},
    )
    
    function_tool = to_function_tool("microsoft-learn", tool)
    
    assert function_tool == {
        "type": "function",
        "function": {
            "name": "microsoft-learn__search",
            "description": "Search docs",
            "parameters": {"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"]},
        },
    }


def test_to_function_tool_defaults_description_and_type():
    function_tool = to_function_tool("s", ToolDescriptor(name="t", input_schema={}))
    
    assert function_tool["function"]["description"] == ""
    assert function_tool["function"]["parameters"] == {"type": "object"}


@pytest.mark.parametrize("server_id, tool_name", [
    ("serverA", "search"),
    ("arxiv", "arxiv_fetch"),
    ("microsoft-learn", "microsoft_docs_search"),
    ("srv", "tool__with__separators"),
])
def test_function_name_round_trip(server_id, tool_name):
    name = to_function_tool(server_id, ToolDescriptor(name=tool_name, input_schema={}))["function"]["name"]
    
    assert parse_function_name(name) == FunctionName(server_id=server_id, tool_name=tool_name)


@pytest.mark.parametrize("name", ["search", "", "single_underscore"])
def test_parse_function_name_without_separator(name):
    assert parse_function_name(name) is None


def test_parse_function_name_splits_on_first_separator():
    assert parse_function_name("a__b__c") == FunctionName("a", "b__c")


def test_parse_function_name_empty_segments_still_parse():
    assert parse_function_name("__tool") == FunctionName("", "tool")
    assert parse_function_name("server__") == FunctionName("server", "")


def test_build_function_tools_preserves_order():
    tools = build_function_tools([
        ("a", [ToolDescriptor(name="one", input_schema={}), ToolDescriptor(name="two", input_schema={})]),
        ("b", [ToolDescriptor(name="three", input_schema={})]),
    ])
    
    assert [tool["function"]["name"] for tool in tools] == ["a__one", "a__two", "b__three"]
