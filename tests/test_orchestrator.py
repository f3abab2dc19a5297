import asyncio

import pytest

from chat_gateway.agent.chat_model import ChatDelta, ChatModel
from chat_gateway.agent.events import (
    ErrorEvent,
    TextEvent,
    ToolCallState,
    ToolCallStatusEvent,
    WarningEvent,
)
from chat_gateway.agent.orchestrator import (
    NO_OUTPUT_PLACEHOLDER,
    ConversationRequest,
    ToolOrchestrator,
)
from chat_gateway.mcp.client_manager import MCPClientManager
from chat_gateway.mcp.models import ToolCallResult, ToolDescriptor
from chat_gateway.utils.cancellation_manager import CancellationManager

from conftest import SERVER_A_ENDPOINT
from fakes import ScriptedChatModel, mock_http_client, text_result, text_round, tool_round


@pytest.fixture
def manager(registry, server_a, settings):
    http_client = mock_http_client({SERVER_A_ENDPOINT: server_a})
    return MCPClientManager(registry=registry, http_client=http_client, settings=settings)


async def collect(orchestrator, request):
    return [event async for event in orchestrator.stream(request)]


def statuses(events):
    return [
        (event.server_id, event.tool_name, event.status)
        for event in events
        if isinstance(event, ToolCallStatusEvent)
    ]


async def test_plain_text_without_servers(manager):
    model = ScriptedChatModel([text_round("hello")])
    
    events = await collect(ToolOrchestrator(model, manager), ConversationRequest(prompt="hi"))
    
    assert events == [TextEvent("hello")]
    assert len(model.calls) == 1
    assert model.calls[0]["tools"] is None
    assert model.calls[0]["messages"] == [{"role": "user", "content": "hi"}]


async def test_tool_call_round_trip(manager, server_a):
    model = ScriptedChatModel([
        tool_round(("call_1", "serverA__search", {"query": "x"})),
        text_round("The answer ", "is 42."),
    ])
    request = ConversationRequest(prompt="find x", system_prompt="Use tools.", enabled_servers=["serverA"])
    
    events = await collect(ToolOrchestrator(model, manager), request)
    
    assert events == [
        ToolCallStatusEvent("serverA", "search", ToolCallState.RUNNING),
        ToolCallStatusEvent("serverA", "search", ToolCallState.COMPLETED, preview="42"),
        TextEvent("The answer "),
        TextEvent("is 42."),
    ]
    assert [tool["function"]["name"] for tool in model.calls[0]["tools"]] == ["serverA__search"]
    assert server_a.requests[-1]["params"] == {"name": "search", "arguments": {"query": "x"}}
    
    assert len(model.calls) == 2
    second_round = model.calls[1]["messages"]
    assert second_round[0] == {"role": "system", "content": "Use tools."}
    assert second_round[-2] == {
        "role": "assistant",
        "content": None,
        "tool_calls": [{
            "id": "call_1",
            "type": "function",
            "function": {"name": "serverA__search", "arguments": '{"query": "x"}'},
        }],
    }
    assert second_round[-1] == {"role": "tool", "tool_call_id": "call_1", "content": "42"}


async def test_round_cap_stops_with_warning(manager):
    model = ScriptedChatModel([tool_round(("call_n", "serverA__search", {"query": "again"}))])
    
    events = await collect(ToolOrchestrator(model, manager), ConversationRequest(prompt="loop", enabled_servers=["serverA"]))
    
    assert len(model.calls) == 10
    assert isinstance(events[-1], WarningEvent)
    assert sum(isinstance(event, WarningEvent) for event in events) == 1
    assert statuses(events).count(("serverA", "search", ToolCallState.RUNNING)) == 10
    assert statuses(events).count(("serverA", "search", ToolCallState.COMPLETED)) == 10


async def test_custom_round_cap(manager):
    model = ScriptedChatModel([tool_round(("c", "serverA__search", {}))])
    
    events = await collect(
        ToolOrchestrator(model, manager, max_rounds=3),
        ConversationRequest(prompt="loop", enabled_servers=["serverA"]),
    )
    
    assert len(model.calls) == 3
    assert isinstance(events[-1], WarningEvent)


@pytest.mark.parametrize("function_name", ["nosplit", "ghost__tool"])
async def test_unresolvable_function_name_yields_error_tool_message(manager, function_name):
    model = ScriptedChatModel([
        tool_round(("call_1", function_name, {})),
        text_round("sorry"),
    ])
    
    events = await collect(ToolOrchestrator(model, manager), ConversationRequest(prompt="x", enabled_servers=["serverA"]))
    
    assert events == [TextEvent("sorry")]
    tool_message = model.calls[1]["messages"][-1]
    assert tool_message["role"] == "tool"
    assert tool_message["tool_call_id"] == "call_1"
    assert tool_message["content"].startswith("Error:")


async def test_tool_error_result_emits_error_status(manager, server_a):
    server_a.results["search"] = text_result("quota exceeded", is_error=True)
    model = ScriptedChatModel([tool_round(("call_1", "serverA__search", {})), text_round("done")])
    
    events = await collect(ToolOrchestrator(model, manager), ConversationRequest(prompt="x", enabled_servers=["serverA"]))
    
    assert events[:2] == [
        ToolCallStatusEvent("serverA", "search", ToolCallState.RUNNING),
        ToolCallStatusEvent("serverA", "search", ToolCallState.ERROR, error="quota exceeded"),
    ]
    assert model.calls[1]["messages"][-1]["content"] == "Error: quota exceeded"


async def test_jsonrpc_error_during_call_is_contained(manager):
    model = ScriptedChatModel([tool_round(("call_1", "serverA__unknown_tool", {})), text_round("ok")])
    
    events = await collect(ToolOrchestrator(model, manager), ConversationRequest(prompt="x", enabled_servers=["serverA"]))
    
    assert statuses(events) == [
        ("serverA", "unknown_tool", ToolCallState.RUNNING),
        ("serverA", "unknown_tool", ToolCallState.ERROR),
    ]
    assert events[-1] == TextEvent("ok")


async def test_invalid_arguments_are_a_tool_error(manager, server_a):
    from chat_gateway.agent.chat_model import ToolCallDelta
    
    bad_round = [ChatDelta(tool_calls=[ToolCallDelta(id="call_1", name="serverA__search", arguments="{not json")])]
    model = ScriptedChatModel([bad_round, text_round("ok")])
    
    events = await collect(ToolOrchestrator(model, manager), ConversationRequest(prompt="x", enabled_servers=["serverA"]))
    
    assert statuses(events)[-1] == ("serverA", "search", ToolCallState.ERROR)
    assert "tools/call" not in server_a.methods()


async def test_empty_output_uses_placeholder(manager, server_a):
    server_a.results["search"] = {"content": []}
    model = ScriptedChatModel([tool_round(("call_1", "serverA__search", {})), text_round("ok")])
    
    await collect(ToolOrchestrator(model, manager), ConversationRequest(prompt="x", enabled_servers=["serverA"]))
    
    assert model.calls[1]["messages"][-1]["content"] == NO_OUTPUT_PLACEHOLDER


async def test_long_output_preview_is_truncated(manager, server_a):
    server_a.results["search"] = text_result("a" * 150)
    model = ScriptedChatModel([tool_round(("call_1", "serverA__search", {})), text_round("ok")])
    
    events = await collect(ToolOrchestrator(model, manager), ConversationRequest(prompt="x", enabled_servers=["serverA"]))
    
    completed = [event for event in events if isinstance(event, ToolCallStatusEvent)][-1]
    assert completed.preview == "a" * 100 + "..."
    assert model.calls[1]["messages"][-1]["content"] == "a" * 150


async def test_calls_in_one_round_run_in_order(manager, server_a):
    order = []
    
    def search(arguments):
        order.append(arguments["n"])
        return text_result(f"result {arguments['n']}")
    
    server_a.results["search"] = search
    model = ScriptedChatModel([
        tool_round(("c1", "serverA__search", {"n": 1}), ("c2", "serverA__search", {"n": 2}), text="Let me check."),
        text_round("done"),
    ])
    
    events = await collect(ToolOrchestrator(model, manager), ConversationRequest(prompt="x", enabled_servers=["serverA"]))
    
    assert order == [1, 2]
    assert events[0] == TextEvent("Let me check.")
    assert [(event.status, event.preview) for event in events if isinstance(event, ToolCallStatusEvent)] == [
        (ToolCallState.RUNNING, None),
        (ToolCallState.COMPLETED, "result 1"),
        (ToolCallState.RUNNING, None),
        (ToolCallState.COMPLETED, "result 2"),
    ]
    messages = model.calls[1]["messages"]
    assert messages[-3]["content"] == "Let me check."
    assert [call["id"] for call in messages[-3]["tool_calls"]] == ["c1", "c2"]
    assert [(m["tool_call_id"], m["content"]) for m in messages[-2:]] == [("c1", "result 1"), ("c2", "result 2")]


async def test_failed_server_is_dropped_from_discovery(manager):
    model = ScriptedChatModel([text_round("no tools")])
    
    events = await collect(
        ToolOrchestrator(model, manager),
        ConversationRequest(prompt="x", enabled_servers=["broken", "serverA", "serverA"]),
    )
    
    assert events == [TextEvent("no tools")]
    assert [tool["function"]["name"] for tool in model.calls[0]["tools"]] == ["serverA__search"]


class StaticTool:
    """Minimal local provider served under the arxiv server id."""
    
    server_id = "arxiv"
    
    def __init__(self, delay=0.0):
        self.delay = delay
        self.calls = []
    
    def get_tools(self):
        return [ToolDescriptor(name="arxiv_search", input_schema={"type": "object"})]
    
    async def call_tool(self, name, arguments=None):
        self.calls.append((name, arguments))
        await asyncio.sleep(self.delay)
        return ToolCallResult.from_text("paper list")


async def test_local_arxiv_provider_is_used(manager):
    arxiv = StaticTool()
    model = ScriptedChatModel([tool_round(("c1", "arxiv__arxiv_search", {"query": "llm"})), text_round("ok")])
    
    events = await collect(
        ToolOrchestrator(model, manager, arxiv_tool=arxiv),
        ConversationRequest(prompt="x", enabled_servers=["arxiv"]),
    )
    
    assert arxiv.calls == [("arxiv_search", {"query": "llm"})]
    assert statuses(events) == [
        ("arxiv", "arxiv_search", ToolCallState.RUNNING),
        ("arxiv", "arxiv_search", ToolCallState.COMPLETED),
    ]


async def test_arxiv_not_offered_unless_enabled(manager):
    model = ScriptedChatModel([text_round("ok")])
    
    await collect(ToolOrchestrator(model, manager, arxiv_tool=StaticTool()), ConversationRequest(prompt="x"))
    
    assert model.calls[0]["tools"] is None


async def test_tool_call_timeout_is_a_tool_error(manager):
    model = ScriptedChatModel([tool_round(("c1", "arxiv__arxiv_search", {})), text_round("ok")])
    
    events = await collect(
        ToolOrchestrator(model, manager, arxiv_tool=StaticTool(delay=1.0), tool_call_timeout=0.01),
        ConversationRequest(prompt="x", enabled_servers=["arxiv"]),
    )
    
    error = [event for event in events if isinstance(event, ToolCallStatusEvent)][-1]
    assert error.status is ToolCallState.ERROR
    assert "timed out" in error.error
    assert events[-1] == TextEvent("ok")


class StallingModel(ChatModel):
    async def stream(self, messages, tools=None):
        yield ChatDelta(content="partial")
        await asyncio.sleep(1.0)
        yield ChatDelta(content="never")


async def test_round_timeout_is_fatal(manager):
    events = await collect(ToolOrchestrator(StallingModel(), manager, round_timeout=0.05), ConversationRequest(prompt="x"))
    
    assert events[0] == TextEvent("partial")
    assert isinstance(events[-1], ErrorEvent)
    assert "timed out" in events[-1].message


class ExplodingModel(ChatModel):
    async def stream(self, messages, tools=None):
        raise RuntimeError("model endpoint unreachable")
        yield


async def test_stream_failure_becomes_error_event(manager):
    events = await collect(ToolOrchestrator(ExplodingModel(), manager), ConversationRequest(prompt="x"))
    
    assert events == [ErrorEvent("model endpoint unreachable")]


async def test_cancellation_stops_streaming(manager):
    cancellation = CancellationManager(expiry_seconds=60)
    model = ScriptedChatModel([text_round("first", "second", "third")])
    orchestrator = ToolOrchestrator(model, manager, cancellation_manager=cancellation)
    
    events = []
    async for event in orchestrator.stream(ConversationRequest(prompt="x", session_id="s1")):
        events.append(event)
        cancellation.cancel("s1")
    
    assert events == [TextEvent("first")]


async def test_cancellation_before_tool_dispatch(manager, server_a):
    cancellation = CancellationManager(expiry_seconds=60)
    model = ScriptedChatModel([tool_round(("c1", "serverA__search", {}), text="Searching")])
    orchestrator = ToolOrchestrator(model, manager, cancellation_manager=cancellation)
    
    events = []
    async for event in orchestrator.stream(ConversationRequest(prompt="x", enabled_servers=["serverA"], session_id="s2")):
        events.append(event)
        cancellation.cancel("s2")
    
    assert events == [TextEvent("Searching")]
    assert "tools/call" not in server_a.methods()
