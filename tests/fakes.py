"""Test doubles: a scripted MCP server behind httpx.MockTransport and a
scripted streaming chat model."""
import copy
import json
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from chat_gateway.agent.chat_model import ChatDelta, ChatModel, ToolCallDelta

ToolResult = Union[Dict[str, Any], Callable[[Dict[str, Any]], Dict[str, Any]]]


def text_result(text: str, is_error: bool = False) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


def make_tool(name: str, description: str = "", properties: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "inputSchema": {"type": "object", "properties": properties or {}},
    }


class FakeMCPServer:
    """In-memory MCP server answering initialize, tools/list and tools/call."""
    
    def __init__(
        self,
        tools: Optional[List[Dict[str, Any]]] = None,
        results: Optional[Dict[str, ToolResult]] = None,
        sse: bool = False,
        name: str = "fake-server"
    ):
        self.tools = tools or []
        self.results = results or {}
        self.sse = sse
        self.name = name
        self.fail_initialize = False
        self.requests: List[Dict[str, Any]] = []
    
    def methods(self) -> List[str]:
        return [request["method"] for request in self.requests]
    
    def _respond(self, payload: Dict[str, Any]) -> httpx.Response:
        if self.sse:
            body = f": keep-alive\nevent: message\ndata: {json.dumps(payload)}\n\n"
            return httpx.Response(200, headers={"content-type": "text/event-stream"}, text=body)
        return httpx.Response(200, json=payload)
    
    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        method = body["method"]
        
        if method == "initialize":
            if self.fail_initialize:
                return httpx.Response(503, text="Service Unavailable")
            result = {
                "protocolVersion": body["params"]["protocolVersion"],
                "capabilities": {"tools": {}},
                "serverInfo": {"name": self.name, "version": "1.0.0"},
            }
        elif method == "tools/list":
            result = {"tools": self.tools}
        elif method == "tools/call":
            name = body["params"]["name"]
            if name not in self.results:
                return self._respond({
                    "jsonrpc": "2.0",
                    "id": body["id"],
                    "error": {"code": -32602, "message": f"Unknown tool: {name}"},
                })
            result = self.results[name]
            if callable(result):
                result = result(body["params"].get("arguments") or {})
        else:
            return self._respond({
                "jsonrpc": "2.0",
                "id": body["id"],
                "error": {"code": -32601, "message": f"Method not found: {method}"},
            })
        
        return self._respond({"jsonrpc": "2.0", "id": body["id"], "result": result})


def mock_http_client(servers: Dict[str, FakeMCPServer]) -> httpx.AsyncClient:
    """AsyncClient routing POSTs to fake servers by endpoint URL."""
    def handler(request: httpx.Request) -> httpx.Response:
        server = servers.get(str(request.url))
        if server is None:
            return httpx.Response(404, text="Not Found")
        return server.handle(request)
    
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def text_round(*fragments: str) -> List[ChatDelta]:
    return [ChatDelta(content=fragment) for fragment in fragments]


def tool_round(*calls, text: str = "") -> List[ChatDelta]:
    """Stream tool calls the way OpenAI does: id and name first, then
    argument fragments without an id."""
    deltas = [ChatDelta(content=text)] if text else []
    for index, (call_id, name, arguments) in enumerate(calls):
        raw = json.dumps(arguments)
        middle = len(raw) // 2
        deltas.append(ChatDelta(tool_calls=[ToolCallDelta(index=index, id=call_id, name=name, arguments="")]))
        deltas.append(ChatDelta(tool_calls=[ToolCallDelta(index=index, arguments=raw[:middle])]))
        deltas.append(ChatDelta(tool_calls=[ToolCallDelta(index=index, arguments=raw[middle:])]))
    return deltas


class ScriptedChatModel(ChatModel):
    """Replays one scripted round per call; the last round repeats."""
    
    def __init__(self, rounds: List[List[ChatDelta]]):
        self.rounds = rounds
        self.calls: List[Dict[str, Any]] = []
    
    async def stream(self, messages, tools=None):
        self.calls.append({"messages": copy.deepcopy(messages), "tools": copy.deepcopy(tools)})
        script = self.rounds[min(len(self.calls), len(self.rounds)) - 1]
        for delta in script:
            yield delta
