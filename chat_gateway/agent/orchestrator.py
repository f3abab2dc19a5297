"""Tool-orchestration loop.

Drives a bounded "model requests a tool, we run it, we feed the result
back" loop over a streaming chat completion and surfaces each tool call's
status to the caller.
"""
import asyncio
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from ..mcp.client_manager import MCPClientManager
from ..mcp.config import ARXIV_SERVER_ID
from ..mcp.exceptions import ToolExecutionError, ToolResolutionError, UnknownServerError
from ..mcp.tool_adapter import build_function_tools, parse_function_name
from ..utils.cancellation_manager import CancellationManager
from ..utils.logger import get_logger
from .chat_model import ChatModel
from .events import (
    ErrorEvent,
    StreamEvent,
    TextEvent,
    ToolCallState,
    ToolCallStatusEvent,
    WarningEvent,
)
from .messages import build_messages
from .tool_calls import ToolCall, ToolCallAccumulator

logger = get_logger(__name__)

DEFAULT_MAX_ROUNDS = 10
NO_OUTPUT_PLACEHOLDER = "Tool executed successfully with no output."


class RoundTimeoutError(Exception):
    """The model did not finish a streaming round within its deadline."""
    
    def __init__(self, round_number: int, timeout: float):
        self.round_number = round_number
        self.timeout = timeout
        super().__init__(f"Model response timed out after {timeout:g}s (round {round_number})")


@dataclass
class ConversationRequest:
    """Input of one orchestration request.
    
    Attributes:
        prompt: New user message text.
        history: Prior turns as ``{"role", "content"}`` dicts.
        system_prompt: Optional system prompt, placed first.
        image_urls: Ordered inline image URLs for the new message.
        enabled_servers: Server ids whose tools are offered to the model.
        session_id: Caller session, used for cancellation.
    """
    
    prompt: str
    history: List[Dict[str, Any]] = field(default_factory=list)
    system_prompt: Optional[str] = None
    image_urls: List[str] = field(default_factory=list)
    enabled_servers: List[str] = field(default_factory=list)
    session_id: Optional[str] = None


def _tool_message(call_id: str, content: str) -> Dict[str, Any]:
    return {"role": "tool", "tool_call_id": call_id, "content": content}


class ToolOrchestrator:
    """Runs one chat request against the enabled tool providers.
    
    Rounds run strictly in sequence and tool calls within a round run one
    at a time in the order the model opened them. Discovery and dispatch
    failures are contained; only failures of the conversation plumbing
    itself end the stream with an error event.
    """
    
    def __init__(
        self,
        chat_model: ChatModel,
        client_manager: MCPClientManager,
        arxiv_tool: Optional[Any] = None,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        round_timeout: float = 120.0,
        tool_call_timeout: float = 60.0,
        preview_chars: int = 100,
        cancellation_manager: Optional[CancellationManager] = None
    ):
        """Initialize the orchestrator.
        
        Args:
            chat_model: Streaming function-calling model
            client_manager: Shared MCP session registry
            arxiv_tool: Local provider served under the ``arxiv`` server id
            max_rounds: Maximum number of model rounds per request
            round_timeout: Seconds allowed for one streaming round
            tool_call_timeout: Seconds allowed for one tool call
            preview_chars: Length of the result preview in status events
            cancellation_manager: Source of cancellation flags, if any
        """
        self.chat_model = chat_model
        self.client_manager = client_manager
        self.arxiv_tool = arxiv_tool
        self.max_rounds = max_rounds
        self.round_timeout = round_timeout
        self.tool_call_timeout = tool_call_timeout
        self.preview_chars = preview_chars
        self.cancellation_manager = cancellation_manager
    
    def _is_cancelled(self, request: ConversationRequest) -> bool:
        if self.cancellation_manager is None or not request.session_id:
            return False
        return self.cancellation_manager.is_cancelled(request.session_id)
    
    def _preview(self, text: str) -> str:
        if len(text) <= self.preview_chars:
            return text
        return text[:self.preview_chars] + "..."
    
    async def discover_tools(
        self,
        enabled_servers: List[str]
    ) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        """Resolve the enabled servers to tool providers.
        
        A server that cannot be initialized is dropped from this request.
        
        Returns:
            (providers keyed by server id, function-tool definitions)
        """
        providers: Dict[str, Any] = {}
        tools_by_server = []
        
        for server_id in dict.fromkeys(enabled_servers):
            if server_id == ARXIV_SERVER_ID and self.arxiv_tool is not None:
                provider = self.arxiv_tool
            else:
                try:
                    provider = await self.client_manager.get_or_create(server_id)
                except Exception as e:
                    logger.warning(f"Dropping MCP server '{server_id}' for this request: {e}")
                    continue
            
            providers[server_id] = provider
            tools_by_server.append((server_id, provider.get_tools()))
        
        tools = build_function_tools(tools_by_server)
        logger.info(f"Discovered {len(tools)} tools from {len(providers)} server(s)")
        return providers, tools
    
    async def stream(self, request: ConversationRequest) -> AsyncIterator[StreamEvent]:
        """Run the request, turning any fatal failure into one error event."""
        try:
            async with aclosing(self._run(request)) as events:
                async for event in events:
                    yield event
        except Exception as e:
            logger.error(f"Chat request failed: {e}", exc_info=True)
            yield ErrorEvent(str(e) or type(e).__name__)
    
    async def _run(self, request: ConversationRequest) -> AsyncIterator[StreamEvent]:
        messages = build_messages(
            request.system_prompt,
            request.history,
            request.prompt,
            request.image_urls,
        )
        providers, tools = await self.discover_tools(request.enabled_servers)
        loop = asyncio.get_running_loop()
        
        for round_number in range(1, self.max_rounds + 1):
            if self._is_cancelled(request):
                logger.info(f"Session {request.session_id} cancelled before round {round_number}")
                return
            
            accumulator = ToolCallAccumulator()
            content_parts: List[str] = []
            deadline = loop.time() + self.round_timeout
            
            async with aclosing(self.chat_model.stream(messages, tools or None)) as deltas:
                while True:
                    try:
                        async with asyncio.timeout(max(deadline - loop.time(), 0)):
                            delta = await anext(deltas)
                    except StopAsyncIteration:
                        break
                    except TimeoutError as e:
                        raise RoundTimeoutError(round_number, self.round_timeout) from e
                    
                    if self._is_cancelled(request):
                        logger.info(f"Session {request.session_id} cancelled during round {round_number}")
                        return
                    
                    if delta.content:
                        content_parts.append(delta.content)
                        yield TextEvent(delta.content)
                    for tool_delta in delta.tool_calls:
                        accumulator.feed(tool_delta)
            
            calls = accumulator.finish()
            if not calls:
                logger.info(f"Model finished after {round_number} round(s)")
                return
            
            logger.info(f"Round {round_number}: model requested {len(calls)} tool call(s)")
            messages.append({
                "role": "assistant",
                "content": "".join(content_parts) or None,
                "tool_calls": [call.to_message_dict() for call in calls],
            })
            
            for call in calls:
                if self._is_cancelled(request):
                    logger.info(f"Session {request.session_id} cancelled before tool '{call.name}'")
                    return
                async for event in self._execute_tool_call(call, providers, messages):
                    yield event
        
        logger.warning(f"Reached the tool round limit ({self.max_rounds}), stopping")
        yield WarningEvent(
            f"Reached the maximum of {self.max_rounds} tool-calling rounds; "
            f"the answer may be incomplete."
        )
    
    async def _execute_tool_call(
        self,
        call: ToolCall,
        providers: Dict[str, Any],
        messages: List[Dict[str, Any]]
    ) -> AsyncIterator[StreamEvent]:
        """Run one tool call and append its tool message to the conversation."""
        parsed = parse_function_name(call.name)
        if parsed is None:
            error = ToolResolutionError(call.name, "expected '<serverId>__<toolName>'")
            logger.warning(str(error))
            messages.append(_tool_message(call.id, f"Error: {error}"))
            return
        
        provider = providers.get(parsed.server_id)
        if provider is None:
            error = UnknownServerError(parsed.server_id)
            logger.warning(f"Tool call '{call.name}' not dispatched: {error}")
            messages.append(_tool_message(call.id, f"Error: {error}"))
            return
        
        yield ToolCallStatusEvent(parsed.server_id, parsed.tool_name, ToolCallState.RUNNING)
        
        try:
            arguments = call.parsed_arguments()
            async with asyncio.timeout(self.tool_call_timeout):
                result = await provider.call_tool(parsed.tool_name, arguments)
            text = result.text()
            if result.is_error:
                raise ToolExecutionError(
                    parsed.server_id, parsed.tool_name, text or "tool reported an error"
                )
        except Exception as e:
            if isinstance(e, ToolExecutionError):
                message = e.message
            elif isinstance(e, TimeoutError):
                message = f"timed out after {self.tool_call_timeout:g}s"
            else:
                message = str(e) or type(e).__name__
            logger.error(f"Tool '{call.name}' failed: {message}")
            yield ToolCallStatusEvent(
                parsed.server_id, parsed.tool_name, ToolCallState.ERROR, error=message
            )
            messages.append(_tool_message(call.id, f"Error: {message}"))
            return
        
        content = text or NO_OUTPUT_PLACEHOLDER
        yield ToolCallStatusEvent(
            parsed.server_id, parsed.tool_name, ToolCallState.COMPLETED, preview=self._preview(content)
        )
        messages.append(_tool_message(call.id, content))
