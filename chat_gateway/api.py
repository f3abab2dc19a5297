"""FastAPI application for the MCP chat gateway."""
import logging
from typing import Any, Dict, List, Optional

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from .agent.chat_model import create_chat_model
from .agent.events import ErrorEvent, format_sse
from .agent.messages import ImageAttachment, resolve_image_urls
from .agent.orchestrator import ConversationRequest, ToolOrchestrator
from .config import get_settings
from .mcp.arxiv_client import ArxivTool
from .mcp.client_manager import MCPClientManager
from .mcp.config import ARXIV_SERVER_ID
from .mcp.exceptions import MCPError, UnknownServerError
from .utils.cancellation_manager import get_cancellation_manager
from .utils.logger import configure_logging

# Initialize settings and logger
settings = get_settings()

# Setup root logger so all modules can output logs
root_logger = configure_logging(settings.log_level, settings.log_file)

logger = logging.getLogger("chat_gateway.api")
logger.setLevel(settings.log_level)

app = FastAPI(
    title="MCP Chat Gateway",
    description="Streaming chat with tool calling over MCP servers",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Process-lifetime collaborators, created at startup
http_client: Optional[httpx.AsyncClient] = None
client_manager: Optional[MCPClientManager] = None
arxiv_tool: Optional[ArxivTool] = None


class ChatMessage(BaseModel):
    """A prior conversation turn."""
    
    role: str
    content: Any = None


class ChatStreamRequest(BaseModel):
    """Request model for a streaming chat turn."""
    
    model_config = ConfigDict(populate_by_name=True)
    
    messages: List[ChatMessage] = Field(
        default_factory=list,
        description="Prior conversation turns; system entries are ignored"
    )
    system_prompt: Optional[str] = Field(
        None,
        alias="systemPrompt",
        description="System prompt placed first in the conversation"
    )
    prompt: str = Field(
        "",
        description="The new user message",
        max_length=100000
    )
    model: Optional[str] = Field(
        None,
        description="Model name; the configured default if omitted"
    )
    enabled_servers: List[str] = Field(
        default_factory=list,
        alias="enabledServers",
        description="Server ids whose tools are offered to the model"
    )
    image_attachments: List[ImageAttachment] = Field(
        default_factory=list,
        alias="imageAttachments",
        description="Inline images sent with the prompt"
    )
    session_id: Optional[str] = Field(
        None,
        alias="sessionId",
        description="Caller session id, used for cancellation"
    )


class ConnectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    
    server_id: str = Field(..., alias="serverId", min_length=1)


class ToolCallRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    
    server_id: str = Field(..., alias="serverId", min_length=1)
    tool_name: str = Field(..., alias="toolName", min_length=1)
    arguments: Dict[str, Any] = Field(default_factory=dict)


def _require_client_manager() -> MCPClientManager:
    if client_manager is None:
        raise HTTPException(status_code=503, detail="MCP client manager not initialized")
    return client_manager


async def _resolve_provider(server_id: str):
    """Return the tool provider for a server id, initializing MCP clients on demand."""
    manager = _require_client_manager()
    if server_id == ARXIV_SERVER_ID and arxiv_tool is not None:
        return arxiv_tool
    
    try:
        return await manager.get_or_create(server_id)
    except UnknownServerError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except MCPError as e:
        logger.error(f"Failed to connect to MCP server '{server_id}': {e}")
        raise HTTPException(status_code=502, detail=str(e))


@app.on_event("startup")
async def startup_event():
    """Create the shared HTTP client, MCP session registry and arXiv tool."""
    global http_client, client_manager, arxiv_tool
    logger.info("Starting MCP Chat Gateway")
    
    http_client = httpx.AsyncClient(timeout=settings.mcp_request_timeout)
    client_manager = MCPClientManager(http_client=http_client, settings=settings)
    arxiv_tool = ArxivTool(http_client=http_client, settings=settings)
    
    servers = client_manager.registry.list_servers()
    logger.info(f"Known MCP servers: {', '.join(server.id for server in servers) or 'none'}")


@app.on_event("shutdown")
async def shutdown_event():
    """Disconnect MCP clients and close the HTTP client."""
    logger.info("Shutting down MCP Chat Gateway...")
    
    if client_manager:
        client_manager.disconnect_all()
        logger.info("MCP servers disconnected")
    if http_client:
        await http_client.aclose()


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "MCP Chat Gateway",
        "version": "0.1.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    manager = _require_client_manager()
    return {
        "status": "healthy",
        "mcp": {
            "connected_servers": manager.get_connected_servers(),
            "known_servers": [server.id for server in manager.registry.list_servers()],
        }
    }


@app.get("/mcp/servers")
async def list_servers():
    """List the configured MCP servers."""
    manager = _require_client_manager()
    return {"servers": [server.to_dict() for server in manager.registry.list_servers()]}


@app.post("/mcp/connect")
async def connect_server(request: ConnectRequest):
    """Initialize a server (if needed) and return its tools."""
    manager = _require_client_manager()
    if manager.registry.get_server(request.server_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown MCP server: {request.server_id}")
    
    provider = await _resolve_provider(request.server_id)
    tools = provider.get_tools()
    logger.info(f"Connected to '{request.server_id}' ({len(tools)} tools)")
    return {
        "serverId": request.server_id,
        "connected": True,
        "tools": [tool.to_dict() for tool in tools],
    }


@app.post("/mcp/call")
async def call_tool(request: ToolCallRequest):
    """Call a single tool directly, outside the chat loop."""
    provider = await _resolve_provider(request.server_id)
    
    try:
        result = await provider.call_tool(request.tool_name, request.arguments)
    except MCPError as e:
        logger.error(f"Tool '{request.server_id}/{request.tool_name}' failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    
    return {
        "serverId": request.server_id,
        "toolName": request.tool_name,
        "result": result.to_dict(),
        "text": result.text(),
        "isError": result.is_error,
    }


@app.post("/chat/stream")
async def chat_stream(request: ChatStreamRequest):
    """
    Run one chat turn with Server-Sent Events (SSE) streaming.
    
    Each event is a ``data:`` record whose JSON payload is one of:
    - a plain string: text fragment of the answer
    - {"type": "tool_call", ...}: tool call status (running, completed, error)
    - {"type": "warning", "message": ...}: the tool round limit was reached
    - {"error": ...}: the request failed
    
    Args:
        request: Chat request with prompt, history and enabled servers
        
    Returns:
        StreamingResponse with SSE events
    """
    manager = _require_client_manager()
    
    image_urls = resolve_image_urls(request.image_attachments)
    if not request.prompt.strip() and not image_urls:
        raise HTTPException(status_code=400, detail="A prompt or at least one image is required")
    
    logger.info(
        f"Received chat request [session: {request.session_id or 'none'}, "
        f"servers: {request.enabled_servers}]: {request.prompt[:100]}"
    )
    
    # A cancel that arrived after an earlier stream ended must not stop this one
    if request.session_id:
        get_cancellation_manager().clear(request.session_id)
    
    conversation = ConversationRequest(
        prompt=request.prompt,
        history=[message.model_dump() for message in request.messages],
        system_prompt=request.system_prompt,
        image_urls=image_urls,
        enabled_servers=request.enabled_servers,
        session_id=request.session_id,
    )
    
    async def event_generator():
        """Generate SSE events from the orchestration loop."""
        cancellation_manager = get_cancellation_manager()
        session_id = request.session_id
        
        try:
            orchestrator = ToolOrchestrator(
                chat_model=create_chat_model(request.model, settings=settings),
                client_manager=manager,
                arxiv_tool=arxiv_tool,
                max_rounds=settings.max_tool_rounds,
                round_timeout=settings.round_timeout,
                tool_call_timeout=settings.tool_call_timeout,
                preview_chars=settings.tool_preview_chars,
                cancellation_manager=cancellation_manager,
            )
            async for event in orchestrator.stream(conversation):
                yield format_sse(event)
        except Exception as e:
            logger.error(f"Error in chat stream: {str(e)}", exc_info=True)
            yield format_sse(ErrorEvent(str(e)))
        finally:
            # Clean up cancellation flag if it exists
            if session_id:
                cancellation_manager.clear(session_id)
    
    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
            "Access-Control-Allow-Origin": "*"
        }
    )


@app.post("/cancel/{session_id}")
async def cancel_generation(session_id: str):
    """
    Cancel an ongoing chat stream for a session.
    
    The orchestration loop stops at its next suspension point and sends
    no further events.
    
    Args:
        session_id: Session ID to cancel
        
    Returns:
        Success status and cancellation details
    """
    cancellation_manager = get_cancellation_manager()
    cancellation_manager.cancel(session_id)
    logger.info(f"Cancellation requested for session: {session_id}")
    
    return {
        "success": True,
        "session_id": session_id,
        "message": "Cancellation signal sent"
    }


def main():
    import uvicorn
    
    uvicorn.run(
        "chat_gateway.api:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
