"""Chat model adapter, message assembly and the tool-orchestration loop."""
from .chat_model import ChatDelta, ChatModel, LangChainChatModel, ToolCallDelta, create_chat_model
from .events import (
    ErrorEvent,
    TextEvent,
    ToolCallState,
    ToolCallStatusEvent,
    WarningEvent,
    format_sse,
)
from .orchestrator import ConversationRequest, RoundTimeoutError, ToolOrchestrator

__all__ = [
    "ChatDelta",
    "ChatModel",
    "LangChainChatModel",
    "ToolCallDelta",
    "create_chat_model",
    "ErrorEvent",
    "TextEvent",
    "ToolCallState",
    "ToolCallStatusEvent",
    "WarningEvent",
    "format_sse",
    "ConversationRequest",
    "RoundTimeoutError",
    "ToolOrchestrator",
]
