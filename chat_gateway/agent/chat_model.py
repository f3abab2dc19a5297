"""Streaming function-calling chat model.

The orchestration loop only depends on ``ChatModel.stream``; the hosted
endpoint is reached through LangChain's ``ChatOpenAI``.
"""
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_openai import ChatOpenAI

from ..config import Settings, get_settings
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ToolCallDelta:
    """One streamed fragment of a function call (OpenAI delta shape)."""
    
    index: int = 0
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


@dataclass
class ChatDelta:
    """One streamed chunk: a text fragment and/or tool-call fragments."""
    
    content: str = ""
    tool_calls: List[ToolCallDelta] = field(default_factory=list)


class ChatModel(ABC):
    """Opaque streaming chat completion with function calling."""
    
    @abstractmethod
    def stream(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None
    ) -> AsyncIterator[ChatDelta]:
        """Stream one completion for the given conversation.
        
        Args:
            messages: Role-tagged conversation dicts (OpenAI chat shape)
            tools: Function-tool definitions; automatic tool choice when given
        """


def _chunk_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        )
    return ""


def _to_ai_message(message: Dict[str, Any]) -> AIMessage:
    tool_calls = []
    invalid_tool_calls = []
    for call in message.get("tool_calls") or []:
        function = call.get("function", {})
        raw_arguments = function.get("arguments") or "{}"
        try:
            args = json.loads(raw_arguments)
        except json.JSONDecodeError as e:
            args = None
            error = str(e)
        else:
            error = "arguments must be a JSON object"
        
        if isinstance(args, dict):
            tool_calls.append({"name": function.get("name", ""), "args": args, "id": call.get("id")})
        else:
            invalid_tool_calls.append({
                "name": function.get("name"),
                "args": raw_arguments,
                "id": call.get("id"),
                "error": error,
            })
    
    return AIMessage(
        content=message.get("content") or "",
        tool_calls=tool_calls,
        invalid_tool_calls=invalid_tool_calls,
    )


def to_langchain_messages(messages: List[Dict[str, Any]]) -> List[BaseMessage]:
    """Convert OpenAI-shaped message dicts to LangChain messages."""
    converted: List[BaseMessage] = []
    for message in messages:
        role = message.get("role")
        if role == "system":
            converted.append(SystemMessage(content=message.get("content") or ""))
        elif role == "user":
            converted.append(HumanMessage(content=message.get("content") or ""))
        elif role == "assistant":
            converted.append(_to_ai_message(message))
        elif role == "tool":
            converted.append(ToolMessage(
                content=message.get("content") or "",
                tool_call_id=message["tool_call_id"],
            ))
        else:
            raise ValueError(f"Unsupported message role: {role}")
    return converted


class LangChainChatModel(ChatModel):
    """ChatModel backed by an OpenAI-compatible endpoint."""
    
    def __init__(
        self,
        model_name: str,
        api_key: str,
        api_base: str,
        temperature: float = 0.3
    ):
        self.model_name = model_name
        self.llm = ChatOpenAI(
            model=model_name,
            temperature=temperature,
            openai_api_key=api_key,
            openai_api_base=api_base,
            streaming=True
        )
    
    async def stream(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None
    ) -> AsyncIterator[ChatDelta]:
        runnable = self.llm.bind_tools(tools, tool_choice="auto") if tools else self.llm
        
        async for chunk in runnable.astream(to_langchain_messages(messages)):
            if not isinstance(chunk, AIMessageChunk):
                continue
            
            deltas = [
                ToolCallDelta(
                    index=tool_chunk.get("index") or 0,
                    id=tool_chunk.get("id"),
                    name=tool_chunk.get("name"),
                    arguments=tool_chunk.get("args"),
                )
                for tool_chunk in chunk.tool_call_chunks
            ]
            text = _chunk_text(chunk.content)
            if text or deltas:
                yield ChatDelta(content=text, tool_calls=deltas)


def create_chat_model(
    model_name: Optional[str] = None,
    settings: Optional[Settings] = None
) -> ChatModel:
    """Create the chat model for a request."""
    settings = settings or get_settings()
    model_name = model_name or settings.default_model
    logger.info(f"Creating chat model '{model_name}'")
    return LangChainChatModel(
        model_name=model_name,
        api_key=settings.openai_api_key,
        api_base=settings.openai_api_base,
        temperature=settings.temperature,
    )
