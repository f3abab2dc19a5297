"""Caller-facing stream events and their SSE framing."""
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union


class ToolCallState(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class TextEvent:
    """A text fragment of the assistant answer."""
    
    text: str
    
    def payload(self) -> Any:
        return self.text


@dataclass(frozen=True)
class ToolCallStatusEvent:
    """Status update for one tool call; the latest per (server, tool) wins."""
    
    server_id: str
    tool_name: str
    status: ToolCallState
    preview: Optional[str] = None
    error: Optional[str] = None
    
    def payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": "tool_call",
            "serverId": self.server_id,
            "toolName": self.tool_name,
            "status": self.status.value,
        }
        if self.preview is not None:
            data["preview"] = self.preview
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class WarningEvent:
    """Terminal warning, e.g. when the round cap stops the loop."""
    
    message: str
    
    def payload(self) -> Dict[str, Any]:
        return {"type": "warning", "message": self.message}


@dataclass(frozen=True)
class ErrorEvent:
    """Terminal error; partial output already streamed stands."""
    
    message: str
    
    def payload(self) -> Dict[str, Any]:
        return {"error": self.message}


StreamEvent = Union[TextEvent, ToolCallStatusEvent, WarningEvent, ErrorEvent]


def format_sse(event: StreamEvent) -> str:
    """Frame an event as one SSE ``data:`` record."""
    return f"data: {json.dumps(event.payload(), ensure_ascii=False)}\n\n"
