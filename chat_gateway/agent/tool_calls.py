"""Accumulation of streamed function calls.

Tool-call fragments arrive spread across many stream chunks. The
accumulator assembles them into complete ``ToolCall``s in the order their
call ids were opened.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.logger import get_logger
from .chat_model import ToolCallDelta

logger = get_logger(__name__)


@dataclass
class PendingToolCall:
    """A function call still receiving fragments."""
    
    id: str
    name: str = ""
    arguments: str = ""
    
    def append(self, delta: ToolCallDelta) -> None:
        if delta.name:
            self.name += delta.name
        if delta.arguments:
            self.arguments += delta.arguments


@dataclass(frozen=True)
class ToolCall:
    """A complete function call requested by the model.
    
    Attributes:
        id: Call id, referenced by the tool message answering it.
        name: Namespaced function name (``serverId__toolName``).
        arguments: Raw JSON argument text as streamed.
    """
    
    id: str
    name: str
    arguments: str = ""
    
    def parsed_arguments(self) -> Dict[str, Any]:
        """Decode the argument text; empty text means no arguments.
        
        Raises:
            ValueError: The text is not a JSON object.
        """
        if not self.arguments.strip():
            return {}
        value = json.loads(self.arguments)
        if not isinstance(value, dict):
            raise ValueError(f"Tool arguments must be a JSON object, got {type(value).__name__}")
        return value
    
    def to_message_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


class AccumulatorState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    FLUSHED = "flushed"


class ToolCallAccumulator:
    """State machine for one streaming round: Idle -> Accumulating -> Flushed.
    
    A fragment with a new call id closes the open call and opens another;
    a fragment without an id (or with the open call's id) extends the open
    call. ``finish()`` closes the last call and ends the round.
    """
    
    def __init__(self):
        self.state = AccumulatorState.IDLE
        self._pending: Optional[PendingToolCall] = None
        self._calls: List[ToolCall] = []
    
    def _flush_pending(self) -> None:
        if self._pending is not None:
            self._calls.append(ToolCall(
                id=self._pending.id,
                name=self._pending.name,
                arguments=self._pending.arguments,
            ))
            self._pending = None
    
    def feed(self, delta: ToolCallDelta) -> None:
        if self.state is AccumulatorState.FLUSHED:
            raise RuntimeError("Tool-call accumulator already flushed")
        
        if delta.id and (self._pending is None or delta.id != self._pending.id):
            self._flush_pending()
            self._pending = PendingToolCall(id=delta.id)
            self.state = AccumulatorState.ACCUMULATING
        
        if self._pending is None:
            logger.warning(f"Dropping tool-call fragment without an open call (index {delta.index})")
            return
        
        self._pending.append(delta)
    
    def finish(self) -> List[ToolCall]:
        """Close the round and return its calls in opening order."""
        if self.state is not AccumulatorState.FLUSHED:
            self._flush_pending()
            self.state = AccumulatorState.FLUSHED
        return list(self._calls)
