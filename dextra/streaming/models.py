"""
Dextra Streaming Models - Data structures for streaming events

A turn is consumed as an async iterator of ``AgentEvent``s. The HTTP
layer serializes each one as an SSE ``data:`` frame; the action runner
consumes the same stream without a client attached.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class EventType(str, Enum):
    """Types of events that can be streamed"""
    # Message events
    MESSAGE_CHUNK = "message_chunk"

    # Tool events
    TOOL_CALL_START = "tool_call_start"
    TOOL_RESULT = "tool_result"
    TOOL_UPDATE = "tool_update"

    # Execution events
    EXECUTION_START = "execution_start"
    EXECUTION_END = "execution_end"

    # Error events
    ERROR = "error"
    WARNING = "warning"


@dataclass
class AgentEvent:
    """
    Base event structure for streaming.

    - type: The type of event
    - data: Event-specific data
    - timestamp: When the event occurred
    - sequence: Position within the turn, assigned by the producer
    """
    type: EventType
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sequence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "sequence": self.sequence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentEvent":
        return cls(
            type=EventType(data["type"]),
            data=data["data"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            sequence=data.get("sequence", 0),
        )


def create_message_chunk_event(chunk: str, message_id: Optional[str] = None) -> AgentEvent:
    return AgentEvent(
        type=EventType.MESSAGE_CHUNK,
        data={"chunk": chunk, "message_id": message_id},
    )


def create_tool_call_event(
    tool_name: str,
    tool_call_id: str,
    tool_input: Dict[str, Any],
) -> AgentEvent:
    return AgentEvent(
        type=EventType.TOOL_CALL_START,
        data={
            "tool_name": tool_name,
            "tool_call_id": tool_call_id,
            "tool_input": tool_input,
        },
    )


def create_tool_result_event(
    tool_name: str,
    tool_call_id: str,
    result: Any,
    success: bool = True,
) -> AgentEvent:
    return AgentEvent(
        type=EventType.TOOL_RESULT,
        data={
            "tool_name": tool_name,
            "tool_call_id": tool_call_id,
            "result": result,
            "success": success,
        },
    )


def create_error_event(error: str, error_type: str = "Error") -> AgentEvent:
    return AgentEvent(
        type=EventType.ERROR,
        data={"error": error, "error_type": error_type},
    )
