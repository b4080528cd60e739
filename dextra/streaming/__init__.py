"""Dextra Streaming - event types emitted while a turn runs."""

from .models import (
    AgentEvent,
    EventType,
    create_error_event,
    create_message_chunk_event,
    create_tool_call_event,
    create_tool_result_event,
)

__all__ = [
    "AgentEvent",
    "EventType",
    "create_error_event",
    "create_message_chunk_event",
    "create_tool_call_event",
    "create_tool_result_event",
]
