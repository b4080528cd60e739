"""
Dextra Models - Core data structures shared by the turn executor,
the confirmation state machine and the action runner.

Rows come back from asyncpg as Records; every model offers ``from_row``
so repositories never leak driver types upward.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .constants import TOOL_UPDATE_EVENT


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _load_json(value: Any, default: Any) -> Any:
    """JSONB columns arrive as text unless a codec is registered."""
    if value is None:
        return default
    if isinstance(value, (bytes, str)):
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return default
    return value


def _is_content_blocks(value: Any) -> bool:
    return (
        isinstance(value, list)
        and bool(value)
        and all(isinstance(block, dict) and "type" in block for block in value)
    )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    from dateutil import parser
    return parser.isoparse(str(value))


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


class InvocationState(str, Enum):
    CALL = "call"
    RESULT = "result"


@dataclass
class ToolInvocation:
    """A single tool call embedded in a message.

    ``state`` moves from ``call`` to ``result`` exactly once; the result
    payload is whatever the executor (or the human, for confirmations)
    produced.
    """
    tool_call_id: str
    tool_name: str
    args: Dict[str, Any] = field(default_factory=dict)
    state: InvocationState = InvocationState.CALL
    result: Any = None

    @property
    def is_resolved(self) -> bool:
        return self.state == InvocationState.RESULT and self.result is not None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "tool_call_id": self.tool_call_id,
            "tool_name": self.tool_name,
            "args": self.args,
            "state": self.state.value,
        }
        if self.result is not None:
            data["result"] = self.result
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolInvocation":
        if not isinstance(data, dict):
            raise TypeError(f"Tool invocation must be an object, got {type(data).__name__}")
        return cls(
            tool_call_id=data.get("tool_call_id") or data.get("toolCallId", ""),
            tool_name=data.get("tool_name") or data.get("toolName", ""),
            args=data.get("args") or {},
            state=InvocationState(data.get("state", InvocationState.CALL.value)),
            result=data.get("result"),
        )


@dataclass
class Message:
    """A persisted conversation turn."""
    conversation_id: str
    role: MessageRole
    content: Union[str, List[Dict[str, Any]], None] = ""
    tool_invocations: List[ToolInvocation] = field(default_factory=list)
    attachments: List[Dict[str, Any]] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None

    @property
    def text(self) -> str:
        """Plain text of the message, flattening content blocks."""
        if not self.content:
            return ""
        if isinstance(self.content, str):
            return self.content
        parts = [
            block.get("text", "")
            for block in self.content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        return "".join(parts)

    @property
    def is_empty(self) -> bool:
        """No text and no tool invocation: never persisted."""
        return not self.text.strip() and not self.tool_invocations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "role": self.role.value,
            "content": self.content,
            "tool_invocations": [inv.to_dict() for inv in self.tool_invocations],
            "attachments": self.attachments,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            id=data.get("id") or new_id(),
            conversation_id=data.get("conversation_id", ""),
            role=MessageRole(data.get("role", MessageRole.USER.value)),
            content=data.get("content", ""),
            tool_invocations=[
                ToolInvocation.from_dict(inv)
                for inv in data.get("tool_invocations") or data.get("toolInvocations") or []
            ],
            attachments=data.get("attachments") or [],
            created_at=_parse_dt(data.get("created_at")),
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Message":
        content = row.get("content")
        # Structured content blocks are stored as JSON text.
        if isinstance(content, str) and content.startswith("["):
            decoded = _load_json(content, None)
            if _is_content_blocks(decoded):
                content = decoded
        return cls(
            id=str(row["id"]),
            conversation_id=str(row["conversation_id"]),
            role=MessageRole(row["role"]),
            content=content,
            tool_invocations=[
                ToolInvocation.from_dict(inv)
                for inv in _load_json(row.get("tool_invocations"), [])
            ],
            attachments=_load_json(row.get("attachments"), []),
            created_at=row.get("created_at"),
        )


def stamp_messages(
    messages: List[Message],
    now: Optional[datetime] = None,
    after: Optional[datetime] = None,
) -> List[Message]:
    """Assign strictly increasing ``created_at`` values to a batch.

    Each message gets ``base + index`` milliseconds. The base is never
    earlier than 1ms after ``after`` (the newest stored message), so
    insertion order and timestamp order always agree.
    """
    base = now or utcnow()
    if after is not None and base <= after:
        base = after + timedelta(milliseconds=1)
    for index, message in enumerate(messages):
        message.created_at = base + timedelta(milliseconds=index)
    return messages


@dataclass
class Conversation:
    id: str
    user_id: str
    title: str = "New Conversation"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None
    last_read_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "last_message_at": _iso(self.last_message_at),
            "last_read_at": _iso(self.last_read_at),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Conversation":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            title=row.get("title") or "New Conversation",
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            last_message_at=row.get("last_message_at"),
            last_read_at=row.get("last_read_at"),
        )


@dataclass
class Action:
    """A persisted automation: a prompt replayed on a fixed cadence."""
    id: str
    user_id: str
    conversation_id: str
    description: str
    name: Optional[str] = None
    frequency: Optional[int] = None  # seconds
    max_executions: Optional[int] = None
    times_executed: int = 0
    last_executed_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    paused: bool = False
    completed: bool = False
    triggered: bool = True
    start_time: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "conversation_id": self.conversation_id,
            "name": self.name,
            "description": self.description,
            "frequency": self.frequency,
            "max_executions": self.max_executions,
            "times_executed": self.times_executed,
            "last_executed_at": _iso(self.last_executed_at),
            "last_success_at": _iso(self.last_success_at),
            "last_failure_at": _iso(self.last_failure_at),
            "paused": self.paused,
            "completed": self.completed,
            "triggered": self.triggered,
            "start_time": _iso(self.start_time),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Action":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            conversation_id=str(row["conversation_id"]),
            name=row.get("name"),
            description=row.get("description") or "",
            frequency=row.get("frequency"),
            max_executions=row.get("max_executions"),
            times_executed=row.get("times_executed") or 0,
            last_executed_at=row.get("last_executed_at"),
            last_success_at=row.get("last_success_at"),
            last_failure_at=row.get("last_failure_at"),
            paused=bool(row.get("paused")),
            completed=bool(row.get("completed")),
            triggered=bool(row.get("triggered", True)),
            start_time=row.get("start_time"),
            claimed_at=row.get("claimed_at"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass
class TokenStat:
    """Token usage of one turn, attributed to the messages it produced."""
    user_id: str
    message_ids: List[str]
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None


@dataclass
class UserProfile:
    """Caller identity as seen by the core.

    Wallet management is delegated; the core only needs the public key of
    the active wallet and the user's standing confirmation preference.
    """
    user_id: str
    wallet_public_key: Optional[str] = None
    degen_mode: bool = False


@dataclass
class ToolUpdate:
    """Out-of-band event pushed to live streams when a confirmation resolves."""
    tool_call_id: str
    result: str
    type: str = TOOL_UPDATE_EVENT

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "tool_call_id": self.tool_call_id, "result": self.result}
