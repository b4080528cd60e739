"""Shared fixtures: a scripted LLM client and in-memory stores.

The stores mirror the repository methods the orchestrator and the
action runner call, so tests exercise the real control flow without a
database.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest
from pydantic import BaseModel, Field

from dextra.db import Stores
from dextra.db.actions import sanitize_action_update
from dextra.llm.base import BaseLLMClient, LLMResponse, StreamChunk, ToolCall, Usage
from dextra.models import Action, Conversation, Message, UserProfile, utcnow
from dextra.tools import ToolCatalog, ToolSpec, Toolset
from dextra.tools.builtin import ask_for_confirmation


# =========================================================================
# Scripted LLM client
# =========================================================================


class FakeLLMClient(BaseLLMClient):
    """Replays canned responses and records every call.

    ``responses`` feed ``chat_completion``; each entry is an LLMResponse,
    a string (wrapped as content) or an Exception (raised).
    ``streams`` feed ``stream_completion``; each entry is a list of
    StreamChunks or an Exception.
    """

    provider = "fake"

    def __init__(self, responses=None, streams=None):
        super().__init__(model="fake-model")
        self.responses: List[Any] = list(responses or [])
        self.streams: List[Any] = list(streams or [])
        self.calls: List[Dict[str, Any]] = []
        self.stream_calls: List[Dict[str, Any]] = []

    async def _call_api(self, messages, tools=None, **kwargs):
        self.calls.append({"messages": messages, "tools": tools, "kwargs": kwargs})
        if not self.responses:
            return LLMResponse(content="")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return LLMResponse(content=item)
        return item

    async def _stream_api(self, messages, tools=None, **kwargs):
        self.stream_calls.append({
            "messages": [dict(m) for m in messages],
            "tools": tools,
            "kwargs": kwargs,
        })
        item = self.streams.pop(0) if self.streams else [StreamChunk(content="", is_final=True)]
        if isinstance(item, Exception):
            raise item
        for chunk in item:
            yield chunk


def text_stream(text: str, usage: Optional[Usage] = None) -> List[StreamChunk]:
    """A streamed plain-text reply, split into two chunks."""
    half = len(text) // 2
    return [
        StreamChunk(content=text[:half]),
        StreamChunk(content=text[half:], is_final=True, usage=usage),
    ]


def tool_stream(*calls: ToolCall, text: str = "", usage: Optional[Usage] = None) -> List[StreamChunk]:
    """A streamed reply ending in tool calls."""
    chunks = []
    if text:
        chunks.append(StreamChunk(content=text))
    chunks.append(StreamChunk(content="", tool_calls=list(calls), is_final=True, usage=usage))
    return chunks


# =========================================================================
# In-memory stores
# =========================================================================


class InMemoryConversations:
    def __init__(self):
        self.conversations: Dict[str, Conversation] = {}
        self.deleted: List[str] = []

    async def get_conversation(self, conversation_id, user_id=None):
        conv = self.conversations.get(conversation_id)
        if conv is None or (user_id is not None and conv.user_id != user_id):
            return None
        return conv

    async def create_conversation(self, conversation_id, user_id, title):
        now = utcnow()
        conv = Conversation(
            id=conversation_id, user_id=user_id, title=title,
            created_at=now, updated_at=now, last_message_at=now,
        )
        self.conversations[conversation_id] = conv
        return conv

    async def touch_conversation(self, conversation_id, at=None):
        conv = self.conversations.get(conversation_id)
        if conv is not None:
            conv.last_message_at = at or utcnow()
            conv.updated_at = conv.last_message_at

    async def delete_conversation(self, conversation_id, user_id):
        conv = self.conversations.get(conversation_id)
        if conv is None or conv.user_id != user_id:
            return False
        del self.conversations[conversation_id]
        self.deleted.append(conversation_id)
        return True


class InMemoryMessages:
    def __init__(self):
        self.messages: List[Message] = []
        self.invocation_updates: List[Any] = []

    def for_conversation(self, conversation_id) -> List[Message]:
        found = [m for m in self.messages if m.conversation_id == conversation_id]
        return sorted(found, key=lambda m: m.created_at)

    async def get_recent_messages(self, conversation_id, limit):
        return self.for_conversation(conversation_id)[-limit:]

    async def get_conversation_messages(self, conversation_id, user_id):
        return self.for_conversation(conversation_id)

    async def latest_created_at(self, conversation_id):
        found = self.for_conversation(conversation_id)
        return found[-1].created_at if found else None

    async def create_messages(self, messages):
        self.messages.extend(messages)
        return [m.id for m in messages]

    async def update_tool_invocations(self, message_id, invocations):
        self.invocation_updates.append((message_id, [inv.to_dict() for inv in invocations]))


class InMemoryActions:
    def __init__(self, actions=None):
        self.actions: Dict[str, Action] = {a.id: a for a in (actions or [])}
        self.records: List[Dict[str, Any]] = []
        self.created: List[Action] = []

    async def create_action(self, action):
        action.created_at = action.updated_at = utcnow()
        self.actions[action.id] = action
        self.created.append(action)
        return action

    async def get_action(self, action_id):
        return self.actions.get(action_id)

    async def get_schedulable_actions(self, now):
        return [
            a for a in self.actions.values()
            if a.triggered and not a.paused and not a.completed and a.frequency
        ]

    async def claim_action(self, action_id, now, lease):
        action = self.actions[action_id]
        if action.claimed_at is not None and action.claimed_at >= now - lease:
            return False
        action.claimed_at = now
        return True

    async def record_execution(self, action_id, fields):
        action = self.actions[action_id]
        for key, value in fields.items():
            setattr(action, key, value)
        action.claimed_at = None
        self.records.append({"id": action_id, **fields})
        return action

    async def list_user_actions(self, user_id):
        return [a for a in self.actions.values() if a.user_id == user_id and not a.completed]

    async def update_action(self, action_id, user_id, changes):
        action = self.actions.get(action_id)
        clean = sanitize_action_update(changes)
        if action is None or action.user_id != user_id or not clean:
            return None
        for key, value in clean.items():
            setattr(action, key, value)
        return action

    async def delete_action(self, action_id, user_id):
        action = self.actions.get(action_id)
        if action is None or action.user_id != user_id:
            return False
        del self.actions[action_id]
        return True


class InMemoryTokenStats:
    def __init__(self):
        self.stats = []

    async def create_token_stat(self, stat):
        self.stats.append(stat)


class InMemoryUsers:
    def __init__(self, profiles=None):
        self.profiles: Dict[str, UserProfile] = {p.user_id: p for p in (profiles or [])}

    async def get_profile(self, user_id):
        return self.profiles.get(user_id)


def make_stores(profiles=None, actions=None) -> Stores:
    return Stores(
        conversations=InMemoryConversations(),
        messages=InMemoryMessages(),
        actions=InMemoryActions(actions),
        token_stats=InMemoryTokenStats(),
        users=InMemoryUsers(profiles),
    )


# =========================================================================
# Test tools
# =========================================================================


class PriceParams(BaseModel):
    mint: str = Field(min_length=1)


class SwapParams(BaseModel):
    requires_confirmation: bool = True
    mint: str
    amount: float = Field(gt=0)


async def _price_executor(args, context):
    return {"success": True, "data": {"mint": args.mint, "price_usd": "1.23"}}


async def _swap_executor(args, context):
    return {"success": True, "data": {"signature": "5xSig", "amount": args.amount}}


def price_tool(name: str = "get_price") -> ToolSpec:
    return ToolSpec(
        name=name,
        description="Get the USD price of a token.",
        parameters=PriceParams,
        executor=_price_executor,
    )


def swap_tool() -> ToolSpec:
    return ToolSpec(
        name="swap_tokens",
        description="Swap tokens (requires confirmation).",
        parameters=SwapParams,
        executor=_swap_executor,
    )


def make_catalog(env=None, disabled=None) -> ToolCatalog:
    """search_token (ungrouped), core_tools, market_tools and trade_tools."""
    catalog = ToolCatalog(disabled_names=disabled, env=env if env is not None else {})
    catalog.register_toolset(Toolset("core_tools", "Ask the user to confirm."))
    catalog.register_toolset(Toolset("market_tools", "Token prices."))
    catalog.register_toolset(Toolset("trade_tools", "Swaps (requires confirmation)."))
    catalog.register(price_tool("search_token"))
    catalog.register(ask_for_confirmation, toolset="core_tools")
    catalog.register(price_tool(), toolset="market_tools")
    catalog.register(swap_tool(), toolset="trade_tools")
    return catalog


# =========================================================================
# Fixtures
# =========================================================================


@pytest.fixture
def user():
    return UserProfile(user_id="user-1", wallet_public_key="Wa11etPubKey111", degen_mode=False)


@pytest.fixture
def stores(user):
    return make_stores(profiles=[user])


@pytest.fixture
def catalog():
    return make_catalog()


@pytest.fixture
def now():
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=utcnow().tzinfo)


def seed_message(stores, message: Message, at: datetime) -> Message:
    message.created_at = at
    stores.messages.messages.append(message)
    return message


def minutes(n: int) -> timedelta:
    return timedelta(minutes=n)
