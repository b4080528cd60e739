"""
Dextra - conversational copilot core for Solana and DeFi operations.

Dextra turns a chat message into a tool-using LLM turn: it selects the
tool groups a request needs, gates sensitive tools behind a human
confirmation, streams the model's reply while running tools, and replays
saved requests on a schedule.

Quick Start:
    from dextra import Dextra

    app = Dextra("config.yaml")
    async for event in app.stream_chat(user, conversation_id, message):
        print(event.to_dict())
"""

from .app import Dextra
from .config import Settings, load_settings
from .errors import (
    ConfigError,
    ConversationNotFoundError,
    DextraError,
    NoSuchToolError,
    ToolArgumentsError,
    ToolSpecError,
)
from .models import (
    Action,
    Conversation,
    InvocationState,
    Message,
    MessageRole,
    TokenStat,
    ToolInvocation,
    ToolUpdate,
    UserProfile,
)
from .streaming import AgentEvent, EventType

__version__ = "0.1.0"

__all__ = [
    "Dextra",
    "Settings",
    "load_settings",
    "ConfigError",
    "ConversationNotFoundError",
    "DextraError",
    "NoSuchToolError",
    "ToolArgumentsError",
    "ToolSpecError",
    "Action",
    "Conversation",
    "InvocationState",
    "Message",
    "MessageRole",
    "TokenStat",
    "ToolInvocation",
    "ToolUpdate",
    "UserProfile",
    "AgentEvent",
    "EventType",
]
