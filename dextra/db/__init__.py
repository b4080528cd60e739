"""
Dextra Database - asyncpg-based data access.

- Database: shared connection pool manager (one per app)
- Repository: base class for table-scoped data access
- ensure_schema: apply pending migrations on startup
- one repository per table, bundled by ``Stores``
"""

from dataclasses import dataclass

from .database import Database
from .repository import Repository
from .initialize import ensure_schema
from .conversations import ConversationRepository
from .messages import MessageRepository
from .actions import ActionRepository, sanitize_action_update
from .token_stats import TokenStatRepository
from .users import UserRepository


@dataclass
class Stores:
    """The repositories the orchestrator and action runner talk to."""
    conversations: ConversationRepository
    messages: MessageRepository
    actions: ActionRepository
    token_stats: TokenStatRepository
    users: UserRepository

    @classmethod
    def from_database(cls, db: Database) -> "Stores":
        return cls(
            conversations=ConversationRepository(db),
            messages=MessageRepository(db),
            actions=ActionRepository(db),
            token_stats=TokenStatRepository(db),
            users=UserRepository(db),
        )


__all__ = [
    "Database",
    "Repository",
    "ensure_schema",
    "ConversationRepository",
    "MessageRepository",
    "ActionRepository",
    "TokenStatRepository",
    "UserRepository",
    "Stores",
    "sanitize_action_update",
]
