"""
ConversationRepository - Data access for the conversations table.

Deletion cascades to the conversation's messages and actions inside a
single transaction, scoped to the owning user.
"""

import logging
from datetime import datetime
from typing import Optional

from ..models import Conversation, utcnow
from .repository import Repository

logger = logging.getLogger(__name__)


class ConversationRepository(Repository):
    TABLE_NAME = "conversations"

    async def get_conversation(
        self, conversation_id: str, user_id: Optional[str] = None
    ) -> Optional[Conversation]:
        where = {"id": conversation_id}
        if user_id is not None:
            where["user_id"] = user_id
        row = await self._fetch_one(where)
        return Conversation.from_row(row) if row else None

    async def create_conversation(
        self, conversation_id: str, user_id: str, title: str
    ) -> Conversation:
        now = utcnow()
        row = await self._insert({
            "id": conversation_id,
            "user_id": user_id,
            "title": title,
            "created_at": now,
            "updated_at": now,
            "last_message_at": now,
            "last_read_at": now,
        })
        logger.info(f"Created conversation {conversation_id} for user {user_id}")
        return Conversation.from_row(row)

    async def touch_conversation(
        self, conversation_id: str, at: Optional[datetime] = None
    ) -> None:
        at = at or utcnow()
        await self._update(
            {"id": conversation_id},
            {"last_message_at": at, "updated_at": at},
            returning="id",
        )

    async def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        """Delete a conversation with its messages and actions. All-or-nothing."""
        async with self.db.transaction() as conn:
            owned = await conn.fetchval(
                "SELECT 1 FROM conversations WHERE id = $1 AND user_id = $2",
                conversation_id,
                user_id,
            )
            if not owned:
                return False
            await conn.execute(
                "DELETE FROM actions WHERE conversation_id = $1", conversation_id
            )
            await conn.execute(
                "DELETE FROM messages WHERE conversation_id = $1", conversation_id
            )
            await conn.execute(
                "DELETE FROM conversations WHERE id = $1 AND user_id = $2",
                conversation_id,
                user_id,
            )
        logger.info(f"Deleted conversation {conversation_id}")
        return True
