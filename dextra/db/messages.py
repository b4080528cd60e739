"""
MessageRepository - Data access for the messages table.

Tool invocations and attachments are JSONB; structured message content is
stored as JSON text and decoded by ``Message.from_row``.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models import Message, ToolInvocation
from .repository import Repository

logger = logging.getLogger(__name__)


def _content_column(content: Any) -> Optional[str]:
    if content is None or isinstance(content, str):
        return content
    return json.dumps(content)


class MessageRepository(Repository):
    TABLE_NAME = "messages"

    async def get_recent_messages(
        self, conversation_id: str, limit: int
    ) -> List[Message]:
        """The newest ``limit`` messages, returned oldest first."""
        rows = await self._fetch_many(
            where="conversation_id = $1",
            args=(conversation_id,),
            order_by="created_at DESC",
            limit=limit,
        )
        return [Message.from_row(r) for r in reversed(rows)]

    async def get_conversation_messages(
        self, conversation_id: str, user_id: str
    ) -> Optional[List[Message]]:
        """All messages of a conversation owned by ``user_id``; None if not owned."""
        owned = await self.db.fetchval(
            "SELECT 1 FROM conversations WHERE id = $1 AND user_id = $2",
            conversation_id,
            user_id,
        )
        if not owned:
            return None
        rows = await self._fetch_many(
            where="conversation_id = $1",
            args=(conversation_id,),
            order_by="created_at ASC",
        )
        return [Message.from_row(r) for r in rows]

    async def latest_created_at(self, conversation_id: str) -> Optional[datetime]:
        return await self.db.fetchval(
            "SELECT MAX(created_at) FROM messages WHERE conversation_id = $1",
            conversation_id,
        )

    async def create_messages(self, messages: List[Message]) -> List[str]:
        if not messages:
            return []
        query = (
            "INSERT INTO messages "
            "(id, conversation_id, role, content, tool_invocations, attachments, created_at) "
            "VALUES ($1, $2, $3, $4, $5, $6, $7)"
        )
        args = [
            (
                m.id,
                m.conversation_id,
                m.role.value,
                _content_column(m.content),
                [inv.to_dict() for inv in m.tool_invocations],
                m.attachments,
                m.created_at,
            )
            for m in messages
        ]
        await self.db.executemany(query, args)
        return [m.id for m in messages]

    async def update_tool_invocations(
        self, message_id: str, invocations: List[ToolInvocation]
    ) -> Optional[Dict[str, Any]]:
        row = await self._update(
            {"id": message_id},
            {"tool_invocations": [inv.to_dict() for inv in invocations]},
            returning="id",
        )
        if row is None:
            logger.warning(f"update_tool_invocations: message {message_id} not found")
        return row
