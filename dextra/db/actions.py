"""
ActionRepository - Data access for the actions table.

The scheduler reads candidates with ``get_schedulable_actions``, takes a
lease with ``claim_action`` and writes back with ``record_execution``,
which also releases the lease. User-facing edits go through
``update_action`` / ``delete_action`` and are always scoped by owner.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..models import Action, utcnow
from .repository import Repository

logger = logging.getLogger(__name__)

# Fields a user may edit after creation.
UPDATABLE_ACTION_FIELDS = ("name", "description", "frequency", "max_executions")


def sanitize_action_update(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Keep editable fields only; a zero frequency/max_executions means unset."""
    clean: Dict[str, Any] = {}
    for key in UPDATABLE_ACTION_FIELDS:
        if key not in changes:
            continue
        value = changes[key]
        if key in ("frequency", "max_executions") and value == 0:
            value = None
        clean[key] = value
    return clean


class ActionRepository(Repository):
    TABLE_NAME = "actions"

    async def create_action(self, action: Action) -> Action:
        now = utcnow()
        row = await self._insert({
            "id": action.id,
            "user_id": action.user_id,
            "conversation_id": action.conversation_id,
            "name": action.name,
            "description": action.description,
            "frequency": action.frequency,
            "max_executions": action.max_executions,
            "times_executed": action.times_executed,
            "paused": action.paused,
            "completed": action.completed,
            "triggered": action.triggered,
            "start_time": action.start_time,
            "created_at": now,
            "updated_at": now,
        })
        logger.info(f"[Actions] Created action {action.id} for user {action.user_id}")
        return Action.from_row(row)

    async def get_action(self, action_id: str) -> Optional[Action]:
        row = await self._fetch_one({"id": action_id})
        return Action.from_row(row) if row else None

    async def get_schedulable_actions(self, now: datetime) -> List[Action]:
        """Coarse SQL prefilter; the exact due check happens in Python."""
        rows = await self._fetch_many(
            where=(
                "triggered = TRUE AND paused = FALSE AND completed = FALSE "
                "AND frequency IS NOT NULL "
                "AND (start_time IS NULL OR start_time <= $1)"
            ),
            args=(now,),
            order_by="created_at ASC",
        )
        return [Action.from_row(r) for r in rows]

    async def claim_action(
        self, action_id: str, now: datetime, lease: timedelta
    ) -> bool:
        """Atomically take the run lease. False if another tick holds it."""
        claimed = await self.db.fetchval(
            "UPDATE actions SET claimed_at = $2 "
            "WHERE id = $1 AND (claimed_at IS NULL OR claimed_at < $3) "
            "RETURNING id",
            action_id,
            now,
            now - lease,
        )
        return claimed is not None

    async def record_execution(
        self, action_id: str, fields: Dict[str, Any]
    ) -> Optional[Action]:
        """Write execution bookkeeping and release the lease in one UPDATE."""
        row = await self._update(
            {"id": action_id},
            {**fields, "claimed_at": None, "updated_at": utcnow()},
        )
        return Action.from_row(row) if row else None

    async def list_user_actions(self, user_id: str) -> List[Action]:
        rows = await self._fetch_many(
            where="user_id = $1 AND completed = FALSE",
            args=(user_id,),
            order_by="created_at DESC",
        )
        return [Action.from_row(r) for r in rows]

    async def update_action(
        self, action_id: str, user_id: str, changes: Dict[str, Any]
    ) -> Optional[Action]:
        clean = sanitize_action_update(changes)
        if not clean:
            return None
        clean["updated_at"] = utcnow()
        row = await self._update({"id": action_id, "user_id": user_id}, clean)
        return Action.from_row(row) if row else None

    async def delete_action(self, action_id: str, user_id: str) -> bool:
        deleted = await self._delete({"id": action_id, "user_id": user_id})
        return deleted > 0
