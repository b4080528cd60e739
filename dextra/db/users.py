"""
UserRepository - read-only view of users and their active wallet.

Account and wallet management live outside this service; the core only
reads the active wallet's public key and the degen-mode flag.
"""

from typing import Optional

from ..models import UserProfile
from .repository import Repository


class UserRepository(Repository):
    TABLE_NAME = "users"

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        row = await self.db.fetchrow(
            """
            SELECT u.id, u.degen_mode, w.public_key
            FROM users u
            LEFT JOIN wallets w ON w.owner_id = u.id AND w.active = TRUE
            WHERE u.id = $1
            LIMIT 1
            """,
            user_id,
        )
        if row is None:
            return None
        return UserProfile(
            user_id=str(row["id"]),
            wallet_public_key=row["public_key"],
            degen_mode=bool(row["degen_mode"]),
        )
