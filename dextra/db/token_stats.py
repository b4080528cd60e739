"""TokenStatRepository - per-turn token accounting."""

from ..models import TokenStat, utcnow
from .repository import Repository


class TokenStatRepository(Repository):
    TABLE_NAME = "token_stats"

    async def create_token_stat(self, stat: TokenStat) -> None:
        await self._insert(
            {
                "id": stat.id,
                "user_id": stat.user_id,
                "message_ids": list(stat.message_ids),
                "prompt_tokens": stat.prompt_tokens,
                "completion_tokens": stat.completion_tokens,
                "total_tokens": stat.total_tokens,
                "created_at": stat.created_at or utcnow(),
            },
            returning="id",
        )
