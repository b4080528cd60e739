"""
Dextra Repository - base class for table-scoped data access.

Subclasses set TABLE_NAME and add domain queries. The helpers build
parameterized SQL ($1, $2, ...) from plain dicts; every ``where`` dict is
ANDed, which is how ownership scoping (``user_id = $n``) is expressed.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from .database import Database

logger = logging.getLogger(__name__)


def _where_clause(where: Dict[str, Any], start: int = 1) -> Tuple[str, List[Any]]:
    clauses = []
    values = []
    for i, (col, val) in enumerate(where.items(), start):
        clauses.append(f"{col} = ${i}")
        values.append(val)
    return " AND ".join(clauses), values


class Repository:
    """Base class for domain data access."""

    TABLE_NAME: str = ""

    def __init__(self, db: Database):
        self._db = db

    @property
    def db(self) -> Database:
        return self._db

    async def _insert(
        self,
        data: Dict[str, Any],
        returning: str = "*",
    ) -> Optional[Dict[str, Any]]:
        columns = list(data.keys())
        placeholders = [f"${i + 1}" for i in range(len(columns))]
        query = (
            f"INSERT INTO {self.TABLE_NAME} ({', '.join(columns)}) "
            f"VALUES ({', '.join(placeholders)}) "
            f"RETURNING {returning}"
        )
        row = await self._db.fetchrow(query, *data.values())
        return dict(row) if row else None

    async def _update(
        self,
        where: Dict[str, Any],
        data: Dict[str, Any],
        returning: str = "*",
    ) -> Optional[Dict[str, Any]]:
        """Update rows matching every ``where`` column; return the first."""
        if not data:
            return None
        set_clauses = []
        values: List[Any] = []
        for i, (col, val) in enumerate(data.items(), 1):
            set_clauses.append(f"{col} = ${i}")
            values.append(val)
        where_sql, where_values = _where_clause(where, start=len(values) + 1)
        values.extend(where_values)

        query = (
            f"UPDATE {self.TABLE_NAME} "
            f"SET {', '.join(set_clauses)} "
            f"WHERE {where_sql} "
            f"RETURNING {returning}"
        )
        row = await self._db.fetchrow(query, *values)
        return dict(row) if row else None

    async def _delete(self, where: Dict[str, Any]) -> int:
        """Delete rows matching every ``where`` column. Returns the row count."""
        where_sql, values = _where_clause(where)
        result = await self._db.execute(
            f"DELETE FROM {self.TABLE_NAME} WHERE {where_sql}", *values
        )
        # asyncpg status string: "DELETE <n>"
        try:
            return int(result.split()[-1])
        except (AttributeError, IndexError, ValueError):
            logger.warning(f"Unexpected DELETE status from {self.TABLE_NAME}: {result!r}")
            return 0

    async def _fetch_one(self, where: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        where_sql, values = _where_clause(where)
        row = await self._db.fetchrow(
            f"SELECT * FROM {self.TABLE_NAME} WHERE {where_sql} LIMIT 1", *values
        )
        return dict(row) if row else None

    async def _fetch_many(
        self,
        where: str = "",
        args: tuple = (),
        order_by: str = "",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        query = f"SELECT * FROM {self.TABLE_NAME}"
        if where:
            query += f" WHERE {where}"
        if order_by:
            query += f" ORDER BY {order_by}"
        if limit:
            query += f" LIMIT {int(limit)}"

        rows = await self._db.fetch(query, *args)
        return [dict(r) for r in rows]
