"""Shared query helpers for repositories"""
import logging
from typing import Any, Optional, Sequence

import psycopg

from src.db.connection import Database
from src.exceptions import wrap_external_exception

logger = logging.getLogger(__name__)


class BaseRepository:
    """
    Thin layer over the connection pool.

    Every psycopg error is re-raised as DatabaseError (a TransientError) so
    callers only deal with our exception hierarchy.
    """

    def __init__(self, db: Database):
        self.db = db

    async def _fetchone(
        self,
        query: str,
        params: Sequence[Any] = (),
        operation: str = "query",
        commit: bool = False
    ) -> Optional[dict]:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    row = await cur.fetchone()
                    if commit:
                        await conn.commit()
                    return row
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation=operation)

    async def _fetchall(
        self,
        query: str,
        params: Sequence[Any] = (),
        operation: str = "query"
    ) -> list[dict]:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    return list(await cur.fetchall())
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation=operation)

    async def _execute(
        self,
        query: str,
        params: Sequence[Any] = (),
        operation: str = "execute"
    ) -> int:
        """Run a write and return the affected row count"""
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    affected = cur.rowcount
                    await conn.commit()
                    return affected
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation=operation)

    async def _count(self, query: str, params: Sequence[Any] = (), operation: str = "count") -> int:
        row = await self._fetchone(query, params, operation=operation)
        return int(row["count"]) if row else 0


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally"""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
