"""Database connection management"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from src.exceptions import DatabaseError

logger = logging.getLogger(__name__)


class Database:
    """Database connection pool manager"""

    def __init__(
        self,
        connection_string: str = "postgresql://localhost/swingbuddy",
        min_size: int = 1,
        max_size: int = 10
    ):
        self.connection_string = connection_string
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[AsyncConnectionPool] = None

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            connection_string=settings.database.url,
            min_size=settings.database.min_connections,
            max_size=settings.database.max_connections,
        )

    async def init_pool(self) -> None:
        """Initialize connection pool"""
        logger.info(
            f"Initializing database connection pool ({self.min_size}-{self.max_size} connections)"
        )
        self._pool = AsyncConnectionPool(
            self.connection_string,
            min_size=self.min_size,
            max_size=self.max_size,
            open=False
        )
        await self._pool.open()

    async def close_pool(self) -> None:
        """Close connection pool"""
        if self._pool:
            logger.info("Closing database connection pool")
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Get database connection from pool"""
        if not self._pool:
            raise DatabaseError("Database pool not initialized")

        async with self._pool.connection() as conn:
            conn.row_factory = dict_row
            yield conn
