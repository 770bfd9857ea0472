"""
Database connection module for Campus Planner.

Wraps an asyncpg connection pool. One Database is created at application
startup and handed to every PostgreSQL-backed store.
"""

import logging
import pathlib
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg

logger = logging.getLogger(__name__)

SCHEMA_PATH = pathlib.Path(__file__).parent / "schema.sql"


class Database:
    def __init__(self, dsn: str):
        self.dsn = dsn
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(
        self,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 60.0,
    ) -> asyncpg.Pool:
        """
        Initialize the connection pool.

        Should be called once at application startup.
        """
        if self._pool is not None:
            logger.warning("Database pool already initialized")
            return self._pool

        logger.info(f"Initializing database pool (min={min_size}, max={max_size})")

        try:
            self._pool = await asyncpg.create_pool(
                self.dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=command_timeout,
            )
            logger.info("Database pool initialized successfully")
            return self._pool
        except Exception as e:
            logger.error(f"Failed to initialize database pool: {e}")
            raise

    async def close(self) -> None:
        if self._pool is None:
            logger.warning("Database pool not initialized, nothing to close")
            return

        logger.info("Closing database pool")
        await self._pool.close()
        self._pool = None
        logger.info("Database pool closed")

    @property
    def pool(self) -> asyncpg.Pool:
        """
        Raises RuntimeError if the pool is not initialized.
        """
        if self._pool is None:
            raise RuntimeError("Database pool not initialized. Call connect() first.")
        return self._pool

    @asynccontextmanager
    async def connection(self):
        """
        Usage:
            async with db.connection() as conn:
                rows = await conn.fetch("SELECT * FROM tasks")
        """
        async with self.pool.acquire() as connection:
            yield connection

    async def execute(self, query: str, *args) -> str:
        async with self.connection() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args) -> list:
        async with self.connection() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args):
        async with self.connection() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args):
        async with self.connection() as conn:
            return await conn.fetchval(query, *args)

    async def init_schema(self) -> None:
        if not SCHEMA_PATH.exists():
            logger.error(f"Schema file not found: {SCHEMA_PATH}")
            raise FileNotFoundError(f"Schema file not found: {SCHEMA_PATH}")

        logger.info(f"Initializing database schema from {SCHEMA_PATH}")
        async with self.connection() as conn:
            await conn.execute(SCHEMA_PATH.read_text())
        logger.info("Database schema initialized successfully")

    async def health_check(self) -> dict:
        try:
            await self.fetchval("SELECT 1")
            return {
                "status": "healthy",
                "database": "connected",
                "pool_size": self._pool.get_size() if self._pool else 0,
                "pool_free": self._pool.get_idle_size() if self._pool else 0,
            }
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(e),
            }
