# replenisher/database/core.py

"""
Async database core.

Owns the psycopg connection pool and hands out transactional connections
to the *Operations classes, which are composed with it rather than
inheriting from it.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from ..config import settings
from ..enums import LogEmoji, LoggerName, LogSource
from ..services.logger import get_service_logger
from ..utils.time_utils import utc_now

logger = get_service_logger(LoggerName.DATABASE, LogSource.DATABASE)


class AsyncDatabaseCore:
    """
    Core async database functionality for composition-based architecture.

    Usage:
        async with db.get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT * FROM replenishments")
                rows = await cur.fetchall()
    """

    def __init__(self, database_url: Optional[str] = None) -> None:
        self._database_url = database_url or settings.database_url
        self._pool: Optional[AsyncConnectionPool] = None
        self._connection_attempts = 0
        self._failed_connections = 0
        self._last_health_check = None
        self._pool_created_at = None

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    async def initialize(self) -> None:
        """
        Initialize the async connection pool.

        Must be called before any database operation, typically from the
        FastAPI lifespan.

        Raises:
            psycopg.Error: If connection pool initialization fails
        """
        try:
            self._pool = AsyncConnectionPool(
                self._database_url,
                min_size=2,
                max_size=settings.db_pool_size,
                max_waiting=settings.db_max_overflow,
                timeout=settings.db_pool_timeout,
                kwargs={
                    "row_factory": dict_row,
                    "connect_timeout": 15,
                },
                open=False,
            )
            await self._pool.open()
            self._pool_created_at = utc_now()
            self._connection_attempts = 0
            self._failed_connections = 0
            logger.info("Async database pool opened", emoji=LogEmoji.DATABASE)
        except (psycopg.Error, ConnectionError, OSError) as e:
            self._failed_connections += 1
            logger.error("Failed to initialize async database pool", exception=e)
            raise

    async def close(self) -> None:
        """Close the connection pool during application shutdown."""
        if self._pool:
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def get_connection(self) -> AsyncGenerator[Any, None]:
        """
        Get a pooled connection wrapped in a transaction.

        The transaction commits when the block exits normally and rolls
        back when it raises.

        Raises:
            RuntimeError: If the pool is not initialized
            ConnectionError: If no connection could be obtained
        """
        if not self._pool:
            raise RuntimeError("Database pool not initialized")

        self._connection_attempts += 1
        try:
            async with self._pool.connection() as conn:
                async with conn.transaction():
                    yield conn
        except psycopg.OperationalError as e:
            self._failed_connections += 1
            logger.warning(f"Async database connection failed: {e}")
            raise ConnectionError("Database connection failed") from e

    async def check_pool_health(self) -> bool:
        if not self._pool:
            return False

        try:
            async with self._pool.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT 1")
                    await cur.fetchone()

            self._last_health_check = utc_now()
            return True
        except (psycopg.Error, ConnectionError, OSError) as e:
            self._failed_connections += 1
            logger.warning(f"Async database health check failed: {e}")
            return False

    async def health_check(self, timeout: float = 5.0) -> Dict[str, Any]:
        """
        Perform a health check of the database connection.

        Returns:
            Dict containing health status and response time
        """
        if not self.is_initialized:
            return {"status": "unhealthy", "error": "Pool not initialized"}

        start_time = time.time()
        try:
            async with asyncio.timeout(timeout):
                healthy = await self.check_pool_health()
        except TimeoutError:
            return {"status": "unhealthy", "error": f"Timed out after {timeout}s"}

        return {
            "status": "healthy" if healthy else "unhealthy",
            "response_time_ms": round((time.time() - start_time) * 1000, 2),
            "connection_attempts": self._connection_attempts,
            "failed_connections": self._failed_connections,
            "pool_created_at": (
                self._pool_created_at.isoformat() if self._pool_created_at else None
            ),
        }


AsyncDatabase = AsyncDatabaseCore

# Global database instance used by the application
async_db = AsyncDatabase()
