"""
Database service layer for the Persona Reputation Ledger
Provides connection management, query execution, and monitoring
"""

import asyncio
import time
from collections import deque
from typing import Any, Dict, List, Optional, Union
from contextlib import asynccontextmanager
import asyncpg
import logging
from ..config.database import PostgreSQLConfig, app_config

logger = logging.getLogger(__name__)

SLOW_QUERY_HISTORY = 100


class DatabaseConnectionError(Exception):
    """Raised when database connection fails"""
    pass


class DatabaseManager:
    """Manages the PostgreSQL connection pool with retry and monitoring"""

    def __init__(self, config: Optional[PostgreSQLConfig] = None):
        self.config = config or app_config.postgresql
        self.pg_pool: Optional[asyncpg.Pool] = None
        self._is_initialized = False

        # Connection metrics
        self.metrics = {
            "pg_queries": 0,
            "pg_errors": 0,
            "slow_queries": deque(maxlen=SLOW_QUERY_HISTORY)
        }

    async def initialize(self):
        """Initialize the connection pool with retry logic"""
        if self._is_initialized:
            return

        await self._init_postgresql()

        self._is_initialized = True
        logger.info("Database connection initialized successfully")

    async def _init_postgresql(self):
        """Initialize PostgreSQL connection pool with retry"""
        config = self.config
        retry_count = 0

        while retry_count < config.max_retries:
            try:
                self.pg_pool = await asyncpg.create_pool(
                    **config.get_pool_config()
                )

                # Test connection
                async with self.pg_pool.acquire() as conn:
                    await conn.fetchval("SELECT 1")

                logger.info(f"PostgreSQL connected: {config.host}:{config.port}/{config.database}")
                return

            except (OSError, asyncpg.PostgresError) as e:
                retry_count += 1
                if retry_count >= config.max_retries:
                    raise DatabaseConnectionError(f"Failed to connect to PostgreSQL: {e}") from e

                wait_time = config.retry_delay * (config.retry_backoff ** (retry_count - 1))
                logger.warning(f"PostgreSQL connection failed, retry {retry_count}/{config.max_retries} in {wait_time}s")
                await asyncio.sleep(wait_time)

    async def close(self):
        """Close the connection pool"""
        if self.pg_pool:
            await self.pg_pool.close()
            self.pg_pool = None

        self._is_initialized = False
        logger.info("Database connection closed")

    @asynccontextmanager
    async def acquire_pg_connection(self):
        """Acquire a PostgreSQL connection from the pool"""
        if not self.pg_pool:
            raise DatabaseConnectionError("PostgreSQL pool not initialized")

        start_time = time.time()
        async with self.pg_pool.acquire() as conn:
            try:
                yield conn
            finally:
                query_time = time.time() - start_time
                if query_time > 1.0:
                    self.metrics["slow_queries"].append({
                        "type": "postgresql",
                        "time": query_time,
                        "timestamp": time.time()
                    })

    async def execute_query(
        self,
        query: str,
        *args,
        fetch_one: bool = False,
        timeout: Optional[float] = None
    ) -> Union[List[asyncpg.Record], asyncpg.Record, None]:
        """Execute a PostgreSQL query with monitoring"""
        try:
            async with self.acquire_pg_connection() as conn:
                fetch = conn.fetchrow(query, *args) if fetch_one else conn.fetch(query, *args)
                if timeout:
                    result = await asyncio.wait_for(fetch, timeout=timeout)
                else:
                    result = await fetch

                self.metrics["pg_queries"] += 1
                return result

        except Exception as e:
            self.metrics["pg_errors"] += 1
            logger.error(f"PostgreSQL query error: {e}")
            raise

    async def execute_script(self, script: str) -> None:
        """Run a multi-statement script such as the schema DDL"""
        async with self.acquire_pg_connection() as conn:
            await conn.execute(script)

    def get_pool_status(self) -> Dict[str, Any]:
        """Get current connection pool status"""
        return {
            "postgresql": {
                "initialized": bool(self.pg_pool),
                "min_size": self.pg_pool.get_min_size() if self.pg_pool else 0,
                "max_size": self.pg_pool.get_max_size() if self.pg_pool else 0,
                "current_size": self.pg_pool.get_size() if self.pg_pool else 0,
                "queries": self.metrics["pg_queries"],
                "errors": self.metrics["pg_errors"]
            },
            "slow_queries": len(self.metrics["slow_queries"])
        }

    async def health_check(self) -> Dict[str, bool]:
        """Check health of the database connection"""
        health = {"postgresql": False}

        if self.pg_pool:
            try:
                await self.execute_query("SELECT 1", fetch_one=True)
                health["postgresql"] = True
            except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                logger.warning(f"PostgreSQL health check failed: {e}")

        return health


# Global database manager instance
db_manager = DatabaseManager()
