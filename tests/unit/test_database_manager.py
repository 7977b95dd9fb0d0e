"""
Unit tests for DatabaseManager connection handling
"""

import itertools
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from backend.config.database import PostgreSQLConfig
from backend.services.database import SLOW_QUERY_HISTORY, DatabaseConnectionError, DatabaseManager


@pytest.fixture
def config():
    return PostgreSQLConfig(
        host="localhost",
        port=5432,
        database="test_db",
        user="test_user",
        password="test_pass",
        max_retries=2,
        retry_delay=0.0
    )


@pytest.mark.asyncio
class TestDatabaseManager:
    """Test pool setup and health reporting without a server"""

    async def test_connection_retries_then_fails(self, config):
        db = DatabaseManager(config)

        with patch("backend.services.database.asyncpg.create_pool",
                   new=AsyncMock(side_effect=OSError("connection refused"))) as create_pool:
            with pytest.raises(DatabaseConnectionError):
                await db.initialize()

        assert create_pool.await_count == 2
        assert db.pg_pool is None

    async def test_acquire_requires_pool(self, config):
        db = DatabaseManager(config)

        with pytest.raises(DatabaseConnectionError):
            async with db.acquire_pg_connection():
                pass

    async def test_health_without_pool(self, config):
        db = DatabaseManager(config)

        assert await db.health_check() == {"postgresql": False}
        status = db.get_pool_status()
        assert status["postgresql"]["initialized"] is False
        assert status["slow_queries"] == 0

    async def test_slow_query_log_is_bounded(self, config):
        db = DatabaseManager(config)
        db.pg_pool = MagicMock()
        ticks = itertools.count(step=2.0)

        with patch("backend.services.database.time.time", side_effect=lambda: next(ticks)):
            for _ in range(SLOW_QUERY_HISTORY + 50):
                async with db.acquire_pg_connection():
                    pass

        assert len(db.metrics["slow_queries"]) == SLOW_QUERY_HISTORY
        assert db.get_pool_status()["slow_queries"] == SLOW_QUERY_HISTORY
