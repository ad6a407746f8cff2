"""
Tests for database session management.

Runs against the process engine, which the test environment points at
in-memory SQLite.
"""

from unittest.mock import patch

import pytest
from sqlalchemy.pool import NullPool

from harvester.core.config import settings
from harvester.db.session import check_db_health, get_engine_config, get_session, init_db, reset_db


class TestEngineConfig:
    """Test engine configuration per environment."""

    def test_sqlite_uses_null_pool(self):
        config = get_engine_config()

        assert config["poolclass"] is NullPool
        assert "connect_args" not in config

    def test_postgres_production_pool(self):
        with patch.object(settings, "DATABASE_URL", "postgresql+asyncpg://u:p@db/harvester"), \
                patch.object(settings, "APP_ENV", "production"):
            config = get_engine_config()

        assert config["pool_size"] == settings.DB_POOL_SIZE
        assert config["pool_recycle"] == 7200
        assert config["connect_args"]["server_settings"]["application_name"] == settings.APP_NAME


@pytest.mark.asyncio
class TestSessionLifecycle:
    """Test session helpers."""

    async def test_health_check(self):
        assert await check_db_health() is True

    async def test_get_session(self):
        async for session in get_session():
            assert session.is_active

    async def test_init_db(self):
        await init_db()

    async def test_reset_db(self):
        await reset_db()

    async def test_reset_refused_in_production(self):
        with patch.object(settings, "APP_ENV", "production"):
            with pytest.raises(RuntimeError, match="production"):
                await reset_db()
