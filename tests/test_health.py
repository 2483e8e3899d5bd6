"""
Tests for health checks.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_ledger.cache.backend import InMemoryCacheBackend, NullCacheBackend
from crm_ledger.monitoring.health import HealthCheck


class TestHealthCheck:
    """Database and cache checks."""

    @pytest.mark.asyncio
    async def test_all_healthy(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        result = await HealthCheck(session_factory, InMemoryCacheBackend()).check_all()

        assert result["status"] == "healthy"
        assert result["checks"]["cache"]["message"] == "Cache connection successful"

    @pytest.mark.asyncio
    async def test_cache_disabled(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        result = await HealthCheck(session_factory, NullCacheBackend()).check_all()

        assert result["status"] == "healthy"
        assert result["checks"]["cache"]["message"] == "Cache disabled"

    @pytest.mark.asyncio
    async def test_failing_cache_only_degrades(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        backend = AsyncMock()
        backend.ping.side_effect = ConnectionError("redis down")

        result = await HealthCheck(session_factory, backend).check_all()

        assert result["status"] == "healthy"
        assert result["checks"]["cache"]["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_failing_database(self) -> None:
        session = AsyncMock()
        session.execute.side_effect = ConnectionError("connection refused")
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = session
        factory.return_value.__aexit__.return_value = False

        result = await HealthCheck(factory, NullCacheBackend()).check_all()

        assert result["status"] == "unhealthy"
        assert result["checks"]["database"]["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_liveness(self) -> None:
        result = await HealthCheck(AsyncMock(), NullCacheBackend()).liveness()
        assert result["status"] == "alive"
