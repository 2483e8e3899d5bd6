"""
Health checks for readiness/liveness probes.

Checks:
- Database connectivity
- Cache backend connectivity (skipped when no Redis is configured)
"""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_ledger.cache.backend import CacheBackend, NullCacheBackend
from crm_ledger.database.connection import get_session_factory

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Health check service for the ledger's dependencies."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        cache_backend: Optional[CacheBackend] = None,
    ) -> None:
        self.session_factory = session_factory or get_session_factory()
        self.cache_backend = cache_backend or NullCacheBackend()

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            async with self.session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()

                return {
                    "status": "healthy",
                    "service": "database",
                    "message": "Database connection successful",
                }

        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}")

    async def check_cache(self) -> Dict[str, Any]:
        """
        Check cache backend connectivity.

        Raises:
            HealthCheckError: If the backend does not answer
        """
        if isinstance(self.cache_backend, NullCacheBackend):
            return {
                "status": "healthy",
                "service": "cache",
                "message": "Cache disabled",
            }
        try:
            await self.cache_backend.ping()
            return {
                "status": "healthy",
                "service": "cache",
                "message": "Cache connection successful",
            }
        except Exception as e:
            logger.error("cache_health_check_failed", error=str(e))
            raise HealthCheckError(f"Cache health check failed: {str(e)}")

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        A failing cache only degrades the service; reads fall through to
        the database, so only the database decides overall health.
        """
        checks: Dict[str, Any] = {}
        healthy = True

        try:
            checks["database"] = await self.check_database()
        except HealthCheckError as e:
            checks["database"] = {
                "status": "unhealthy",
                "service": "database",
                "error": str(e),
            }
            healthy = False

        try:
            checks["cache"] = await self.check_cache()
        except HealthCheckError as e:
            checks["cache"] = {
                "status": "degraded",
                "service": "cache",
                "error": str(e),
            }

        return {
            "status": "healthy" if healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """Liveness probe. Does not check external dependencies."""
        return {
            "status": "alive",
            "message": "Application is running",
        }
