"""
Service wiring and request dependencies.

``LedgerServices`` holds one shared cache and fan-out so the ledger and the
approval workflow invalidate and publish through the same backends.
"""
from dataclasses import dataclass
from typing import Optional

import structlog
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_ledger.cache.backend import CacheBackend, build_cache_backend
from crm_ledger.cache.coherency import LedgerCache
from crm_ledger.config import Settings, get_settings
from crm_ledger.core.approval import ApprovalWorkflow
from crm_ledger.core.entries import Actor
from crm_ledger.core.ledger import PaymentLedger
from crm_ledger.database.connection import get_session_factory
from crm_ledger.monitoring.health import HealthCheck
from crm_ledger.monitoring.logging import bind_actor
from crm_ledger.realtime.fanout import EventFanout
from crm_ledger.realtime.transport import Transport, build_transport

logger = structlog.get_logger(__name__)

APPROVER_ROLES = ("admin", "manager")


@dataclass
class LedgerServices:
    ledger: PaymentLedger
    approvals: ApprovalWorkflow
    health: HealthCheck
    cache_backend: CacheBackend
    transport: Transport

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        cache_backend: Optional[CacheBackend] = None,
        transport: Optional[Transport] = None,
    ) -> "LedgerServices":
        """Build the services, creating backends from settings where none are given."""
        settings = settings or get_settings()
        session_factory = session_factory or get_session_factory()
        cache_backend = cache_backend or build_cache_backend(settings)
        transport = transport or build_transport(settings)

        cache = LedgerCache(cache_backend)
        fanout = EventFanout(transport)
        return cls(
            ledger=PaymentLedger(session_factory, cache, fanout, settings),
            approvals=ApprovalWorkflow(session_factory, cache, fanout, settings),
            health=HealthCheck(session_factory, cache_backend),
            cache_backend=cache_backend,
            transport=transport,
        )

    async def close(self) -> None:
        """Close backend connections."""
        for resource in (self.cache_backend, self.transport):
            close = getattr(resource, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.error("service_close_failed", resource=type(resource).__name__, error=str(e))


def get_services(request: Request) -> LedgerServices:
    """Services attached to the running application."""
    return request.app.state.services


async def get_actor(
    x_actor_id: Optional[int] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Optional[Actor]:
    """
    Identity forwarded by the upstream auth gateway.

    Returns ``None`` for anonymous calls; only approval endpoints require one.
    """
    if x_actor_id is None:
        return None
    actor = Actor(id=x_actor_id, role=(x_actor_role or "").lower())
    bind_actor(actor.id, actor.role)
    return actor


def require_approver(actor: Optional[Actor] = Depends(get_actor)) -> Actor:
    """Require an admin or manager."""
    if actor is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    if actor.role not in APPROVER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins and managers can manage payment approvals",
        )
    return actor
