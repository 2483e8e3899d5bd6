"""
Pytest configuration and fixtures.

Tests run against an in-memory SQLite database through aiosqlite, an
in-memory cache backend and a recording pub/sub transport.
"""
from typing import Any, AsyncGenerator, Dict

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from crm_ledger.api.dependencies import LedgerServices
from crm_ledger.api.main import create_app
from crm_ledger.cache.backend import InMemoryCacheBackend
from crm_ledger.cache.coherency import LedgerCache
from crm_ledger.config import Settings
from crm_ledger.core.approval import ApprovalWorkflow
from crm_ledger.core.entries import Actor
from crm_ledger.core.ledger import PaymentLedger
from crm_ledger.database.connection import build_engine, build_session_factory, init_db
from crm_ledger.database.models import ClientInformation, User
from crm_ledger.realtime.fanout import EventFanout
from crm_ledger.realtime.transport import InMemoryTransport

MANAGER_ID = 20
COUNSELLOR_ID = 10
ADMIN_ID = 30
CLIENT_ID = 100
UNASSIGNED_CLIENT_ID = 200


def pytest_configure(config: Any) -> None:
    config.addinivalue_line("markers", "unit: fast tests without the API layer")
    config.addinivalue_line("markers", "integration: tests through the HTTP API")
    config.addinivalue_line("markers", "race: concurrent decision tests")


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url=None,
        app_name="crm-ledger-test",
        app_env="test",
        log_level="DEBUG",
        debug=True,
    )


@pytest_asyncio.fixture
async def engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, Any]:
    """Create the schema in a fresh in-memory database."""
    engine = build_engine(test_settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory over a database seeded with staff and clients."""
    factory = build_session_factory(engine)
    async with factory() as session:
        async with session.begin():
            session.add_all(
                [
                    User(
                        id=MANAGER_ID,
                        full_name="Meera Shah",
                        designation="Branch Manager",
                        role="manager",
                    ),
                    User(
                        id=COUNSELLOR_ID,
                        full_name="Ravi Kumar",
                        designation="Visa Counsellor",
                        role="counsellor",
                        manager_id=MANAGER_ID,
                    ),
                    User(id=ADMIN_ID, full_name="Anita Rao", designation="Director", role="admin"),
                    ClientInformation(
                        client_id=CLIENT_ID, full_name="Arjun Patel", counsellor_id=COUNSELLOR_ID
                    ),
                    ClientInformation(
                        client_id=UNASSIGNED_CLIENT_ID, full_name="Nisha Gill", counsellor_id=None
                    ),
                ]
            )
    return factory


@pytest.fixture
def cache_backend() -> InMemoryCacheBackend:
    return InMemoryCacheBackend()


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def ledger(
    session_factory: async_sessionmaker[AsyncSession],
    cache_backend: InMemoryCacheBackend,
    transport: InMemoryTransport,
    test_settings: Settings,
) -> PaymentLedger:
    return PaymentLedger(
        session_factory, LedgerCache(cache_backend), EventFanout(transport), test_settings
    )


@pytest.fixture
def approvals(
    session_factory: async_sessionmaker[AsyncSession],
    cache_backend: InMemoryCacheBackend,
    transport: InMemoryTransport,
    test_settings: Settings,
) -> ApprovalWorkflow:
    return ApprovalWorkflow(
        session_factory, LedgerCache(cache_backend), EventFanout(transport), test_settings
    )


@pytest.fixture
def counsellor() -> Actor:
    return Actor(id=COUNSELLOR_ID, role="counsellor")


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    cache_backend: InMemoryCacheBackend,
    transport: InMemoryTransport,
    test_settings: Settings,
) -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client."""
    services = LedgerServices.build(test_settings, session_factory, cache_backend, transport)
    app = create_app(services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def finance_entity() -> Dict[str, Any]:
    """Partial financing payment as sent by the front end."""
    return {
        "amount": "500.00",
        "paymentDate": "10-02-2026",
        "partialPayment": True,
        "invoiceNo": "INV-FIN-001",
        "remarks": "First instalment",
    }
