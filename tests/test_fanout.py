"""
Unit tests for real-time fan-out and post-commit hooks.
"""
import json
from unittest.mock import AsyncMock

import pytest

from crm_ledger.cache.backend import InMemoryCacheBackend
from crm_ledger.cache.coherency import LedgerCache
from crm_ledger.config import Settings
from crm_ledger.core.hooks import CacheRefresh, PostCommitHooks, PostCommitWork
from crm_ledger.enums import LedgerAction
from crm_ledger.realtime.fanout import (
    PARTIAL_PAYMENT_EVENT,
    EventFanout,
    Publication,
    approval_event,
    partial_payment_event,
    product_payment_event,
)
from crm_ledger.realtime.transport import (
    InMemoryTransport,
    NullTransport,
    RedisPubSubTransport,
    build_transport,
)


@pytest.mark.unit
class TestEventBuilders:
    """Event names and addressed channels."""

    def test_product_payment_event(self) -> None:
        publication = product_payment_event(LedgerAction.UPDATED, 10, {"productPaymentId": 5})

        assert publication.event == "productPayment:updated"
        assert publication.channels == ("counsellor:10", "admin", "admin:dashboard")
        assert publication.payload == {"action": "UPDATED", "productPaymentId": 5}

    def test_product_payment_event_without_owner(self) -> None:
        publication = product_payment_event(LedgerAction.DELETED, None, {})
        assert publication.channels == ("admin", "admin:dashboard")

    def test_partial_payment_event(self) -> None:
        publication = partial_payment_event(20, {"financeId": 3})

        assert publication.event == PARTIAL_PAYMENT_EVENT
        assert publication.channels == ("counsellor:20", "admin", "role:manager", "role:admin")

    def test_approval_event(self) -> None:
        publication = approval_event(LedgerAction.REJECTED, 10, {"financeId": 3})

        assert publication.event == "allFinance:rejected"
        assert publication.channels == ("counsellor:10", "admin", "role:manager", "role:admin")
        assert publication.payload["action"] == "REJECTED"


@pytest.mark.unit
class TestEventFanout:
    """At-most-once delivery per channel."""

    @pytest.mark.asyncio
    async def test_publishes_to_every_channel_once(self) -> None:
        transport = InMemoryTransport()
        publication = Publication("productPayment:created", ("admin", "role:admin", "admin"), {"a": 1})

        delivered = await EventFanout(transport).publish(publication)

        assert delivered == 2
        assert [m.channel for m in transport.messages] == ["admin", "role:admin"]

    @pytest.mark.asyncio
    async def test_failed_channel_does_not_stop_others(self) -> None:
        transport = AsyncMock()
        transport.publish.side_effect = [ConnectionError("redis down"), None, None]
        publication = Publication("allFinance:approved", ("counsellor:1", "admin", "role:admin"), {})

        delivered = await EventFanout(transport).publish(publication)

        assert delivered == 2
        assert transport.publish.await_count == 3

    @pytest.mark.asyncio
    async def test_default_transport_drops_events(self) -> None:
        assert await EventFanout().publish(Publication("x", ("admin",), {})) == 1


@pytest.mark.unit
class TestTransports:
    """Transport implementations and selection."""

    @pytest.mark.asyncio
    async def test_redis_envelope(self) -> None:
        client = AsyncMock()
        transport = RedisPubSubTransport(client, channel_prefix="crm:")

        await transport.publish("admin", "productPayment:created", {"productPaymentId": 1})

        channel, message = client.publish.await_args.args
        assert channel == "crm:admin"
        assert json.loads(message) == {
            "event": "productPayment:created",
            "data": {"productPaymentId": 1},
        }

    def test_no_redis_gives_null_transport(self) -> None:
        assert isinstance(build_transport(Settings(redis_url=None)), NullTransport)

    def test_realtime_disabled(self) -> None:
        settings = Settings(redis_url="redis://localhost:6379/0", realtime_enabled=False)
        assert isinstance(build_transport(settings), NullTransport)

    def test_redis_configured(self) -> None:
        settings = Settings(redis_url="redis://localhost:6379/0", pubsub_channel_prefix="visa:")
        transport = build_transport(settings)
        assert isinstance(transport, RedisPubSubTransport)
        assert transport.channel_prefix == "visa:"


class TestPostCommitHooks:
    """Ordering and isolation of post-commit side effects."""

    @pytest.mark.asyncio
    async def test_invalidate_refresh_publish(self) -> None:
        backend = InMemoryCacheBackend()
        await backend.set("client-product-payments:1", b"[]", 60)
        await backend.set("dashboard:1", b"{}", 60)
        transport = InMemoryTransport()
        hooks = PostCommitHooks(LedgerCache(backend), EventFanout(transport))

        await hooks.run(
            PostCommitWork(
                invalidate_keys=("client-product-payments:1",),
                refresh=CacheRefresh("product-payment:1", {"productPaymentId": 1}, 45),
                publications=(Publication("productPayment:updated", ("admin",), {}),),
            )
        )

        assert backend.keys() == ["product-payment:1"]
        assert len(transport.messages) == 1

    @pytest.mark.asyncio
    async def test_cache_failure_does_not_block_publication(self) -> None:
        cache = AsyncMock()
        cache.invalidate.side_effect = RuntimeError("boom")
        cache.write_through.side_effect = RuntimeError("boom")
        transport = InMemoryTransport()
        hooks = PostCommitHooks(cache, EventFanout(transport))

        await hooks.run(
            PostCommitWork(
                refresh=CacheRefresh("product-payment:1", {}, 45),
                publications=(Publication("productPayment:updated", ("admin",), {}),),
            )
        )

        assert len(transport.messages) == 1

    @pytest.mark.asyncio
    async def test_publish_failure_is_swallowed(self) -> None:
        fanout = AsyncMock()
        fanout.publish.side_effect = RuntimeError("boom")
        hooks = PostCommitHooks(LedgerCache(InMemoryCacheBackend()), fanout)

        await hooks.run(
            PostCommitWork(
                publications=(
                    Publication("a", ("admin",), {}),
                    Publication("b", ("admin",), {}),
                )
            )
        )

        assert fanout.publish.await_count == 2
