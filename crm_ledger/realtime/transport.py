"""
Pub/sub transports for real-time events.

A socket gateway subscribes to the Redis channels and forwards each
envelope to the sockets joined to the matching room.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import redis.asyncio as aioredis
import structlog

from crm_ledger.config import Settings

logger = structlog.get_logger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Publishes a named event with a JSON payload to one channel."""

    async def publish(self, channel: str, event_name: str, payload: Dict[str, Any]) -> None:
        ...


class RedisPubSubTransport:
    """Publishes ``{"event": ..., "data": ...}`` envelopes on ``<prefix><channel>``."""

    def __init__(self, client: aioredis.Redis, channel_prefix: str = "crm:"):
        self.client = client
        self.channel_prefix = channel_prefix

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisPubSubTransport":
        client = aioredis.from_url(
            settings.redis_url,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_socket_timeout,
        )
        return cls(client, settings.pubsub_channel_prefix)

    async def publish(self, channel: str, event_name: str, payload: Dict[str, Any]) -> None:
        envelope = json.dumps({"event": event_name, "data": payload})
        await self.client.publish(f"{self.channel_prefix}{channel}", envelope)

    async def close(self) -> None:
        await self.client.aclose()


@dataclass(frozen=True)
class PublishedMessage:
    channel: str
    event: str
    payload: Dict[str, Any]


class InMemoryTransport:
    """Records every publish. Used in tests."""

    def __init__(self) -> None:
        self.messages: List[PublishedMessage] = []

    async def publish(self, channel: str, event_name: str, payload: Dict[str, Any]) -> None:
        self.messages.append(PublishedMessage(channel, event_name, payload))

    def events(self, event_name: Optional[str] = None) -> List[PublishedMessage]:
        if event_name is None:
            return list(self.messages)
        return [m for m in self.messages if m.event == event_name]

    def channels_for(self, event_name: str) -> List[str]:
        return [m.channel for m in self.events(event_name)]

    async def close(self) -> None:
        return None


class NullTransport:
    """Drops every event."""

    async def publish(self, channel: str, event_name: str, payload: Dict[str, Any]) -> None:
        return None

    async def close(self) -> None:
        return None


def build_transport(settings: Settings) -> Transport:
    """Return a Redis transport when Redis is configured and real-time is on, else a null one."""
    if not settings.realtime_enabled or not settings.redis_url:
        logger.info("realtime_disabled", realtime_enabled=settings.realtime_enabled)
        return NullTransport()
    logger.info("realtime_transport_configured", transport="redis")
    return RedisPubSubTransport.from_settings(settings)
