"""Real-time fan-out of ledger mutations."""
from .fanout import (
    EventFanout,
    Publication,
    approval_event,
    owner_channel,
    partial_payment_event,
    product_payment_event,
    role_channel,
)
from .transport import (
    InMemoryTransport,
    NullTransport,
    RedisPubSubTransport,
    Transport,
    build_transport,
)

__all__ = [
    "EventFanout",
    "Publication",
    "approval_event",
    "owner_channel",
    "partial_payment_event",
    "product_payment_event",
    "role_channel",
    "InMemoryTransport",
    "NullTransport",
    "RedisPubSubTransport",
    "Transport",
    "build_transport",
]
