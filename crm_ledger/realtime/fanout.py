"""
Real-time fan-out of ledger events.

Delivery is at-most-once: each channel publish is attempted once, and a
failure is logged and counted without affecting other channels or the
caller.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import structlog

from crm_ledger.enums import LedgerAction
from crm_ledger.monitoring.metrics import metrics
from crm_ledger.realtime.transport import NullTransport, Transport

logger = structlog.get_logger(__name__)

ADMIN_CHANNEL = "admin"
ADMIN_DASHBOARD_CHANNEL = "admin:dashboard"

PARTIAL_PAYMENT_EVENT = "notification:partial_payment"


def owner_channel(user_id: int) -> str:
    """Private channel of a counsellor or manager."""
    return f"counsellor:{user_id}"


def role_channel(role: str) -> str:
    return f"role:{role}"


@dataclass(frozen=True)
class Publication:
    """One event addressed to a set of channels."""

    event: str
    channels: Tuple[str, ...]
    payload: Dict[str, Any]


def _with_owner(owner_id: Optional[int], *channels: str) -> Tuple[str, ...]:
    if owner_id is None:
        return tuple(channels)
    return (owner_channel(owner_id),) + tuple(channels)


def product_payment_event(
    action: LedgerAction, owner_id: Optional[int], payload: Dict[str, Any]
) -> Publication:
    """``productPayment:created|updated|deleted`` for the owner, admins and the admin dashboard."""
    return Publication(
        event=f"productPayment:{LedgerAction(action).value.lower()}",
        channels=_with_owner(owner_id, ADMIN_CHANNEL, ADMIN_DASHBOARD_CHANNEL),
        payload={"action": LedgerAction(action).value, **payload},
    )


def partial_payment_event(manager_id: Optional[int], payload: Dict[str, Any]) -> Publication:
    """Ask the owner's manager and every approver role to review a partial financing payment."""
    return Publication(
        event=PARTIAL_PAYMENT_EVENT,
        channels=_with_owner(
            manager_id, ADMIN_CHANNEL, role_channel("manager"), role_channel("admin")
        ),
        payload=payload,
    )


def approval_event(
    action: LedgerAction, owner_id: Optional[int], payload: Dict[str, Any]
) -> Publication:
    """``allFinance:approved|rejected`` for the owner, admins and every approver role."""
    return Publication(
        event=f"allFinance:{LedgerAction(action).value.lower()}",
        channels=_with_owner(
            owner_id, ADMIN_CHANNEL, role_channel("manager"), role_channel("admin")
        ),
        payload={"action": LedgerAction(action).value, **payload},
    )


class EventFanout:
    """Publishes ``Publication`` objects through a transport."""

    def __init__(self, transport: Optional[Transport] = None):
        self.transport = transport or NullTransport()

    async def publish(self, publication: Publication) -> int:
        """
        Publish to every channel of ``publication``.

        Returns:
            int: Number of channels that accepted the event
        """
        delivered = 0
        for channel in dict.fromkeys(publication.channels):
            try:
                await self.transport.publish(channel, publication.event, publication.payload)
                delivered += 1
                metrics.record_realtime_publish(publication.event, success=True)
            except Exception as e:
                logger.warning(
                    "realtime_publish_failed",
                    channel=channel,
                    event_name=publication.event,
                    error=str(e),
                )
                metrics.record_realtime_publish(publication.event, success=False)
        logger.debug(
            "realtime_event_published",
            event_name=publication.event,
            channels=len(publication.channels),
            delivered=delivered,
        )
        return delivered
