"""
Domain view of a ledger row.

A ledger row's payment fields live in one of three places, modelled as a
closed union on ``LedgerEntry.detail``:

- ``MasterOnlyDetail``: on the ledger row itself
- ``LinkedDetail``: on a detail row (``entity`` is ``None`` if that row has
  been removed out-of-band)
- ``UnlinkedDetail``: nowhere yet; a legacy row of a detail kind whose
  detail record is created on its first edit
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from crm_ledger.core.projections import to_json_value
from crm_ledger.database.models import ClientProductPayment
from crm_ledger.enums import EntityKind, ProductType


@dataclass(frozen=True)
class Actor:
    """Authenticated user performing a ledger operation."""

    id: int
    role: str


@dataclass(frozen=True)
class MasterOnlyDetail:
    amount: Optional[Decimal]
    payment_date: Optional[date]
    invoice_no: Optional[str]
    remarks: Optional[str]


@dataclass(frozen=True)
class LinkedDetail:
    kind: EntityKind
    entity_id: int
    entity: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class UnlinkedDetail:
    kind: EntityKind


EntryDetail = Union[MasterOnlyDetail, LinkedDetail, UnlinkedDetail]


@dataclass(frozen=True)
class LedgerEntry:
    product_payment_id: int
    client_id: int
    product_type: ProductType
    detail: EntryDetail
    created_at: Optional[datetime] = None

    @property
    def kind(self) -> EntityKind:
        if isinstance(self.detail, MasterOnlyDetail):
            return EntityKind.MASTER_ONLY
        return self.detail.kind

    @property
    def entity_id(self) -> Optional[int]:
        if isinstance(self.detail, LinkedDetail):
            return self.detail.entity_id
        return None

    @classmethod
    def from_row(
        cls, row: ClientProductPayment, entity: Optional[Dict[str, Any]] = None
    ) -> "LedgerEntry":
        """Build an entry from a ledger row and the serialized detail row, if any."""
        kind = EntityKind(row.entity_kind)
        detail: EntryDetail
        if kind is EntityKind.MASTER_ONLY:
            detail = MasterOnlyDetail(
                amount=row.amount,
                payment_date=row.payment_date,
                invoice_no=row.invoice_no,
                remarks=row.remarks,
            )
        elif row.entity_id is None:
            detail = UnlinkedDetail(kind=kind)
        else:
            detail = LinkedDetail(kind=kind, entity_id=row.entity_id, entity=entity)
        return cls(
            product_payment_id=row.product_payment_id,
            client_id=row.client_id,
            product_type=ProductType(row.product_name),
            detail=detail,
            created_at=row.created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Client-facing projection of the entry."""
        if isinstance(self.detail, MasterOnlyDetail):
            amount = self.detail.amount
            payment_date = self.detail.payment_date
            invoice_no = self.detail.invoice_no
            remarks = self.detail.remarks
        else:
            amount = payment_date = invoice_no = remarks = None

        entity = self.detail.entity if isinstance(self.detail, LinkedDetail) else None
        return {
            "productPaymentId": self.product_payment_id,
            "clientId": self.client_id,
            "productName": self.product_type.value,
            "entityKind": self.kind.value,
            "entityId": self.entity_id,
            "amount": to_json_value(amount),
            "paymentDate": to_json_value(payment_date),
            "invoiceNo": invoice_no,
            "remarks": remarks,
            "createdAt": to_json_value(self.created_at),
            "entity": entity,
        }
