"""
Product type registry.

Maps every sellable product to the shape of the record that holds its
payment fields, and every detail shape to the table that stores it.
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from crm_ledger.database.models import (
    AirTicket,
    AllFinance,
    Base,
    BeaconAccount,
    CreditCard,
    ForexCard,
    ForexFees,
    Ielts,
    Insurance,
    Loan,
    NewSell,
    SimCard,
    TuitionFees,
    VisaExtension,
)
from crm_ledger.enums import EntityKind, ProductType


@dataclass(frozen=True)
class DetailStorage:
    """Where and how a detail kind is persisted."""

    model: type[Base]
    id_attr: str = "id"
    # (model attribute, payload field name) pairs
    unique_fields: tuple[tuple[str, str], ...] = ()

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    @property
    def id_column(self):
        return getattr(self.model, self.id_attr)


_PRODUCT_KINDS: Mapping[ProductType, EntityKind] = MappingProxyType(
    {
        ProductType.SIM_CARD_ACTIVATION: EntityKind.SIM_CARD,
        ProductType.AIR_TICKET: EntityKind.AIR_TICKET,
        ProductType.IELTS_ENROLLMENT: EntityKind.IELTS,
        ProductType.LOAN_DETAILS: EntityKind.LOAN,
        ProductType.FOREX_CARD: EntityKind.FOREX_CARD,
        ProductType.FOREX_FEES: EntityKind.FOREX_FEES,
        ProductType.TUTION_FEES: EntityKind.TUITION_FEES,
        ProductType.INSURANCE: EntityKind.INSURANCE,
        ProductType.BEACON_ACCOUNT: EntityKind.BEACON_ACCOUNT,
        ProductType.CREDIT_CARD: EntityKind.CREDIT_CARD,
        ProductType.OTHER_NEW_SELL: EntityKind.NEW_SELL,
        ProductType.VISA_EXTENSION: EntityKind.VISA_EXTENSION,
        ProductType.TRV_WORK_PERMIT_EXT_STUDY_PERMIT_EXTENSION: EntityKind.VISA_EXTENSION,
        ProductType.ALL_FINANCE_EMPLOYEMENT: EntityKind.ALL_FINANCE,
        ProductType.INDIAN_SIDE_EMPLOYEMENT: EntityKind.MASTER_ONLY,
        ProductType.NOC_LEVEL_JOB_ARRANGEMENT: EntityKind.MASTER_ONLY,
        ProductType.LAWYER_REFUSAL_CHARGE: EntityKind.MASTER_ONLY,
        ProductType.ONSHORE_PART_TIME_EMPLOYEMENT: EntityKind.MASTER_ONLY,
        ProductType.MARRIAGE_PHOTO_FOR_COURT_MARRIAGE: EntityKind.MASTER_ONLY,
        ProductType.MARRIAGE_PHOTO_CERTIFICATE: EntityKind.MASTER_ONLY,
        ProductType.RECENTE_MARRIAGE_RELATIONSHIP_AFFIDAVIT: EntityKind.MASTER_ONLY,
        ProductType.JUDICAL_REVIEW_CHARGE: EntityKind.MASTER_ONLY,
        ProductType.SPONSOR_CHARGES: EntityKind.MASTER_ONLY,
        ProductType.FINANCE_EMPLOYEMENT: EntityKind.MASTER_ONLY,
        ProductType.REFUSAL_CHARGES: EntityKind.MASTER_ONLY,
        ProductType.KIDS_STUDY_PERMIT: EntityKind.MASTER_ONLY,
        ProductType.CANADA_FUND: EntityKind.MASTER_ONLY,
        ProductType.EMPLOYMENT_VERIFICATION_CHARGES: EntityKind.MASTER_ONLY,
        ProductType.ADDITIONAL_AMOUNT_STATEMENT_CHARGES: EntityKind.MASTER_ONLY,
    }
)

_STORAGE: Mapping[EntityKind, DetailStorage] = MappingProxyType(
    {
        EntityKind.SIM_CARD: DetailStorage(SimCard),
        EntityKind.AIR_TICKET: DetailStorage(
            AirTicket, unique_fields=(("air_ticket_number", "airTicketNumber"),)
        ),
        EntityKind.IELTS: DetailStorage(Ielts),
        EntityKind.LOAN: DetailStorage(Loan),
        EntityKind.FOREX_CARD: DetailStorage(ForexCard),
        EntityKind.FOREX_FEES: DetailStorage(ForexFees),
        EntityKind.TUITION_FEES: DetailStorage(TuitionFees),
        EntityKind.INSURANCE: DetailStorage(
            Insurance, unique_fields=(("policy_number", "policyNumber"),)
        ),
        EntityKind.BEACON_ACCOUNT: DetailStorage(BeaconAccount),
        EntityKind.CREDIT_CARD: DetailStorage(CreditCard),
        EntityKind.ALL_FINANCE: DetailStorage(
            AllFinance, id_attr="finance_id", unique_fields=(("invoice_no", "invoiceNo"),)
        ),
        EntityKind.NEW_SELL: DetailStorage(NewSell, unique_fields=(("invoice_no", "invoiceNo"),)),
        EntityKind.VISA_EXTENSION: DetailStorage(
            VisaExtension, unique_fields=(("invoice_no", "invoiceNo"),)
        ),
    }
)


def resolve(product_type: ProductType | str) -> EntityKind:
    """
    Return the entity kind a product's payments are stored as.

    Raises:
        ValueError: If ``product_type`` is not a known product
    """
    try:
        return _PRODUCT_KINDS[ProductType(product_type)]
    except ValueError:
        raise ValueError(f"Invalid productName: {product_type}") from None


def storage_for(kind: EntityKind) -> DetailStorage:
    """
    Return the storage descriptor of a detail kind.

    Raises:
        ValueError: For ``master_only``, which has no detail table
    """
    kind = EntityKind(kind)
    if not kind.has_detail:
        raise ValueError("master_only products have no detail storage")
    return _STORAGE[kind]


def detail_kinds() -> tuple[EntityKind, ...]:
    """All kinds that own a detail table."""
    return tuple(kind for kind in EntityKind if kind.has_detail)


def _check_registry() -> None:
    missing_products = [p.value for p in ProductType if p not in _PRODUCT_KINDS]
    if missing_products:
        raise RuntimeError(f"Product types without an entity kind: {missing_products}")
    missing_storage = [k.value for k in detail_kinds() if k not in _STORAGE]
    if missing_storage:
        raise RuntimeError(f"Entity kinds without detail storage: {missing_storage}")


_check_registry()
