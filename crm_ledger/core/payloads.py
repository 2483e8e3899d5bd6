"""
Pydantic models for the detail payloads carried in ``entityData``.

Field names match the ORM attribute names so a validated payload can be fed
straight into the model constructor; the front end sends camelCase aliases.
"""
import random
import string
import time
from datetime import date
from decimal import Decimal
from typing import Annotated, Any, ClassVar, Dict, Mapping, Optional

import pydantic
from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)
from pydantic.alias_generators import to_camel

from crm_ledger.core.dates import parse_frontend_date
from crm_ledger.core.errors import ValidationError
from crm_ledger.enums import EntityKind, ForexSide, TuitionFeesStatus


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _parse_date(value: Any) -> Optional[date]:
    return parse_frontend_date(value)


OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
FrontendDate = Annotated[Optional[date], BeforeValidator(_parse_date)]
RequiredDate = Annotated[date, BeforeValidator(_parse_date)]
Money = Annotated[Decimal, Field(max_digits=12, decimal_places=2)]
# Constraints sit on the inner type so that None skips them
OptionalMoney = Annotated[
    Optional[Annotated[Decimal, Field(max_digits=12, decimal_places=2, ge=0)]],
    BeforeValidator(_blank_to_none),
]


def generate_air_ticket_number() -> str:
    """Placeholder ticket number for bookings made before the airline issues one."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"TKT-{int(time.time() * 1000)}-{suffix}"


class DetailPayload(BaseModel):
    """Base class for detail payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
        validate_default=True,
        use_enum_values=True,
    )

    # Fields filled in on create when missing; a blank on update keeps the stored value
    server_defaults: ClassVar[tuple[str, ...]] = ()

    remarks: OptionalText = None

    @classmethod
    def field_lookup(cls) -> Dict[str, str]:
        """Map every accepted input key (attribute name or alias) to its attribute name."""
        lookup: Dict[str, str] = {}
        for name, info in cls.model_fields.items():
            lookup[name] = name
            if info.alias:
                lookup[info.alias] = name
            if isinstance(info.validation_alias, AliasChoices):
                for choice in info.validation_alias.choices:
                    if isinstance(choice, str):
                        lookup[choice] = name
            elif isinstance(info.validation_alias, str):
                lookup[info.validation_alias] = name
        return lookup

    @classmethod
    def normalize_keys(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Re-key ``data`` by attribute name, dropping keys this payload does not know."""
        lookup = cls.field_lookup()
        normalized: Dict[str, Any] = {}
        for key, value in data.items():
            name = lookup.get(key)
            if name is not None:
                normalized[name] = value
        return normalized

    @classmethod
    def drop_blank_defaults(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Remove blank values for server-defaulted fields from an update."""
        return {
            name: value
            for name, value in data.items()
            if not (name in cls.server_defaults and _blank_to_none(value) is None)
        }


def _today_if_missing(value: Optional[date]) -> date:
    return value or date.today()


class SimCardPayload(DetailPayload):
    activated_status: bool = False
    simcard_plan: OptionalText = None
    sim_card_giving_date: FrontendDate = None
    sim_activation_date: FrontendDate = None


class AirTicketPayload(DetailPayload):
    server_defaults = ("air_ticket_number", "ticket_date")

    is_ticket_booked: bool = False
    amount: Money = Field(default=Decimal("0"), ge=0)
    air_ticket_number: OptionalText = None
    ticket_date: FrontendDate = None

    @field_validator("air_ticket_number")
    @classmethod
    def default_ticket_number(cls, v: Optional[str]) -> str:
        return v or generate_air_ticket_number()

    @field_validator("ticket_date")
    @classmethod
    def default_ticket_date(cls, v: Optional[date]) -> date:
        return _today_if_missing(v)


class IeltsPayload(DetailPayload):
    enrolled_status: bool = False
    amount: Money = Field(..., ge=0)
    enrollment_date: FrontendDate = None


class LoanPayload(DetailPayload):
    server_defaults = ("disbursment_date",)

    amount: Money = Field(..., ge=0)
    disbursment_date: FrontendDate = None

    @field_validator("disbursment_date")
    @classmethod
    def default_disbursment_date(cls, v: Optional[date]) -> date:
        return _today_if_missing(v)


class ForexCardPayload(DetailPayload):
    forex_card_status: OptionalText = None
    card_date: FrontendDate = None


class ForexFeesPayload(DetailPayload):
    side: ForexSide
    amount: Money = Field(..., ge=0)
    fee_date: FrontendDate = None


class TuitionFeesPayload(DetailPayload):
    tution_fees_status: TuitionFeesStatus
    fee_date: FrontendDate = None


class InsurancePayload(DetailPayload):
    server_defaults = ("insurance_date",)

    amount: Money = Field(..., ge=0)
    policy_number: OptionalText = None
    insurance_date: FrontendDate = None

    @field_validator("insurance_date")
    @classmethod
    def default_insurance_date(cls, v: Optional[date]) -> date:
        return _today_if_missing(v)


class BeaconAccountPayload(DetailPayload):
    amount: Money = Field(..., ge=0, validation_alias=AliasChoices("amount", "fundingAmount"))
    opening_date: FrontendDate = None
    funding_date: FrontendDate = None


class CreditCardPayload(DetailPayload):
    activated_status: bool = False
    card_plan: OptionalText = None
    card_giving_date: FrontendDate = None
    card_activation_date: FrontendDate = None
    card_date: FrontendDate = None


class AllFinancePayload(DetailPayload):
    """
    Financing payment.

    Carries no ``approvalStatus`` or ``approvedBy``; those belong to the
    approval workflow.
    """

    amount: Money = Field(..., gt=0)
    payment_date: RequiredDate
    invoice_no: OptionalText = None
    partial_payment: bool = False
    another_payment_amount: OptionalMoney = None
    another_payment_date: FrontendDate = None


class NewSellPayload(DetailPayload):
    server_defaults = ("sell_date",)

    service_name: RequiredText
    service_information: OptionalText = None
    amount: Money = Field(..., ge=0)
    sell_date: FrontendDate = None
    invoice_no: OptionalText = None

    @field_validator("sell_date")
    @classmethod
    def default_sell_date(cls, v: Optional[date]) -> date:
        return _today_if_missing(v)


class VisaExtensionPayload(DetailPayload):
    server_defaults = ("extension_date",)

    type: RequiredText
    amount: Money = Field(..., ge=0)
    extension_date: FrontendDate = None
    invoice_no: OptionalText = None

    @field_validator("extension_date")
    @classmethod
    def default_extension_date(cls, v: Optional[date]) -> date:
        return _today_if_missing(v)


class MasterOnlyPayload(DetailPayload):
    """Payment fields kept on the ledger row itself for products without a detail table."""

    amount: Money = Field(..., gt=0)
    payment_date: FrontendDate = None
    invoice_no: OptionalText = None


PAYLOAD_MODELS: Mapping[EntityKind, type[DetailPayload]] = {
    EntityKind.SIM_CARD: SimCardPayload,
    EntityKind.AIR_TICKET: AirTicketPayload,
    EntityKind.IELTS: IeltsPayload,
    EntityKind.LOAN: LoanPayload,
    EntityKind.FOREX_CARD: ForexCardPayload,
    EntityKind.FOREX_FEES: ForexFeesPayload,
    EntityKind.TUITION_FEES: TuitionFeesPayload,
    EntityKind.INSURANCE: InsurancePayload,
    EntityKind.BEACON_ACCOUNT: BeaconAccountPayload,
    EntityKind.CREDIT_CARD: CreditCardPayload,
    EntityKind.ALL_FINANCE: AllFinancePayload,
    EntityKind.NEW_SELL: NewSellPayload,
    EntityKind.VISA_EXTENSION: VisaExtensionPayload,
    EntityKind.MASTER_ONLY: MasterOnlyPayload,
}

_missing = [kind.value for kind in EntityKind if kind not in PAYLOAD_MODELS]
if _missing:
    raise RuntimeError(f"Entity kinds without a payload model: {_missing}")


def validate_payload(model_cls: type[DetailPayload], data: Mapping[str, Any]) -> DetailPayload:
    """
    Validate ``data`` (keyed by attribute name) against ``model_cls``.

    Raises:
        ValidationError: Naming the first offending field
    """
    try:
        return model_cls.model_validate(dict(data))
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        loc = first.get("loc") or ()
        field = None
        if loc:
            name = str(loc[0])
            field = to_camel(name) if name in model_cls.model_fields else name
        message = first.get("msg", "Invalid value")
        if field:
            message = f"{field}: {message}"
        raise ValidationError(message, field=field) from None
