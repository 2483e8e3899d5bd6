"""SQLAlchemy database models for the product-payment ledger."""
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from crm_ledger.enums import (
    ApprovalStatus,
    EntityKind,
    ForexSide,
    ProductType,
    TuitionFeesStatus,
    sql_in,
)

Money = Numeric(12, 2)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


# ---------- Read-only references (owned by the user/client CRUD services) ----------


class User(Base):
    """CRM staff member. Only the fields the ledger reads are mapped."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    designation: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    manager_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        """String representation of User."""
        return f"<User(id={self.id}, role={self.role})>"


class ClientInformation(Base):
    """Visa client. Only the fields the ledger reads are mapped."""

    __tablename__ = "client_information"

    client_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    counsellor_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    def __repr__(self) -> str:
        """String representation of ClientInformation."""
        return f"<ClientInformation(client_id={self.client_id})>"


# ---------- Ledger ----------


class ClientProductPayment(Base):
    """
    Ledger row linking a client, a product and (optionally) a detail record.

    Master-only products keep amount/date/invoice/remarks here; every other
    product keeps them on its detail row and leaves these columns null.
    """

    __tablename__ = "client_product_payments"

    product_payment_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    client_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_kind: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    invoice_no: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint(f"product_name IN ({sql_in(ProductType)})", name="valid_product_name"),
        CheckConstraint(f"entity_kind IN ({sql_in(EntityKind)})", name="valid_entity_kind"),
        CheckConstraint(
            "(entity_kind = 'master_only' AND entity_id IS NULL) "
            "OR (entity_kind <> 'master_only' AND amount IS NULL)",
            name="master_only_xor_detail",
        ),
        Index("idx_cpp_client_payment_date", "client_id", "payment_date"),
        Index("idx_cpp_entity", "entity_kind", "entity_id"),
    )

    def __repr__(self) -> str:
        """String representation of ClientProductPayment."""
        return (
            f"<ClientProductPayment(id={self.product_payment_id}, client_id={self.client_id}, "
            f"product={self.product_name}, kind={self.entity_kind}, entity_id={self.entity_id})>"
        )


# ---------- Detail records ----------


class SimCard(Base):
    __tablename__ = "sim_card"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    activated_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    simcard_plan: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sim_card_giving_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    sim_activation_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class AirTicket(Base):
    __tablename__ = "air_ticket"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    is_ticket_booked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    air_ticket_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    ticket_date: Mapped[date] = mapped_column(Date, nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class Ielts(Base):
    __tablename__ = "ielts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    enrolled_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    enrollment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class Loan(Base):
    __tablename__ = "loan"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    disbursment_date: Mapped[date] = mapped_column(Date, nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class ForexCard(Base):
    __tablename__ = "forex_card"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    forex_card_status: Mapped[str | None] = mapped_column(String(100), nullable=True)
    card_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class ForexFees(Base):
    __tablename__ = "forex_fees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    side: Mapped[str] = mapped_column(String(2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    fee_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (CheckConstraint(f"side IN ({sql_in(ForexSide)})", name="valid_forex_side"),)


class TuitionFees(Base):
    __tablename__ = "tution_fees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tution_fees_status: Mapped[str] = mapped_column(String(16), nullable=False)
    fee_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            f"tution_fees_status IN ({sql_in(TuitionFeesStatus)})",
            name="valid_tution_fees_status",
        ),
    )


class Insurance(Base):
    __tablename__ = "insurance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    policy_number: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    insurance_date: Mapped[date] = mapped_column(Date, nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class BeaconAccount(Base):
    __tablename__ = "beacon_account"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    opening_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    funding_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class CreditCard(Base):
    __tablename__ = "credit_card"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    activated_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    card_plan: Mapped[str | None] = mapped_column(String(255), nullable=True)
    card_giving_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    card_activation_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    card_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class AllFinance(Base):
    """
    Financing payment, the only detail kind with an approval workflow.

    The primary key column is ``id`` in the database but is exposed as
    ``finance_id``.
    """

    __tablename__ = "all_finance"

    finance_id: Mapped[int] = mapped_column("id", Integer, primary_key=True, autoincrement=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    invoice_no: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    partial_payment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approval_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ApprovalStatus.APPROVED.value, index=True
    )
    approved_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    another_payment_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    another_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="positive_finance_amount"),
        CheckConstraint(
            f"approval_status IN ({sql_in(ApprovalStatus)})", name="valid_approval_status"
        ),
    )

    def __repr__(self) -> str:
        """String representation of AllFinance."""
        return (
            f"<AllFinance(finance_id={self.finance_id}, amount={self.amount}, "
            f"status={self.approval_status})>"
        )


class NewSell(Base):
    __tablename__ = "new_sell"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    service_name: Mapped[str] = mapped_column(String(255), nullable=False)
    service_information: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    sell_date: Mapped[date] = mapped_column(Date, nullable=False)
    invoice_no: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class VisaExtension(Base):
    __tablename__ = "visa_extension"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    extension_date: Mapped[date] = mapped_column(Date, nullable=False)
    invoice_no: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
