"""Initial product-payment ledger schema

Revision ID: 001
Revises:
Create Date: 2026-02-01 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from crm_ledger.enums import (
    ApprovalStatus,
    EntityKind,
    ForexSide,
    ProductType,
    TuitionFeesStatus,
    sql_in,
)

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(precision=12, scale=2)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def upgrade() -> None:
    """Upgrade database schema."""
    # Ledger
    op.create_table(
        "client_product_payments",
        sa.Column("product_payment_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(length=64), nullable=False),
        sa.Column("entity_kind", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("amount", MONEY, nullable=True),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("invoice_no", sa.String(length=100), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint(f"product_name IN ({sql_in(ProductType)})", name="valid_product_name"),
        sa.CheckConstraint(f"entity_kind IN ({sql_in(EntityKind)})", name="valid_entity_kind"),
        sa.CheckConstraint(
            "(entity_kind = 'master_only' AND entity_id IS NULL) "
            "OR (entity_kind <> 'master_only' AND amount IS NULL)",
            name="master_only_xor_detail",
        ),
        sa.PrimaryKeyConstraint("product_payment_id"),
        sa.UniqueConstraint("invoice_no"),
    )
    op.create_index(
        op.f("ix_client_product_payments_client_id"),
        "client_product_payments",
        ["client_id"],
        unique=False,
    )
    op.create_index(
        "idx_cpp_client_payment_date",
        "client_product_payments",
        ["client_id", "payment_date"],
        unique=False,
    )
    op.create_index(
        "idx_cpp_entity", "client_product_payments", ["entity_kind", "entity_id"], unique=False
    )

    # Detail tables
    op.create_table(
        "sim_card",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("activated_status", sa.Boolean(), nullable=False),
        sa.Column("simcard_plan", sa.String(length=255), nullable=True),
        sa.Column("sim_card_giving_date", sa.Date(), nullable=True),
        sa.Column("sim_activation_date", sa.Date(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "air_ticket",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("is_ticket_booked", sa.Boolean(), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("air_ticket_number", sa.String(length=100), nullable=False),
        sa.Column("ticket_date", sa.Date(), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("air_ticket_number"),
    )

    op.create_table(
        "ielts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("enrolled_status", sa.Boolean(), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("enrollment_date", sa.Date(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "loan",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("disbursment_date", sa.Date(), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "forex_card",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("forex_card_status", sa.String(length=100), nullable=True),
        sa.Column("card_date", sa.Date(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "forex_fees",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("side", sa.String(length=2), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("fee_date", sa.Date(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint(f"side IN ({sql_in(ForexSide)})", name="valid_forex_side"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "tution_fees",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tution_fees_status", sa.String(length=16), nullable=False),
        sa.Column("fee_date", sa.Date(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            f"tution_fees_status IN ({sql_in(TuitionFeesStatus)})",
            name="valid_tution_fees_status",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "insurance",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("policy_number", sa.String(length=100), nullable=True),
        sa.Column("insurance_date", sa.Date(), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("policy_number"),
    )

    op.create_table(
        "beacon_account",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("opening_date", sa.Date(), nullable=True),
        sa.Column("funding_date", sa.Date(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "credit_card",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("activated_status", sa.Boolean(), nullable=False),
        sa.Column("card_plan", sa.String(length=255), nullable=True),
        sa.Column("card_giving_date", sa.Date(), nullable=True),
        sa.Column("card_activation_date", sa.Date(), nullable=True),
        sa.Column("card_date", sa.Date(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "all_finance",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("invoice_no", sa.String(length=100), nullable=True),
        sa.Column("partial_payment", sa.Boolean(), nullable=False),
        sa.Column("approval_status", sa.String(length=16), nullable=False),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("another_payment_amount", MONEY, nullable=True),
        sa.Column("another_payment_date", sa.Date(), nullable=True),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="positive_finance_amount"),
        sa.CheckConstraint(
            f"approval_status IN ({sql_in(ApprovalStatus)})", name="valid_approval_status"
        ),
        sa.ForeignKeyConstraint(["approved_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_no"),
    )
    op.create_index(
        op.f("ix_all_finance_approval_status"), "all_finance", ["approval_status"], unique=False
    )

    op.create_table(
        "new_sell",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("service_name", sa.String(length=255), nullable=False),
        sa.Column("service_information", sa.Text(), nullable=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("sell_date", sa.Date(), nullable=False),
        sa.Column("invoice_no", sa.String(length=100), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_no"),
    )

    op.create_table(
        "visa_extension",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("extension_date", sa.Date(), nullable=False),
        sa.Column("invoice_no", sa.String(length=100), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_no"),
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table("visa_extension")
    op.drop_table("new_sell")
    op.drop_index(op.f("ix_all_finance_approval_status"), table_name="all_finance")
    op.drop_table("all_finance")
    op.drop_table("credit_card")
    op.drop_table("beacon_account")
    op.drop_table("insurance")
    op.drop_table("tution_fees")
    op.drop_table("forex_fees")
    op.drop_table("forex_card")
    op.drop_table("loan")
    op.drop_table("ielts")
    op.drop_table("air_ticket")
    op.drop_table("sim_card")
    op.drop_index("idx_cpp_entity", table_name="client_product_payments")
    op.drop_index("idx_cpp_client_payment_date", table_name="client_product_payments")
    op.drop_index(
        op.f("ix_client_product_payments_client_id"), table_name="client_product_payments"
    )
    op.drop_table("client_product_payments")
