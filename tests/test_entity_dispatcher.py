"""
Tests for the entity dispatcher against an in-memory database.
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_ledger.core import entity_dispatcher as dispatcher
from crm_ledger.core.errors import DuplicateKeyError, NotFoundError, ValidationError
from crm_ledger.database.models import AllFinance, SimCard
from crm_ledger.enums import EntityKind


class TestCreateDetail:
    """Inserting detail rows."""

    @pytest.mark.asyncio
    async def test_partial_finance_starts_pending(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            async with session.begin():
                finance_id = await dispatcher.create_detail(
                    session,
                    EntityKind.ALL_FINANCE,
                    {"amount": "500.00", "paymentDate": "10-02-2026", "partialPayment": True},
                )
                row = await dispatcher.get_detail(session, EntityKind.ALL_FINANCE, finance_id)

        assert row.approval_status == "pending"
        assert row.approved_by is None
        assert row.payment_date == date(2026, 2, 10)

    @pytest.mark.asyncio
    async def test_full_finance_is_approved(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            async with session.begin():
                finance_id = await dispatcher.create_detail(
                    session,
                    EntityKind.ALL_FINANCE,
                    {
                        "amount": "800",
                        "paymentDate": "2026-02-10",
                        "approvalStatus": "rejected",
                        "approvedBy": 99,
                    },
                )
                row = await dispatcher.get_detail(session, EntityKind.ALL_FINANCE, finance_id)

        assert row.approval_status == "approved"
        assert row.approved_by is None

    @pytest.mark.asyncio
    async def test_air_ticket_server_defaults(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            async with session.begin():
                ticket_id = await dispatcher.create_detail(
                    session, EntityKind.AIR_TICKET, {"isTicketBooked": True}
                )
                row = await dispatcher.get_detail(session, EntityKind.AIR_TICKET, ticket_id)

        assert row.amount == Decimal("0")
        assert row.ticket_date == date.today()
        assert row.air_ticket_number.startswith("TKT-")

    @pytest.mark.asyncio
    async def test_invalid_payload_writes_nothing(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            with pytest.raises(ValidationError):
                async with session.begin():
                    await dispatcher.create_detail(session, EntityKind.IELTS, {"enrolledStatus": True})

        async with session_factory() as session:
            assert await dispatcher.fetch_details(session, EntityKind.IELTS, [1]) == {}

    @pytest.mark.asyncio
    async def test_duplicate_ticket_number(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        payload = {"airTicketNumber": "AI-302-7781", "amount": "640"}
        async with session_factory() as session:
            async with session.begin():
                await dispatcher.create_detail(session, EntityKind.AIR_TICKET, payload)

        async with session_factory() as session:
            with pytest.raises(DuplicateKeyError) as exc_info:
                async with session.begin():
                    await dispatcher.create_detail(session, EntityKind.AIR_TICKET, payload)

        assert exc_info.value.field == "airTicketNumber"
        assert exc_info.value.value == "AI-302-7781"


class TestUpdateDetail:
    """Patching detail rows."""

    @pytest.mark.asyncio
    async def test_merge_keeps_omitted_fields(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            async with session.begin():
                sim_id = await dispatcher.create_detail(
                    session,
                    EntityKind.SIM_CARD,
                    {"simcardPlan": "Prepaid 30", "simCardGivingDate": "01-03-2026"},
                )

        async with session_factory() as session:
            async with session.begin():
                row = await dispatcher.update_detail(
                    session, EntityKind.SIM_CARD, sim_id, {"activatedStatus": True}
                )

        assert row.activated_status is True
        assert row.simcard_plan == "Prepaid 30"
        assert row.sim_card_giving_date == date(2026, 3, 1)

    @pytest.mark.asyncio
    async def test_blank_ticket_number_keeps_stored_value(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            async with session.begin():
                ticket_id = await dispatcher.create_detail(
                    session,
                    EntityKind.AIR_TICKET,
                    {"airTicketNumber": "AI-1", "ticketDate": "05-03-2026", "amount": "640"},
                )

        async with session_factory() as session:
            async with session.begin():
                row = await dispatcher.update_detail(
                    session,
                    EntityKind.AIR_TICKET,
                    ticket_id,
                    {"airTicketNumber": "", "ticketDate": "", "amount": "700"},
                )

        assert row.air_ticket_number == "AI-1"
        assert row.ticket_date == date(2026, 3, 5)
        assert row.amount == Decimal("700")

    @pytest.mark.asyncio
    async def test_merged_record_is_validated(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            async with session.begin():
                loan_id = await dispatcher.create_detail(session, EntityKind.LOAN, {"amount": "9000"})

        async with session_factory() as session:
            with pytest.raises(ValidationError) as exc_info:
                async with session.begin():
                    await dispatcher.update_detail(session, EntityKind.LOAN, loan_id, {"amount": "-1"})
        assert exc_info.value.field == "amount"

    @pytest.mark.asyncio
    async def test_unchanged_unique_value_is_not_a_duplicate(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            async with session.begin():
                policy_id = await dispatcher.create_detail(
                    session, EntityKind.INSURANCE, {"amount": "300", "policyNumber": "POL-1"}
                )
                await dispatcher.create_detail(
                    session, EntityKind.INSURANCE, {"amount": "300", "policyNumber": "POL-2"}
                )

        async with session_factory() as session:
            async with session.begin():
                row = await dispatcher.update_detail(
                    session,
                    EntityKind.INSURANCE,
                    policy_id,
                    {"policyNumber": "POL-1", "remarks": "Renewed"},
                )
        assert row.remarks == "Renewed"

        async with session_factory() as session:
            with pytest.raises(DuplicateKeyError) as exc_info:
                async with session.begin():
                    await dispatcher.update_detail(
                        session, EntityKind.INSURANCE, policy_id, {"policyNumber": "POL-2"}
                    )
        assert exc_info.value.field == "policyNumber"

    @pytest.mark.asyncio
    async def test_rejected_finance_goes_back_to_pending(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            async with session.begin():
                row = AllFinance(
                    amount=Decimal("500"),
                    payment_date=date(2026, 2, 10),
                    partial_payment=True,
                    approval_status="rejected",
                    approved_by=20,
                )
                session.add(row)
                await session.flush()
                finance_id = row.finance_id

        async with session_factory() as session:
            async with session.begin():
                row = await dispatcher.update_detail(
                    session, EntityKind.ALL_FINANCE, finance_id, {"amount": "450"}
                )

        assert row.amount == Decimal("450")
        assert row.approval_status == "pending"
        assert row.approved_by is None

    @pytest.mark.asyncio
    async def test_missing_row(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        async with session_factory() as session:
            with pytest.raises(NotFoundError):
                async with session.begin():
                    await dispatcher.update_detail(session, EntityKind.LOAN, 404, {"amount": "1"})


class TestReadAndDelete:
    """Batched reads and deletes."""

    @pytest.mark.asyncio
    async def test_fetch_details_batches_by_id(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            async with session.begin():
                ids = [
                    await dispatcher.create_detail(session, EntityKind.FOREX_CARD, {"forexCardStatus": s})
                    for s in ("issued", "loaded")
                ]

        async with session_factory() as session:
            rows = await dispatcher.fetch_details(session, EntityKind.FOREX_CARD, ids + [999])

        assert sorted(rows) == sorted(ids)
        assert {row.forex_card_status for row in rows.values()} == {"issued", "loaded"}

    @pytest.mark.asyncio
    async def test_fetch_details_without_ids(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            assert await dispatcher.fetch_details(session, EntityKind.LOAN, []) == {}

    @pytest.mark.asyncio
    async def test_delete_detail(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        async with session_factory() as session:
            async with session.begin():
                sim_id = await dispatcher.create_detail(session, EntityKind.SIM_CARD, {})

        async with session_factory() as session:
            async with session.begin():
                await dispatcher.delete_detail(session, EntityKind.SIM_CARD, sim_id)
                # already gone
                await dispatcher.delete_detail(session, EntityKind.SIM_CARD, sim_id)

        async with session_factory() as session:
            assert await session.get(SimCard, sim_id) is None


class TestFlushOrRaise:
    """Unique constraint violations that slip past the pre-check."""

    @pytest.mark.asyncio
    async def test_integrity_error_names_the_field(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        values = {"invoice_no": "INV-RACE"}
        async with session_factory() as session:
            with pytest.raises(DuplicateKeyError) as exc_info:
                async with session.begin():
                    for _ in range(2):
                        session.add(
                            AllFinance(
                                amount=Decimal("100"),
                                payment_date=date(2026, 2, 10),
                                invoice_no="INV-RACE",
                            )
                        )
                    await dispatcher.flush_or_raise(
                        session, (("invoice_no", "invoiceNo"),), values, "all_finance"
                    )

        assert exc_info.value.field == "invoiceNo"
        assert str(exc_info.value) == "invoiceNo 'INV-RACE' already exists"
