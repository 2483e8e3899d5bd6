"""
Tests for the financing approval workflow.
"""
from types import SimpleNamespace
from typing import Any, Dict

import pytest

from crm_ledger.cache.backend import InMemoryCacheBackend
from crm_ledger.cache.coherency import PENDING_APPROVALS_KEY
from crm_ledger.core import approval
from crm_ledger.core.approval import ApprovalWorkflow
from crm_ledger.core.errors import InvalidStateError, NotFoundError
from crm_ledger.core.ledger import PaymentLedger
from crm_ledger.realtime.transport import InMemoryTransport

from .conftest import CLIENT_ID, COUNSELLOR_ID, MANAGER_ID


async def create_partial_payment(ledger: PaymentLedger, entity: Dict[str, Any]) -> Dict[str, Any]:
    return await ledger.create(CLIENT_ID, "ALL_FINANCE_EMPLOYEMENT", {"entityData": entity})


class TestPartialPaymentScenario:
    """A partial financing payment is recorded, then approved by a manager."""

    @pytest.mark.asyncio
    async def test_pending_then_approved(
        self,
        ledger: PaymentLedger,
        approvals: ApprovalWorkflow,
        finance_entity: Dict[str, Any],
    ) -> None:
        created = await create_partial_payment(ledger, finance_entity)
        entity = created["entity"]

        assert entity["approvalStatus"] == "pending"
        assert entity["partialPayment"] is True
        assert entity["amount"] == "500.00"
        assert entity["paymentDate"] == "2026-02-10"
        assert entity["approvedBy"] is None

        record = await approvals.approve(created["entityId"], MANAGER_ID)

        assert record["approvalStatus"] == "approved"
        assert record["approvedBy"] == MANAGER_ID
        assert record["approver"] == {
            "id": MANAGER_ID,
            "name": "Meera Shah",
            "designation": "Branch Manager",
            "role": "manager",
        }

        payments = await ledger.list_by_client(CLIENT_ID)
        assert payments[0]["entity"]["approvalStatus"] == "approved"
        assert payments[0]["entity"]["approver"]["id"] == MANAGER_ID


class TestDecisions:
    """State transitions of a financing payment."""

    @pytest.mark.asyncio
    async def test_approve_twice(
        self, ledger: PaymentLedger, approvals: ApprovalWorkflow, finance_entity: Dict[str, Any]
    ) -> None:
        created = await create_partial_payment(ledger, finance_entity)
        await approvals.approve(created["entityId"], MANAGER_ID)

        with pytest.raises(InvalidStateError, match="Payment is already approved"):
            await approvals.approve(created["entityId"], MANAGER_ID)

    @pytest.mark.asyncio
    async def test_full_payment_cannot_be_decided(
        self, ledger: PaymentLedger, approvals: ApprovalWorkflow, finance_entity: Dict[str, Any]
    ) -> None:
        finance_entity["partialPayment"] = False
        created = await create_partial_payment(ledger, finance_entity)

        with pytest.raises(InvalidStateError, match="Payment is already approved"):
            await approvals.reject(created["entityId"], MANAGER_ID)

    @pytest.mark.asyncio
    async def test_reject_records_who_rejected(
        self, ledger: PaymentLedger, approvals: ApprovalWorkflow, finance_entity: Dict[str, Any]
    ) -> None:
        created = await create_partial_payment(ledger, finance_entity)

        record = await approvals.reject(created["entityId"], MANAGER_ID)

        assert record["approvalStatus"] == "rejected"
        assert record["approvedBy"] == MANAGER_ID
        with pytest.raises(InvalidStateError, match="Payment is already rejected"):
            await approvals.approve(created["entityId"], MANAGER_ID)

    @pytest.mark.asyncio
    async def test_editing_rejected_payment_resubmits_it(
        self, ledger: PaymentLedger, approvals: ApprovalWorkflow, finance_entity: Dict[str, Any]
    ) -> None:
        created = await create_partial_payment(ledger, finance_entity)
        await approvals.reject(created["entityId"], MANAGER_ID)

        updated = await ledger.update(
            created["productPaymentId"],
            {"entityData": {"amount": "450.00", "approvalStatus": "approved"}},
        )

        assert updated["entity"]["amount"] == "450.00"
        assert updated["entity"]["approvalStatus"] == "pending"
        assert updated["entity"]["approvedBy"] is None
        assert updated["entity"]["approver"] is None

        record = await approvals.approve(created["entityId"], MANAGER_ID)
        assert record["approvalStatus"] == "approved"

    @pytest.mark.asyncio
    async def test_editing_approved_payment_keeps_status(
        self, ledger: PaymentLedger, approvals: ApprovalWorkflow, finance_entity: Dict[str, Any]
    ) -> None:
        created = await create_partial_payment(ledger, finance_entity)
        await approvals.approve(created["entityId"], MANAGER_ID)

        updated = await ledger.update(
            created["productPaymentId"], {"entityData": {"remarks": "Receipt attached"}}
        )

        assert updated["entity"]["approvalStatus"] == "approved"
        assert updated["entity"]["approvedBy"] == MANAGER_ID

    @pytest.mark.asyncio
    async def test_unknown_finance_id(self, approvals: ApprovalWorkflow) -> None:
        with pytest.raises(NotFoundError, match="financeId: 404"):
            await approvals.approve(404, MANAGER_ID)


class TestConcurrentDecisions:
    """Two approvers acting on the same payment."""

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_losing_decision_is_rejected(
        self,
        ledger: PaymentLedger,
        approvals: ApprovalWorkflow,
        finance_entity: Dict[str, Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """
        The loser read ``pending`` before the winner committed.

        The stale read is simulated; the conditional update must still refuse
        the second decision.
        """
        created = await create_partial_payment(ledger, finance_entity)
        winner = await approvals.approve(created["entityId"], MANAGER_ID)

        async def stale_read(session: Any, finance_id: int) -> SimpleNamespace:
            return SimpleNamespace(finance_id=finance_id, approval_status="pending")

        monkeypatch.setattr(approval, "_load_finance", stale_read)

        with pytest.raises(InvalidStateError, match="Payment is already approved"):
            await approvals.reject(created["entityId"], COUNSELLOR_ID)

        monkeypatch.undo()
        payments = await ledger.list_by_client(CLIENT_ID)
        assert winner["approvalStatus"] == "approved"
        assert payments[0]["entity"]["approvalStatus"] == "approved"
        assert payments[0]["entity"]["approvedBy"] == MANAGER_ID


class TestPendingQueue:
    """Pending approvals listing."""

    @pytest.mark.asyncio
    async def test_lists_pending_with_context(
        self, ledger: PaymentLedger, approvals: ApprovalWorkflow, finance_entity: Dict[str, Any]
    ) -> None:
        created = await create_partial_payment(ledger, finance_entity)
        finance_entity.update(invoiceNo="INV-FIN-002", partialPayment=False)
        await create_partial_payment(ledger, finance_entity)

        pending = await approvals.list_pending()

        assert len(pending) == 1
        record = pending[0]
        assert record["financeId"] == created["entityId"]
        assert record["productPaymentId"] == created["productPaymentId"]
        assert record["client"] == {"clientId": CLIENT_ID, "fullName": "Arjun Patel"}
        assert record["counsellor"] == {
            "id": COUNSELLOR_ID,
            "fullName": "Ravi Kumar",
            "managerId": MANAGER_ID,
        }
        assert record["approver"] is None

    @pytest.mark.asyncio
    async def test_decision_invalidates_queue(
        self,
        ledger: PaymentLedger,
        approvals: ApprovalWorkflow,
        cache_backend: InMemoryCacheBackend,
        finance_entity: Dict[str, Any],
    ) -> None:
        created = await create_partial_payment(ledger, finance_entity)
        assert len(await approvals.list_pending()) == 1
        assert PENDING_APPROVALS_KEY in cache_backend.keys()

        await approvals.approve(created["entityId"], MANAGER_ID)

        assert PENDING_APPROVALS_KEY not in cache_backend.keys()
        assert await approvals.list_pending() == []

    @pytest.mark.asyncio
    async def test_new_partial_payment_invalidates_queue(
        self, ledger: PaymentLedger, approvals: ApprovalWorkflow, finance_entity: Dict[str, Any]
    ) -> None:
        assert await approvals.list_pending() == []

        await create_partial_payment(ledger, finance_entity)

        assert len(await approvals.list_pending()) == 1


class TestApprovalEvents:
    """Real-time events of decisions."""

    @pytest.mark.asyncio
    async def test_approved_event(
        self,
        ledger: PaymentLedger,
        approvals: ApprovalWorkflow,
        transport: InMemoryTransport,
        finance_entity: Dict[str, Any],
    ) -> None:
        created = await create_partial_payment(ledger, finance_entity)

        await approvals.approve(created["entityId"], MANAGER_ID)

        messages = transport.events("allFinance:approved")
        assert [m.channel for m in messages] == [
            f"counsellor:{COUNSELLOR_ID}",
            "admin",
            "role:manager",
            "role:admin",
        ]
        assert messages[0].payload == {
            "action": "APPROVED",
            "financeId": created["entityId"],
            "amount": "500.00",
            "approvalStatus": "approved",
            "approvedBy": MANAGER_ID,
            "productPaymentId": created["productPaymentId"],
            "clientId": CLIENT_ID,
        }

    @pytest.mark.asyncio
    async def test_rejected_event(
        self,
        ledger: PaymentLedger,
        approvals: ApprovalWorkflow,
        transport: InMemoryTransport,
        finance_entity: Dict[str, Any],
    ) -> None:
        created = await create_partial_payment(ledger, finance_entity)

        await approvals.reject(created["entityId"], MANAGER_ID)

        assert len(transport.events("allFinance:rejected")) == 4
        assert transport.events("allFinance:approved") == []
