"""
Approval workflow for financing payments.

A financing payment recorded as a partial payment starts ``pending`` and
is decided once by a manager or admin:

    pending -> approved
    pending -> rejected

The decision is a conditional update (``WHERE approval_status = 'pending'``)
whose affected-row count is checked, so two concurrent decisions cannot
both succeed.
"""
import time
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_ledger.cache.coherency import (
    MUTATION_PREFIXES,
    PENDING_APPROVALS_KEY,
    LedgerCache,
    client_payments_key,
    product_payment_key,
)
from crm_ledger.config import Settings, get_settings
from crm_ledger.core.errors import InvalidStateError, NotFoundError, StorageError
from crm_ledger.core.hooks import PostCommitHooks, PostCommitWork
from crm_ledger.core.ledger import load_users, resolve_owner
from crm_ledger.core.projections import approver_view, row_to_dict
from crm_ledger.database.connection import get_session_factory
from crm_ledger.database.models import AllFinance, ClientInformation, ClientProductPayment
from crm_ledger.enums import ApprovalStatus, EntityKind, LedgerAction
from crm_ledger.monitoring.metrics import metrics
from crm_ledger.realtime.fanout import EventFanout, approval_event

logger = structlog.get_logger(__name__)


async def _load_finance(session: AsyncSession, finance_id: int) -> Optional[AllFinance]:
    return await session.get(AllFinance, finance_id)


async def _ledger_row_for(session: AsyncSession, finance_id: int) -> Optional[ClientProductPayment]:
    return await session.scalar(
        select(ClientProductPayment)
        .where(
            ClientProductPayment.entity_kind == EntityKind.ALL_FINANCE.value,
            ClientProductPayment.entity_id == finance_id,
        )
        .limit(1)
    )


class ApprovalWorkflow:
    """Approve, reject and list pending financing payments."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        cache: Optional[LedgerCache] = None,
        fanout: Optional[EventFanout] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory or get_session_factory()
        self.cache = cache or LedgerCache()
        self.fanout = fanout or EventFanout()
        self.hooks = PostCommitHooks(self.cache, self.fanout)

    async def approve(self, finance_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Approve a pending financing payment.

        Returns:
            Dict[str, Any]: The updated financing record with its approver

        Raises:
            NotFoundError: If the financing record does not exist
            InvalidStateError: If it is not pending
        """
        return await self._decide(finance_id, actor_id, ApprovalStatus.APPROVED)

    async def reject(self, finance_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Reject a pending financing payment.

        The rejecting user is recorded in ``approvedBy``.

        Raises:
            NotFoundError: If the financing record does not exist
            InvalidStateError: If it is not pending
        """
        return await self._decide(finance_id, actor_id, ApprovalStatus.REJECTED)

    async def _decide(
        self, finance_id: int, actor_id: int, target: ApprovalStatus
    ) -> Dict[str, Any]:
        start = time.perf_counter()
        action = LedgerAction.APPROVED if target is ApprovalStatus.APPROVED else LedgerAction.REJECTED
        logger.info(
            "approval_decision_started",
            finance_id=finance_id,
            actor_id=actor_id,
            target=target.value,
        )

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    finance = await _load_finance(session, finance_id)
                    if finance is None:
                        raise NotFoundError(f"Finance payment not found with financeId: {finance_id}")
                    if finance.approval_status != ApprovalStatus.PENDING.value:
                        raise InvalidStateError(f"Payment is already {finance.approval_status}")

                    result = await session.execute(
                        update(AllFinance)
                        .where(
                            AllFinance.finance_id == finance_id,
                            AllFinance.approval_status == ApprovalStatus.PENDING.value,
                        )
                        .values(approval_status=target.value, approved_by=actor_id)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        current = await session.scalar(
                            select(AllFinance.approval_status).where(
                                AllFinance.finance_id == finance_id
                            )
                        )
                        metrics.record_approval_transition("conflict")
                        logger.warning(
                            "approval_decision_lost_race",
                            finance_id=finance_id,
                            actor_id=actor_id,
                            current_status=current,
                        )
                        raise InvalidStateError(f"Payment is already {current}")

                    await session.refresh(finance)
                    record = row_to_dict(finance)
                    approvers = await load_users(session, [finance.approved_by])
                    record["approver"] = approver_view(approvers.get(finance.approved_by))

                    ledger_row = await _ledger_row_for(session, finance_id)
                    owner_id = None
                    if ledger_row is not None:
                        owner_id = await resolve_owner(session, ledger_row.client_id)
        except SQLAlchemyError as e:
            metrics.record_ledger_error(action.value.lower(), type(e).__name__)
            logger.error("approval_decision_storage_error", finance_id=finance_id, error=str(e))
            raise StorageError() from e

        metrics.record_approval_transition(target.value)
        metrics.record_operation_duration(action.value.lower(), time.perf_counter() - start)
        logger.info(
            "approval_decision_committed",
            finance_id=finance_id,
            actor_id=actor_id,
            status=target.value,
        )

        keys = [PENDING_APPROVALS_KEY]
        payload: Dict[str, Any] = {
            "financeId": finance_id,
            "amount": record["amount"],
            "approvalStatus": record["approvalStatus"],
            "approvedBy": record["approvedBy"],
            "productPaymentId": None,
            "clientId": None,
        }
        if ledger_row is not None:
            keys += [
                client_payments_key(ledger_row.client_id),
                product_payment_key(ledger_row.product_payment_id),
            ]
            payload["productPaymentId"] = ledger_row.product_payment_id
            payload["clientId"] = ledger_row.client_id

        await self.hooks.run(
            PostCommitWork(
                invalidate_keys=tuple(keys),
                invalidate_prefixes=MUTATION_PREFIXES,
                publications=(approval_event(action, owner_id, payload),),
            )
        )
        return record

    async def list_pending(self) -> List[Dict[str, Any]]:
        """
        All pending financing payments, oldest first.

        Each record carries ``productPaymentId``, ``client`` {clientId,
        fullName}, ``counsellor`` {id, fullName, managerId} and ``approver``.
        """

        async def load() -> List[Dict[str, Any]]:
            try:
                async with self.session_factory() as session:
                    return await self._load_pending(session)
            except SQLAlchemyError as e:
                metrics.record_ledger_error("list_pending", type(e).__name__)
                logger.error("pending_approvals_storage_error", error=str(e))
                raise StorageError() from e

        return await self.cache.read_through(
            PENDING_APPROVALS_KEY, load, self.settings.pending_approvals_cache_ttl
        )

    async def _load_pending(self, session: AsyncSession) -> List[Dict[str, Any]]:
        result = await session.scalars(
            select(AllFinance)
            .where(AllFinance.approval_status == ApprovalStatus.PENDING.value)
            .order_by(AllFinance.created_at, AllFinance.finance_id)
        )
        pending = list(result)
        if not pending:
            return []

        finance_ids = [finance.finance_id for finance in pending]
        ledger_rows = await session.scalars(
            select(ClientProductPayment).where(
                ClientProductPayment.entity_kind == EntityKind.ALL_FINANCE.value,
                ClientProductPayment.entity_id.in_(finance_ids),
            )
        )
        ledger_by_finance = {row.entity_id: row for row in ledger_rows}

        client_ids = sorted({row.client_id for row in ledger_by_finance.values()})
        clients: Dict[int, ClientInformation] = {}
        if client_ids:
            client_rows = await session.scalars(
                select(ClientInformation).where(ClientInformation.client_id.in_(client_ids))
            )
            clients = {client.client_id: client for client in client_rows}

        users = await load_users(
            session,
            [client.counsellor_id for client in clients.values()]
            + [finance.approved_by for finance in pending],
        )

        records = []
        for finance in pending:
            record = row_to_dict(finance)
            ledger_row = ledger_by_finance.get(finance.finance_id)
            client = clients.get(ledger_row.client_id) if ledger_row is not None else None
            counsellor = users.get(client.counsellor_id) if client is not None else None

            record["productPaymentId"] = (
                ledger_row.product_payment_id if ledger_row is not None else None
            )
            record["client"] = (
                {"clientId": client.client_id, "fullName": client.full_name} if client else None
            )
            record["counsellor"] = (
                {
                    "id": counsellor.id,
                    "fullName": counsellor.full_name,
                    "managerId": counsellor.manager_id,
                }
                if counsellor
                else None
            )
            record["approver"] = approver_view(users.get(finance.approved_by))
            records.append(record)
        return records
