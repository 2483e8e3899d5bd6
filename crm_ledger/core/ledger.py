"""
Payment ledger coordinator.

Orchestrates a product payment mutation:
1. Resolve the product type to an entity kind
2. Validate the payload for that kind
3. Write the detail row (if any) and the ledger row in one transaction
4. Commit
5. Run post-commit hooks: cache invalidation, then real-time fan-out
"""
import time
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_ledger.cache.coherency import (
    LedgerCache,
    client_payments_key,
    product_payment_key,
)
from crm_ledger.config import Settings, get_settings
from crm_ledger.core import entity_dispatcher as dispatcher
from crm_ledger.core.entries import Actor, LedgerEntry
from crm_ledger.core.errors import LedgerError, NotFoundError, StorageError, ValidationError
from crm_ledger.core.hooks import CacheRefresh, PostCommitHooks, PostCommitWork
from crm_ledger.core.payloads import MasterOnlyPayload, validate_payload
from crm_ledger.core.product_types import DetailStorage, resolve
from crm_ledger.core.projections import approver_view, row_to_dict, to_json_value
from crm_ledger.database.connection import get_session_factory
from crm_ledger.database.models import Base, ClientInformation, ClientProductPayment, User
from crm_ledger.enums import ApprovalStatus, EntityKind, LedgerAction, ProductType
from crm_ledger.monitoring.metrics import metrics
from crm_ledger.realtime.fanout import (
    EventFanout,
    Publication,
    partial_payment_event,
    product_payment_event,
)

logger = structlog.get_logger(__name__)

LEDGER_STORAGE = DetailStorage(
    ClientProductPayment,
    id_attr="product_payment_id",
    unique_fields=(("invoice_no", "invoiceNo"),),
)


async def load_users(session: AsyncSession, user_ids: Any) -> Dict[int, User]:
    """Load users by id with one query."""
    ids = sorted({user_id for user_id in user_ids if user_id is not None})
    if not ids:
        return {}
    result = await session.scalars(select(User).where(User.id.in_(ids)))
    return {user.id: user for user in result}


async def entity_views(
    session: AsyncSession, kind: EntityKind, rows: Mapping[int, Base]
) -> Dict[int, Dict[str, Any]]:
    """Serialize detail rows; financing rows embed their approver's identity."""
    views = {entity_id: row_to_dict(row) for entity_id, row in rows.items()}
    if kind is EntityKind.ALL_FINANCE:
        approvers = await load_users(session, (row.approved_by for row in rows.values()))
        for entity_id, row in rows.items():
            views[entity_id]["approver"] = approver_view(approvers.get(row.approved_by))
    return views


async def resolve_owner(
    session: AsyncSession, client_id: int, actor: Optional[Actor] = None
) -> Optional[int]:
    """The counsellor who owns ``client_id``, falling back to the acting user."""
    counsellor_id = await session.scalar(
        select(ClientInformation.counsellor_id).where(ClientInformation.client_id == client_id)
    )
    if counsellor_id is not None:
        return counsellor_id
    return actor.id if actor is not None else None


class PaymentLedger:
    """
    Create, update, delete and read product payments.

    Mutations run in a single database transaction; cache and real-time side
    effects happen after commit and never fail the mutation.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        cache: Optional[LedgerCache] = None,
        fanout: Optional[EventFanout] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the ledger.

        Args:
            session_factory: Optional session factory (defaults to the global one)
            cache: Optional read cache (defaults to a disabled cache)
            fanout: Optional real-time fan-out (defaults to dropping events)
            settings: Optional settings
        """
        self.settings = settings or get_settings()
        self.session_factory = session_factory or get_session_factory()
        self.cache = cache or LedgerCache()
        self.fanout = fanout or EventFanout()
        self.hooks = PostCommitHooks(self.cache, self.fanout)

    # ---------- helpers ----------

    @staticmethod
    def _validate_client_id(client_id: Any) -> int:
        try:
            value = int(client_id)
        except (TypeError, ValueError):
            value = 0
        if value <= 0:
            raise ValidationError("Valid clientId is required", field="clientId")
        return value

    @staticmethod
    def _resolve_product(product_type: Any) -> Tuple[ProductType, EntityKind]:
        if not product_type:
            raise ValidationError("productName is required", field="productName")
        try:
            kind = resolve(product_type)
        except ValueError as e:
            raise ValidationError(str(e), field="productName") from None
        return ProductType(product_type), kind

    @staticmethod
    def _entity_data(payload: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        entity_data = payload.get("entityData")
        if entity_data is None:
            return None
        if not isinstance(entity_data, Mapping):
            raise ValidationError("entityData must be an object", field="entityData")
        return entity_data

    async def _view(self, session: AsyncSession, row: ClientProductPayment) -> Dict[str, Any]:
        """Projection of one ledger row with its merged entity."""
        entity = None
        kind = EntityKind(row.entity_kind)
        if kind.has_detail and row.entity_id is not None:
            rows = await dispatcher.fetch_details(session, kind, [row.entity_id])
            entity = (await entity_views(session, kind, rows)).get(row.entity_id)
        return LedgerEntry.from_row(row, entity).to_dict()

    async def _get_row(self, session: AsyncSession, ledger_id: int) -> ClientProductPayment:
        row = await session.get(ClientProductPayment, ledger_id)
        if row is None:
            raise NotFoundError("Product payment record not found")
        return row

    def _fail(self, operation: str, error: Exception, **context: Any) -> None:
        metrics.record_ledger_error(operation, type(error).__name__)
        if isinstance(error, SQLAlchemyError):
            logger.error(f"ledger_{operation}_storage_error", error=str(error), **context)
            raise StorageError() from error
        logger.warning(f"ledger_{operation}_rejected", error=str(error), **context)

    def _mutation_work(
        self,
        action: LedgerAction,
        view: Dict[str, Any],
        owner_id: Optional[int],
        extra: Tuple[Publication, ...] = (),
        refresh: bool = False,
    ) -> PostCommitWork:
        ledger_id = view["productPaymentId"]
        payload = {
            "productPaymentId": ledger_id,
            "clientId": view["clientId"],
            "productPayment": view,
        }
        cache_refresh = None
        if refresh and self.settings.cache_write_through:
            cache_refresh = CacheRefresh(
                product_payment_key(ledger_id), view, self.settings.product_payments_cache_ttl
            )
        return PostCommitWork(
            invalidate_keys=(client_payments_key(view["clientId"]), product_payment_key(ledger_id)),
            refresh=cache_refresh,
            publications=(product_payment_event(action, owner_id, payload),) + extra,
        )

    # ---------- mutations ----------

    async def create(
        self,
        client_id: int,
        product_type: ProductType | str,
        payload: Mapping[str, Any],
        actor: Optional[Actor] = None,
    ) -> Dict[str, Any]:
        """
        Record a new product payment.

        Master-only products take ``amount``/``paymentDate``/``invoiceNo``/
        ``remarks`` from the top level of ``payload``; every other product
        takes its fields from ``payload["entityData"]``.

        Returns:
            Dict[str, Any]: The created ledger projection, with its entity

        Raises:
            ValidationError: If the payload is invalid
            DuplicateKeyError: If a business-unique value is already used
            StorageError: If the database fails
        """
        start = time.perf_counter()
        client_id = self._validate_client_id(client_id)
        product, kind = self._resolve_product(product_type)

        logger.info(
            "ledger_create_started",
            client_id=client_id,
            product_name=product.value,
            entity_kind=kind.value,
            actor_id=actor.id if actor else None,
        )

        extra: Tuple[Publication, ...] = ()
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    master_values: Dict[str, Any] = {}
                    entity_id = None
                    if kind.has_detail:
                        entity_data = self._entity_data(payload)
                        if entity_data is None:
                            raise ValidationError("entityData required", field="entityData")
                        entity_id = await dispatcher.create_detail(session, kind, entity_data)
                    else:
                        data = MasterOnlyPayload.normalize_keys(payload)
                        master_values = validate_payload(MasterOnlyPayload, data).model_dump()
                        await dispatcher.check_unique(session, LEDGER_STORAGE, master_values)

                    row = ClientProductPayment(
                        client_id=client_id,
                        product_name=product.value,
                        entity_kind=kind.value,
                        entity_id=entity_id,
                        **master_values,
                    )
                    session.add(row)
                    await dispatcher.flush_or_raise(
                        session, LEDGER_STORAGE.unique_fields, master_values, LEDGER_STORAGE.table_name
                    )

                    view = await self._view(session, row)
                    owner_id = await resolve_owner(session, client_id, actor)

                    entity = view["entity"] or {}
                    if (
                        kind is EntityKind.ALL_FINANCE
                        and entity.get("approvalStatus") == ApprovalStatus.PENDING.value
                    ):
                        manager_id = None
                        if owner_id is not None:
                            manager_id = await session.scalar(
                                select(User.manager_id).where(User.id == owner_id)
                            )
                        extra = (
                            partial_payment_event(
                                manager_id,
                                {
                                    "productPaymentId": row.product_payment_id,
                                    "clientId": client_id,
                                    "financeId": entity.get("financeId"),
                                    "amount": entity.get("amount"),
                                    "counsellorId": owner_id,
                                    "productName": product.value,
                                },
                            ),
                        )
        except (LedgerError, SQLAlchemyError) as e:
            self._fail("create", e, client_id=client_id, product_name=product.value)
            raise

        metrics.record_ledger_mutation(LedgerAction.CREATED.value, kind.value)
        metrics.record_operation_duration("create", time.perf_counter() - start)
        logger.info(
            "ledger_create_committed",
            product_payment_id=view["productPaymentId"],
            client_id=client_id,
            entity_kind=kind.value,
            entity_id=view["entityId"],
        )

        await self.hooks.run(self._mutation_work(LedgerAction.CREATED, view, owner_id, extra))
        return view

    async def update(
        self,
        ledger_id: int,
        payload: Mapping[str, Any],
        actor: Optional[Actor] = None,
    ) -> Dict[str, Any]:
        """
        Patch an existing product payment.

        Fields absent from ``payload`` keep their stored value. A ledger row
        of a detail kind that has no detail record yet gets one created from
        ``entityData`` and linked.

        Raises:
            NotFoundError: If the ledger row (or its detail row) does not exist
            ValidationError: If the merged record is invalid
            DuplicateKeyError: If a changed business-unique value is already used
            StorageError: If the database fails
        """
        start = time.perf_counter()
        logger.info("ledger_update_started", product_payment_id=ledger_id)

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    row = await self._get_row(session, ledger_id)
                    kind = EntityKind(row.entity_kind)

                    product_name = payload.get("productName")
                    if product_name and product_name != row.product_name:
                        _, new_kind = self._resolve_product(product_name)
                        if new_kind is not kind:
                            raise ValidationError(
                                "productName cannot change the payment's entity kind",
                                field="productName",
                            )
                        row.product_name = ProductType(product_name).value

                    if kind.has_detail:
                        entity_data = self._entity_data(payload)
                        if entity_data is not None:
                            if row.entity_id is None:
                                row.entity_id = await dispatcher.create_detail(
                                    session, kind, entity_data
                                )
                                logger.info(
                                    "ledger_detail_linked",
                                    product_payment_id=ledger_id,
                                    entity_kind=kind.value,
                                    entity_id=row.entity_id,
                                )
                            else:
                                await dispatcher.update_detail(
                                    session, kind, row.entity_id, entity_data
                                )
                        changes: Dict[str, Any] = {}
                    else:
                        current = {
                            name: getattr(row, name) for name in MasterOnlyPayload.model_fields
                        }
                        provided = MasterOnlyPayload.normalize_keys(payload)
                        merged = validate_payload(
                            MasterOnlyPayload, {**current, **provided}
                        ).model_dump()
                        changes = {k: v for k, v in merged.items() if current.get(k) != v}
                        await dispatcher.check_unique(
                            session, LEDGER_STORAGE, changes, exclude_id=ledger_id
                        )
                        for name, value in changes.items():
                            setattr(row, name, value)

                    await dispatcher.flush_or_raise(
                        session, LEDGER_STORAGE.unique_fields, changes, LEDGER_STORAGE.table_name
                    )
                    view = await self._view(session, row)
                    owner_id = await resolve_owner(session, row.client_id, actor)
        except (LedgerError, SQLAlchemyError) as e:
            self._fail("update", e, product_payment_id=ledger_id)
            raise

        metrics.record_ledger_mutation(LedgerAction.UPDATED.value, kind.value)
        metrics.record_operation_duration("update", time.perf_counter() - start)
        logger.info(
            "ledger_update_committed",
            product_payment_id=ledger_id,
            entity_kind=kind.value,
            entity_id=view["entityId"],
        )

        await self.hooks.run(
            self._mutation_work(LedgerAction.UPDATED, view, owner_id, refresh=True)
        )
        return view

    async def delete(self, ledger_id: int, actor: Optional[Actor] = None) -> Dict[str, Any]:
        """
        Delete a product payment and its detail record atomically.

        Returns:
            Dict[str, Any]: Projection of the deleted payment

        Raises:
            NotFoundError: If the ledger row does not exist
            StorageError: If the database fails; nothing is deleted
        """
        start = time.perf_counter()
        logger.info("ledger_delete_started", product_payment_id=ledger_id)

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    row = await self._get_row(session, ledger_id)
                    kind = EntityKind(row.entity_kind)
                    view = await self._view(session, row)
                    owner_id = await resolve_owner(session, row.client_id, actor)
                    entity_id = row.entity_id

                    await session.delete(row)
                    await session.flush()
                    if kind.has_detail and entity_id is not None:
                        await dispatcher.delete_detail(session, kind, entity_id)
        except (LedgerError, SQLAlchemyError) as e:
            self._fail("delete", e, product_payment_id=ledger_id)
            raise

        metrics.record_ledger_mutation(LedgerAction.DELETED.value, kind.value)
        metrics.record_operation_duration("delete", time.perf_counter() - start)
        logger.info(
            "ledger_delete_committed",
            product_payment_id=ledger_id,
            entity_kind=kind.value,
            entity_id=entity_id,
        )

        await self.hooks.run(self._mutation_work(LedgerAction.DELETED, view, owner_id))
        return view

    # ---------- reads ----------

    async def list_by_client(self, client_id: int) -> List[Dict[str, Any]]:
        """
        All product payments of a client, newest payment date first.

        Detail rows are fetched with one query per entity kind. A ledger row
        whose detail row is gone is returned with ``entity: None``.
        """
        client_id = self._validate_client_id(client_id)

        async def load() -> List[Dict[str, Any]]:
            try:
                async with self.session_factory() as session:
                    return await self._load_client_payments(session, client_id)
            except SQLAlchemyError as e:
                self._fail("list", e, client_id=client_id)
                raise

        return await self.cache.read_through(
            client_payments_key(client_id), load, self.settings.product_payments_cache_ttl
        )

    async def _load_client_payments(
        self, session: AsyncSession, client_id: int
    ) -> List[Dict[str, Any]]:
        result = await session.scalars(
            select(ClientProductPayment)
            .where(ClientProductPayment.client_id == client_id)
            .order_by(
                ClientProductPayment.payment_date.desc().nulls_last(),
                ClientProductPayment.created_at.desc(),
                ClientProductPayment.product_payment_id.desc(),
            )
        )
        rows = list(result)

        ids_by_kind: Dict[EntityKind, List[int]] = defaultdict(list)
        for row in rows:
            kind = EntityKind(row.entity_kind)
            if kind.has_detail and row.entity_id is not None:
                ids_by_kind[kind].append(row.entity_id)

        views_by_kind: Dict[EntityKind, Dict[int, Dict[str, Any]]] = {}
        for kind, ids in ids_by_kind.items():
            details = await dispatcher.fetch_details(session, kind, ids)
            views_by_kind[kind] = await entity_views(session, kind, details)

        entries = []
        for row in rows:
            kind = EntityKind(row.entity_kind)
            entity = views_by_kind.get(kind, {}).get(row.entity_id) if kind.has_detail else None
            entries.append(LedgerEntry.from_row(row, entity).to_dict())
        return entries

    async def get(self, ledger_id: int) -> Dict[str, Any]:
        """
        One product payment with its entity.

        Raises:
            NotFoundError: If the ledger row does not exist
        """

        async def load() -> Dict[str, Any]:
            try:
                async with self.session_factory() as session:
                    row = await self._get_row(session, ledger_id)
                    return await self._view(session, row)
            except SQLAlchemyError as e:
                self._fail("get", e, product_payment_id=ledger_id)
                raise

        return await self.cache.read_through(
            product_payment_key(ledger_id), load, self.settings.product_payments_cache_ttl
        )

    async def get_entity_display_data(self, ledger_id: int) -> Dict[str, Any]:
        """
        Amount, remarks, payment date and invoice number of a payment, wherever they are stored.

        Used to snapshot old/new state for the activity log. Financing rows
        also report ``anotherPaymentAmount``/``anotherPaymentDate``; account
        openings fall back to their funding or opening date. Unlinked or
        orphaned rows give an empty dict.
        """
        try:
            async with self.session_factory() as session:
                row = await self._get_row(session, ledger_id)
                kind = EntityKind(row.entity_kind)
                if not kind.has_detail:
                    source: Base = row
                else:
                    if row.entity_id is None:
                        return {}
                    detail = await dispatcher.get_detail(session, kind, row.entity_id)
                    if detail is None:
                        return {}
                    source = detail
        except SQLAlchemyError as e:
            self._fail("display_data", e, product_payment_id=ledger_id)
            raise

        out: Dict[str, Any] = {}
        for attr, key in (
            ("amount", "amount"),
            ("remarks", "remarks"),
            ("payment_date", "paymentDate"),
            ("invoice_no", "invoiceNo"),
            ("another_payment_amount", "anotherPaymentAmount"),
            ("another_payment_date", "anotherPaymentDate"),
        ):
            value = getattr(source, attr, None)
            if value is not None:
                out[key] = to_json_value(value)

        if "paymentDate" not in out:
            fallback = getattr(source, "funding_date", None) or getattr(source, "opening_date", None)
            if fallback is not None:
                out["paymentDate"] = to_json_value(fallback)
        return out
