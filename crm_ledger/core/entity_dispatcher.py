"""
Entity dispatcher.

Routes create/update/delete/fetch calls for detail records to the table of
the right entity kind. Every detail kind has exactly one handler; kinds with
extra rules (financing approval state) subclass ``DetailHandler``.

All functions run inside the caller's session and transaction. They flush
but never commit.
"""
from typing import Any, Dict, Iterable, Mapping, Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crm_ledger.core.errors import DuplicateKeyError, NotFoundError, StorageError
from crm_ledger.core.payloads import PAYLOAD_MODELS, DetailPayload, validate_payload
from crm_ledger.core.product_types import DetailStorage, detail_kinds, storage_for
from crm_ledger.database.models import AllFinance, Base
from crm_ledger.enums import ApprovalStatus, EntityKind

logger = structlog.get_logger(__name__)


class DetailHandler:
    """Default create/update behaviour for a detail kind."""

    def __init__(self, kind: EntityKind):
        self.kind = kind
        self.storage: DetailStorage = storage_for(kind)
        self.payload_model: type[DetailPayload] = PAYLOAD_MODELS[kind]

    def values_for_create(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Validate a creation payload and return column values."""
        data = self.payload_model.normalize_keys(payload)
        return validate_payload(self.payload_model, data).model_dump()

    def values_for_update(self, row: Base, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Merge ``payload`` over the stored row and validate the result.

        Returns only the columns whose value changes.
        """
        current = {name: getattr(row, name) for name in self.payload_model.model_fields}
        provided = self.payload_model.drop_blank_defaults(self.payload_model.normalize_keys(payload))
        merged = validate_payload(self.payload_model, {**current, **provided}).model_dump()
        return {name: value for name, value in merged.items() if current.get(name) != value}

    def before_update(self, row: Base, changes: Dict[str, Any]) -> Dict[str, Any]:
        return changes


class AllFinanceHandler(DetailHandler):
    """Financing payments start pending when partial, and go back to pending when a rejected one is edited."""

    def values_for_create(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        values = super().values_for_create(payload)
        values["approval_status"] = (
            ApprovalStatus.PENDING.value if values["partial_payment"] else ApprovalStatus.APPROVED.value
        )
        values["approved_by"] = None
        return values

    def before_update(self, row: AllFinance, changes: Dict[str, Any]) -> Dict[str, Any]:
        if row.approval_status == ApprovalStatus.REJECTED.value:
            changes["approval_status"] = ApprovalStatus.PENDING.value
            changes["approved_by"] = None
        return changes


_HANDLER_CLASSES: Mapping[EntityKind, type[DetailHandler]] = {
    EntityKind.ALL_FINANCE: AllFinanceHandler,
}

_HANDLERS: Dict[EntityKind, DetailHandler] = {
    kind: _HANDLER_CLASSES.get(kind, DetailHandler)(kind) for kind in detail_kinds()
}

_unhandled = [kind.value for kind in detail_kinds() if kind not in _HANDLERS]
if _unhandled:
    raise RuntimeError(f"Entity kinds without a handler: {_unhandled}")


def handler_for(kind: EntityKind) -> DetailHandler:
    """
    Return the handler of a detail kind.

    Raises:
        ValueError: For ``master_only``
    """
    kind = EntityKind(kind)
    if not kind.has_detail:
        raise ValueError("master_only products have no detail handler")
    return _HANDLERS[kind]


async def check_unique(
    session: AsyncSession,
    storage: DetailStorage,
    values: Mapping[str, Any],
    exclude_id: Optional[int] = None,
) -> None:
    """
    Raise ``DuplicateKeyError`` if any business-unique value is already taken.

    Args:
        session: Database session
        storage: Storage descriptor of the kind
        values: Column values about to be written
        exclude_id: Id of the row being updated, if any
    """
    for attr, field in storage.unique_fields:
        value = values.get(attr)
        if value is None:
            continue
        stmt = select(storage.id_column).where(getattr(storage.model, attr) == value)
        if exclude_id is not None:
            stmt = stmt.where(storage.id_column != exclude_id)
        existing = await session.scalar(stmt.limit(1))
        if existing is not None:
            logger.warning(
                "duplicate_business_key",
                table=storage.table_name,
                field=field,
                value=value,
            )
            raise DuplicateKeyError(field, value)


async def flush_or_raise(
    session: AsyncSession,
    storage_fields: Iterable[tuple[str, str]],
    values: Mapping[str, Any],
    table: str,
) -> None:
    """
    Flush pending writes, translating unique violations into ``DuplicateKeyError``.

    Unique constraints back up the pre-checks when two writers race.
    """
    try:
        await session.flush()
    except IntegrityError as e:
        message = str(e.orig).lower()
        for attr, field in storage_fields:
            if attr in message and values.get(attr) is not None:
                logger.warning(
                    "unique_constraint_violation",
                    table=table,
                    field=field,
                    value=values.get(attr),
                )
                raise DuplicateKeyError(field, values[attr]) from e
        logger.error("detail_write_failed", table=table, error=str(e.orig))
        raise StorageError() from e


async def create_detail(session: AsyncSession, kind: EntityKind, payload: Mapping[str, Any]) -> int:
    """
    Validate ``payload`` and insert a detail row of ``kind``.

    Returns:
        int: Id of the new detail row

    Raises:
        ValidationError: If the payload is invalid
        DuplicateKeyError: If a business-unique value is taken
    """
    handler = handler_for(kind)
    storage = handler.storage
    values = handler.values_for_create(payload)

    await check_unique(session, storage, values)

    row = storage.model(**values)
    session.add(row)
    await flush_or_raise(session, storage.unique_fields, values, storage.table_name)

    entity_id = getattr(row, storage.id_attr)
    logger.info("detail_created", kind=handler.kind.value, entity_id=entity_id)
    return entity_id


async def update_detail(
    session: AsyncSession, kind: EntityKind, entity_id: int, payload: Mapping[str, Any]
) -> Base:
    """
    Patch a detail row with the fields present in ``payload``.

    The merged record is validated with the same rules as a create.

    Raises:
        NotFoundError: If the row does not exist
        ValidationError: If the merged record is invalid
        DuplicateKeyError: If a changed business-unique value is taken
    """
    handler = handler_for(kind)
    storage = handler.storage

    row = await get_detail(session, kind, entity_id)
    if row is None:
        raise NotFoundError(f"{storage.table_name} record {entity_id} not found")

    changes = handler.values_for_update(row, payload)
    changes = handler.before_update(row, changes)

    await check_unique(session, storage, changes, exclude_id=entity_id)

    for name, value in changes.items():
        setattr(row, name, value)
    await flush_or_raise(session, storage.unique_fields, changes, storage.table_name)

    logger.info(
        "detail_updated",
        kind=handler.kind.value,
        entity_id=entity_id,
        fields=sorted(changes),
    )
    return row


async def delete_detail(session: AsyncSession, kind: EntityKind, entity_id: int) -> None:
    """Delete a detail row. A row that is already gone is not an error."""
    storage = handler_for(kind).storage
    await session.execute(delete(storage.model).where(storage.id_column == entity_id))
    logger.info("detail_deleted", kind=EntityKind(kind).value, entity_id=entity_id)


async def get_detail(session: AsyncSession, kind: EntityKind, entity_id: int) -> Optional[Base]:
    """Load one detail row, or ``None`` if it does not exist."""
    storage = handler_for(kind).storage
    return await session.get(storage.model, entity_id)


async def fetch_details(
    session: AsyncSession, kind: EntityKind, entity_ids: Iterable[int]
) -> Dict[int, Base]:
    """Load many detail rows of one kind with a single query, keyed by id."""
    ids = sorted(set(entity_ids))
    if not ids:
        return {}
    storage = handler_for(kind).storage
    result = await session.scalars(select(storage.model).where(storage.id_column.in_(ids)))
    return {getattr(row, storage.id_attr): row for row in result}
