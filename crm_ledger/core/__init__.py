"""Core ledger logic: registry, dispatcher, coordinator and approval workflow."""
from .approval import ApprovalWorkflow
from .entries import Actor, LedgerEntry, LinkedDetail, MasterOnlyDetail, UnlinkedDetail
from .errors import (
    DuplicateKeyError,
    InvalidStateError,
    LedgerError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .ledger import PaymentLedger
from .product_types import DetailStorage, resolve, storage_for

__all__ = [
    "Actor",
    "ApprovalWorkflow",
    "DetailStorage",
    "DuplicateKeyError",
    "InvalidStateError",
    "LedgerEntry",
    "LedgerError",
    "LinkedDetail",
    "MasterOnlyDetail",
    "NotFoundError",
    "PaymentLedger",
    "StorageError",
    "UnlinkedDetail",
    "ValidationError",
    "resolve",
    "storage_for",
]
