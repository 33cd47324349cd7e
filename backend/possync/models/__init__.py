"""SQLAlchemy models."""

from possync.models.pos import (
    PosConfiguration,
    PosSyncRun,
    PosTransaction,
    PosTransactionItem,
    PosTransactionStatus,
    SyncRunKind,
    SyncRunStateError,
    SyncRunStatus,
    pos_transaction_sync_runs,
)

__all__ = [
    "PosConfiguration",
    "PosSyncRun",
    "PosTransaction",
    "PosTransactionItem",
    "PosTransactionStatus",
    "SyncRunKind",
    "SyncRunStateError",
    "SyncRunStatus",
    "pos_transaction_sync_runs",
]
