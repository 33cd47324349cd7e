"""POS integration models: reconciled ledger, sync audit log, configuration."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from possync.db.base import Base, TimestampMixin


class PosTransactionStatus(str, Enum):
    """Canonical status of a reconciled sale."""

    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    PENDING = "PENDING"


class SyncRunKind(str, Enum):
    """What triggered a sync run."""

    MANUAL = "MANUAL"
    SCHEDULED = "SCHEDULED"


class SyncRunStatus(str, Enum):
    """Lifecycle of a sync run: RUNNING -> COMPLETED | FAILED."""

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class SyncRunStateError(ValueError):
    """Raised when a terminal sync run would be transitioned again."""

    pass


# Transactions observed (created) by a sync run
pos_transaction_sync_runs = Table(
    "pos_transaction_sync_runs",
    Base.metadata,
    Column(
        "transaction_id",
        Integer,
        ForeignKey("pos_transactions.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "sync_run_id",
        Integer,
        ForeignKey("pos_sync_runs.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class PosTransaction(Base, TimestampMixin):
    """One reconciled payment-terminal sale, keyed by the upstream sale id."""

    __tablename__ = "pos_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    sequence_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    serial_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)

    # Branch metadata
    location_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    merchant: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    status: Mapped[PosTransactionStatus] = mapped_column(
        SQLEnum(PosTransactionStatus), nullable=False, index=True
    )
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)  # DEBIT, CREDIT, ...
    sale_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="pos-sync")

    items: Mapped[List["PosTransactionItem"]] = relationship(
        "PosTransactionItem",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="PosTransactionItem.position",
    )
    sync_runs: Mapped[List["PosSyncRun"]] = relationship(
        "PosSyncRun",
        secondary=pos_transaction_sync_runs,
        back_populates="transactions",
    )


class PosTransactionItem(Base):
    """Line item of a reconciled sale. Created atomically with its transaction."""

    __tablename__ = "pos_transaction_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("pos_transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal("1"))
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    transaction: Mapped["PosTransaction"] = relationship("PosTransaction", back_populates="items")


class PosSyncRun(Base):
    """Audit row for one invocation of the reconciliation engine."""

    __tablename__ = "pos_sync_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[SyncRunKind] = mapped_column(SQLEnum(SyncRunKind), nullable=False)
    status: Mapped[SyncRunStatus] = mapped_column(
        SQLEnum(SyncRunStatus), nullable=False, default=SyncRunStatus.RUNNING, index=True
    )

    # Requested window
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Counters
    total_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_created: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_errors: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pages_processed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_pages: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Diagnostics
    api_endpoint: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error_details: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    raw_response_sample: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    transactions: Mapped[List["PosTransaction"]] = relationship(
        "PosTransaction",
        secondary=pos_transaction_sync_runs,
        back_populates="sync_runs",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in (SyncRunStatus.COMPLETED, SyncRunStatus.FAILED)

    def _finish(
        self,
        status: SyncRunStatus,
        processed: int,
        created: int,
        errors: List[str],
    ) -> None:
        if self.is_terminal:
            raise SyncRunStateError(
                f"Sync run {self.id} is already {self.status.value}, cannot mark {status.value}"
            )
        self.status = status
        self.completed_at = datetime.now(timezone.utc)
        self.total_processed = processed
        self.total_created = created
        self.total_errors = len(errors)
        self.error_details = list(errors)

    def mark_completed(
        self,
        processed: int = 0,
        created: int = 0,
        errors: Optional[List[str]] = None,
        raw_response_sample: Optional[Any] = None,
    ) -> None:
        """Transition RUNNING -> COMPLETED. Raises SyncRunStateError if terminal."""
        self._finish(SyncRunStatus.COMPLETED, processed, created, errors or [])
        self.raw_response_sample = raw_response_sample

    def mark_failed(
        self,
        message: str,
        processed: int = 0,
        created: int = 0,
        errors: Optional[List[str]] = None,
    ) -> None:
        """Transition RUNNING -> FAILED. Raises SyncRunStateError if terminal."""
        self._finish(SyncRunStatus.FAILED, processed, created, errors or [])
        self.error_message = message


class PosConfiguration(Base, TimestampMixin):
    """Single mutable configuration row for the POS sync subsystem."""

    __tablename__ = "pos_configurations"

    id: Mapped[int] = mapped_column(primary_key=True)
    api_key: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    base_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    auto_sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sync_interval_hours: Mapped[int] = mapped_column(Integer, default=24, nullable=False)
    max_days_to_sync: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    retention_days: Mapped[int] = mapped_column(Integer, default=365, nullable=False)
