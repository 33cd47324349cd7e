"""Read-side queries over the POS ledger and sync audit log."""

import logging
from datetime import datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session, selectinload

from possync.models.pos import (
    PosConfiguration,
    PosSyncRun,
    PosTransaction,
    PosTransactionStatus,
    SyncRunStatus,
)
from possync.services.pos.date_ranges import parse_ymd

logger = logging.getLogger(__name__)

BREAKDOWN_LIMIT = 10
HEALTH_RECENT_RUNS = 5


def day_start(value: Optional[str]) -> Optional[datetime]:
    parsed = parse_ymd(value)
    if parsed is None:
        return None
    return datetime.combine(parsed, time.min, tzinfo=timezone.utc)


def day_end(value: Optional[str]) -> Optional[datetime]:
    parsed = parse_ymd(value)
    if parsed is None:
        return None
    return datetime.combine(parsed, time.max, tzinfo=timezone.utc)


def _percent(part: int, whole: int) -> int:
    """Whole percent, halves rounded up."""
    if not whole:
        return 0
    return int((Decimal(part * 100) / Decimal(whole)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PosQueryService:
    """Listing, analytics and health views. Never writes except test_write()."""

    def __init__(self, db: Session):
        self.db = db

    # ============== Transactions ==============

    def _filtered(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        status: Optional[PosTransactionStatus] = None,
        location_id: Optional[str] = None,
        serial_number: Optional[str] = None,
        merchant: Optional[str] = None,
    ) -> Query:
        query = self.db.query(PosTransaction)
        start = day_start(start_date)
        if start is not None:
            query = query.filter(PosTransaction.occurred_at >= start)
        end = day_end(end_date)
        if end is not None:
            query = query.filter(PosTransaction.occurred_at <= end)
        if status is not None:
            query = query.filter(PosTransaction.status == status)
        if location_id:
            query = query.filter(PosTransaction.location_id == location_id)
        if serial_number:
            query = query.filter(PosTransaction.serial_number == serial_number)
        if merchant:
            query = query.filter(PosTransaction.merchant.ilike(f"%{merchant}%"))
        return query

    def _page(self, query: Query, limit: int, offset: int) -> Dict[str, Any]:
        total = query.count()
        transactions = (
            query.options(selectinload(PosTransaction.items))
            .order_by(PosTransaction.occurred_at.desc(), PosTransaction.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return {
            "transactions": transactions,
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(transactions) < total,
        }

    def list_transactions(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        status: Optional[PosTransactionStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """Newest-first page of transactions with their line items."""
        query = self._filtered(start_date, end_date, status)
        return self._page(query, limit, offset)

    def list_transactions_advanced(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        status: Optional[PosTransactionStatus] = None,
        location_id: Optional[str] = None,
        serial_number: Optional[str] = None,
        merchant: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """Like list_transactions, plus location and device breakdowns."""
        query = self._filtered(start_date, end_date, status, location_id, serial_number, merchant)
        result = self._page(query, limit, offset)

        count = func.count(PosTransaction.id)
        amount = func.coalesce(func.sum(PosTransaction.total_amount), 0)

        locations = (
            query.with_entities(PosTransaction.location_id, PosTransaction.address, count, amount)
            .group_by(PosTransaction.location_id, PosTransaction.address)
            .order_by(count.desc())
            .limit(BREAKDOWN_LIMIT)
            .all()
        )
        devices = (
            query.with_entities(PosTransaction.serial_number, count, amount)
            .group_by(PosTransaction.serial_number)
            .order_by(count.desc())
            .limit(BREAKDOWN_LIMIT)
            .all()
        )

        result["analytics"] = {
            "location_breakdown": [
                {
                    "location_id": location_id,
                    "address": address,
                    "transaction_count": n,
                    "total_amount": Decimal(str(total)),
                }
                for location_id, address, n, total in locations
            ],
            "device_breakdown": [
                {
                    "serial_number": serial,
                    "transaction_count": n,
                    "total_amount": Decimal(str(total)),
                }
                for serial, n, total in devices
            ],
        }
        return result

    # ============== Analytics ==============

    def summary(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> Dict[str, Any]:
        """Counts and amounts per status over the window."""
        rows = (
            self._filtered(start_date, end_date)
            .with_entities(
                PosTransaction.status,
                func.count(PosTransaction.id),
                func.coalesce(func.sum(PosTransaction.total_amount), 0),
            )
            .group_by(PosTransaction.status)
            .all()
        )
        by_status = {status: (n, Decimal(str(total))) for status, n, total in rows}

        def stats(status: PosTransactionStatus):
            return by_status.get(status, (0, Decimal("0")))

        total_count = sum(n for n, _ in by_status.values())
        total_amount = sum((amt for _, amt in by_status.values()), Decimal("0"))
        completed, completed_amount = stats(PosTransactionStatus.COMPLETED)
        failed, failed_amount = stats(PosTransactionStatus.FAILED)
        pending, pending_amount = stats(PosTransactionStatus.PENDING)

        return {
            "total_transactions": total_count,
            "total_amount": total_amount,
            "successful_transactions": completed,
            "successful_amount": completed_amount,
            "failed_transactions": failed,
            "failed_amount": failed_amount,
            "pending_transactions": pending,
            "pending_amount": pending_amount,
            "success_rate": _percent(completed, total_count),
            # TODO: per-day totals grouped on occurred_at in the business timezone
            "daily_breakdown": [],
        }

    # ============== Sync runs ==============

    def sync_history(self, limit: int = 20) -> List[PosSyncRun]:
        return (
            self.db.query(PosSyncRun)
            .order_by(PosSyncRun.started_at.desc(), PosSyncRun.id.desc())
            .limit(limit)
            .all()
        )

    def get_sync_run(self, run_id: int) -> Optional[PosSyncRun]:
        return self.db.get(PosSyncRun, run_id)

    def health(self, api_key_fallback: Optional[str] = None) -> Dict[str, Any]:
        config = self.db.query(PosConfiguration).order_by(PosConfiguration.id).first()
        recent = self.sync_history(HEALTH_RECENT_RUNS)
        last = recent[0] if recent else None
        last_successful = next((r for r in recent if r.status == SyncRunStatus.COMPLETED), None)

        return {
            "configured": bool((config and config.api_key) or api_key_fallback),
            "enabled": bool(config and config.auto_sync_enabled),
            "last_sync_at": last.started_at if last else None,
            "last_sync_status": last.status if last else None,
            "last_successful_sync_at": last_successful.started_at if last_successful else None,
            "total_syncs": len(recent),
            "recent_syncs": [
                {
                    "id": run.id,
                    "status": run.status,
                    "start_time": run.started_at,
                    "end_time": run.completed_at,
                    "processed_transactions": run.total_processed,
                    "created_transactions": run.total_created,
                    "has_errors": bool(run.error_details),
                }
                for run in recent
            ],
        }

    # ============== Diagnostics ==============

    def test_write(self) -> Dict[str, Any]:
        """Insert and delete a probe transaction to check the ledger is writable."""
        try:
            probe = PosTransaction(
                external_id=f"test-{int(datetime.now(timezone.utc).timestamp() * 1000)}",
                sequence_number="TEST-001",
                serial_number="TEST-SERIAL",
                location_id="test-location",
                address="Test Address",
                status=PosTransactionStatus.COMPLETED,
                occurred_at=datetime.now(timezone.utc),
                kind="DEBIT",
                sale_amount=Decimal("1000.00"),
                total_amount=Decimal("1000.00"),
                source="test-db",
            )
            self.db.add(probe)
            self.db.commit()
            logger.info(f"Test transaction created: {probe.external_id}")

            self.db.delete(probe)
            self.db.commit()
            logger.info("Test transaction deleted")
            return {"success": True, "message": "Database insertion test passed"}
        except Exception as e:
            self.db.rollback()
            logger.error(f"Test insertion failed: {e}")
            return {"success": False, "message": f"Database insertion test failed: {e}"}
