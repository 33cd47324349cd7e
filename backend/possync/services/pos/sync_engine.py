"""POS reconciliation engine.

Fetches sales from the Tuu API over a date window, normalizes them and
inserts the ones not yet present in the local ledger. Every invocation is
recorded as a PosSyncRun that moves RUNNING -> COMPLETED | FAILED exactly
once. Per-sale failures are recorded and skipped; anything else fails the
whole run.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from possync.core.config import settings
from possync.models.pos import (
    PosConfiguration,
    PosSyncRun,
    PosTransaction,
    PosTransactionItem,
    PosTransactionStatus,
    SyncRunKind,
    SyncRunStatus,
)
from possync.services.pos.client import MAX_PAGE_SIZE, BranchReportRequest, TuuClient
from possync.services.pos.date_ranges import (
    DateChunk,
    DateLike,
    chunk_date_range,
    resolve_sync_window,
)
from possync.services.pos.errors import SaleValidationError
from possync.services.pos.normalizer import (
    BranchBatch,
    RawSale,
    normalize_response,
    resolve_sale_id,
)

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No transactions for selected range"
DISABLED_MESSAGE = "POS sync is disabled or not configured properly"
ALREADY_RUNNING_MESSAGE = "A POS sync is already running, try again later"

# Only one run at a time per process
_run_lock = asyncio.Lock()

_STATUS_MAP = {
    "SUCCESSFUL": PosTransactionStatus.COMPLETED,
    "FAILED": PosTransactionStatus.FAILED,
    "PENDING": PosTransactionStatus.PENDING,
}


class SyncEndpoint(str, Enum):
    BRANCH_REPORT = "BRANCH_REPORT"
    REPORT = "REPORT"


@dataclass
class SyncFilters:
    """Upstream filters and pagination limits of a paginated run."""

    location_id: Optional[str] = None
    serial_number: Optional[str] = None
    transaction_type: Optional[str] = None
    card_brand: Optional[str] = None
    max_pages: int = 50
    page_size: int = MAX_PAGE_SIZE
    endpoint: SyncEndpoint = SyncEndpoint.BRANCH_REPORT


@dataclass
class SyncResult:
    success: bool
    message: str
    processed: int = 0
    created: int = 0
    errors: List[str] = field(default_factory=list)
    sync_run_id: Optional[int] = None
    total_pages: Optional[int] = None
    pages_processed: Optional[int] = None


@dataclass
class _RunStats:
    processed: int = 0
    created: int = 0
    errors: List[str] = field(default_factory=list)
    pages_processed: int = 0
    total_pages: int = 0
    saw_data: bool = False
    last_response: Any = None


def map_upstream_status(status: Optional[str]) -> PosTransactionStatus:
    """Map an upstream sale status to the ledger status.

    Unknown values map to FAILED and are logged.
    """
    mapped = _STATUS_MAP.get(status) if isinstance(status, str) else None
    if mapped is None:
        logger.warning(f"Unknown POS status: {status}, defaulting to FAILED")
        return PosTransactionStatus.FAILED
    return mapped


def parse_sale_datetime(value: Any) -> datetime:
    """Parse an upstream timestamp into UTC. Naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _to_decimal(value: Any, default: str = "0") -> Decimal:
    if value is None or value == "":
        return Decimal(default)
    return Decimal(str(value))


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def _total_pages(response: Any) -> int:
    """Page count reported by upstream, 1 when absent."""
    if not isinstance(response, dict):
        return 1
    pagination = response.get("pagination")
    total = pagination.get("totalPages") if isinstance(pagination, dict) else None
    if total is None:
        total = response.get("totalPages")
    try:
        total = int(total)
    except (TypeError, ValueError):
        return 1
    return total if total > 0 else 1


def _response_sample(response: Any) -> Any:
    """JSON-safe copy of a raw response for the run's diagnostic sample."""
    if response is None:
        return None
    try:
        return json.loads(json.dumps(response, default=str))
    except (TypeError, ValueError):
        return {"unserializable": str(response)[:1000]}


class PosSyncService:
    """Reconciles upstream POS sales into the local ledger."""

    def __init__(
        self,
        db: Session,
        config: Optional[PosConfiguration],
        client: Optional[TuuClient],
        page_delay: float = 0.1,
        chunk_max_days: int = 30,
    ):
        self.db = db
        self.config = config
        self.client = client
        self.page_delay = page_delay
        self.chunk_max_days = chunk_max_days

    @property
    def is_enabled(self) -> bool:
        return bool(
            self.config is not None
            and self.config.auto_sync_enabled
            and self.client is not None
            and self.client.api_key
        )

    async def run_sync(
        self,
        from_date: DateLike = None,
        to_date: DateLike = None,
        kind: SyncRunKind = SyncRunKind.MANUAL,
    ) -> SyncResult:
        """Run a sync fetching the first page of every chunk."""
        return await self._run(
            from_date,
            to_date,
            kind=kind,
            filters=SyncFilters(max_pages=1),
            paginated=False,
        )

    async def run_sync_paginated(
        self,
        from_date: DateLike = None,
        to_date: DateLike = None,
        filters: Optional[SyncFilters] = None,
        kind: SyncRunKind = SyncRunKind.MANUAL,
    ) -> SyncResult:
        """Run a sync walking every page of every chunk, up to max_pages."""
        filters = filters or SyncFilters()
        filters = replace(
            filters,
            page_size=min(max(filters.page_size, 1), MAX_PAGE_SIZE),
            max_pages=max(filters.max_pages, 1),
        )
        return await self._run(from_date, to_date, kind=kind, filters=filters, paginated=True)

    async def _run(
        self,
        from_date: DateLike,
        to_date: DateLike,
        kind: SyncRunKind,
        filters: SyncFilters,
        paginated: bool,
    ) -> SyncResult:
        if not self.is_enabled:
            logger.warning("POS sync is disabled or not configured")
            return SyncResult(success=False, message=DISABLED_MESSAGE, errors=[DISABLED_MESSAGE])

        # locked() and the acquire below run with no await in between
        if _run_lock.locked():
            logger.warning("POS sync requested while another run is in progress")
            return SyncResult(success=False, message=ALREADY_RUNNING_MESSAGE)
        async with _run_lock:
            return await self._run_locked(from_date, to_date, kind, filters, paginated)

    async def _run_locked(
        self,
        from_date: DateLike,
        to_date: DateLike,
        kind: SyncRunKind,
        filters: SyncFilters,
        paginated: bool,
    ) -> SyncResult:
        window = resolve_sync_window(
            from_date,
            to_date,
            today=today_local(),
            lookback_days=settings.pos_default_lookback_days,
        )
        run = PosSyncRun(
            kind=kind,
            status=SyncRunStatus.RUNNING,
            start_date=window.start,
            end_date=window.end,
            started_at=datetime.now(timezone.utc),
            api_endpoint=(
                TuuClient.REPORT_PATH
                if filters.endpoint == SyncEndpoint.REPORT
                else TuuClient.BRANCH_REPORT_PATH
            ),
        )
        self.db.add(run)
        self.db.commit()
        self.db.refresh(run)
        run_id = run.id

        logger.info(
            f"Starting {'paginated ' if paginated else ''}POS sync {run_id} "
            f"from {window.start.isoformat()} to {window.end.isoformat()}"
        )
        stats = _RunStats()
        source = "pos-sync-paginated" if paginated else "pos-sync"

        try:
            for chunk in chunk_date_range(window.start, window.end, self.chunk_max_days):
                await self._sync_chunk(run, chunk, filters, stats, source)

            if paginated:
                run.pages_processed = stats.pages_processed
                run.total_pages = stats.total_pages

            if not stats.saw_data:
                run.mark_completed(raw_response_sample=_response_sample(stats.last_response))
                self.db.commit()
                logger.info(f"POS sync {run_id}: no transactions for selected range")
                return SyncResult(
                    success=True,
                    message=NO_DATA_MESSAGE,
                    sync_run_id=run_id,
                    total_pages=stats.total_pages if paginated else None,
                    pages_processed=stats.pages_processed if paginated else None,
                )

            run.mark_completed(
                processed=stats.processed,
                created=stats.created,
                errors=stats.errors,
                raw_response_sample=_response_sample(stats.last_response),
            )
            self.db.commit()

            if paginated:
                message = (
                    f"Paginated sync completed successfully. Processed: {stats.processed}, "
                    f"Created: {stats.created}, Pages: {stats.pages_processed}/{stats.total_pages}"
                )
            else:
                message = (
                    f"Sync completed successfully. Processed: {stats.processed}, "
                    f"Created: {stats.created}"
                )
            logger.info(f"POS sync {run_id}: {message}")
            return SyncResult(
                success=True,
                message=message,
                processed=stats.processed,
                created=stats.created,
                errors=list(stats.errors),
                sync_run_id=run_id,
                total_pages=stats.total_pages if paginated else None,
                pages_processed=stats.pages_processed if paginated else None,
            )

        except Exception as e:
            self.db.rollback()
            reason = getattr(e, "message", None) or str(e) or type(e).__name__
            logger.error(f"POS sync {run_id} failed: {reason}")
            errors = stats.errors + [reason]

            run = self.db.get(PosSyncRun, run_id)
            if paginated:
                run.pages_processed = stats.pages_processed
                run.total_pages = stats.total_pages
            run.mark_failed(
                reason,
                processed=stats.processed,
                created=stats.created,
                errors=errors,
            )
            self.db.commit()
            return SyncResult(
                success=False,
                message=f"POS sync failed: {reason}",
                processed=stats.processed,
                created=stats.created,
                errors=errors,
                sync_run_id=run_id,
                total_pages=stats.total_pages if paginated else None,
                pages_processed=stats.pages_processed if paginated else None,
            )

    async def _sync_chunk(
        self,
        run: PosSyncRun,
        chunk: DateChunk,
        filters: SyncFilters,
        stats: _RunStats,
        source: str,
    ) -> None:
        page = 1
        while True:
            response = await self._fetch_page(chunk, page, filters)
            stats.last_response = response

            batches = normalize_response(response)
            if not batches:
                logger.warning(
                    f"No data received from POS API for page {page} "
                    f"(range {chunk.from_ymd}..{chunk.to_ymd})"
                )
                break

            total_pages = _total_pages(response)
            if page == 1:
                stats.total_pages += total_pages
            stats.pages_processed += 1
            stats.saw_data = True
            logger.info(
                f"Processing page {page} of {total_pages} ({len(batches)} branches) "
                f"for range {chunk.from_ymd}..{chunk.to_ymd}"
            )

            for batch in batches:
                for sale in batch.sales:
                    self._process_sale(run, batch, sale, stats, source)

            page += 1
            if page > filters.max_pages or page > total_pages:
                break
            await asyncio.sleep(self.page_delay)

    async def _fetch_page(self, chunk: DateChunk, page: int, filters: SyncFilters) -> Dict[str, Any]:
        if filters.endpoint == SyncEndpoint.REPORT:
            return await self.client.fetch_report(
                chunk.from_ymd,
                chunk.to_ymd,
                serial_number=filters.serial_number,
                page=page,
                page_size=filters.page_size,
            )
        return await self.client.fetch_branch_report(
            BranchReportRequest(
                date_from=chunk.from_ymd,
                date_to=chunk.to_ymd,
                page=page,
                page_size=filters.page_size,
                location_id=filters.location_id,
                serial_number=filters.serial_number,
                transaction_type=filters.transaction_type,
                card_brand=filters.card_brand,
            )
        )

    def _process_sale(
        self,
        run: PosSyncRun,
        batch: BranchBatch,
        sale: RawSale,
        stats: _RunStats,
        source: str,
    ) -> None:
        """Validate and insert one sale. Never raises."""
        stats.processed += 1
        sale_id: Optional[str] = None
        try:
            sale_id = resolve_sale_id(sale)
            self._validate_sale(sale_id, sale)

            existing = (
                self.db.query(PosTransaction.id)
                .filter(PosTransaction.external_id == sale_id)
                .first()
            )
            if existing is not None:
                logger.debug(f"Transaction already exists: {sale_id}")
                return

            transaction = PosTransaction(
                external_id=sale_id,
                sequence_number=_str_or_none(sale.get("sequenceNumber")),
                serial_number=_str_or_none(sale.get("serialNumber")),
                location_id=batch.location.id,
                address=batch.location.address,
                merchant=batch.merchant,
                status=map_upstream_status(sale.get("status")),
                occurred_at=parse_sale_datetime(sale["transactionDateTime"]),
                kind=str(sale["transactionType"]),
                sale_amount=_to_decimal(sale.get("saleAmount")),
                total_amount=_to_decimal(sale.get("totalAmount")),
                source=source,
            )
            for position, item in enumerate(sale.get("items") or []):
                if not isinstance(item, dict):
                    continue
                transaction.items.append(
                    PosTransactionItem(
                        position=position,
                        code=_str_or_none(item.get("code")),
                        name=str(item.get("name") or ""),
                        quantity=_to_decimal(item.get("quantity"), default="1"),
                        price=_to_decimal(item.get("price")),
                    )
                )
            transaction.sync_runs.append(run)
            self.db.add(transaction)
            self.db.commit()
            stats.created += 1
            logger.debug(f"Created transaction: {sale_id}")

        except SaleValidationError as e:
            stats.errors.append(e.message)
            logger.warning(e.message)
        except Exception as e:
            self.db.rollback()
            used_id = sale_id or sale.get("id") or "unknown"
            message = f"Failed to process transaction {used_id}: {e}"
            stats.errors.append(message)
            logger.error(
                f"{message} | attempted: id={used_id} "
                f"transactionDateTime={sale.get('transactionDateTime')} "
                f"saleAmount={sale.get('saleAmount')} totalAmount={sale.get('totalAmount')} "
                f"transactionType={sale.get('transactionType')} status={sale.get('status')}"
            )

    @staticmethod
    def _validate_sale(sale_id: Optional[str], sale: RawSale) -> None:
        """Required-field checks, in order; the first failure wins."""
        if _is_missing(sale_id):
            raise SaleValidationError(None, "ID")
        if _is_missing(sale.get("transactionDateTime")):
            raise SaleValidationError(sale_id, "transactionDateTime")
        # Zero amounts are valid
        if _is_missing(sale.get("saleAmount")):
            raise SaleValidationError(sale_id, "saleAmount")
        if _is_missing(sale.get("totalAmount")):
            raise SaleValidationError(sale_id, "totalAmount")
        if _is_missing(sale.get("transactionType")):
            raise SaleValidationError(sale_id, "transactionType")


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def today_local() -> date:
    """Today in the configured business timezone."""
    return datetime.now(ZoneInfo(settings.timezone)).date()
