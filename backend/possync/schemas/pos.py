"""POS sync schemas.

Bodies use camelCase on the wire; snake_case is accepted on input too.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from possync.models.pos import PosTransactionStatus, SyncRunKind, SyncRunStatus
from possync.services.pos.sync_engine import SyncEndpoint


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ============== Sync triggers ==============

class SyncRequest(CamelModel):
    """Manual sync window. Missing or malformed dates fall back to the last 7 days."""

    from_date: Optional[str] = None
    to_date: Optional[str] = None


class AdvancedSyncRequest(SyncRequest):
    """Paginated sync with upstream filters."""

    location_id: Optional[str] = None
    serial_number: Optional[str] = None
    type_transaction: Optional[str] = None
    card_brand: Optional[str] = None
    max_pages: Optional[int] = Field(default=None, ge=1)
    page_size: Optional[int] = Field(default=None, ge=1)
    endpoint: SyncEndpoint = SyncEndpoint.BRANCH_REPORT


class SyncPagination(CamelModel):
    total_pages: int
    pages_processed: int


class SyncResultData(CamelModel):
    processed_transactions: int
    created_transactions: int
    errors: List[str] = []
    sync_run_id: Optional[int] = None
    pagination: Optional[SyncPagination] = None


class SyncResponse(CamelModel):
    success: bool
    message: str
    data: SyncResultData


# ============== Configuration ==============

class PosConfigurationUpdate(CamelModel):
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    auto_sync_enabled: Optional[bool] = None
    sync_interval_hours: Optional[int] = Field(default=None, ge=1)
    max_days_to_sync: Optional[int] = Field(default=None, ge=1)
    retention_days: Optional[int] = Field(default=None, ge=1)


class PosConfigurationResponse(CamelModel):
    """Configuration as exposed over HTTP. The API key is never returned."""

    id: str
    has_api_key: bool
    base_url: Optional[str] = None
    auto_sync_enabled: bool
    sync_interval_hours: int
    max_days_to_sync: int
    retention_days: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ============== Ledger ==============

class PosTransactionItemResponse(CamelModel):
    id: int
    position: int
    code: Optional[str] = None
    name: str
    quantity: Decimal
    price: Decimal


class PosTransactionResponse(CamelModel):
    id: int
    external_id: str
    sequence_number: Optional[str] = None
    serial_number: Optional[str] = None
    location_id: Optional[str] = None
    address: Optional[str] = None
    merchant: Optional[str] = None
    status: PosTransactionStatus
    occurred_at: datetime
    kind: str
    sale_amount: Decimal
    total_amount: Decimal
    source: str
    items: List[PosTransactionItemResponse] = []
    created_at: Optional[datetime] = None


class TransactionListResponse(CamelModel):
    transactions: List[PosTransactionResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class LocationBreakdown(CamelModel):
    location_id: Optional[str] = None
    address: Optional[str] = None
    transaction_count: int
    total_amount: Decimal


class DeviceBreakdown(CamelModel):
    serial_number: Optional[str] = None
    transaction_count: int
    total_amount: Decimal


class TransactionAnalytics(CamelModel):
    location_breakdown: List[LocationBreakdown]
    device_breakdown: List[DeviceBreakdown]


class AdvancedTransactionListResponse(TransactionListResponse):
    analytics: TransactionAnalytics


class TransactionSummaryResponse(CamelModel):
    total_transactions: int
    total_amount: Decimal
    successful_transactions: int
    successful_amount: Decimal
    failed_transactions: int
    failed_amount: Decimal
    pending_transactions: int
    pending_amount: Decimal
    success_rate: int
    daily_breakdown: List[Any] = []


# ============== Sync runs ==============

class SyncRunResponse(CamelModel):
    id: int
    kind: SyncRunKind
    status: SyncRunStatus
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    total_processed: int
    total_created: int
    total_errors: int
    pages_processed: Optional[int] = None
    total_pages: Optional[int] = None
    api_endpoint: Optional[str] = None
    error_message: Optional[str] = None


class SyncRunDetailResponse(SyncRunResponse):
    error_details: Optional[List[str]] = None
    raw_response_sample: Optional[Any] = None


class RecentSync(CamelModel):
    id: int
    status: SyncRunStatus
    start_time: datetime
    end_time: Optional[datetime] = None
    processed_transactions: int
    created_transactions: int
    has_errors: bool


class PosHealthResponse(CamelModel):
    configured: bool
    enabled: bool
    last_sync_at: Optional[datetime] = None
    last_sync_status: Optional[SyncRunStatus] = None
    last_successful_sync_at: Optional[datetime] = None
    total_syncs: int
    recent_syncs: List[RecentSync]


class DbProbeResponse(CamelModel):
    success: bool
    message: str
