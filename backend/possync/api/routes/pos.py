"""POS sync routes."""

from __future__ import annotations

import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from possync.core.config import settings
from possync.core.rate_limit import limiter
from possync.db.session import DbSession
from possync.models.pos import PosTransactionStatus
from possync.schemas.pos import (
    AdvancedSyncRequest,
    AdvancedTransactionListResponse,
    DbProbeResponse,
    PosConfigurationResponse,
    PosConfigurationUpdate,
    PosHealthResponse,
    SyncPagination,
    SyncRequest,
    SyncResponse,
    SyncResultData,
    SyncRunDetailResponse,
    SyncRunResponse,
    TransactionListResponse,
    TransactionSummaryResponse,
)
from possync.services.pos.config_service import (
    PosConfigurationService,
    PosConfigurationStore,
    build_sync_service,
)
from possync.services.pos.query_service import PosQueryService
from possync.services.pos.sync_engine import PosSyncService, SyncFilters, SyncResult

logger = logging.getLogger(__name__)

router = APIRouter()


def get_pos_sync_service(db: DbSession) -> PosSyncService:
    return build_sync_service(db)


def get_pos_config_service(db: DbSession) -> PosConfigurationService:
    return PosConfigurationService(PosConfigurationStore(db))


def get_pos_query_service(db: DbSession) -> PosQueryService:
    return PosQueryService(db)


SyncServiceDep = Annotated[PosSyncService, Depends(get_pos_sync_service)]
ConfigServiceDep = Annotated[PosConfigurationService, Depends(get_pos_config_service)]
QueryServiceDep = Annotated[PosQueryService, Depends(get_pos_query_service)]


def _sync_response(result: SyncResult, paginated: bool = False) -> SyncResponse:
    pagination = None
    if paginated:
        pagination = SyncPagination(
            total_pages=result.total_pages or 0,
            pages_processed=result.pages_processed or 0,
        )
    return SyncResponse(
        success=result.success,
        message=result.message,
        data=SyncResultData(
            processed_transactions=result.processed,
            created_transactions=result.created,
            errors=result.errors,
            sync_run_id=result.sync_run_id,
            pagination=pagination,
        ),
    )


# ============== Sync triggers ==============

@router.post("/sync", response_model=SyncResponse)
@limiter.limit(settings.pos_sync_rate_limit)
async def sync_transactions(
    request: Request,
    service: SyncServiceDep,
    sync_request: Optional[SyncRequest] = None,
):
    """Run a manual sync over the requested window (default: last 7 days)."""
    sync_request = sync_request or SyncRequest()
    client_ip = request.client.host if request.client else "unknown"
    logger.info(f"Manual POS sync requested from {client_ip}")
    result = await service.run_sync(sync_request.from_date, sync_request.to_date)
    return _sync_response(result)


@router.post("/sync-advanced", response_model=SyncResponse)
@limiter.limit(settings.pos_sync_rate_limit)
async def sync_transactions_advanced(
    request: Request,
    service: SyncServiceDep,
    sync_request: Optional[AdvancedSyncRequest] = None,
):
    """Run a paginated sync with optional upstream filters."""
    sync_request = sync_request or AdvancedSyncRequest()
    filters = SyncFilters(
        location_id=sync_request.location_id,
        serial_number=sync_request.serial_number,
        transaction_type=sync_request.type_transaction,
        card_brand=sync_request.card_brand,
        max_pages=sync_request.max_pages or settings.pos_max_pages,
        page_size=sync_request.page_size or settings.pos_page_size,
        endpoint=sync_request.endpoint,
    )
    result = await service.run_sync_paginated(
        sync_request.from_date, sync_request.to_date, filters=filters
    )
    return _sync_response(result, paginated=True)


# ============== Configuration ==============

@router.get("/configuration", response_model=PosConfigurationResponse)
def get_configuration(service: ConfigServiceDep):
    """Get the POS configuration. The API key is redacted."""
    return service.to_public_dict()


@router.post("/configuration", response_model=PosConfigurationResponse)
def update_configuration(update: PosConfigurationUpdate, service: ConfigServiceDep):
    """Create or update the POS configuration."""
    service.update(update.model_dump(exclude_unset=True))
    return service.to_public_dict()


# ============== Sync runs ==============

@router.get("/sync-history", response_model=List[SyncRunResponse])
def get_sync_history(service: QueryServiceDep, limit: int = Query(20, ge=1, le=200)):
    """Recent sync runs, newest first."""
    return service.sync_history(limit)


@router.get("/sync-history/{run_id}", response_model=SyncRunDetailResponse)
def get_sync_run(run_id: int, service: QueryServiceDep):
    """One sync run with its error details."""
    run = service.get_sync_run(run_id)
    if not run:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sync run not found")
    return run


# ============== Ledger ==============

@router.get("/transactions", response_model=TransactionListResponse)
def list_transactions(
    service: QueryServiceDep,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    status_filter: Optional[PosTransactionStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """List reconciled transactions, newest first."""
    return service.list_transactions(start_date, end_date, status_filter, limit, offset)


@router.get("/transactions/advanced", response_model=AdvancedTransactionListResponse)
def list_transactions_advanced(
    service: QueryServiceDep,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    status_filter: Optional[PosTransactionStatus] = Query(None, alias="status"),
    location_id: Optional[str] = Query(None, alias="locationId"),
    serial_number: Optional[str] = Query(None, alias="serialNumber"),
    merchant: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """List transactions with location and device breakdowns."""
    return service.list_transactions_advanced(
        start_date,
        end_date,
        status_filter,
        location_id=location_id,
        serial_number=serial_number,
        merchant=merchant,
        limit=limit,
        offset=offset,
    )


@router.get("/transactions/location/{location_id}", response_model=AdvancedTransactionListResponse)
def list_transactions_by_location(
    location_id: str,
    service: QueryServiceDep,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    return service.list_transactions_advanced(
        start_date, end_date, location_id=location_id, limit=limit, offset=offset
    )


@router.get("/transactions/device/{serial_number}", response_model=AdvancedTransactionListResponse)
def list_transactions_by_device(
    serial_number: str,
    service: QueryServiceDep,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    return service.list_transactions_advanced(
        start_date, end_date, serial_number=serial_number, limit=limit, offset=offset
    )


@router.get("/summary", response_model=TransactionSummaryResponse)
def get_summary(
    service: QueryServiceDep,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """Transaction counts and amounts per status."""
    return service.summary(start_date, end_date)


# ============== Diagnostics ==============

@router.get("/health", response_model=PosHealthResponse)
def get_health(service: QueryServiceDep):
    """Sync subsystem health: configuration and recent runs."""
    return service.health(api_key_fallback=settings.pos_api_key)


@router.post("/test-db", response_model=DbProbeResponse)
def test_database_insertion(service: QueryServiceDep):
    """Insert and delete a probe transaction to verify the ledger is writable."""
    return service.test_write()
