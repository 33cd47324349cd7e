# POS (Tuu) sync module

from possync.services.pos.client import BranchReportRequest, PosClientRegistry, TuuClient, client_registry
from possync.services.pos.errors import (
    PosAuthenticationError,
    PosConfigurationError,
    PosSyncError,
    PosUpstreamRequestError,
    PosUpstreamUnavailableError,
    SaleValidationError,
)
from possync.services.pos.sync_engine import (
    PosSyncService,
    SyncEndpoint,
    SyncFilters,
    SyncResult,
    map_upstream_status,
)

__all__ = [
    "BranchReportRequest",
    "PosClientRegistry",
    "TuuClient",
    "client_registry",
    "PosAuthenticationError",
    "PosConfigurationError",
    "PosSyncError",
    "PosUpstreamRequestError",
    "PosUpstreamUnavailableError",
    "SaleValidationError",
    "PosSyncService",
    "SyncEndpoint",
    "SyncFilters",
    "SyncResult",
    "map_upstream_status",
]
