"""Daily scheduled POS sync."""

import logging
from datetime import timedelta
from typing import Optional

from possync.db.session import SessionLocal
from possync.models.pos import PosConfiguration, SyncRunKind
from possync.services.pos.config_service import (
    DEFAULT_MAX_DAYS_TO_SYNC,
    PosConfigurationService,
    PosConfigurationStore,
    build_sync_service,
)
from possync.services.pos.sync_engine import SyncResult, today_local

logger = logging.getLogger(__name__)

SCHEDULED_TASK_NAME = "pos-daily-sync"


async def run_scheduled_pos_sync(session_factory=SessionLocal) -> Optional[SyncResult]:
    """Sync the last ``max_days_to_sync`` days. Returns None when skipped."""
    db = session_factory()
    try:
        config_service = PosConfigurationService(PosConfigurationStore(db))
        if not config_service.is_enabled():
            logger.info("Scheduled POS sync skipped - auto sync disabled or no API key")
            return None

        config = config_service.get()
        service = build_sync_service(db)

        logger.info("Starting scheduled POS sync")
        end = today_local()
        start = end - timedelta(days=config.max_days_to_sync or DEFAULT_MAX_DAYS_TO_SYNC)
        result = await service.run_sync(start, end, kind=SyncRunKind.SCHEDULED)

        if result.success:
            logger.info(f"Scheduled sync completed: {result.message}")
        else:
            logger.error(f"Scheduled sync failed: {result.message}")

        cleanup_expired_transactions(config)
        return result
    finally:
        db.close()


def cleanup_expired_transactions(config: PosConfiguration) -> int:
    """Retention pass over the ledger. Returns the number of rows removed.

    Not implemented: nothing is deleted yet.
    """
    # TODO: delete transactions older than config.retention_days once the
    # ledger has a soft-delete column to archive them first
    logger.debug(
        f"POS retention cleanup skipped (retention_days={config.retention_days}): not implemented"
    )
    return 0
