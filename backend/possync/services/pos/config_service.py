"""POS configuration persistence and client wiring."""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from possync.core.config import settings
from possync.models.pos import PosConfiguration
from possync.services.pos.client import PosClientRegistry, TuuClient, client_registry
from possync.services.pos.errors import PosConfigurationError
from possync.services.pos.sync_engine import PosSyncService

logger = logging.getLogger(__name__)

DEFAULT_SYNC_INTERVAL_HOURS = 24
DEFAULT_MAX_DAYS_TO_SYNC = 60
DEFAULT_RETENTION_DAYS = 365

# Fields a caller may change through update()
UPDATABLE_FIELDS = (
    "api_key",
    "base_url",
    "auto_sync_enabled",
    "sync_interval_hours",
    "max_days_to_sync",
    "retention_days",
)


class PosConfigurationStore:
    """Storage for the single PosConfiguration row."""

    def __init__(self, db: Session):
        self.db = db

    def first(self) -> Optional[PosConfiguration]:
        return self.db.query(PosConfiguration).order_by(PosConfiguration.id).first()

    def add(self, config: PosConfiguration) -> None:
        self.db.add(config)

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def refresh(self, config: PosConfiguration) -> None:
        self.db.refresh(config)


class PosConfigurationService:
    """Reads and updates the POS configuration row."""

    def __init__(self, store: PosConfigurationStore, clients: PosClientRegistry = client_registry):
        self.store = store
        self.clients = clients

    def get(self) -> Optional[PosConfiguration]:
        return self.store.first()

    def update(self, changes: Dict[str, Any]) -> PosConfiguration:
        """Apply changes to the configuration row, creating it if needed.

        The shared API client is dropped when the API key or base URL
        changes, so the next sync picks up the new credentials.
        """
        changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}

        config = self.store.first()
        if config is None:
            config = PosConfiguration(
                base_url=settings.pos_base_url,
                auto_sync_enabled=True,
                sync_interval_hours=DEFAULT_SYNC_INTERVAL_HOURS,
                max_days_to_sync=DEFAULT_MAX_DAYS_TO_SYNC,
                retention_days=DEFAULT_RETENTION_DAYS,
            )
            self.store.add(config)

        credentials_changed = any(
            key in changes and changes[key] != getattr(config, key)
            for key in ("api_key", "base_url")
        )
        for key, value in changes.items():
            setattr(config, key, value)

        self.store.commit()
        self.store.refresh(config)

        if credentials_changed:
            self.clients.reset()
            logger.info("POS API credentials changed, client will be re-initialized")
        logger.info(f"POS configuration updated: {sorted(k for k in changes if k != 'api_key')}")
        return config

    def create_default(self) -> Optional[PosConfiguration]:
        """Create the default configuration row if none exists.

        Never raises; a failure is logged and returns None.
        """
        try:
            existing = self.store.first()
            if existing is not None:
                return existing
            config = PosConfiguration(
                api_key=settings.pos_api_key or None,
                base_url=settings.pos_base_url,
                auto_sync_enabled=True,
                sync_interval_hours=DEFAULT_SYNC_INTERVAL_HOURS,
                max_days_to_sync=DEFAULT_MAX_DAYS_TO_SYNC,
                retention_days=DEFAULT_RETENTION_DAYS,
            )
            self.store.add(config)
            self.store.commit()
            self.store.refresh(config)
            logger.info("Created default POS configuration")
            return config
        except Exception as e:
            self.store.rollback()
            logger.error(f"Error creating default POS configuration: {e}")
            return None

    def effective_api_key(self, config: Optional[PosConfiguration] = None) -> Optional[str]:
        config = config if config is not None else self.get()
        if config is not None and config.api_key:
            return config.api_key
        return settings.pos_api_key or None

    def is_enabled(self) -> bool:
        config = self.get()
        return bool(config and config.auto_sync_enabled and self.effective_api_key(config))

    def get_client(self, config: Optional[PosConfiguration] = None) -> TuuClient:
        config = config if config is not None else self.get()
        api_key = self.effective_api_key(config)
        if not api_key:
            raise PosConfigurationError("POS API key is not configured")
        base_url = (config.base_url if config is not None else None) or settings.pos_base_url
        return self.clients.get(api_key, base_url)

    def to_public_dict(self) -> Dict[str, Any]:
        """Configuration as shown to API callers. The API key never leaves."""
        config = self.get()
        if config is None:
            return {
                "id": "default",
                "has_api_key": bool(settings.pos_api_key),
                "base_url": settings.pos_base_url,
                "auto_sync_enabled": False,
                "sync_interval_hours": DEFAULT_SYNC_INTERVAL_HOURS,
                "max_days_to_sync": DEFAULT_MAX_DAYS_TO_SYNC,
                "retention_days": DEFAULT_RETENTION_DAYS,
                "created_at": None,
                "updated_at": None,
            }
        return {
            "id": str(config.id),
            "has_api_key": bool(self.effective_api_key(config)),
            "base_url": config.base_url or settings.pos_base_url,
            "auto_sync_enabled": config.auto_sync_enabled,
            "sync_interval_hours": config.sync_interval_hours,
            "max_days_to_sync": config.max_days_to_sync,
            "retention_days": config.retention_days,
            "created_at": config.created_at,
            "updated_at": config.updated_at,
        }


def build_sync_service(db: Session, clients: PosClientRegistry = client_registry) -> PosSyncService:
    """Wire configuration -> client -> engine for one session.

    The client is left unset when no API key is available; the engine's
    enabled guard then reports the subsystem as not configured.
    """
    config_service = PosConfigurationService(PosConfigurationStore(db), clients)
    config = config_service.get()
    client = None
    if config_service.effective_api_key(config):
        client = config_service.get_client(config)
    return PosSyncService(
        db,
        config,
        client,
        page_delay=settings.pos_page_delay_seconds,
        chunk_max_days=settings.pos_chunk_max_days,
    )
