"""Database session management."""

from collections.abc import Generator
from pathlib import Path
from typing import Annotated

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from possync.core.config import settings

# Create engine - handle SQLite specially for check_same_thread
connect_args = {}
pool_config = {}

if settings.database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
    if ":memory:" in settings.database_url:
        # One shared connection, otherwise every checkout sees an empty database
        pool_config = {"poolclass": StaticPool}
    else:
        pool_config = {
            "pool_pre_ping": True,
            "pool_recycle": 1800,
        }
else:
    # PostgreSQL/MySQL connection pooling configuration
    pool_config = {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=False,
    **pool_config,
)

# Enable foreign key enforcement for SQLite
if settings.database_url.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def ensure_sqlite_directory() -> None:
    """Create the parent directory of a file-backed SQLite database."""
    prefix = "sqlite:///"
    if not settings.database_url.startswith(prefix) or ":memory:" in settings.database_url:
        return
    Path(settings.database_url[len(prefix):]).parent.mkdir(parents=True, exist_ok=True)


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Type alias for dependency injection
DbSession = Annotated[Session, Depends(get_db)]
