#!/usr/bin/env python3
"""
POS sync command-line tool.

Usage:
    python scripts/pos_sync.py sync --from 2025-01-01 --to 2025-01-31
    python scripts/pos_sync.py sync --paginated --max-pages 10 --page-size 20
    python scripts/pos_sync.py configure --api-key KEY --enable
    python scripts/pos_sync.py history --limit 10
"""

import argparse
import asyncio
import dataclasses
import json
import sys

from possync.core.config import settings
from possync.db.base import Base
from possync.db.session import SessionLocal, engine, ensure_sqlite_directory
from possync.services.pos.config_service import (
    PosConfigurationService,
    PosConfigurationStore,
    build_sync_service,
)
from possync.services.pos.query_service import PosQueryService
from possync.services.pos.sync_engine import SyncEndpoint, SyncFilters


def _print(data):
    print(json.dumps(data, indent=2, default=str))


def cmd_sync(args) -> int:
    db = SessionLocal()
    try:
        service = build_sync_service(db)
        if args.paginated:
            filters = SyncFilters(
                location_id=args.location_id,
                serial_number=args.serial_number,
                max_pages=args.max_pages,
                page_size=args.page_size,
                endpoint=SyncEndpoint(args.endpoint),
            )
            result = asyncio.run(service.run_sync_paginated(args.date_from, args.date_to, filters=filters))
        else:
            result = asyncio.run(service.run_sync(args.date_from, args.date_to))
    finally:
        db.close()

    _print(dataclasses.asdict(result))
    return 0 if result.success else 1


def cmd_configure(args) -> int:
    changes = {
        "api_key": args.api_key,
        "base_url": args.base_url,
        "auto_sync_enabled": args.enabled,
        "sync_interval_hours": args.interval_hours,
        "max_days_to_sync": args.max_days,
        "retention_days": args.retention_days,
    }
    db = SessionLocal()
    try:
        service = PosConfigurationService(PosConfigurationStore(db))
        if any(v is not None for v in changes.values()):
            service.update(changes)
        _print(service.to_public_dict())
    finally:
        db.close()
    return 0


def cmd_history(args) -> int:
    db = SessionLocal()
    try:
        runs = PosQueryService(db).sync_history(args.limit)
        _print([
            {
                "id": run.id,
                "kind": run.kind.value,
                "status": run.status.value,
                "start_date": run.start_date,
                "end_date": run.end_date,
                "started_at": run.started_at,
                "completed_at": run.completed_at,
                "processed": run.total_processed,
                "created": run.total_created,
                "errors": run.total_errors,
                "error_message": run.error_message,
            }
            for run in runs
        ])
    finally:
        db.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="POS transaction sync tool")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Run one manual sync")
    sync.add_argument("--from", dest="date_from", help="Start date (YYYY-MM-DD)")
    sync.add_argument("--to", dest="date_to", help="End date (YYYY-MM-DD)")
    sync.add_argument("--paginated", action="store_true", help="Walk every page of each chunk")
    sync.add_argument("--max-pages", type=int, default=settings.pos_max_pages)
    sync.add_argument("--page-size", type=int, default=settings.pos_page_size)
    sync.add_argument("--location-id", help="Only sales from this location")
    sync.add_argument("--serial-number", help="Only sales from this terminal")
    sync.add_argument(
        "--endpoint",
        choices=[e.value for e in SyncEndpoint],
        default=SyncEndpoint.BRANCH_REPORT.value,
    )
    sync.set_defaults(func=cmd_sync)

    configure = sub.add_parser("configure", help="Update the POS configuration")
    configure.add_argument("--api-key")
    configure.add_argument("--base-url")
    toggle = configure.add_mutually_exclusive_group()
    toggle.add_argument("--enable", dest="enabled", action="store_const", const=True)
    toggle.add_argument("--disable", dest="enabled", action="store_const", const=False)
    configure.add_argument("--interval-hours", type=int)
    configure.add_argument("--max-days", type=int)
    configure.add_argument("--retention-days", type=int)
    configure.set_defaults(func=cmd_configure)

    history = sub.add_parser("history", help="Show recent sync runs")
    history.add_argument("--limit", type=int, default=20)
    history.set_defaults(func=cmd_history)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if settings.database_url.startswith("sqlite"):
        ensure_sqlite_directory()
        Base.metadata.create_all(bind=engine)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
