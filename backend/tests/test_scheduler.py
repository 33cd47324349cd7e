"""Tests for the task scheduler and the scheduled POS sync."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from possync.models.pos import PosConfiguration, PosSyncRun, SyncRunKind
from possync.services.pos.client import client_registry
from possync.services.pos.scheduled import cleanup_expired_transactions, run_scheduled_pos_sync
from possync.services.pos.sync_engine import NO_DATA_MESSAGE
from possync.services.scheduler_service import TaskScheduler, next_daily_run


class TestNextDailyRun:

    def test_later_today(self):
        now = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)  # 09:00 in Santiago (UTC-3)
        assert next_daily_run(now, 10, 0, "America/Santiago") == datetime(2025, 1, 15, 13, 0, tzinfo=timezone.utc)

    def test_rolls_over_to_tomorrow(self):
        now = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert next_daily_run(now, 3, 0, "America/Santiago") == datetime(2025, 1, 16, 6, 0, tzinfo=timezone.utc)

    def test_exact_time_is_not_due_again(self):
        now = datetime(2025, 1, 15, 3, 0, tzinfo=timezone.utc)
        assert next_daily_run(now, 3, 0, "UTC") == datetime(2025, 1, 16, 3, 0, tzinfo=timezone.utc)


class TestTaskScheduler:

    @pytest.mark.asyncio
    async def test_due_daily_task_runs_and_reschedules(self):
        calls = []
        scheduler = TaskScheduler()
        scheduler.add_daily_task("job", lambda: calls.append(1), hour=3, tz="UTC")

        due = scheduler._tasks["job"]["next_run"]
        await scheduler.run_pending(due - timedelta(minutes=1))
        assert calls == []

        await scheduler.run_pending(due)
        assert calls == [1]
        status = scheduler.get_status()["job"]
        assert status["run_count"] == 1
        assert status["daily_at"] == "03:00 UTC"
        assert status["next_run"] == (due + timedelta(days=1)).isoformat()

    @pytest.mark.asyncio
    async def test_async_task_is_awaited(self):
        calls = []

        async def job():
            calls.append("ran")

        scheduler = TaskScheduler()
        scheduler.add_daily_task("job", job, hour=3)
        await scheduler.run_pending(datetime.now(timezone.utc) + timedelta(days=2))
        assert calls == ["ran"]

    @pytest.mark.asyncio
    async def test_failing_task_records_error(self):
        def job():
            raise RuntimeError("upstream down")

        scheduler = TaskScheduler()
        scheduler.add_daily_task("job", job, hour=3)
        await scheduler.run_pending(datetime.now(timezone.utc) + timedelta(days=2))

        status = scheduler.get_status()["job"]
        assert status["last_error"] == "upstream down"
        assert status["run_count"] == 0

    def test_remove_task(self):
        scheduler = TaskScheduler()
        scheduler.add_daily_task("job", lambda: None, hour=3)
        scheduler.remove_task("job")
        scheduler.remove_task("missing")
        assert scheduler.get_status() == {}


class TestScheduledPosSync:

    @pytest.fixture
    def session_factory(self, db_engine):
        return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    @pytest.fixture
    def fake_registry(self, fake_api):
        client_registry.reset()
        client_registry.transport = fake_api.transport
        yield client_registry
        client_registry.transport = None
        client_registry.reset()

    @pytest.mark.asyncio
    async def test_skipped_without_configuration(self, session_factory, db_session):
        assert await run_scheduled_pos_sync(session_factory) is None
        assert db_session.query(PosSyncRun).count() == 0

    @pytest.mark.asyncio
    async def test_skipped_when_auto_sync_disabled(self, session_factory, db_session, pos_config):
        pos_config.auto_sync_enabled = False
        db_session.commit()

        assert await run_scheduled_pos_sync(session_factory) is None
        assert db_session.query(PosSyncRun).count() == 0

    @pytest.mark.asyncio
    async def test_skipped_without_api_key(self, session_factory, db_session, pos_config, fake_registry, fake_api):
        pos_config.api_key = None
        db_session.commit()

        assert await run_scheduled_pos_sync(session_factory) is None
        assert db_session.query(PosSyncRun).count() == 0
        assert fake_api.payloads == []

    @pytest.mark.asyncio
    async def test_runs_scheduled_sync(self, session_factory, db_session, pos_config, fake_registry, fake_api):
        pos_config.max_days_to_sync = 10
        db_session.commit()

        result = await run_scheduled_pos_sync(session_factory)

        assert result is not None
        assert result.success is True
        assert result.message == NO_DATA_MESSAGE
        assert len(fake_api.payloads) == 1
        db_session.expire_all()
        run = db_session.query(PosSyncRun).one()
        assert run.kind == SyncRunKind.SCHEDULED

    def test_retention_cleanup_removes_nothing_yet(self):
        config = PosConfiguration(retention_days=30)
        assert cleanup_expired_transactions(config) == 0
