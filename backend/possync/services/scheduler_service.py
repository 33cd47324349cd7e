"""Background task scheduler for periodic jobs (daily POS sync)."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

TICK_SECONDS = 60


def next_daily_run(now: datetime, hour: int, minute: int, tz: str) -> datetime:
    """Next occurrence of hour:minute local time in ``tz``, strictly after ``now``.

    Returned in UTC.
    """
    zone = ZoneInfo(tz)
    local_now = now.astimezone(zone)
    candidate = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= local_now:
        candidate = (candidate + timedelta(days=1)).replace(hour=hour, minute=minute)
    return candidate.astimezone(timezone.utc)


class TaskScheduler:
    """Lightweight asyncio-based task scheduler.

    Runs registered tasks once a day at a local wall-clock time. State is
    in-memory and lost on restart.
    """

    def __init__(self, tick_seconds: int = TICK_SECONDS):
        self._tasks: Dict[str, Dict[str, Any]] = {}
        self._running = False
        self._task_handle: Optional[asyncio.Task] = None
        self.tick_seconds = tick_seconds

    async def start(self):
        """Start the scheduler loop."""
        self._running = True
        logger.info("Task scheduler started")

        while self._running:
            await self.run_pending()
            await asyncio.sleep(self.tick_seconds)

    def start_background(self) -> asyncio.Task:
        self._task_handle = asyncio.create_task(self.start())
        return self._task_handle

    def stop(self):
        self._running = False
        if self._task_handle:
            self._task_handle.cancel()
            self._task_handle = None
        logger.info("Task scheduler stopped")

    async def run_pending(self, now: Optional[datetime] = None):
        """Run every task that is due at ``now``."""
        now = now or datetime.now(timezone.utc)
        for name, task in list(self._tasks.items()):
            if now < task["next_run"]:
                continue
            try:
                if asyncio.iscoroutinefunction(task["func"]):
                    await task["func"]()
                else:
                    task["func"]()
                task["last_run"] = now
                task["run_count"] = task.get("run_count", 0) + 1
                task["last_error"] = None
                logger.debug(f"Scheduled task '{name}' completed")
            except Exception as e:
                task["last_error"] = str(e)
                logger.error(f"Scheduled task '{name}' failed: {e}")
            task["next_run"] = self._next_run(task, now)

    @staticmethod
    def _next_run(task: Dict[str, Any], now: datetime) -> datetime:
        hour, minute, tz = task["daily"]
        return next_daily_run(now, hour, minute, tz)

    def add_daily_task(self, name: str, func: Callable, hour: int, minute: int = 0, tz: str = "UTC"):
        self._tasks[name] = {
            "func": func,
            "daily": (hour, minute, tz),
            "next_run": next_daily_run(datetime.now(timezone.utc), hour, minute, tz),
            "last_run": None,
            "run_count": 0,
            "last_error": None,
        }
        logger.info(f"Scheduled task '{name}' daily at {hour:02d}:{minute:02d} {tz}")

    def remove_task(self, name: str):
        self._tasks.pop(name, None)

    def get_status(self) -> Dict[str, Any]:
        return {
            name: {
                "last_run": t["last_run"].isoformat() if t["last_run"] else None,
                "next_run": t["next_run"].isoformat(),
                "daily_at": f"{t['daily'][0]:02d}:{t['daily'][1]:02d} {t['daily'][2]}",
                "run_count": t.get("run_count", 0),
                "last_error": t.get("last_error"),
            }
            for name, t in self._tasks.items()
        }


scheduler = TaskScheduler()
