"""
Daily scheduled task running inside each worker's event loop.
"""
import asyncio
import time
from contextlib import suppress
from datetime import datetime, timedelta, timezone
from typing import AsyncContextManager, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from gallery_api.config import Settings, get_settings
from gallery_api.utils.logger import log_error, log_info
from gallery_api.utils.prometheus_metrics import task_duration_seconds, task_runs_total

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


def humanize_delta(seconds: float) -> str:
    """Relative wording for a future delay, e.g. "in 3 hours"."""
    seconds = max(0, int(seconds))
    minutes, hours, days = seconds / 60, seconds / 3600, seconds / 86400
    if seconds < 45:
        return "in a few seconds"
    if seconds < 90:
        return "in a minute"
    if minutes < 45:
        return f"in {round(minutes)} minutes"
    if minutes < 90:
        return "in an hour"
    if hours < 22:
        return f"in {round(hours)} hours"
    if hours < 36:
        return "in a day"
    return f"in {round(days)} days"


class Task:
    """
    Base class for scheduled jobs.

    Subclasses set ``name`` and ``schedule`` ("HH:MM", UTC, once a day) and
    implement ``execute()``. Tasks flagged ``no_development`` do not run in
    the DEV environment.
    """

    name: str = ""
    schedule: str = "00:00"
    no_development: bool = False

    def __init__(self, session_factory: SessionFactory, settings: Optional[Settings] = None):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self._runner: Optional[asyncio.Task] = None

        hour, minute = (int(part) for part in self.schedule.split(":"))
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"Invalid schedule {self.schedule!r} for task {self.name!r}")
        self._hour, self._minute = hour, minute

    async def execute(self) -> None:
        raise NotImplementedError("Tasks must implement execute()")

    def next_run(self, now: Optional[datetime] = None) -> datetime:
        now = now or datetime.now(timezone.utc)
        candidate = now.replace(hour=self._hour, minute=self._minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    def time_until(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        return humanize_delta((self.next_run(now) - now).total_seconds())

    async def run(self) -> bool:
        """
        Execute once, recording metrics.
        Errors are logged and reported as a failed run.
        """
        if self.no_development and self.settings.is_dev:
            return False

        log_info(f"[Task] {self.name} was executed.", event="task", task=self.name)
        start = time.perf_counter()
        try:
            await self.execute()
        except Exception as e:
            task_runs_total.labels(task=self.name, result="failure").inc()
            log_error(
                f"[Task] {self.name} failed",
                event="task",
                task=self.name,
                error_type=type(e).__name__,
                exc_info=True,
            )
            return False
        finally:
            task_duration_seconds.labels(task=self.name).observe(time.perf_counter() - start)

        task_runs_total.labels(task=self.name, result="success").inc()
        return True

    async def _loop(self) -> None:
        while True:
            now = datetime.now(timezone.utc)
            await asyncio.sleep((self.next_run(now) - now).total_seconds())
            await self.run()

    def start(self) -> None:
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self._loop(), name=f"task:{self.name}")

    async def stop(self) -> None:
        if self._runner is None:
            return
        self._runner.cancel()
        with suppress(asyncio.CancelledError):
            await self._runner
        self._runner = None

    def __repr__(self) -> str:
        return f"<Task(name={self.name}, schedule={self.schedule})>"
