"""Timer backend - APScheduler as the external scheduling primitive.

Schedules are opaque to the rest of fleetcron. This module turns whatever a
job definition carries (a 5- or 6-field cron string, a ``datetime``, or a
ready-made APScheduler trigger) into an APScheduler trigger and registers
one tick handler per job on an ``AsyncIOScheduler``.

Cron Forms::

    "*/5 * * * *"        minute hour day month day_of_week
    "*/10 * * * * *"     second minute hour day month day_of_week
    datetime(...)        one-off at that instant
    CronTrigger(...)     passed through unchanged

The backend only fires handlers. A handler is expected to spawn its work
and return at once, so a slow job never delays another job's timer.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from fleetcron.core.errors import ValidationError
from fleetcron.core.logging import JobLogger, resolve_logger

TickHandler = Callable[[], Awaitable[None]]

DEFAULT_TIMEZONE = "UTC"


def build_trigger(schedule: Any, timezone: str | None = None) -> BaseTrigger:
    """Build an APScheduler trigger from a job's schedule.

    Raises:
        ValidationError: Unsupported schedule type or malformed cron string
    """
    if isinstance(schedule, BaseTrigger):
        return schedule
    tz = timezone or DEFAULT_TIMEZONE
    try:
        if isinstance(schedule, datetime):
            return DateTrigger(run_date=schedule, timezone=tz)
        if isinstance(schedule, str):
            fields = schedule.split()
            if len(fields) == 5:
                return CronTrigger.from_crontab(schedule, timezone=tz)
            if len(fields) == 6:
                second, minute, hour, day, month, day_of_week = fields
                return CronTrigger(
                    second=second,
                    minute=minute,
                    hour=hour,
                    day=day,
                    month=month,
                    day_of_week=day_of_week,
                    timezone=tz,
                )
            raise ValidationError(
                f"Cron expression must have 5 or 6 fields, got {len(fields)}: {schedule!r}",
                field="schedule",
                value=schedule,
            )
    except (ValueError, KeyError, TypeError) as e:
        raise ValidationError(
            f"Invalid schedule {schedule!r}: {e}", field="schedule", value=schedule, cause=e
        ) from e
    raise ValidationError(
        f"Unsupported schedule type: {type(schedule).__name__}", field="schedule", value=schedule
    )


class TimerBackend:
    """Thin wrapper over ``AsyncIOScheduler``.

    Example::

        >>> timers = TimerBackend()
        >>> timers.add("report", "0 2 * * *", handler)
        >>> timers.start()
        >>> # ... later ...
        >>> timers.stop()
    """

    name: str = "apscheduler"

    def __init__(
        self,
        scheduler: AsyncIOScheduler | None = None,
        *,
        timezone: str = DEFAULT_TIMEZONE,
        logger: JobLogger | None = None,
    ) -> None:
        self._scheduler = scheduler
        self.timezone = timezone
        self._log = resolve_logger(logger)
        self._fires: dict[str, int] = {}

    @property
    def scheduler(self) -> AsyncIOScheduler:
        # Created lazily so the scheduler binds to the running loop
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(timezone=self.timezone)
        return self._scheduler

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def add(
        self,
        job_id: str,
        schedule: Any,
        handler: TickHandler,
        *,
        timezone: str | None = None,
    ) -> None:
        """Register ``handler`` to fire on ``schedule``."""
        trigger = build_trigger(schedule, timezone or self.timezone)

        async def tick() -> None:
            self._fires[job_id] = self._fires.get(job_id, 0) + 1
            await handler()

        self.scheduler.add_job(
            tick,
            trigger=trigger,
            id=job_id,
            name=job_id,
            replace_existing=True,
            coalesce=True,
        )
        self._log.debug("timer_registered", job_id=job_id, trigger=str(trigger))

    def remove(self, job_id: str) -> bool:
        if self._scheduler is None or self._scheduler.get_job(job_id) is None:
            return False
        self._scheduler.remove_job(job_id)
        return True

    def has(self, job_id: str) -> bool:
        return self._scheduler is not None and self._scheduler.get_job(job_id) is not None

    def start(self) -> None:
        if self.running:
            return
        self.scheduler.start()
        self._log.info("timers_started", jobs=len(self.scheduler.get_jobs()))

    def stop(self) -> None:
        if not self.running:
            return
        self._scheduler.shutdown(wait=False)
        self._log.info("timers_stopped")

    def next_fire_times(self) -> dict[str, datetime | None]:
        if self._scheduler is None:
            return {}
        return {
            job.id: getattr(job, "next_run_time", None) for job in self._scheduler.get_jobs()
        }

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.running,
            "backend": self.name,
            "scheduled_jobs": len(self._scheduler.get_jobs()) if self._scheduler else 0,
            "fires": dict(self._fires),
        }


__all__ = ["TimerBackend", "TickHandler", "build_trigger", "DEFAULT_TIMEZONE"]
