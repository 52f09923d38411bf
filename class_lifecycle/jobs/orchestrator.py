"""
APScheduler-based job orchestrator.

One JobOrchestrator instance owns the job table for the process. Jobs are
registered by name with a trigger:

    FixedInterval(seconds)          - fire now, then every period (dev/test)
    DailyTimes(["06:00", "18:00"])  - fire at fixed civil times (production)

Every firing runs the handler through _run_guarded(), which logs and reports
exceptions and skips a firing while the previous run of the same job is
still in progress.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

import pytz
import sentry_sdk
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from class_lifecycle.config import DEFAULT_CLASS_TIMEZONE

logger = logging.getLogger(__name__)

JobHandler = Callable[[], Awaitable[object]]

JOB_DEFAULTS = {
    "coalesce": True,  # Combine missed runs into one
    "max_instances": 1,
    "misfire_grace_time": 3600,  # Allow 1 hour late execution
}


@dataclass(frozen=True)
class FixedInterval:
    """Fire immediately, then every `seconds` seconds."""

    seconds: int

    def __post_init__(self):
        if self.seconds <= 0:
            raise ValueError("Interval must be positive")


@dataclass(frozen=True)
class DailyTimes:
    """Fire every day at each "HH:MM" time, evaluated in a civil timezone."""

    times: tuple[str, ...]
    timezone: str = DEFAULT_CLASS_TIMEZONE

    def __post_init__(self):
        object.__setattr__(self, "times", tuple(self.times))
        if not self.times:
            raise ValueError("DailyTimes needs at least one time")
        for value in self.times:
            parse_daily_time(value)
        pytz.timezone(self.timezone)  # raises UnknownTimeZoneError


Trigger = FixedInterval | DailyTimes


def parse_daily_time(value: str) -> tuple[int, int]:
    """
    Parse "HH:MM" into (hour, minute).

    Raises:
        ValueError: If the value is not a valid 24-hour time
    """
    try:
        hour_str, minute_str = value.strip().split(":")
        hour, minute = int(hour_str), int(minute_str)
    except ValueError:
        raise ValueError(f"Invalid daily time '{value}', expected HH:MM") from None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid daily time '{value}', expected HH:MM")
    return hour, minute


@dataclass
class _JobEntry:
    trigger: Trigger
    handler: JobHandler
    scheduler_job_ids: list[str] = field(default_factory=list)


class JobOrchestrator:
    """
    Owns the named job table and the APScheduler instance behind it.

    Create one per process, inside the running event loop (the app
    lifespan), and pass it to whatever needs to register, stop or inspect
    jobs.
    """

    def __init__(self, scheduler: AsyncIOScheduler | None = None):
        self._scheduler = scheduler or AsyncIOScheduler(job_defaults=JOB_DEFAULTS)
        self._jobs: dict[str, _JobEntry] = {}
        self._running: set[str] = set()
        self._shut_down = False

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    def _ensure_started(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            self._shut_down = False
            logger.info("Job scheduler started")

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def start(self, job_name: str, trigger: Trigger, handler: JobHandler) -> bool:
        """
        Register and arm a job.

        Starting a name that is already registered does nothing (the job is
        never armed twice).

        Returns:
            True if the job was armed, False if it was already running
        """
        if job_name in self._jobs:
            logger.warning(f"Job '{job_name}' is already running, ignoring start")
            return False

        self._ensure_started()
        entry = _JobEntry(trigger=trigger, handler=handler)

        if isinstance(trigger, FixedInterval):
            job = self._scheduler.add_job(
                self._run_guarded,
                trigger=IntervalTrigger(seconds=trigger.seconds),
                id=job_name,
                args=[job_name],
                next_run_time=datetime.now(pytz.UTC),  # fire immediately
                replace_existing=True,
            )
            entry.scheduler_job_ids.append(job.id)
            description = f"every {trigger.seconds}s"
        elif isinstance(trigger, DailyTimes):
            for value in trigger.times:
                hour, minute = parse_daily_time(value)
                job = self._scheduler.add_job(
                    self._run_guarded,
                    trigger=CronTrigger(
                        hour=hour, minute=minute, timezone=trigger.timezone
                    ),
                    id=f"{job_name}@{hour:02d}:{minute:02d}",
                    args=[job_name],
                    replace_existing=True,
                )
                entry.scheduler_job_ids.append(job.id)
            description = f"daily at {', '.join(trigger.times)} ({trigger.timezone})"
        else:
            raise TypeError(f"Unsupported trigger: {trigger!r}")

        self._jobs[job_name] = entry
        logger.info(f"Started job '{job_name}' ({description})")
        return True

    def stop(self, job_name: str) -> bool:
        """
        Tear down every scheduler entry of a job.

        Returns:
            True if the job was registered, False if there was nothing to stop
        """
        entry = self._jobs.pop(job_name, None)
        if entry is None:
            return False

        for job_id in entry.scheduler_job_ids:
            try:
                self._scheduler.remove_job(job_id)
            except JobLookupError:
                pass  # Already gone

        logger.info(f"Stopped job '{job_name}'")
        return True

    def status(self) -> set[str]:
        """Names of the currently registered jobs."""
        return set(self._jobs)

    def is_running(self, job_name: str) -> bool:
        """Whether a run of the job is in progress right now."""
        return job_name in self._running

    def shutdown(self) -> None:
        """
        Stop every job and the scheduler. Call on app shutdown.

        The scheduler finishes stopping on the next event loop iteration, so
        `running` can still read True right after this returns. Repeated
        calls are no-ops.
        """
        for job_name in list(self._jobs):
            self.stop(job_name)
        if self._shut_down:
            return
        self._shut_down = True
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Job scheduler stopped")

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def trigger_now(self, job_name: str) -> bool:
        """
        Run a registered job once, right now, through the same guard.

        Returns:
            False if the job is unknown or a run is already in progress
        """
        if job_name not in self._jobs:
            logger.warning(f"Cannot trigger unknown job '{job_name}'")
            return False
        return await self._run_guarded(job_name)

    async def _run_guarded(self, job_name: str) -> bool:
        """
        Run a job's handler, never letting an exception escape.

        This is the function APScheduler calls on every firing.

        Returns:
            True if the handler ran to completion
        """
        entry = self._jobs.get(job_name)
        if entry is None:
            logger.warning(f"Job '{job_name}' fired after it was stopped, skipping")
            return False

        if job_name in self._running:
            logger.warning(
                f"Previous run of '{job_name}' still in progress, skipping this firing"
            )
            return False

        self._running.add(job_name)
        try:
            await entry.handler()
            return True
        except Exception as e:
            logger.exception(f"Job '{job_name}' failed: {e}")
            sentry_sdk.capture_exception(e)
            return False
        finally:
            self._running.discard(job_name)
