"""Registration of the class lifecycle jobs with their configured triggers."""

import logging

from class_lifecycle.config import (
    DEFAULT_AUTO_CANCEL_TIMES,
    DEFAULT_AUTO_CANCEL_WARNING_TIMES,
    SCHEDULER_MODE_INTERVAL,
    get_class_timezone,
    get_daily_times,
    get_interval_seconds,
    get_scheduler_mode,
)

from . import auto_cancel, auto_cancel_warning
from .orchestrator import DailyTimes, FixedInterval, JobOrchestrator, Trigger

logger = logging.getLogger(__name__)

DEFAULT_AUTO_CANCEL_INTERVAL_SECONDS = 60
# The warning sweep is stateless, so each firing re-warns every at-risk class.
# Matching the two-hourly daily schedule keeps that to one warning per class.
DEFAULT_AUTO_CANCEL_WARNING_INTERVAL_SECONDS = 2 * 60 * 60


def build_trigger(
    env_prefix: str,
    default_times: list[str],
    default_interval_seconds: int,
) -> Trigger:
    """
    Build a job's trigger from configuration.

    Interval mode reads <PREFIX>_INTERVAL_SECONDS, daily mode reads
    <PREFIX>_TIMES (comma-separated HH:MM in CLASS_TIMEZONE).
    """
    if get_scheduler_mode(env_prefix) == SCHEDULER_MODE_INTERVAL:
        return FixedInterval(
            get_interval_seconds(
                f"{env_prefix}_INTERVAL_SECONDS", default_interval_seconds
            )
        )
    return DailyTimes(
        get_daily_times(f"{env_prefix}_TIMES", default_times),
        timezone=get_class_timezone(),
    )


async def _run_auto_cancel() -> None:
    await auto_cancel.check_and_cancel_low_participant_schedules()


async def _run_auto_cancel_warning() -> None:
    await auto_cancel_warning.send_warning_notifications()


def register_lifecycle_jobs(orchestrator: JobOrchestrator) -> list[str]:
    """
    Start the auto-cancel and warning jobs on an orchestrator.

    Returns:
        Names of the jobs that were started (already running ones are skipped)
    """
    jobs = [
        (
            auto_cancel.JOB_NAME,
            build_trigger(
                "AUTO_CANCEL",
                DEFAULT_AUTO_CANCEL_TIMES,
                DEFAULT_AUTO_CANCEL_INTERVAL_SECONDS,
            ),
            _run_auto_cancel,
        ),
        (
            auto_cancel_warning.JOB_NAME,
            build_trigger(
                "AUTO_CANCEL_WARNING",
                DEFAULT_AUTO_CANCEL_WARNING_TIMES,
                DEFAULT_AUTO_CANCEL_WARNING_INTERVAL_SECONDS,
            ),
            _run_auto_cancel_warning,
        ),
    ]

    started = []
    for job_name, trigger, handler in jobs:
        if orchestrator.start(job_name, trigger, handler):
            started.append(job_name)

    logger.info(f"Registered lifecycle jobs: {', '.join(started) or 'none'}")
    return started
