"""
Scheduled class lifecycle jobs.

Public API:
    JobOrchestrator - Named job table on top of APScheduler
    FixedInterval / DailyTimes - The two trigger kinds
    register_lifecycle_jobs(orchestrator) - Start both jobs from config
    check_and_cancel_low_participant_schedules() - One cancellation sweep
    send_warning_notifications() - One warning sweep
"""

from .auto_cancel import SweepResult, check_and_cancel_low_participant_schedules
from .auto_cancel_warning import WarningResult, send_warning_notifications
from .orchestrator import DailyTimes, FixedInterval, JobOrchestrator
from .registry import register_lifecycle_jobs

__all__ = [
    "JobOrchestrator",
    "FixedInterval",
    "DailyTimes",
    "register_lifecycle_jobs",
    "check_and_cancel_low_participant_schedules",
    "send_warning_notifications",
    "SweepResult",
    "WarningResult",
]
