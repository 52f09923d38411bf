"""
Centralized configuration for the class lifecycle scheduler.

All settings come from environment variables (loaded from .env / .env.local
by main.py). Job logic never reads the environment directly - it gets its
values from these getters.
"""

import logging
import os

logger = logging.getLogger(__name__)


DEFAULT_CLASS_TIMEZONE = "Asia/Ho_Chi_Minh"

SCHEDULER_MODE_INTERVAL = "interval"
SCHEDULER_MODE_DAILY = "daily"
SCHEDULER_MODES = (SCHEDULER_MODE_INTERVAL, SCHEDULER_MODE_DAILY)

DEFAULT_AUTO_CANCEL_TIMES = ["06:00", "12:00", "18:00"]
# The warning window is 2 hours wide, so firing every 2 hours warns each class once
DEFAULT_AUTO_CANCEL_WARNING_TIMES = [f"{hour:02d}:00" for hour in range(0, 24, 2)]


def is_dev_mode() -> bool:
    """Check if running in development mode (DEV_MODE env)."""
    return os.getenv("DEV_MODE", "").lower() in ("true", "1", "yes")


def is_production() -> bool:
    """Check if running on Railway (production environment)."""
    return bool(os.environ.get("RAILWAY_ENVIRONMENT"))


def get_api_port() -> int:
    """Get API server port from env or default."""
    return int(os.getenv("API_PORT", "8000"))


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_class_timezone() -> str:
    """Civil timezone used for every day/hour boundary and cron entry."""
    return os.getenv("CLASS_TIMEZONE", DEFAULT_CLASS_TIMEZONE)


def get_scheduler_mode(job_env_prefix: str | None = None) -> str:
    """
    Get the trigger mode for a job.

    Lookup order: <PREFIX>_MODE, SCHEDULER_MODE, then "interval" in dev
    mode and "daily" otherwise. Unknown values fall back to the default
    with a warning.

    Args:
        job_env_prefix: e.g. "AUTO_CANCEL" to honour AUTO_CANCEL_MODE
    """
    default = SCHEDULER_MODE_INTERVAL if is_dev_mode() else SCHEDULER_MODE_DAILY

    value = None
    if job_env_prefix:
        value = os.getenv(f"{job_env_prefix}_MODE")
    if not value:
        value = os.getenv("SCHEDULER_MODE")
    if not value:
        return default

    value = value.strip().lower()
    if value not in SCHEDULER_MODES:
        logger.warning(f"Unknown scheduler mode '{value}', using '{default}'")
        return default
    return value


def get_daily_times(env_name: str, default: list[str]) -> list[str]:
    """Parse a comma-separated list of HH:MM times, e.g. "06:00,18:00"."""
    raw = os.getenv(env_name, "")
    times = [part.strip() for part in raw.split(",") if part.strip()]
    return times or list(default)


def _get_number(name: str, default, parse=int, positive=True):
    """
    Read a numeric env var, falling back to the default with a warning.

    Values that don't parse (or aren't above zero when `positive`) use
    `default`.
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = parse(raw.strip())
    except ValueError:
        logger.warning(f"{name}={raw!r} is not a number, using {default}")
        return default
    if positive and not value > 0:
        logger.warning(f"{name}={value} is not positive, using {default}")
        return default
    return value


def get_interval_seconds(env_name: str, default: int) -> int:
    return _get_number(env_name, default)


def get_auto_cancel_buffer_hours() -> int:
    """Hours between the cancellation window start and "now + 1 day" (min 1)."""
    hours = _get_number("AUTO_CANCEL_BUFFER_HOURS", 1, positive=False)
    if hours < 1:
        logger.warning(f"AUTO_CANCEL_BUFFER_HOURS={hours} is below 1, using 1")
        return 1
    return hours


def get_transaction_timeout_seconds() -> float:
    return _get_number("AUTO_CANCEL_TRANSACTION_TIMEOUT_SECONDS", 30.0, parse=float)


def get_notification_max_attempts() -> int:
    return _get_number("NOTIFICATION_MAX_ATTEMPTS", 3)


def get_notification_budget_seconds() -> float:
    """Overall time budget for notifying one schedule's recipients."""
    return _get_number("NOTIFICATION_BUDGET_SECONDS", 60.0, parse=float)


# Required environment variables
# Format: (name, description, required_in_dev)
REQUIRED_ENV_VARS = [
    ("DATABASE_URL", "PostgreSQL connection string", True),
    ("SENTRY_DSN", "Sentry DSN for error reporting", False),
]


def check_required_env_vars() -> tuple[bool, list[str]]:
    """
    Check that required environment variables are set.

    Returns:
        (all_ok, warnings): Tuple of success flag and list of warning messages
    """
    warnings = []
    errors = []
    in_dev = is_dev_mode()

    for name, description, required_in_dev in REQUIRED_ENV_VARS:
        value = os.environ.get(name)

        if not value:
            if is_production():
                errors.append(f"{name}: Not set ({description})")
            elif required_in_dev or not in_dev:
                warnings.append(f"{name}: Not set ({description})")

    if errors:
        for error in errors:
            logger.error(error)
        return False, warnings

    return True, warnings
