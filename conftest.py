"""Root pytest configuration."""

from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load environment variables before tests run
_root = Path(__file__).parent
load_dotenv(_root / ".env")
load_dotenv(_root / ".env.local", override=True)


@pytest.fixture(scope="session")
def event_loop_policy():
    """Use default event loop policy for all async tests."""
    import asyncio

    return asyncio.DefaultEventLoopPolicy()


@pytest.fixture(autouse=True)
def _isolate_scheduler_env(monkeypatch):
    """Keep a developer's .env from changing job timing under test."""
    for name in (
        "CLASS_TIMEZONE",
        "DEV_MODE",
        "RAILWAY_ENVIRONMENT",
        "SCHEDULER_MODE",
        "AUTO_CANCEL_MODE",
        "AUTO_CANCEL_WARNING_MODE",
        "AUTO_CANCEL_TIMES",
        "AUTO_CANCEL_WARNING_TIMES",
        "AUTO_CANCEL_INTERVAL_SECONDS",
        "AUTO_CANCEL_WARNING_INTERVAL_SECONDS",
        "AUTO_CANCEL_TRANSACTION_TIMEOUT_SECONDS",
        "AUTO_CANCEL_BUFFER_HOURS",
        "NOTIFICATION_MAX_ATTEMPTS",
        "NOTIFICATION_BUDGET_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
