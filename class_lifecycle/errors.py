"""Exceptions raised by the store layer."""

from sqlalchemy.exc import DBAPIError

# SQLSTATE codes PostgreSQL uses when a transaction loses a concurrency race
SERIALIZATION_FAILURE_CODES = ("40001", "40P01")


class TransientStoreError(Exception):
    """
    A transaction failed for a reason that may succeed on retry.

    Raised for serialization conflicts, deadlocks, lock timeouts and
    transactions that exceeded their time budget.
    """


def is_serialization_failure(exc: BaseException) -> bool:
    """Check if a DB error is a serialization conflict rather than a real failure."""
    if not isinstance(exc, DBAPIError):
        return False

    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in SERIALIZATION_FAILURE_CODES:
        return True

    message = str(orig).lower()
    # asyncpg wording, then SQLite's busy-lock wording
    return "could not serialize access" in message or "database is locked" in message
