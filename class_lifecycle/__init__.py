"""
Class lifecycle scheduler - gym class auto-cancellation and warnings.

Periodic jobs that warn trainers and members about under-enrolled classes
and cancel them (with their bookings) when they miss their minimum a day
before start. Everything is driven by a JobOrchestrator created in main.py.
"""

# Database (SQLAlchemy)
from .database import (
    close_engine,
    get_connection,
    get_engine,
    get_transaction,
    is_configured,
    run_in_transaction,
)

# Domain enums
from .enums import BookingStatus, NotificationType, RecipientRole, ScheduleStatus

# Timezone utilities
from .timezone import cancellation_window, warning_window

__all__ = [
    "close_engine",
    "get_connection",
    "get_engine",
    "get_transaction",
    "is_configured",
    "run_in_transaction",
    "BookingStatus",
    "NotificationType",
    "RecipientRole",
    "ScheduleStatus",
    "cancellation_window",
    "warning_window",
]
