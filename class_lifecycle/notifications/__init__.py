"""
Notification delivery for class lifecycle events.

Public API:
    send_with_retry(recipient_id, type, payload) - Send one, with backoff
    fan_out(deliveries, budget_seconds) - Send many concurrently
    send_in_app_notification(recipient_id, type, payload) - Default sink
"""

from .channels.in_app import send_in_app_notification
from .dispatcher import (
    Delivery,
    FanOutResult,
    NotificationSink,
    fan_out,
    send_with_retry,
)

__all__ = [
    "Delivery",
    "FanOutResult",
    "NotificationSink",
    "fan_out",
    "send_with_retry",
    "send_in_app_notification",
]
