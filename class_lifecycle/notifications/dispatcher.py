"""
Notification dispatcher - delivers notifications with retries.

send_with_retry() wraps one send to one recipient; fan_out() sends a batch
of them concurrently under a shared time budget. Neither ever raises: a
recipient that stays unreachable is logged, reported to Sentry and counted
as failed.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

import sentry_sdk

from class_lifecycle.enums import NotificationType
from class_lifecycle.notifications.channels.in_app import send_in_app_notification
from class_lifecycle.retry import retry_with_backoff

logger = logging.getLogger(__name__)

# send(recipient_id, notification_type, payload) - returns on success, raises on failure
NotificationSink = Callable[[int, NotificationType, dict], Awaitable[None]]

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0


@dataclass
class Delivery:
    """One notification to one recipient."""

    recipient_id: int
    notification_type: NotificationType
    payload: dict
    label: str = "recipient"


@dataclass
class FanOutResult:
    sent: int = 0
    failed: int = 0


async def send_with_retry(
    recipient_id: int,
    notification_type: NotificationType,
    payload: dict,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    sink: NotificationSink | None = None,
) -> bool:
    """
    Send a notification, retrying with exponential backoff (1s, 2s, 4s, ...).

    Args:
        recipient_id: User ID to notify
        notification_type: e.g. NotificationType.SCHEDULE_CANCELLED
        payload: Notification data passed to the sink unchanged
        max_attempts: Total attempts including the first
        base_delay: Delay after the first failed attempt, in seconds
        sink: Delivery function (defaults to the in-app inbox)

    Returns:
        True on the first successful attempt, False once all attempts failed
    """
    sink = sink or send_in_app_notification

    try:
        await retry_with_backoff(
            lambda: sink(recipient_id, notification_type, payload),
            max_attempts=max_attempts,
            base_delay=base_delay,
            description=f"{notification_type.value} notification to user {recipient_id}",
        )
    except Exception as e:
        logger.error(
            f"Giving up on {notification_type.value} notification to user "
            f"{recipient_id} after {max_attempts} attempt(s): {e}"
        )
        sentry_sdk.capture_message(
            f"Notification undeliverable: {notification_type.value} to user {recipient_id}"
        )
        return False

    return True


async def fan_out(
    deliveries: list[Delivery],
    budget_seconds: float | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    sink: NotificationSink | None = None,
) -> FanOutResult:
    """
    Send a batch of notifications concurrently.

    Recipients are independent: one failing or slow recipient never blocks
    the others. Deliveries still retrying when the budget runs out are
    cancelled and counted as failed.

    Args:
        deliveries: Notifications to send
        budget_seconds: Overall time budget for the batch (None = no limit)
        max_attempts: Attempts per recipient
        sink: Delivery function passed to send_with_retry
    """
    if not deliveries:
        return FanOutResult()

    tasks = {
        asyncio.create_task(
            send_with_retry(
                delivery.recipient_id,
                delivery.notification_type,
                delivery.payload,
                max_attempts=max_attempts,
                sink=sink,
            )
        ): delivery
        for delivery in deliveries
    }
    done, pending = await asyncio.wait(tasks, timeout=budget_seconds)

    for task in pending:
        task.cancel()
        delivery = tasks[task]
        logger.error(
            f"Notification budget of {budget_seconds}s exhausted before reaching "
            f"{delivery.label} (user {delivery.recipient_id})"
        )
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)

    result = FanOutResult()
    for task in done:
        if task.result():
            result.sent += 1
        else:
            result.failed += 1
            delivery = tasks[task]
            logger.error(
                f"Failed to notify {delivery.label} (user {delivery.recipient_id}) after retries"
            )
    result.failed += len(pending)
    return result
