"""
In-app notification channel.

Writes a rendered notification into the notifications table, where the
member/trainer apps pick it up. This is the default sink used by the
dispatcher; it raises on any failure so the dispatcher can retry.
"""

import logging
from datetime import datetime

from class_lifecycle.config import get_class_timezone
from class_lifecycle.database import get_transaction
from class_lifecycle.enums import NotificationType
from class_lifecycle.notifications.templates import get_audience, get_message
from class_lifecycle.queries.notifications import create_notification
from class_lifecycle.timezone import format_datetime_in_timezone


logger = logging.getLogger(__name__)


def build_template_context(payload: dict) -> dict:
    """Add display-only fields (local start time) to a notification payload."""
    context = dict(payload)
    start_time = payload.get("start_time")
    if start_time:
        context["start_time_local"] = format_datetime_in_timezone(
            datetime.fromisoformat(start_time), get_class_timezone()
        )
    else:
        context["start_time_local"] = "the scheduled time"
    return context


async def send_in_app_notification(
    recipient_id: int,
    notification_type: NotificationType,
    payload: dict,
) -> None:
    """
    Deliver one notification to a user's in-app inbox.

    Args:
        recipient_id: User ID of the trainer or member
        notification_type: Which notification this is
        payload: JSON-serializable data stored with the notification and
                 used to fill the templates

    Raises:
        KeyError: If the payload lacks a variable the template needs
        SQLAlchemyError: If the insert fails
    """
    notification_type = NotificationType(notification_type)
    context = build_template_context(payload)
    audience = get_audience(payload)

    title = get_message(notification_type.value, f"{audience}_title", context)
    message = get_message(notification_type.value, f"{audience}_message", context)

    async with get_transaction() as conn:
        notification_id = await create_notification(
            conn,
            user_id=recipient_id,
            notification_type=notification_type.value,
            title=title,
            message=message,
            data=payload,
        )

    logger.debug(
        f"Stored {notification_type.value} notification {notification_id} "
        f"for user {recipient_id}"
    )
