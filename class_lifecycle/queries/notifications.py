"""Database queries for the in-app notification inbox."""

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncConnection

from ..tables import notifications


async def create_notification(
    conn: AsyncConnection,
    user_id: int,
    notification_type: str,
    title: str,
    message: str,
    data: dict | None = None,
) -> int:
    """
    Insert an unread notification.

    Returns:
        The new notification_id
    """
    result = await conn.execute(
        insert(notifications)
        .values(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            data=data,
            is_read=False,
        )
        .returning(notifications.c.notification_id)
    )
    return result.scalar_one()


async def get_notifications_for_user(
    conn: AsyncConnection,
    user_id: int,
) -> list[dict]:
    """Get a user's notifications, oldest first."""
    result = await conn.execute(
        select(notifications)
        .where(notifications.c.user_id == user_id)
        .order_by(notifications.c.notification_id)
    )
    return [dict(row._mapping) for row in result]
