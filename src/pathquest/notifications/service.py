"""Notification emitter.

Notifications are:
1. Persisted in the database (inside a SAVEPOINT, so a failed insert never
   aborts the surrounding reward transaction)
2. Published on Redis pub/sub channel ``notifications:user:{id}``

Both steps are best-effort: failures are logged and swallowed.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.db.models import Notification

logger = structlog.get_logger()


class NotificationType(str, Enum):
    LEVEL_UP = "level_up"
    ACHIEVEMENT = "achievement"
    UNLOCK = "unlock"
    DAILY = "daily"
    PROJECT = "project"
    SYSTEM = "system"


def channel_for(user_id: int) -> str:
    return f"notifications:user:{user_id}"


async def emit(
    db: AsyncSession,
    user_id: int,
    title: str,
    message: str,
    type_: NotificationType | str,
    data: dict[str, Any] | None = None,
    redis: Any | None = None,
) -> Notification | None:
    """Persist a notification and publish it. Returns None if the insert failed."""
    type_value = NotificationType(type_).value
    try:
        async with db.begin_nested():
            notification = Notification(
                user_id=user_id,
                title=title,
                message=message,
                type=type_value,
                data=data or {},
                created_at=datetime.now(timezone.utc),
            )
            db.add(notification)
            await db.flush()
    except SQLAlchemyError:
        logger.warning(
            "notification_insert_failed",
            user_id=user_id,
            notification_type=type_value,
            exc_info=True,
        )
        return None

    await _publish(redis, notification)
    return notification


async def _publish(redis: Any | None, notification: Notification) -> None:
    if redis is None:
        return

    payload = {
        "event": "notification",
        "data": {
            "id": str(notification.id),
            "type": notification.type,
            "title": notification.title,
            "message": notification.message,
            "data": notification.data,
            "timestamp": notification.created_at.isoformat(),
        },
    }
    try:
        await redis.publish(channel_for(notification.user_id), json.dumps(payload))
    except Exception:
        logger.warning(
            "notification_publish_failed",
            user_id=notification.user_id,
            exc_info=True,
        )
