"""User provisioning."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from pathquest.db.models import User, UserProgression

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


async def create_user(
    db: AsyncSession,
    name: str,
    email: str | None = None,
    auth_uid: str | None = None,
    college: str | None = None,
    major: str | None = None,
) -> User:
    """Create a user together with their progression row (level 1, 0 XP)."""
    now = datetime.now(timezone.utc)
    user = User(
        name=name,
        email=email,
        auth_uid=auth_uid,
        college=college,
        major=major,
        created_at=now,
    )
    db.add(user)
    await db.flush()

    db.add(UserProgression(user_id=user.id, updated_at=now))
    await db.flush()

    logger.info("user_created", user_id=user.id)
    return user
