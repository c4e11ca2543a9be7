"""Leaderboard cache and read path.

Writes: after every XP award the user's ``overall`` rows are upserted for
every period. Reads: ``all_time`` is served from the live progression table,
the shorter periods from ``leaderboard_cache``.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.db.base import dialect_insert
from pathquest.db.models import LeaderboardCache, User, UserProgression, UserProjectProgress
from pathquest.errors import InvalidArgument

logger = structlog.get_logger()

PERIODS = ("daily", "weekly", "monthly", "all_time")
CATEGORIES = ("overall", "streak", "coins", "projects")
MAX_LIMIT = 100


async def refresh(db: AsyncSession, user_id: int) -> None:
    """Upsert the user's overall score into every period. Best-effort."""
    try:
        async with db.begin_nested():
            total_xp = (
                await db.execute(
                    select(UserProgression.total_xp).where(UserProgression.user_id == user_id)
                )
            ).scalar_one_or_none()
            if total_xp is None:
                return

            now = datetime.now(timezone.utc)
            for period in PERIODS:
                stmt = dialect_insert(db, LeaderboardCache).values(
                    user_id=user_id,
                    period=period,
                    category="overall",
                    score=total_xp,
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["user_id", "period", "category"],
                    set_={"score": stmt.excluded.score, "updated_at": stmt.excluded.updated_at},
                )
                await db.execute(stmt)
    except SQLAlchemyError:
        logger.warning("leaderboard_refresh_failed", user_id=user_id, exc_info=True)


def _user_summary(user: User, progression: UserProgression | None) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "photo_url": user.photo_url,
        "level": progression.current_level if progression else 1,
        "college": user.college,
        "major": user.major,
    }


def _completed_counts():
    return (
        select(
            UserProjectProgress.user_id.label("user_id"),
            func.count().label("projects_completed"),
        )
        .where(UserProjectProgress.status == "completed")
        .group_by(UserProjectProgress.user_id)
        .subquery()
    )


async def query(
    db: AsyncSession,
    period: str = "all_time",
    category: str = "overall",
    limit: int = 50,
    offset: int = 0,
) -> dict:
    """Return one page of the leaderboard for ``(period, category)``."""
    if period not in PERIODS:
        raise InvalidArgument(f"Invalid period: {period}", allowed=list(PERIODS))
    if category not in CATEGORIES:
        raise InvalidArgument(f"Invalid category: {category}", allowed=list(CATEGORIES))
    limit = max(1, min(limit, MAX_LIMIT))
    offset = max(0, offset)

    if period == "all_time":
        entries, total = await _query_live(db, category, limit, offset)
    else:
        entries, total = await _query_cache(db, period, category, limit, offset)

    return {
        "success": True,
        "leaderboard": entries,
        "period": period,
        "category": category,
        "total": total,
        "limit": limit,
        "offset": offset,
    }


async def _query_live(
    db: AsyncSession, category: str, limit: int, offset: int,
) -> tuple[list[dict], int]:
    completed = _completed_counts()
    projects_completed = func.coalesce(completed.c.projects_completed, 0)
    score_columns = {
        "overall": UserProgression.total_xp,
        "streak": UserProgression.streak_days,
        "coins": UserProgression.total_coins,
        "projects": projects_completed,
    }

    result = await db.execute(
        select(User, UserProgression, projects_completed.label("projects_completed"))
        .join(UserProgression, UserProgression.user_id == User.id)
        .outerjoin(completed, completed.c.user_id == User.id)
        .order_by(score_columns[category].desc(), User.id.asc())
        .offset(offset)
        .limit(limit)
    )

    entries = []
    for index, (user, progression, projects) in enumerate(result.all()):
        scores = {
            "overall": progression.total_xp,
            "streak": progression.streak_days,
            "coins": progression.total_coins,
            "projects": projects,
        }
        entries.append({
            "rank": offset + index + 1,
            "user": _user_summary(user, progression),
            "score": scores[category],
            "xp": progression.total_xp,
            "coins": progression.total_coins,
            "streak": progression.streak_days,
            "projects_completed": projects,
        })

    total = (
        await db.execute(select(func.count()).select_from(UserProgression))
    ).scalar_one()
    return entries, total


async def _query_cache(
    db: AsyncSession, period: str, category: str, limit: int, offset: int,
) -> tuple[list[dict], int]:
    filters = (LeaderboardCache.period == period, LeaderboardCache.category == category)

    result = await db.execute(
        select(LeaderboardCache, User, UserProgression)
        .join(User, User.id == LeaderboardCache.user_id)
        .outerjoin(UserProgression, UserProgression.user_id == LeaderboardCache.user_id)
        .where(*filters)
        .order_by(
            LeaderboardCache.rank.asc().nulls_last(),
            LeaderboardCache.score.desc(),
            LeaderboardCache.user_id.asc(),
        )
        .offset(offset)
        .limit(limit)
    )

    entries = [
        {
            "rank": row.rank or offset + index + 1,
            "user": _user_summary(user, progression),
            "score": row.score,
            "period": period,
            "category": category,
        }
        for index, (row, user, progression) in enumerate(result.all())
    ]

    total = (
        await db.execute(select(func.count()).select_from(LeaderboardCache).where(*filters))
    ).scalar_one()
    return entries, total
