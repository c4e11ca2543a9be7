"""Login streak tracking and the daily reward claim."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.gamification.metadata import DailyMeta
from pathquest.gamification.trigger_engine import AchievementCategory, AchievementEvent
from pathquest.gamification.xp_service import RewardPipeline, XPSource, get_or_create_progression
from pathquest.notifications import service as notifications

logger = logging.getLogger(__name__)

DAILY_BASE_XP = 10
STREAK_BONUS_PER_DAY = 2
STREAK_BONUS_CAP = 50


def streak_bonus(streak: int) -> int:
    return min(streak * STREAK_BONUS_PER_DAY, STREAK_BONUS_CAP)


def next_streak(current: int, last_login: date | None, today: date) -> int:
    """Streak after a claim on ``today``: +1 if the last claim was yesterday, else 1."""
    if last_login is not None and last_login == today - timedelta(days=1):
        return current + 1
    return 1


async def claim_daily_reward(
    db: AsyncSession,
    redis: Any | None,
    user_id: int,
    now: datetime | None = None,
) -> dict:
    """Claim the once-per-calendar-day (UTC) login reward.

    XP = 10 + min(2 * streak, 50). A second claim on the same day returns
    ``success=False`` without touching XP.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    today = now.date()

    # Row lock serialises concurrent claims for the same user
    progression = await get_or_create_progression(db, user_id, for_update=True)

    if progression.last_login_date == today:
        return {
            "success": False,
            "message": "Daily reward already claimed today",
            "next_reward_in_hours": 24 - now.hour,
        }

    streak = next_streak(progression.streak_days, progression.last_login_date, today)
    bonus = streak_bonus(streak)
    total_xp = DAILY_BASE_XP + bonus

    progression.streak_days = streak
    progression.longest_streak = max(progression.longest_streak, streak)
    progression.last_login_date = today
    progression.updated_at = now
    await db.flush()

    pipeline = RewardPipeline(db, redis)
    result = await pipeline.award(
        user_id,
        total_xp,
        "Daily login reward",
        XPSource.DAILY,
        DailyMeta(streak=streak, streak_bonus=bonus),
    )

    await pipeline.triggers.check_and_create(
        user_id, AchievementEvent(AchievementCategory.STREAK, streak),
    )

    await notifications.emit(
        db,
        user_id,
        "\U0001f3af Daily Challenge Ready!",
        "Complete a project task or course module to earn bonus XP today.",
        notifications.NotificationType.DAILY,
        {"streak": streak},
        redis=redis,
    )

    logger.info("User %s claimed daily reward: streak=%d xp=%d", user_id, streak, total_xp)

    return {
        "success": True,
        "xp_awarded": total_xp,
        "base_xp": DAILY_BASE_XP,
        "streak_bonus": bonus,
        "current_streak": streak,
        "coins_awarded": result.coins_awarded,
        "message": f"Welcome back! {streak} day streak! \U0001f525",
    }
