"""Gamification API endpoints: XP award, progression, history, achievements, daily reward."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.auth.dependencies import get_current_user
from pathquest.database import get_session
from pathquest.db.models import Achievement, User, XPHistory
from pathquest.errors import Forbidden
from pathquest.gamification.ledger import level_progress
from pathquest.gamification.schemas import (
    AchievementResponse,
    AchievementsResponse,
    AwardXPRequest,
    AwardXPResponse,
    DailyRewardResponse,
    ProgressionResponse,
    XPHistoryEntry,
    XPHistoryResponse,
)
from pathquest.gamification.streak_service import claim_daily_reward
from pathquest.gamification.xp_service import RewardPipeline, get_or_create_progression
from pathquest.projects.graph_service import count_completed
from pathquest.redis_client import get_optional_redis

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


@router.post("/xp/award", response_model=AwardXPResponse)
async def award_xp(
    body: AwardXPRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis=Depends(get_optional_redis),
):
    """Award XP to the calling user (service-to-service hook)."""
    if body.user_id != user.id:
        raise Forbidden("Cannot award XP to another user")

    result = await RewardPipeline(db, redis).award(
        body.user_id, body.amount, body.reason, body.source, body.metadata,
    )
    await db.commit()

    return AwardXPResponse(
        xp_awarded=result.xp_awarded,
        coins_awarded=result.coins_awarded,
        new_xp=result.new_xp,
        new_level=result.new_level,
        leveled_up=result.leveled_up,
        old_level=result.old_level,
        achievements=[AchievementResponse.model_validate(a) for a in result.achievements],
    )


@router.get("/users/me/progression", response_model=ProgressionResponse)
async def get_my_progression(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get XP, level, coins and streak summary."""
    progression = await get_or_create_progression(db, user.id)
    info = level_progress(progression.total_xp)
    completed = await count_completed(db, user.id)
    await db.commit()

    return ProgressionResponse(
        user_id=user.id,
        total_xp=progression.total_xp,
        level=progression.current_level,
        xp_into_level=info["xp_into_level"],
        xp_for_level=info["xp_for_level"],
        next_level=info["next_level"],
        next_level_xp=info["next_level_xp"],
        total_coins=progression.total_coins,
        streak_days=progression.streak_days,
        longest_streak=progression.longest_streak,
        last_login_date=progression.last_login_date,
        projects_completed=completed,
    )


@router.get("/users/me/xp/history", response_model=XPHistoryResponse)
async def get_xp_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get paginated XP history, most recent first."""
    total = (
        await db.execute(
            select(func.count()).select_from(XPHistory).where(XPHistory.user_id == user.id)
        )
    ).scalar_one()

    result = await db.execute(
        select(XPHistory)
        .where(XPHistory.user_id == user.id)
        .order_by(XPHistory.created_at.desc(), XPHistory.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    entries = [
        XPHistoryEntry(
            amount=row.amount,
            reason=row.reason,
            source=row.source,
            metadata=row.history_metadata or {},
            created_at=row.created_at,
        )
        for row in result.scalars()
    ]

    return XPHistoryResponse(entries=entries, total=total, page=page, per_page=per_page)


@router.get("/users/me/achievements", response_model=AchievementsResponse)
async def get_my_achievements(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get the user's achievements, newest first."""
    result = await db.execute(
        select(Achievement)
        .where(Achievement.user_id == user.id)
        .order_by(Achievement.created_at.desc(), Achievement.id.desc())
    )
    achievements = [AchievementResponse.model_validate(a) for a in result.scalars()]
    return AchievementsResponse(achievements=achievements, total=len(achievements))


@router.post(
    "/rewards/daily",
    response_model=DailyRewardResponse,
    response_model_exclude_none=True,
)
async def claim_daily(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis=Depends(get_optional_redis),
):
    """Claim the daily login reward."""
    outcome = await claim_daily_reward(db, redis, user.id)
    await db.commit()
    return DailyRewardResponse(**outcome)
