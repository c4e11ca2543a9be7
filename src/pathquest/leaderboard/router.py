"""Leaderboard endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.database import get_session
from pathquest.leaderboard import service

router = APIRouter(prefix="/api/v1", tags=["Leaderboard"])


@router.get("/leaderboard")
async def get_leaderboard(
    period: str = Query("all_time"),
    category: str = Query("overall"),
    limit: int = Query(50),
    offset: int = Query(0),
    db: AsyncSession = Depends(get_session),
):
    """Ranked users for a period and category. Limit is clamped to 1..100."""
    return await service.query(db, period, category, limit, offset)
