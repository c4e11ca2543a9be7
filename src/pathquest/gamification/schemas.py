"""Pydantic request/response models for gamification endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# --- Achievements ---


class AchievementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    achievement_type: str
    title: str
    description: str
    rarity: str
    xp_bonus: int
    coin_bonus: int
    created_at: datetime | None = None


class AchievementsResponse(BaseModel):
    achievements: list[AchievementResponse]
    total: int


# --- XP ---


class AwardXPRequest(BaseModel):
    user_id: int
    amount: int = Field(gt=0)
    reason: str = Field(min_length=1, max_length=256)
    source: str
    metadata: dict[str, Any] | None = None


class AwardXPResponse(BaseModel):
    success: bool = True
    xp_awarded: int
    coins_awarded: int
    new_xp: int
    new_level: int
    leveled_up: bool
    old_level: int
    achievements: list[AchievementResponse] = []


class ProgressionResponse(BaseModel):
    user_id: int
    total_xp: int
    level: int
    xp_into_level: int
    xp_for_level: int
    next_level: int
    next_level_xp: int
    total_coins: int
    streak_days: int
    longest_streak: int
    last_login_date: date | None = None
    projects_completed: int = 0


class XPHistoryEntry(BaseModel):
    amount: int
    reason: str
    source: str
    metadata: dict[str, Any] = {}
    created_at: datetime | None = None


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


# --- Daily reward ---


class DailyRewardResponse(BaseModel):
    success: bool
    message: str
    xp_awarded: int | None = None
    base_xp: int | None = None
    streak_bonus: int | None = None
    current_streak: int | None = None
    coins_awarded: int | None = None
    next_reward_in_hours: int | None = None
