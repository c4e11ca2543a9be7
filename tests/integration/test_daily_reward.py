"""Integration: daily reward claims and streak tracking."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import select

from pathquest.database import get_session_factory
from pathquest.db.models import Achievement, UserProgression, XPHistory
from pathquest.gamification.streak_service import claim_daily_reward

NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)


async def _set_streak(user_id: int, streak: int, last_login: date | None) -> None:
    async with get_session_factory()() as db:
        progression = await db.get(UserProgression, user_id)
        progression.streak_days = streak
        progression.longest_streak = streak
        progression.last_login_date = last_login
        await db.commit()


async def _claim(user_id: int, now: datetime = NOW) -> dict:
    async with get_session_factory()() as db:
        outcome = await claim_daily_reward(db, None, user_id, now=now)
        await db.commit()
        return outcome


class TestDailyReward:
    @pytest.mark.asyncio
    async def test_first_claim(self, make_user):
        user_id = await make_user()
        outcome = await _claim(user_id)

        assert outcome["success"]
        assert outcome["current_streak"] == 1
        assert outcome["base_xp"] == 10
        assert outcome["streak_bonus"] == 2
        assert outcome["xp_awarded"] == 12
        assert outcome["coins_awarded"] == 1

    @pytest.mark.asyncio
    async def test_second_consecutive_day(self, make_user):
        """Streak 1 yesterday -> streak 2 today -> 10 + 4 = 14 XP."""
        user_id = await make_user()
        await _set_streak(user_id, 1, date(2026, 3, 9))

        outcome = await _claim(user_id)

        assert outcome["current_streak"] == 2
        assert outcome["xp_awarded"] == 14
        async with get_session_factory()() as db:
            progression = await db.get(UserProgression, user_id)
            history = (await db.execute(select(XPHistory).where(XPHistory.user_id == user_id))).scalars().all()
        assert progression.total_xp == 14
        assert progression.streak_days == 2
        assert progression.last_login_date == date(2026, 3, 10)
        assert history[0].source == "daily"
        assert history[0].history_metadata["streak"] == 2

    @pytest.mark.asyncio
    async def test_same_day_claim_rejected(self, make_user):
        user_id = await make_user()
        await _claim(user_id)
        again = await _claim(user_id, NOW.replace(hour=15))

        assert again["success"] is False
        assert again["message"] == "Daily reward already claimed today"
        assert again["next_reward_in_hours"] == 9
        async with get_session_factory()() as db:
            progression = await db.get(UserProgression, user_id)
        assert progression.total_xp == 12

    @pytest.mark.asyncio
    async def test_missed_day_resets_streak(self, make_user):
        user_id = await make_user()
        await _set_streak(user_id, 5, date(2026, 3, 7))

        outcome = await _claim(user_id)

        assert outcome["current_streak"] == 1
        async with get_session_factory()() as db:
            progression = await db.get(UserProgression, user_id)
        assert progression.longest_streak == 5

    @pytest.mark.asyncio
    async def test_seven_day_streak_achievement(self, make_user):
        user_id = await make_user()
        await _set_streak(user_id, 6, date(2026, 3, 9))

        outcome = await _claim(user_id)

        assert outcome["current_streak"] == 7
        async with get_session_factory()() as db:
            achievements = (
                await db.execute(select(Achievement).where(Achievement.user_id == user_id))
            ).scalars().all()
            progression = await db.get(UserProgression, user_id)
        assert [a.title for a in achievements] == ["7 Day Streak!"]
        # 10 + 14 daily, then +70 streak bonus
        assert progression.total_xp == 94
