"""Integration: leaderboard ranking from live progression and the cache."""

from __future__ import annotations

import pytest
from sqlalchemy import update

from pathquest.database import get_session_factory
from pathquest.db.models import LeaderboardCache, UserProgression
from pathquest.errors import InvalidArgument
from pathquest.gamification.xp_service import RewardPipeline, XPSource
from pathquest.leaderboard import service as leaderboard


async def _award(user_id: int, amount: int) -> None:
    async with get_session_factory()() as db:
        await RewardPipeline(db).award(user_id, amount, "Seed", XPSource.COURSE)
        await db.commit()


async def _query(**kwargs) -> dict:
    async with get_session_factory()() as db:
        return await leaderboard.query(db, **kwargs)


class TestLeaderboard:
    @pytest.mark.asyncio
    async def test_all_time_orders_by_xp(self, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        carol = await make_user("Carol")
        await _award(alice, 300)
        await _award(bob, 700)
        await _award(carol, 500)

        board = await _query()

        assert board["success"]
        assert board["total"] == 3
        assert [e["user"]["name"] for e in board["leaderboard"]] == ["Bob", "Carol", "Alice"]
        assert [e["rank"] for e in board["leaderboard"]] == [1, 2, 3]
        assert board["leaderboard"][0]["score"] == 700
        assert board["leaderboard"][0]["coins"] == 70

    @pytest.mark.asyncio
    async def test_ties_broken_by_user_id(self, make_user):
        first = await make_user("First")
        second = await make_user("Second")
        await _award(second, 100)
        await _award(first, 100)

        board = await _query()
        assert [e["user"]["id"] for e in board["leaderboard"]] == [first, second]

    @pytest.mark.asyncio
    async def test_streak_category(self, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        async with get_session_factory()() as db:
            await db.execute(update(UserProgression).where(UserProgression.user_id == alice).values(streak_days=9))
            await db.execute(update(UserProgression).where(UserProgression.user_id == bob).values(streak_days=3))
            await db.commit()

        board = await _query(category="streak")
        assert [e["user"]["name"] for e in board["leaderboard"]] == ["Alice", "Bob"]
        assert board["leaderboard"][0]["score"] == 9

    @pytest.mark.asyncio
    async def test_weekly_reads_cache(self, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        await _award(alice, 200)
        await _award(bob, 400)

        board = await _query(period="weekly")
        assert [e["user"]["name"] for e in board["leaderboard"]] == ["Bob", "Alice"]
        assert board["total"] == 2

    @pytest.mark.asyncio
    async def test_cached_rank_takes_precedence(self, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        await _award(alice, 200)
        await _award(bob, 400)
        async with get_session_factory()() as db:
            await db.execute(
                update(LeaderboardCache)
                .where(LeaderboardCache.user_id == alice, LeaderboardCache.period == "monthly")
                .values(rank=1)
            )
            await db.commit()

        board = await _query(period="monthly")
        assert board["leaderboard"][0]["user"]["name"] == "Alice"
        assert board["leaderboard"][0]["rank"] == 1

    @pytest.mark.asyncio
    async def test_limit_clamped(self, make_user):
        await make_user()
        board = await _query(limit=1000, offset=-5)
        assert board["limit"] == 100
        assert board["offset"] == 0

    @pytest.mark.asyncio
    async def test_invalid_period(self, database):
        with pytest.raises(InvalidArgument):
            await _query(period="yearly")

    @pytest.mark.asyncio
    async def test_invalid_category(self, database):
        with pytest.raises(InvalidArgument):
            await _query(category="karma")
