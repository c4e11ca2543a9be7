"""XP award pipeline with level-up detection.

A single award can fan out: a level-up creates a milestone achievement, the
achievement grants bonus XP, and that bonus may cross another level. Each
reward event is queued and drained in FIFO order instead of recursing, and
one drain processes at most ``max_reward_cascade`` events.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.config import get_settings
from pathquest.db.base import dialect_insert
from pathquest.db.models import Achievement, User, UserProgression, XPHistory
from pathquest.errors import InvalidArgument, NotFound
from pathquest.gamification.ledger import coins_for, level_for
from pathquest.gamification.metadata import dump_metadata, parse_metadata
from pathquest.gamification.trigger_engine import AchievementCategory, AchievementEvent, TriggerEngine
from pathquest.leaderboard import service as leaderboard
from pathquest.notifications import service as notifications

logger = logging.getLogger(__name__)


class XPSource(str, Enum):
    PROJECT = "project"
    COURSE = "course"
    DAILY = "daily"
    ACHIEVEMENT = "achievement"
    MILESTONE = "milestone"
    ONBOARDING = "onboarding"


@dataclass
class RewardEvent:
    user_id: int
    amount: int
    reason: str
    source: XPSource
    metadata: BaseModel


@dataclass
class AwardResult:
    xp_awarded: int
    coins_awarded: int
    new_xp: int
    new_level: int
    leveled_up: bool
    old_level: int
    achievements: list[Achievement] = field(default_factory=list)


async def ensure_progression(db: AsyncSession, user_id: int) -> None:
    """Insert the user's progression row if it does not exist yet."""
    stmt = dialect_insert(db, UserProgression).values(
        user_id=user_id,
        updated_at=datetime.now(timezone.utc),
    )
    await db.execute(stmt.on_conflict_do_nothing(index_elements=["user_id"]))


async def get_or_create_progression(
    db: AsyncSession, user_id: int, for_update: bool = False,
) -> UserProgression:
    """Get or create the denormalized progression row for a user."""
    await ensure_progression(db, user_id)
    stmt = (
        select(UserProgression)
        .where(UserProgression.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one()


class RewardPipeline:
    """Applies XP awards for one unit of work (one request session)."""

    def __init__(
        self,
        db: AsyncSession,
        redis: Any | None = None,
        max_cascade: int | None = None,
    ) -> None:
        self.db = db
        self.redis = redis
        self.max_cascade = max_cascade if max_cascade is not None else get_settings().max_reward_cascade
        if self.max_cascade < 1:
            raise ValueError("max_cascade must be at least 1")
        self.triggers = TriggerEngine(self)
        self.achievements: list[Achievement] = []
        self._queue: deque[RewardEvent] = deque()
        self._draining = False

    async def award(
        self,
        user_id: int,
        amount: int,
        reason: str,
        source: XPSource | str,
        metadata: BaseModel | dict[str, Any] | None = None,
    ) -> AwardResult:
        """Award XP and coins, then drain every follow-on bonus.

        The returned result describes the base event; ``achievements`` lists
        every achievement created while draining.
        """
        event = await self._validate(user_id, amount, reason, source, metadata)
        if self._draining:
            raise RuntimeError("award() cannot be called while the pipeline is draining")

        seen = len(self.achievements)
        self._queue.append(event)
        results = await self.drain()
        base = results[0]
        base.achievements = self.achievements[seen:]
        return base

    def enqueue(
        self,
        user_id: int,
        amount: int,
        reason: str,
        source: XPSource | str,
        metadata: BaseModel,
    ) -> None:
        """Queue a follow-on reward event (achievement bonuses)."""
        self._queue.append(RewardEvent(user_id, amount, reason, XPSource(source), metadata))

    def record_achievement(self, achievement: Achievement) -> None:
        self.achievements.append(achievement)

    async def drain(self) -> list[AwardResult]:
        """Apply queued events in FIFO order until empty or the bound is hit."""
        if self._draining:
            return []

        self._draining = True
        results: list[AwardResult] = []
        try:
            while self._queue:
                if len(results) >= self.max_cascade:
                    logger.error(
                        "Reward cascade limit (%d) reached; dropping %d pending events",
                        self.max_cascade, len(self._queue),
                    )
                    self._queue.clear()
                    break
                results.append(await self._apply(self._queue.popleft()))
        finally:
            self._draining = False
        return results

    async def _validate(
        self,
        user_id: int,
        amount: int,
        reason: str,
        source: XPSource | str,
        metadata: BaseModel | dict[str, Any] | None,
    ) -> RewardEvent:
        if amount <= 0:
            raise InvalidArgument("XP amount must be positive", amount=amount)
        try:
            source = XPSource(source)
        except ValueError as exc:
            raise InvalidArgument(
                f"Invalid XP source: {source}",
                allowed=[s.value for s in XPSource],
            ) from exc
        meta = parse_metadata(metadata)

        user = await self.db.execute(select(User.id).where(User.id == user_id))
        if user.scalar_one_or_none() is None:
            raise NotFound("User not found", user_id=user_id)

        return RewardEvent(user_id, amount, reason, source, meta)

    async def _apply(self, event: RewardEvent) -> AwardResult:
        """Apply one event.

        1. Atomically add XP and coins to user_progression
        2. Raise current_level if a boundary was crossed
        3. Append xp_history
        4. On level-up: milestone achievement (queues its bonus) + notification
        5. Refresh leaderboard cache rows
        """
        now = datetime.now(timezone.utc)
        coins = coins_for(event.amount)

        await ensure_progression(self.db, event.user_id)
        new_xp = (
            await self.db.execute(
                update(UserProgression)
                .where(UserProgression.user_id == event.user_id)
                .values(
                    total_xp=UserProgression.total_xp + event.amount,
                    total_coins=UserProgression.total_coins + coins,
                    last_activity=now,
                    updated_at=now,
                )
                .returning(UserProgression.total_xp)
            )
        ).scalar_one()

        old_level = level_for(new_xp - event.amount)
        new_level = level_for(new_xp)
        leveled_up = new_level > old_level

        if leveled_up:
            # Concurrent awards may finish out of order; never lower the level
            await self.db.execute(
                update(UserProgression)
                .where(
                    UserProgression.user_id == event.user_id,
                    UserProgression.current_level < new_level,
                )
                .values(current_level=new_level)
            )

        self.db.add(XPHistory(
            user_id=event.user_id,
            amount=event.amount,
            reason=event.reason,
            source=event.source.value,
            history_metadata=dump_metadata(event.metadata),
            created_at=now,
        ))
        await self.db.flush()

        if leveled_up:
            logger.info("User %s leveled up: %d -> %d", event.user_id, old_level, new_level)
            await self.triggers.check_and_create(
                event.user_id,
                AchievementEvent(AchievementCategory.LEVEL, new_level, previous=old_level),
            )
            await notifications.emit(
                self.db,
                event.user_id,
                f"\U0001f389 Level Up! You're now Level {new_level}",
                f"Amazing work! You've earned {coins} coins as a bonus.",
                notifications.NotificationType.LEVEL_UP,
                {"old_level": old_level, "new_level": new_level, "coins_awarded": coins},
                redis=self.redis,
            )

        await leaderboard.refresh(self.db, event.user_id)

        return AwardResult(
            xp_awarded=event.amount,
            coins_awarded=coins,
            new_xp=new_xp,
            new_level=new_level,
            leveled_up=leveled_up,
            old_level=old_level,
        )
