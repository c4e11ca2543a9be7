"""Achievement trigger engine: evaluates progression counters against milestone rules."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from pathquest.db.models import Achievement
from pathquest.gamification.metadata import AchievementMeta
from pathquest.notifications import service as notifications

if TYPE_CHECKING:
    from pathquest.gamification.xp_service import RewardPipeline

logger = logging.getLogger(__name__)

PROJECT_THRESHOLDS = (1, 5, 10, 25, 50)
STREAK_THRESHOLDS = (7, 14, 30, 60, 100)


class AchievementCategory(str, Enum):
    LEVEL = "level"
    PROJECTS = "projects"
    STREAK = "streak"


class Rarity(str, Enum):
    COMMON = "Common"
    RARE = "Rare"
    EPIC = "Epic"
    LEGENDARY = "Legendary"


@dataclass(frozen=True)
class AchievementEvent:
    """A progression counter reached ``count``.

    ``previous`` is the counter value before the change. When given, the
    highest threshold crossed in ``(previous, count]`` fires; otherwise the
    match is exact.
    """

    category: AchievementCategory
    count: int
    previous: int | None = None


@dataclass(frozen=True)
class AchievementSpec:
    achievement_type: str
    title: str
    description: str
    rarity: Rarity
    xp_bonus: int
    coin_bonus: int


def project_rarity(count: int) -> Rarity:
    if count >= 50:
        return Rarity.LEGENDARY
    if count >= 25:
        return Rarity.EPIC
    if count >= 10:
        return Rarity.RARE
    return Rarity.COMMON


def streak_rarity(days: int) -> Rarity:
    if days >= 100:
        return Rarity.LEGENDARY
    if days >= 30:
        return Rarity.EPIC
    if days >= 14:
        return Rarity.RARE
    return Rarity.COMMON


def _threshold_hit(thresholds: tuple[int, ...], count: int, previous: int | None) -> int | None:
    if previous is None:
        return count if count in thresholds else None
    crossed = [t for t in thresholds if previous < t <= count]
    return max(crossed) if crossed else None


def match_rule(event: AchievementEvent) -> AchievementSpec | None:
    """Return the achievement earned by ``event``, if any. Pure."""
    if event.category is AchievementCategory.LEVEL:
        if event.previous is not None and event.count <= event.previous:
            return None
        return AchievementSpec(
            achievement_type="milestone",
            title=f"Reached Level {event.count}!",
            description=f"You've leveled up to level {event.count}. Keep pushing forward!",
            rarity=Rarity.EPIC,
            xp_bonus=100,
            coin_bonus=50,
        )

    if event.category is AchievementCategory.PROJECTS:
        n = _threshold_hit(PROJECT_THRESHOLDS, event.count, event.previous)
        if n is None:
            return None
        return AchievementSpec(
            achievement_type="project",
            title=f"{n} Projects Completed!",
            description=f"You've successfully completed {n} projects. Impressive portfolio!",
            rarity=project_rarity(n),
            xp_bonus=n * 50,
            coin_bonus=n * 10,
        )

    if event.category is AchievementCategory.STREAK:
        n = _threshold_hit(STREAK_THRESHOLDS, event.count, event.previous)
        if n is None:
            return None
        return AchievementSpec(
            achievement_type="streak",
            title=f"{n} Day Streak!",
            description=f"Incredible dedication! You've logged in for {n} consecutive days.",
            rarity=streak_rarity(n),
            xp_bonus=n * 10,
            coin_bonus=n * 5,
        )

    return None


class TriggerEngine:
    """Creates achievements and feeds their bonus XP back into the reward pipeline."""

    def __init__(self, pipeline: RewardPipeline) -> None:
        self.pipeline = pipeline
        self.db = pipeline.db
        self.redis = pipeline.redis

    async def check_and_create(self, user_id: int, event: AchievementEvent) -> Achievement | None:
        """Evaluate ``event``; create the matching achievement if one fires.

        Not deduplicated: callers invoke once per qualifying counter change.
        """
        rule = match_rule(event)
        if rule is None:
            return None

        achievement = Achievement(
            user_id=user_id,
            achievement_type=rule.achievement_type,
            title=rule.title,
            description=rule.description,
            rarity=rule.rarity.value,
            xp_bonus=rule.xp_bonus,
            coin_bonus=rule.coin_bonus,
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(achievement)
        await self.db.flush()

        logger.info(
            "Achievement '%s' (%s) created for user %s",
            rule.title, rule.rarity.value, user_id,
        )

        if rule.xp_bonus > 0:
            self.pipeline.enqueue(
                user_id,
                rule.xp_bonus,
                f"Achievement: {rule.title}",
                "achievement",
                AchievementMeta(achievement_id=achievement.id, rarity=rule.rarity.value),
            )

        await notifications.emit(
            self.db,
            user_id,
            "\U0001f3c6 Achievement Unlocked!",
            rule.title,
            notifications.NotificationType.ACHIEVEMENT,
            {"achievement_id": achievement.id, "rarity": rule.rarity.value},
            redis=self.redis,
        )

        self.pipeline.record_achievement(achievement)
        # Outside an active drain (e.g. project-count or streak checks) the
        # bonus is applied right away.
        await self.pipeline.drain()
        return achievement
