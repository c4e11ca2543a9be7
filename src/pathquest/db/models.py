"""ORM models for the progression engine.

PostgreSQL is the production store; every model also maps cleanly onto
SQLite so the test-suite can run against aiosqlite.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pathquest.db.base import Base, BigIntPK, JSONType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Platform user profile."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    auth_uid: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), unique=True, nullable=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    college: Mapped[str | None] = mapped_column(String(128), nullable=True)
    major: Mapped[str | None] = mapped_column(String(128), nullable=True)
    onboarding_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    onboarding_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    progression: Mapped[UserProgression | None] = relationship(
        "UserProgression", back_populates="user", uselist=False
    )


class UserProgression(Base):
    """Denormalized progression snapshot, one row per user."""

    __tablename__ = "user_progression"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    total_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_coins: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_login_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_activity: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    user: Mapped[User] = relationship("User", back_populates="progression")


# ---------------------------------------------------------------------------
# Ledger, achievements, notifications
# ---------------------------------------------------------------------------


class XPHistory(Base):
    """Append-only XP audit trail. Running sum per user equals total_xp."""

    __tablename__ = "xp_history"
    __table_args__ = (Index("idx_xp_history_user", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(256), nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    history_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Achievement(Base):
    """Immutable achievement record created by the trigger engine."""

    __tablename__ = "achievements"
    __table_args__ = (Index("idx_achievements_user", "user_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    achievement_type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    rarity: Mapped[str] = mapped_column(String(16), nullable=False)
    xp_bonus: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    coin_bonus: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Notification(Base):
    """Persisted user notifications (append-only)."""

    __tablename__ = "notifications"
    __table_args__ = (Index("idx_notifications_user", "user_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class LeaderboardCache(Base):
    """Denormalized ranking view. user_progression stays authoritative."""

    __tablename__ = "leaderboard_cache"
    __table_args__ = (
        UniqueConstraint("user_id", "period", "category", name="leaderboard_cache_user_period_category_key"),
        Index("idx_leaderboard_cache_lookup", "period", "category", "rank"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    period: Mapped[str] = mapped_column(String(16), nullable=False)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    score: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Projects & dependency graph
# ---------------------------------------------------------------------------


class Project(Base):
    """A learning project. Catalogue projects have no owner; roadmap projects do."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    owner_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    slug: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="General")
    difficulty: Mapped[str] = mapped_column(String(32), nullable=False, default="Intermediate")
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=200)
    coin_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    time_estimate_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    required_skills: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    tasks: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    completion_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trending_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ProjectPrerequisite(Base):
    """Directed edge: ``project_id`` requires ``prerequisite_id``. Kept acyclic."""

    __tablename__ = "project_prerequisites"
    __table_args__ = (Index("idx_project_prereqs_prereq", "prerequisite_id"),)

    project_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True
    )
    prerequisite_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True
    )


class UserProjectProgress(Base):
    """Per-user project state: locked -> unlocked -> completed."""

    __tablename__ = "user_project_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "project_id", name="user_project_progress_user_project_key"),
        Index("idx_user_project_progress_status", "user_id", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    project_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="locked")
    progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    github_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    demo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    submission_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    unlocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class UserSkill(Base):
    """Skill level per user; gates project unlocking."""

    __tablename__ = "user_skills"
    __table_args__ = (UniqueConstraint("user_id", "skill_name", name="user_skills_user_skill_key"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    skill_name: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="General")
    current_level: Mapped[str] = mapped_column(String(32), nullable=False, default="Beginner")
    target_level: Mapped[str | None] = mapped_column(String(32), nullable=True)
    proficiency_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    importance_score: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    is_gap: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


# ---------------------------------------------------------------------------
# Generated content
# ---------------------------------------------------------------------------


class GenerationCacheEntry(Base):
    """Content-addressed memo of an externally generated artifact."""

    __tablename__ = "generation_cache"
    __table_args__ = (
        UniqueConstraint("user_id", "artifact_type", "content_hash", name="generation_cache_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    artifact_type: Mapped[str] = mapped_column(String(32), nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    artifact: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    source_ref: Mapped[str | None] = mapped_column(Text, nullable=True)
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class RoadmapNode(Base):
    """One node of a user's generated career roadmap."""

    __tablename__ = "roadmap_nodes"
    __table_args__ = (Index("idx_roadmap_nodes_user", "user_id", "order_index"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    node_type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    position_x: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    position_y: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="locked")
    progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    coin_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    time_estimate_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    required_skills: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    prerequisites: Mapped[list[int]] = mapped_column(JSONType, nullable=False, default=list)
    difficulty: Mapped[str] = mapped_column(String(32), nullable=False, default="Intermediate")
    background_theme: Mapped[str] = mapped_column(String(32), nullable=False, default="grassland")
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    external_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    resource_links: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Course(Base):
    """Course catalogue entry recommended by roadmap generation."""

    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    platform: Mapped[str] = mapped_column(String(64), nullable=False, default="Online")
    url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    difficulty: Mapped[str] = mapped_column(String(32), nullable=False, default="Beginner")
    is_free: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    skills_covered: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=4.5)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
