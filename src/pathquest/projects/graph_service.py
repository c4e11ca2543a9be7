"""Per-user project dependency graph: unlock, complete and cascade.

Project state per user is ``locked -> unlocked -> completed``. A missing
progress row reads as ``locked``. Status transitions are guarded writes
(``... WHERE status = <expected>``) so concurrent requests can never award
the same transition twice.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.config import get_settings
from pathquest.db.base import dialect_insert
from pathquest.db.models import (
    Project,
    ProjectPrerequisite,
    RoadmapNode,
    UserProjectProgress,
    UserSkill,
)
from pathquest.errors import Forbidden, InvalidArgument, NotFound
from pathquest.gamification.metadata import ProjectMeta, ProjectUnlockMeta
from pathquest.gamification.trigger_engine import AchievementCategory, AchievementEvent
from pathquest.gamification.xp_service import RewardPipeline, XPSource, get_or_create_progression
from pathquest.notifications import service as notifications

logger = logging.getLogger(__name__)


class ProjectStatus(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    COMPLETED = "completed"


@dataclass
class Submission:
    github_url: str | None = None
    demo_url: str | None = None
    notes: str | None = None
    completed_tasks: list[str] = field(default_factory=list)


@dataclass
class UnlockResult:
    unlocked: bool
    status: ProjectStatus
    project: Project
    xp_awarded: int = 0


@dataclass
class CompletionResult:
    completed: bool
    message: str
    xp_awarded: int = 0
    coins_awarded: int = 0
    new_level: int | None = None
    leveled_up: bool = False
    newly_unlocked_projects: list[str] = field(default_factory=list)
    total_projects_completed: int = 0
    achievements: list[Any] = field(default_factory=list)


def _visible_to(user_id: int):
    return or_(Project.owner_id.is_(None), Project.owner_id == user_id)


# ---------------------------------------------------------------------------
# Graph construction
# ---------------------------------------------------------------------------


async def get_project(db: AsyncSession, project_id: int, user_id: int | None = None) -> Project:
    """Load a project, optionally restricted to what ``user_id`` can see."""
    stmt = select(Project).where(Project.id == project_id)
    if user_id is not None:
        stmt = stmt.where(_visible_to(user_id))
    project = (await db.execute(stmt)).scalar_one_or_none()
    if project is None:
        raise NotFound("Project not found", project_id=project_id)
    return project


async def prerequisite_ids(db: AsyncSession, project_id: int) -> list[int]:
    result = await db.execute(
        select(ProjectPrerequisite.prerequisite_id)
        .where(ProjectPrerequisite.project_id == project_id)
        .order_by(ProjectPrerequisite.prerequisite_id)
    )
    return list(result.scalars())


async def _load_edges(db: AsyncSession) -> dict[int, set[int]]:
    result = await db.execute(
        select(ProjectPrerequisite.project_id, ProjectPrerequisite.prerequisite_id)
    )
    edges: dict[int, set[int]] = {}
    for project_id, prereq_id in result:
        edges.setdefault(project_id, set()).add(prereq_id)
    return edges


def _reaches(edges: dict[int, set[int]], start: int, target: int) -> bool:
    """Depth-first search along prerequisite edges."""
    stack = [start]
    seen: set[int] = set()
    while stack:
        node = stack.pop()
        if node == target:
            return True
        if node in seen:
            continue
        seen.add(node)
        stack.extend(edges.get(node, ()))
    return False


async def add_prerequisites(
    db: AsyncSession, project_id: int, prereq_ids: Iterable[int],
) -> None:
    """Add ``project_id requires p`` edges, keeping the graph acyclic."""
    wanted = sorted(set(prereq_ids))
    if not wanted:
        return

    if project_id in wanted:
        raise InvalidArgument("A project cannot be its own prerequisite", project_id=project_id)

    known = set(
        (await db.execute(select(Project.id).where(Project.id.in_([project_id, *wanted])))).scalars()
    )
    unknown = [pid for pid in [project_id, *wanted] if pid not in known]
    if unknown:
        raise NotFound("Unknown project in prerequisite list", project_ids=unknown)

    edges = await _load_edges(db)
    for prereq_id in wanted:
        if _reaches(edges, prereq_id, project_id):
            raise InvalidArgument(
                "Prerequisite would create a dependency cycle",
                project_id=project_id,
                prerequisite_id=prereq_id,
            )

    existing = edges.get(project_id, set())
    for prereq_id in wanted:
        if prereq_id not in existing:
            db.add(ProjectPrerequisite(project_id=project_id, prerequisite_id=prereq_id))
    await db.flush()


async def create_project(
    db: AsyncSession,
    *,
    title: str,
    description: str = "",
    category: str = "General",
    difficulty: str = "Intermediate",
    xp_reward: int = 200,
    coin_reward: int = 50,
    time_estimate_hours: int = 10,
    required_skills: Sequence[str] = (),
    tasks: Sequence[dict] = (),
    owner_id: int | None = None,
    slug: str | None = None,
    prerequisites: Iterable[int] = (),
) -> Project:
    """Insert a project and its prerequisite edges."""
    if xp_reward <= 0:
        raise InvalidArgument("Project XP reward must be positive", xp_reward=xp_reward)
    project = Project(
        title=title,
        description=description,
        category=category,
        difficulty=difficulty,
        xp_reward=xp_reward,
        coin_reward=coin_reward,
        time_estimate_hours=time_estimate_hours,
        required_skills=list(required_skills),
        tasks=list(tasks),
        owner_id=owner_id,
        slug=slug,
        created_at=datetime.now(timezone.utc),
    )
    db.add(project)
    await db.flush()
    await add_prerequisites(db, project.id, prerequisites)
    return project


async def materialise_locked(db: AsyncSession, user_id: int, project_ids: Iterable[int]) -> None:
    """Create explicit ``locked`` progress rows; existing rows are left alone."""
    for project_id in project_ids:
        stmt = dialect_insert(db, UserProjectProgress).values(
            user_id=user_id,
            project_id=project_id,
            status=ProjectStatus.LOCKED.value,
            progress_percentage=0,
            submission_data={},
        )
        await db.execute(stmt.on_conflict_do_nothing(index_elements=["user_id", "project_id"]))


# ---------------------------------------------------------------------------
# Status reads
# ---------------------------------------------------------------------------


async def _progress_row(db: AsyncSession, user_id: int, project_id: int) -> UserProjectProgress | None:
    result = await db.execute(
        select(UserProjectProgress)
        .where(
            UserProjectProgress.user_id == user_id,
            UserProjectProgress.project_id == project_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_status(db: AsyncSession, user_id: int, project_id: int) -> ProjectStatus:
    """Current status; no row means LOCKED."""
    row = await _progress_row(db, user_id, project_id)
    return ProjectStatus(row.status) if row else ProjectStatus.LOCKED


async def _completed_ids(db: AsyncSession, user_id: int, project_ids: Iterable[int] | None = None) -> set[int]:
    stmt = select(UserProjectProgress.project_id).where(
        UserProjectProgress.user_id == user_id,
        UserProjectProgress.status == ProjectStatus.COMPLETED.value,
    )
    if project_ids is not None:
        stmt = stmt.where(UserProjectProgress.project_id.in_(list(project_ids)))
    return set((await db.execute(stmt)).scalars())


async def count_completed(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(UserProjectProgress).where(
            UserProjectProgress.user_id == user_id,
            UserProjectProgress.status == ProjectStatus.COMPLETED.value,
        )
    )
    return result.scalar_one()


async def _guarded_unlock(db: AsyncSession, user_id: int, project_id: int) -> bool:
    """Upsert to ``unlocked`` only from ``locked`` (or no row). True if this call transitioned it."""
    now = datetime.now(timezone.utc)
    stmt = dialect_insert(db, UserProjectProgress).values(
        user_id=user_id,
        project_id=project_id,
        status=ProjectStatus.UNLOCKED.value,
        progress_percentage=0,
        submission_data={},
        unlocked_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "project_id"],
        set_={"status": ProjectStatus.UNLOCKED.value, "unlocked_at": now},
        where=UserProjectProgress.status == ProjectStatus.LOCKED.value,
    ).returning(UserProjectProgress.id)
    return (await db.execute(stmt)).scalar_one_or_none() is not None


# ---------------------------------------------------------------------------
# Unlock
# ---------------------------------------------------------------------------


async def _check_skill_gate(db: AsyncSession, user_id: int, required: Sequence[str]) -> None:
    if not required:
        return

    result = await db.execute(
        select(UserSkill.skill_name, UserSkill.proficiency_score).where(
            UserSkill.user_id == user_id,
            UserSkill.skill_name.in_(list(required)),
        )
    )
    have = dict(result.all())

    missing = [s for s in required if s not in have]
    if missing:
        raise Forbidden(
            f"Missing required skills: {', '.join(missing)}",
            missing_skills=missing,
        )

    threshold = get_settings().min_skill_proficiency
    low = [s for s in required if have[s] < threshold]
    if low:
        raise Forbidden(
            f"Insufficient proficiency in: {', '.join(low)}. Complete more courses first.",
            insufficient_skills=low,
        )


async def unlock(db: AsyncSession, redis: Any | None, user_id: int, project_id: int) -> UnlockResult:
    """Manually unlock a project.

    Gates, in order: required skills present, skill proficiency, every
    prerequisite completed. Only the request that performs the transition
    awards the unlock XP.
    """
    project = await get_project(db, project_id, user_id)

    status = await get_status(db, user_id, project_id)
    if status is not ProjectStatus.LOCKED:
        return UnlockResult(unlocked=False, status=status, project=project)

    await _check_skill_gate(db, user_id, project.required_skills or [])

    prereqs = await prerequisite_ids(db, project_id)
    if prereqs:
        done = await _completed_ids(db, user_id, prereqs)
        missing = [p for p in prereqs if p not in done]
        if missing:
            raise Forbidden(
                "Complete prerequisite projects first",
                missing_prerequisites=missing,
            )

    if not await _guarded_unlock(db, user_id, project_id):
        # Lost the race to a concurrent unlock or completion
        return UnlockResult(
            unlocked=False,
            status=await get_status(db, user_id, project_id),
            project=project,
        )

    bonus = get_settings().unlock_bonus_xp
    await RewardPipeline(db, redis).award(
        user_id,
        bonus,
        f"Unlocked project: {project.title}",
        XPSource.PROJECT,
        ProjectUnlockMeta(project_id=project.id, project_title=project.title),
    )

    await notifications.emit(
        db,
        user_id,
        "\U0001f389 New Project Unlocked!",
        f'"{project.title}" is now available. Start building to earn {project.xp_reward} XP!',
        notifications.NotificationType.UNLOCK,
        {"project_id": project.id, "project_title": project.title, "xp_reward": project.xp_reward},
        redis=redis,
    )

    logger.info("User %s unlocked project %s", user_id, project_id)
    return UnlockResult(unlocked=True, status=ProjectStatus.UNLOCKED, project=project, xp_awarded=bonus)


# ---------------------------------------------------------------------------
# Complete + cascade
# ---------------------------------------------------------------------------


async def cascade_unlocks(db: AsyncSession, user_id: int, completed_project_id: int) -> list[str]:
    """Unlock every dependent whose prerequisites are now all completed.

    Single pass over direct dependents: a cascaded unlock is not a completion,
    so nothing further downstream can change. Silent (no XP, no notification).
    Returns the titles of projects that actually transitioned.
    """
    result = await db.execute(
        select(Project.id, Project.title)
        .join(ProjectPrerequisite, ProjectPrerequisite.project_id == Project.id)
        .where(
            ProjectPrerequisite.prerequisite_id == completed_project_id,
            _visible_to(user_id),
        )
        .order_by(Project.id)
    )
    dependents = [(pid, title) for pid, title in result.all() if pid != completed_project_id]
    if not dependents:
        return []

    edge_rows = await db.execute(
        select(ProjectPrerequisite.project_id, ProjectPrerequisite.prerequisite_id).where(
            ProjectPrerequisite.project_id.in_([pid for pid, _ in dependents])
        )
    )
    required: dict[int, set[int]] = {}
    for pid, prereq_id in edge_rows:
        required.setdefault(pid, set()).add(prereq_id)

    done = await _completed_ids(db, user_id)
    newly_unlocked = []
    for pid, title in dependents:
        if required.get(pid, set()) <= done and await _guarded_unlock(db, user_id, pid):
            newly_unlocked.append(title)
    return newly_unlocked


async def complete(
    db: AsyncSession,
    redis: Any | None,
    user_id: int,
    project_id: int,
    submission: Submission,
) -> CompletionResult:
    """Complete an unlocked project, award its XP and cascade unlocks.

    The user's progression row is locked for the rest of the transaction so
    completions for one user serialise and each cascade check sees sibling
    completions.
    """
    project = await get_project(db, project_id, user_id)

    await get_or_create_progression(db, user_id, for_update=True)

    progress = await _progress_row(db, user_id, project_id)
    status = ProjectStatus(progress.status) if progress else ProjectStatus.LOCKED
    if status is ProjectStatus.LOCKED:
        raise Forbidden("Project not unlocked. Unlock it first.", project_id=project_id)
    if status is ProjectStatus.COMPLETED:
        return CompletionResult(completed=False, message="Project already completed")

    if not submission.github_url and not submission.demo_url:
        raise InvalidArgument("Please provide at least GitHub URL or Demo URL")

    now = datetime.now(timezone.utc)
    updated = await db.execute(
        update(UserProjectProgress)
        .where(
            UserProjectProgress.id == progress.id,
            UserProjectProgress.status == ProjectStatus.UNLOCKED.value,
        )
        .values(
            status=ProjectStatus.COMPLETED.value,
            progress_percentage=100,
            github_url=submission.github_url,
            demo_url=submission.demo_url,
            submission_data={
                "notes": submission.notes,
                "completed_tasks": list(submission.completed_tasks),
                "submitted_at": now.isoformat(),
            },
            completed_at=now,
        )
        .returning(UserProjectProgress.id)
    )
    if updated.scalar_one_or_none() is None:
        return CompletionResult(completed=False, message="Project already completed")

    pipeline = RewardPipeline(db, redis)
    award = await pipeline.award(
        user_id,
        project.xp_reward,
        f"Completed project: {project.title}",
        XPSource.PROJECT,
        ProjectMeta(
            project_id=project.id,
            project_title=project.title,
            github_url=submission.github_url,
            demo_url=submission.demo_url,
        ),
    )

    await db.execute(
        update(Project)
        .where(Project.id == project.id)
        .values(
            completion_count=Project.completion_count + 1,
            trending_score=Project.trending_score + 1,
        )
    )

    total_completed = await count_completed(db, user_id)
    await pipeline.triggers.check_and_create(
        user_id, AchievementEvent(AchievementCategory.PROJECTS, total_completed),
    )

    await db.execute(
        update(RoadmapNode)
        .where(
            RoadmapNode.user_id == user_id,
            RoadmapNode.node_type == "project",
            RoadmapNode.title == project.title,
        )
        .values(status=ProjectStatus.COMPLETED.value, progress_percentage=100, completed_at=now)
    )

    newly_unlocked = await cascade_unlocks(db, user_id, project.id)

    await notifications.emit(
        db,
        user_id,
        "\U0001f38a Project Completed!",
        f'Congratulations! You earned {award.xp_awarded} XP and {award.coins_awarded} coins for "{project.title}".',
        notifications.NotificationType.PROJECT,
        {
            "project_id": project.id,
            "project_title": project.title,
            "xp_awarded": award.xp_awarded,
            "coins_awarded": award.coins_awarded,
            "newly_unlocked": newly_unlocked,
        },
        redis=redis,
    )

    logger.info(
        "User %s completed project %s (%d total, %d unlocked)",
        user_id, project.id, total_completed, len(newly_unlocked),
    )

    return CompletionResult(
        completed=True,
        message="Project completed successfully!",
        xp_awarded=award.xp_awarded,
        coins_awarded=award.coins_awarded,
        new_level=award.new_level,
        leveled_up=award.leveled_up,
        newly_unlocked_projects=newly_unlocked,
        total_projects_completed=total_completed,
        achievements=list(pipeline.achievements),
    )


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


async def list_projects(db: AsyncSession, user_id: int) -> list[dict]:
    """Every project visible to the user, with their status and prerequisites."""
    result = await db.execute(
        select(Project, UserProjectProgress)
        .outerjoin(
            UserProjectProgress,
            (UserProjectProgress.project_id == Project.id)
            & (UserProjectProgress.user_id == user_id),
        )
        .where(_visible_to(user_id))
        .order_by(Project.id)
    )
    rows = result.all()

    edges = await _load_edges(db)
    return [
        {
            "id": project.id,
            "title": project.title,
            "description": project.description,
            "category": project.category,
            "difficulty": project.difficulty,
            "xp_reward": project.xp_reward,
            "coin_reward": project.coin_reward,
            "time_estimate_hours": project.time_estimate_hours,
            "required_skills": project.required_skills or [],
            "prerequisites": sorted(edges.get(project.id, ())),
            "completion_count": project.completion_count,
            "status": progress.status if progress else ProjectStatus.LOCKED.value,
            "progress_percentage": progress.progress_percentage if progress else 0,
        }
        for project, progress in rows
    ]
