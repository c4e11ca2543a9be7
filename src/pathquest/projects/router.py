"""Project graph endpoints: list, unlock, complete."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.auth.dependencies import get_current_user
from pathquest.database import get_session
from pathquest.db.models import User
from pathquest.projects import graph_service
from pathquest.projects.schemas import (
    CompleteProjectRequest,
    CompleteProjectResponse,
    LevelInfo,
    ProjectListResponse,
    ProjectSummary,
    UnlockResponse,
)
from pathquest.redis_client import get_optional_redis

router = APIRouter(prefix="/api/v1/projects", tags=["Projects"])


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """List catalogue and roadmap projects with the caller's status."""
    projects = [ProjectSummary(**p) for p in await graph_service.list_projects(db, user.id)]
    return ProjectListResponse(projects=projects, total=len(projects))


@router.post("/{project_id}/unlock", response_model=UnlockResponse)
async def unlock_project(
    project_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis=Depends(get_optional_redis),
):
    """Unlock a project after skill and prerequisite checks."""
    result = await graph_service.unlock(db, redis, user.id, project_id)
    await db.commit()

    if not result.unlocked:
        return UnlockResponse(
            success=False,
            message="Project already unlocked",
            status=result.status.value,
        )

    project = result.project
    return UnlockResponse(
        success=True,
        message="Project unlocked successfully",
        status=result.status.value,
        xp_awarded=result.xp_awarded,
        project={
            "id": project.id,
            "title": project.title,
            "description": project.description,
            "xp_reward": project.xp_reward,
            "coin_reward": project.coin_reward,
            "time_estimate_hours": project.time_estimate_hours,
        },
    )


@router.post("/{project_id}/complete", response_model=CompleteProjectResponse)
async def complete_project(
    project_id: int,
    body: CompleteProjectRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis=Depends(get_optional_redis),
):
    """Submit a project; awards XP and unlocks dependents."""
    submission = graph_service.Submission(
        github_url=body.github_url,
        demo_url=body.demo_url,
        notes=body.submission_notes,
        completed_tasks=body.completed_tasks,
    )
    result = await graph_service.complete(db, redis, user.id, project_id, submission)
    await db.commit()

    if not result.completed:
        return CompleteProjectResponse(success=False, message=result.message)

    return CompleteProjectResponse(
        success=True,
        message=result.message,
        xp_awarded=result.xp_awarded,
        coins_awarded=result.coins_awarded,
        level_info=LevelInfo(new_level=result.new_level, leveled_up=result.leveled_up),
        newly_unlocked_projects=result.newly_unlocked_projects,
        total_projects_completed=result.total_projects_completed,
    )
