"""Pydantic request/response models for project endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class ProjectSummary(BaseModel):
    id: int
    title: str
    description: str
    category: str
    difficulty: str
    xp_reward: int
    coin_reward: int
    time_estimate_hours: int
    required_skills: list[str] = []
    prerequisites: list[int] = []
    completion_count: int = 0
    status: str
    progress_percentage: int = 0


class ProjectListResponse(BaseModel):
    projects: list[ProjectSummary]
    total: int


class UnlockResponse(BaseModel):
    success: bool
    message: str
    status: str
    xp_awarded: int = 0
    project: dict | None = None


class CompleteProjectRequest(BaseModel):
    github_url: str | None = None
    demo_url: str | None = None
    submission_notes: str | None = None
    completed_tasks: list[str] = []


class LevelInfo(BaseModel):
    new_level: int | None = None
    leveled_up: bool = False


class CompleteProjectResponse(BaseModel):
    success: bool
    message: str
    xp_awarded: int = 0
    coins_awarded: int = 0
    level_info: LevelInfo | None = None
    newly_unlocked_projects: list[str] = []
    total_projects_completed: int = 0
