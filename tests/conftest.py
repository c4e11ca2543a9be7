"""Shared test fixtures.

Tests run against a throwaway SQLite file (aiosqlite). Every SQLite
transaction takes the write lock up front, so a test must commit or close
its own session before calling the API or opening another session.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.auth.jwt import create_access_token
from pathquest.config import Settings, get_settings
from pathquest.database import close_db, get_engine, get_session_factory, init_db
from pathquest.db import models  # noqa: F401  (registers tables on Base.metadata)
from pathquest.db.base import Base
from pathquest.generation.provider import GenerationProvider, get_provider
from pathquest.main import create_app
from pathquest.middleware.rate_limit import reset_generation_limiter
from pathquest.projects.seed import seed_projects
from pathquest.users.service import create_user

ROADMAP_ARTIFACT: dict[str, Any] = {
    "roadmap_title": "Path to Backend Engineer",
    "roadmap_description": "From scripting to shipping production services",
    "nodes": [
        {
            "title": f"Step {i + 1}",
            "type": "course" if i % 2 == 0 else "project",
            "description": f"Roadmap step {i + 1}",
            "xp_reward": 150,
            "coin_reward": 30,
            "time_estimate_hours": 10,
            "required_skills": ["Python"],
            "prerequisites": [i - 1] if i else [],
            "difficulty": "Beginner",
        }
        for i in range(5)
    ],
    "skill_gaps": [
        {"skill": "Python", "category": "Programming", "current": "Intermediate", "target": "Advanced", "importance": 5},
        {"skill": "Docker", "category": "DevOps", "current": "Beginner", "target": "Intermediate", "importance": 4},
    ],
    "recommended_projects": [
        {"title": "CLI Todo App", "description": "A command line task tracker", "required_skills": ["Python"]},
        {"title": "Dockerised API", "description": "Ship the API in a container", "prerequisites": [0]},
    ],
    "recommended_courses": [
        {"title": "Python Deep Dive", "platform": "Coursera", "url": "https://example.com/python", "rating": 4.8},
    ],
    "estimated_completion_weeks": 16,
}

RESUME_ANALYSIS: dict[str, Any] = {
    "overall_score": 72,
    "ats_compatibility": 80,
    "sections": {"summary": {"score": 70, "strengths": [], "weaknesses": [], "recommendations": []}},
    "improvements": [{"priority": "high", "suggestion": "Quantify impact"}],
    "keyword_gaps": ["Kubernetes"],
    "optimized_suggestions": {"summary": "Backend engineer", "experience_bullet_examples": [], "skills_to_add": []},
    "ats_tips": ["Use standard headings"],
}

RESUME_TEXT = (
    "Jane Doe - Software Engineer. Built and operated Python services handling "
    "10k requests per second. Led migration to PostgreSQL, cut latency by 40%. "
    "Skills: Python, FastAPI, SQL, Docker."
)


class FakeProvider(GenerationProvider):
    """Records calls and returns a canned document (or raises ``error``)."""

    def __init__(
        self,
        payload: dict[str, Any] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.payload = payload if payload is not None else ROADMAP_ARTIFACT
        self.error = error
        self.delay = delay
        self.calls = 0
        self.prompts: list[str] = []

    async def generate(self, prompt: str, system_instructions: str) -> dict[str, Any]:
        self.calls += 1
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.payload)


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    """Point settings at a per-test SQLite file; Redis disabled."""
    monkeypatch.setenv("PATHQUEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'pathquest.db'}")
    monkeypatch.setenv("PATHQUEST_REDIS_URL", "")
    monkeypatch.setenv("PATHQUEST_GEMINI_API_KEY", "")
    monkeypatch.setenv("PATHQUEST_JWT_SECRET", "test-secret-that-is-at-least-32-bytes-long")
    monkeypatch.setenv("PATHQUEST_GENERATION_POLL_INTERVAL_SECONDS", "0.01")
    monkeypatch.setenv("PATHQUEST_LOG_FORMAT", "console")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def database(test_settings: Settings) -> AsyncGenerator[None, None]:
    """Initialise the engine and create every table."""
    await init_db(test_settings.database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    reset_generation_limiter()
    yield
    await close_db()
    reset_generation_limiter()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for service calls and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def make_user(database) -> Callable[..., Any]:
    """Factory: create and commit a user, return their id."""

    async def _make(name: str = "Test User", **kwargs: Any) -> int:
        async with get_session_factory()() as db:
            user = await create_user(db, name, **kwargs)
            await db.commit()
            return user.id

    return _make


@pytest_asyncio.fixture
async def seeded(database) -> dict[str, int]:
    """Seed the project catalogue. Returns slug -> project id."""
    from sqlalchemy import select

    from pathquest.db.models import Project

    async with get_session_factory()() as db:
        await seed_projects(db)
        result = await db.execute(select(Project.slug, Project.id).where(Project.slug.is_not(None)))
        return dict(result.all())


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest_asyncio.fixture
async def client(database, fake_provider: FakeProvider) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client with the generator provider replaced."""
    app = create_app()
    app.dependency_overrides[get_provider] = lambda: fake_provider
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers(test_settings: Settings) -> Callable[[int], dict[str, str]]:
    def _headers(user_id: int) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers


@pytest.fixture
def resume_analysis() -> dict[str, Any]:
    return copy.deepcopy(RESUME_ANALYSIS)


@pytest.fixture
def resume_text() -> str:
    return RESUME_TEXT
