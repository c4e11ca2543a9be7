"""API tests for roadmap generation and resume analysis."""

from __future__ import annotations

import asyncio

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from pathquest.database import get_session_factory
from pathquest.db.models import Course, Project, User, UserProgression, UserProjectProgress, UserSkill
from pathquest.errors import QuotaExceeded
from pathquest.middleware import rate_limit
from pathquest.middleware.rate_limit import InMemoryRateLimiter

PROFILE = {
    "user_profile": {
        "name": "Sam",
        "career_goal": "Backend Engineer",
        "current_skills": [{"skill": "Python", "level": "Intermediate"}],
        "target_skills": [{"skill": "Docker", "level": "Intermediate"}],
        "interests": ["APIs"],
        "timeline_months": 6,
    }
}


class TestRoadmap:
    @pytest.mark.asyncio
    async def test_generate_materialises_everything(
        self, client: AsyncClient, make_user, auth_headers, fake_provider
    ) -> None:
        user_id = await make_user()
        response = await client.post("/api/v1/roadmap/generate", json=PROFILE, headers=auth_headers(user_id))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["cached"] is False
        assert data["roadmap"]["title"] == "Path to Backend Engineer"
        assert data["roadmap"]["nodes_created"] == 5
        assert data["roadmap"]["estimated_weeks"] == 16
        assert data["skill_gaps"] == 2
        assert data["recommended_projects"] == 2
        assert data["recommended_courses"] == 1
        assert data["xp_awarded"] == 100
        assert data["next_steps"] == ["Step 1", "Step 2", "Step 3"]
        assert fake_provider.calls == 1
        assert "Backend Engineer" in fake_provider.prompts[0]

        async with get_session_factory()() as db:
            user = await db.get(User, user_id)
            progression = await db.get(UserProgression, user_id)
            skills = dict(
                (await db.execute(
                    select(UserSkill.skill_name, UserSkill.proficiency_score).where(UserSkill.user_id == user_id)
                )).all()
            )
            owned = (
                await db.execute(select(func.count()).select_from(Project).where(Project.owner_id == user_id))
            ).scalar_one()
            locked_rows = (
                await db.execute(
                    select(func.count()).select_from(UserProjectProgress).where(
                        UserProjectProgress.user_id == user_id, UserProjectProgress.status == "locked"
                    )
                )
            ).scalar_one()
            courses = (await db.execute(select(func.count()).select_from(Course))).scalar_one()

        assert user.onboarding_complete is True
        assert progression.total_xp == 100
        assert skills == {"Python": 50, "Docker": 25}
        assert owned == 2
        assert locked_rows == 2
        assert courses == 1

    @pytest.mark.asyncio
    async def test_second_request_returns_stored_nodes(
        self, client: AsyncClient, make_user, auth_headers, fake_provider
    ) -> None:
        user_id = await make_user()
        await client.post("/api/v1/roadmap/generate", json=PROFILE, headers=auth_headers(user_id))
        again = await client.post("/api/v1/roadmap/generate", json=PROFILE, headers=auth_headers(user_id))

        data = again.json()
        assert data["cached"] is True
        assert len(data["nodes"]) == 5
        assert fake_provider.calls == 1

        roadmap = (await client.get("/api/v1/roadmap", headers=auth_headers(user_id))).json()
        assert roadmap["total"] == 5
        statuses = [n["status"] for n in roadmap["nodes"]]
        assert statuses == ["unlocked", "unlocked", "unlocked", "locked", "locked"]
        assert roadmap["nodes"][1]["prerequisites"] == [0]

        async with get_session_factory()() as db:
            progression = await db.get(UserProgression, user_id)
        assert progression.total_xp == 100

    @pytest.mark.asyncio
    async def test_concurrent_first_requests_generate_once(
        self, client: AsyncClient, make_user, auth_headers, fake_provider
    ) -> None:
        fake_provider.delay = 0.05
        user_id = await make_user()
        responses = await asyncio.gather(*(
            client.post("/api/v1/roadmap/generate", json=PROFILE, headers=auth_headers(user_id))
            for _ in range(2)
        ))

        assert all(r.status_code == 200 for r in responses)
        assert sorted(r.json()["cached"] for r in responses) == [False, True]
        assert fake_provider.calls == 1
        async with get_session_factory()() as db:
            progression = await db.get(UserProgression, user_id)
        assert progression.total_xp == 100

    @pytest.mark.asyncio
    async def test_roadmap_projects_are_private(
        self, client: AsyncClient, make_user, auth_headers
    ) -> None:
        owner = await make_user("Owner")
        other = await make_user("Other")
        await client.post("/api/v1/roadmap/generate", json=PROFILE, headers=auth_headers(owner))

        mine = (await client.get("/api/v1/projects", headers=auth_headers(owner))).json()
        theirs = (await client.get("/api/v1/projects", headers=auth_headers(other))).json()
        assert {p["title"] for p in mine["projects"]} == {"CLI Todo App", "Dockerised API"}
        assert theirs["projects"] == []

    @pytest.mark.asyncio
    async def test_invalid_profile(self, client: AsyncClient, make_user, auth_headers) -> None:
        user_id = await make_user()
        response = await client.post(
            "/api/v1/roadmap/generate",
            json={"user_profile": {"career_goal": "x", "current_skills": []}},
            headers=auth_headers(user_id),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Validation error"

    @pytest.mark.asyncio
    async def test_quota_exhaustion_is_429(
        self, client: AsyncClient, make_user, auth_headers, fake_provider
    ) -> None:
        fake_provider.error = QuotaExceeded("AI quota used up for now. Please try again in a few minutes.")
        user_id = await make_user()
        response = await client.post("/api/v1/roadmap/generate", json=PROFILE, headers=auth_headers(user_id))

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.json() == {
            "success": False,
            "error": "AI quota used up for now. Please try again in a few minutes.",
        }

        # Nothing was cached; the next attempt generates
        fake_provider.error = None
        retry = await client.post("/api/v1/roadmap/generate", json=PROFILE, headers=auth_headers(user_id))
        assert retry.json()["cached"] is False
        assert fake_provider.calls == 2


class TestResume:
    @pytest.mark.asyncio
    async def test_analysis_cached_by_content(
        self, client: AsyncClient, make_user, auth_headers, fake_provider, resume_analysis, resume_text
    ) -> None:
        fake_provider.payload = resume_analysis
        user_id = await make_user()
        body = {"extracted_text": resume_text, "target_role": "Backend Engineer", "file_name": "cv.pdf"}

        first = await client.post("/api/v1/resume/analyze", json=body, headers=auth_headers(user_id))
        second = await client.post(
            "/api/v1/resume/analyze",
            json={**body, "extracted_text": resume_text.replace(" ", "  ")},
            headers=auth_headers(user_id),
        )

        assert first.status_code == 200
        assert first.json()["cached"] is False
        assert first.json()["overall_score"] == 72
        assert first.json()["keyword_gaps"] == ["Kubernetes"]
        assert second.json()["cached"] is True
        assert second.json()["analysis_id"] == first.json()["analysis_id"]
        assert fake_provider.calls == 1

    @pytest.mark.asyncio
    async def test_new_target_role_reanalyses(
        self, client: AsyncClient, make_user, auth_headers, fake_provider, resume_analysis, resume_text
    ) -> None:
        fake_provider.payload = resume_analysis
        user_id = await make_user()
        for role in ("Backend Engineer", "Data Engineer"):
            await client.post(
                "/api/v1/resume/analyze",
                json={"extracted_text": resume_text, "target_role": role},
                headers=auth_headers(user_id),
            )
        assert fake_provider.calls == 2

    @pytest.mark.asyncio
    async def test_short_text_rejected(self, client: AsyncClient, make_user, auth_headers) -> None:
        user_id = await make_user()
        response = await client.post(
            "/api/v1/resume/analyze", json={"extracted_text": "too short"}, headers=auth_headers(user_id)
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_input_rejected(self, client: AsyncClient, make_user, auth_headers) -> None:
        user_id = await make_user()
        response = await client.post(
            "/api/v1/resume/analyze", json={"file_name": "cv.pdf"}, headers=auth_headers(user_id)
        )
        assert response.status_code == 400


class TestGenerationRateLimit:
    @pytest.mark.asyncio
    async def test_per_user_limit(
        self, client: AsyncClient, make_user, auth_headers, fake_provider, resume_analysis, resume_text, monkeypatch
    ) -> None:
        monkeypatch.setattr(rate_limit, "_generation_limiter", InMemoryRateLimiter(limit=1, window_seconds=60))
        fake_provider.payload = resume_analysis
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        body = {"extracted_text": resume_text}

        ok = await client.post("/api/v1/resume/analyze", json=body, headers=auth_headers(alice))
        limited = await client.post("/api/v1/resume/analyze", json=body, headers=auth_headers(alice))
        other = await client.post("/api/v1/resume/analyze", json=body, headers=auth_headers(bob))

        assert ok.status_code == 200
        assert limited.status_code == 429
        assert limited.json()["success"] is False
        assert int(limited.headers["Retry-After"]) > 0
        assert other.status_code == 200


class TestMalformedArtifact:
    @pytest.mark.asyncio
    async def test_bad_rewards_and_prerequisites_are_normalised(
        self, client: AsyncClient, make_user, auth_headers, fake_provider
    ) -> None:
        fake_provider.payload = {
            "roadmap_title": "Messy",
            "nodes": [
                {"title": "First", "xp_reward": -5, "prerequisites": 2},
                {"title": "Second", "prerequisites": [0, "0", True, 7]},
            ],
            "skill_gaps": [
                {"skill": "Go", "current": {"level": "x"}, "target": {"level": "Advanced"}},
            ],
            "recommended_projects": [
                {"title": "Neg", "xp_reward": -100, "coin_reward": 0, "prerequisites": 2},
            ],
        }
        user_id = await make_user()
        headers = auth_headers(user_id)

        generated = await client.post("/api/v1/roadmap/generate", json=PROFILE, headers=headers)
        assert generated.status_code == 200
        assert generated.json()["roadmap"]["nodes_created"] == 2

        nodes = (await client.get("/api/v1/roadmap", headers=headers)).json()["nodes"]
        assert nodes[0]["xp_reward"] == 100
        assert nodes[0]["prerequisites"] == []
        assert nodes[1]["prerequisites"] == [0]

        async with get_session_factory()() as db:
            skill = (
                await db.execute(select(UserSkill).where(UserSkill.user_id == user_id, UserSkill.skill_name == "Go"))
            ).scalar_one()
        assert skill.target_level == str({"level": "Advanced"})
        assert skill.proficiency_score == 0

        projects = (await client.get("/api/v1/projects", headers=headers)).json()["projects"]
        assert len(projects) == 1
        project = projects[0]
        assert project["xp_reward"] == 200
        assert project["coin_reward"] == 50
        assert project["prerequisites"] == []

        unlocked = await client.post(f"/api/v1/projects/{project['id']}/unlock", headers=headers)
        assert unlocked.json()["success"] is True
        completed = await client.post(
            f"/api/v1/projects/{project['id']}/complete",
            json={"github_url": "https://github.com/sam/neg"},
            headers=headers,
        )
        assert completed.status_code == 200
        assert completed.json()["success"] is True
        assert completed.json()["xp_awarded"] == 200
