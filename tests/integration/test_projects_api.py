"""API tests for the project graph endpoints."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from pathquest.database import get_session_factory
from pathquest.db.models import UserSkill

GITHUB = {"github_url": "https://github.com/example/portfolio"}


@pytest.mark.asyncio
async def test_list_projects(client: AsyncClient, make_user, seeded, auth_headers) -> None:
    user_id = await make_user()
    response = await client.get("/api/v1/projects", headers=auth_headers(user_id))
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 6
    assert all(p["status"] == "locked" for p in data["projects"])


@pytest.mark.asyncio
async def test_unlock_and_complete_flow(client: AsyncClient, make_user, seeded, auth_headers) -> None:
    user_id = await make_user()
    headers = auth_headers(user_id)
    portfolio = seeded["portfolio-site"]

    unlock = await client.post(f"/api/v1/projects/{portfolio}/unlock", headers=headers)
    assert unlock.status_code == 200
    body = unlock.json()
    assert body["success"] is True
    assert body["status"] == "unlocked"
    assert body["xp_awarded"] == 50
    assert body["project"]["title"] == "Personal Portfolio Website"

    again = await client.post(f"/api/v1/projects/{portfolio}/unlock", headers=headers)
    assert again.json()["success"] is False
    assert again.json()["xp_awarded"] == 0

    complete = await client.post(f"/api/v1/projects/{portfolio}/complete", json=GITHUB, headers=headers)
    assert complete.status_code == 200
    data = complete.json()
    assert data["success"] is True
    assert data["xp_awarded"] == 200
    assert data["coins_awarded"] == 20
    assert data["level_info"] == {"new_level": 1, "leveled_up": False}
    assert data["total_projects_completed"] == 1
    assert "REST API with Authentication" in data["newly_unlocked_projects"]

    repeat = await client.post(f"/api/v1/projects/{portfolio}/complete", json=GITHUB, headers=headers)
    assert repeat.json() == {
        "success": False,
        "message": "Project already completed",
        "xp_awarded": 0,
        "coins_awarded": 0,
        "level_info": None,
        "newly_unlocked_projects": [],
        "total_projects_completed": 0,
    }


@pytest.mark.asyncio
async def test_unlock_missing_skill(client: AsyncClient, make_user, seeded, auth_headers) -> None:
    user_id = await make_user()
    response = await client.post(
        f"/api/v1/projects/{seeded['react-dashboard']}/unlock", headers=auth_headers(user_id)
    )
    assert response.status_code == 403
    assert response.json() == {
        "success": False,
        "error": "Missing required skills: React",
        "missing_skills": ["React"],
    }


@pytest.mark.asyncio
async def test_unlock_missing_prerequisite(client: AsyncClient, make_user, seeded, auth_headers) -> None:
    user_id = await make_user()
    async with get_session_factory()() as db:
        db.add(UserSkill(user_id=user_id, skill_name="Python", proficiency_score=80))
        await db.commit()

    response = await client.post(
        f"/api/v1/projects/{seeded['ml-classifier']}/unlock", headers=auth_headers(user_id)
    )
    assert response.status_code == 403
    data = response.json()
    assert data["error"] == "Complete prerequisite projects first"
    assert data["missing_prerequisites"] == [seeded["data-pipeline"]]


@pytest.mark.asyncio
async def test_complete_locked_project(client: AsyncClient, make_user, seeded, auth_headers) -> None:
    user_id = await make_user()
    response = await client.post(
        f"/api/v1/projects/{seeded['portfolio-site']}/complete", json=GITHUB, headers=auth_headers(user_id)
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_complete_without_links(client: AsyncClient, make_user, seeded, auth_headers) -> None:
    user_id = await make_user()
    headers = auth_headers(user_id)
    portfolio = seeded["portfolio-site"]
    await client.post(f"/api/v1/projects/{portfolio}/unlock", headers=headers)

    response = await client.post(
        f"/api/v1/projects/{portfolio}/complete", json={"submission_notes": "done"}, headers=headers
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Please provide at least GitHub URL or Demo URL"


@pytest.mark.asyncio
async def test_unknown_project(client: AsyncClient, make_user, seeded, auth_headers) -> None:
    user_id = await make_user()
    response = await client.post("/api/v1/projects/99999/unlock", headers=auth_headers(user_id))
    assert response.status_code == 404
    assert response.json()["error"] == "Project not found"


@pytest.mark.asyncio
async def test_leaderboard_endpoint(client: AsyncClient, make_user, seeded, auth_headers) -> None:
    user_id = await make_user("Leader")
    await client.post(f"/api/v1/projects/{seeded['portfolio-site']}/unlock", headers=auth_headers(user_id))

    response = await client.get("/api/v1/leaderboard", params={"limit": 10})
    assert response.status_code == 200
    data = response.json()
    assert data["period"] == "all_time"
    assert data["leaderboard"][0]["user"]["name"] == "Leader"
    assert data["leaderboard"][0]["score"] == 50

    bad = await client.get("/api/v1/leaderboard", params={"period": "yearly"})
    assert bad.status_code == 400
