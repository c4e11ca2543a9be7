"""One-time career roadmap generation and materialisation."""

from __future__ import annotations

import math
import random
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.config import get_settings
from pathquest.db.base import dialect_insert
from pathquest.db.models import Course, RoadmapNode, User, UserSkill
from pathquest.errors import GenerationFailed
from pathquest.gamification.metadata import OnboardingMeta
from pathquest.gamification.xp_service import RewardPipeline, XPSource
from pathquest.generation.cache import GenerationCache
from pathquest.generation.provider import GenerationProvider
from pathquest.generation.schemas import UserProfile
from pathquest.notifications import service as notifications
from pathquest.projects.graph_service import create_project, materialise_locked

logger = structlog.get_logger()

ARTIFACT_TYPE = "roadmap"
# One roadmap per user: the cache key ignores the profile contents
ROADMAP_CACHE_KEY = "onboarding-roadmap"

INITIALLY_UNLOCKED_NODES = 3
MAX_RECOMMENDED_PROJECTS = 5
MAX_RECOMMENDED_COURSES = 5

THEMES = ["grassland", "grassland", "forest", "forest", "mountain", "mountain", "ocean", "space"]

LEVEL_SCORES = {
    "Beginner": 25,
    "Intermediate": 50,
    "Advanced": 75,
    "Expert": 100,
}

SYSTEM_INSTRUCTIONS = (
    "You are an expert career advisor and curriculum designer. "
    "Generate personalized career roadmaps with actionable steps."
)


def theme_for_index(index: int) -> str:
    return THEMES[min(index, len(THEMES) - 1)]


def level_score(level: Any) -> int:
    return LEVEL_SCORES.get(level, 0) if isinstance(level, str) else 0


def node_positions(count: int, rng: random.Random | None = None) -> list[tuple[float, float]]:
    """Lay nodes out on a roughly square grid with a little jitter."""
    if count <= 0:
        return []
    rng = rng or random.Random()
    columns = math.ceil(math.sqrt(count))
    return [
        (
            (i % columns) * 250 + rng.random() * 50,
            (i // columns) * 200 + rng.random() * 50,
        )
        for i in range(count)
    ]


def _int(value: Any, default: int) -> int:
    """Positive integer from generated output, else ``default``."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _indices(value: Any, upper: int) -> list[int]:
    """Earlier-item indices in ``[0, upper)``; anything but a list yields none."""
    if not isinstance(value, list):
        return []
    return [p for p in value if isinstance(p, int) and not isinstance(p, bool) and 0 <= p < upper]


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v]


def build_prompt(profile: UserProfile) -> str:
    current = ", ".join(f"{s.skill} ({s.level})" for s in profile.current_skills) or "N/A"
    target = ", ".join(f"{s.skill} ({s.level})" for s in profile.target_skills) or "N/A"
    return f"""
Generate a highly personalized, gamified career roadmap for the following user profile:

**USER PROFILE:**
- Name: {profile.name or "N/A"}
- College: {profile.college or "N/A"}
- Major: {profile.major or "N/A"}
- Career Goal: {profile.career_goal}
- Current Skills: {current}
- Target Skills: {target}
- Interests: {", ".join(profile.interests) or "N/A"}
- Timeline: {profile.timeline_months} months
- Learning Style: {profile.learning_style or "Mixed"}

**REQUIREMENTS:**
1. Create a progressive roadmap with 15-25 actionable nodes
2. Node types: 'course', 'project', 'skill', 'challenge', 'milestone', 'checkpoint'
3. Each node should build on previous ones (prerequisites are earlier node indices)
4. Vary difficulty: Beginner -> Intermediate -> Advanced
5. Include realistic time estimates and XP/coin rewards
6. Recommend specific courses (with real URLs if possible)
7. Suggest hands-on projects aligned with career goal
8. Identify skill gaps between current and target levels

**OUTPUT FORMAT (STRICT JSON):**
{{
  "roadmap_title": "string",
  "roadmap_description": "string",
  "nodes": [{{"title": "string", "type": "course", "description": "string",
             "xp_reward": 150, "coin_reward": 30, "time_estimate_hours": 20,
             "required_skills": [], "prerequisites": [], "difficulty": "Beginner",
             "background_theme": "grassland", "external_url": "string",
             "resource_links": []}}],
  "skill_gaps": [{{"skill": "string", "category": "string", "current": "Beginner",
                  "target": "Advanced", "importance": 5}}],
  "recommended_projects": [{{"title": "string", "description": "string", "category": "string",
                            "difficulty": "Beginner", "xp_reward": 200, "coin_reward": 50,
                            "time_estimate_hours": 12, "required_skills": [], "prerequisites": [],
                            "tasks": [{{"id": "1", "title": "string", "completed": false}}]}}],
  "recommended_courses": [{{"title": "string", "platform": "string", "url": "string",
                           "duration_hours": 60, "difficulty": "Beginner", "is_free": true,
                           "skills_covered": [], "rating": 4.7}}],
  "estimated_completion_weeks": 16,
  "milestones": [{{"week": 4, "title": "string", "description": "string"}}]
}}

Themes: grassland, forest, mountain, ocean, space (vary throughout roadmap).
XP rewards: Beginner (100-200), Intermediate (200-400), Advanced (400-800).
"""


def node_to_dict(node: RoadmapNode) -> dict:
    return {
        "id": node.id,
        "node_type": node.node_type,
        "title": node.title,
        "description": node.description,
        "position_x": node.position_x,
        "position_y": node.position_y,
        "status": node.status,
        "progress_percentage": node.progress_percentage,
        "xp_reward": node.xp_reward,
        "coin_reward": node.coin_reward,
        "time_estimate_hours": node.time_estimate_hours,
        "required_skills": node.required_skills,
        "prerequisites": node.prerequisites,
        "difficulty": node.difficulty,
        "background_theme": node.background_theme,
        "order_index": node.order_index,
        "external_url": node.external_url,
        "resource_links": node.resource_links,
    }


async def get_roadmap(db: AsyncSession, user_id: int) -> list[RoadmapNode]:
    result = await db.execute(
        select(RoadmapNode)
        .where(RoadmapNode.user_id == user_id)
        .order_by(RoadmapNode.order_index.asc(), RoadmapNode.id.asc())
    )
    return list(result.scalars().all())


async def generate_roadmap(
    db: AsyncSession,
    redis: Any | None,
    provider: GenerationProvider,
    user_id: int,
    profile: UserProfile,
    rng: random.Random | None = None,
) -> dict:
    """Generate the user's roadmap once; later calls return the stored nodes."""
    existing = await get_roadmap(db, user_id)
    if existing:
        return {
            "success": True,
            "message": "Roadmap retrieved from cache",
            "nodes": [node_to_dict(n) for n in existing],
            "cached": True,
        }

    summary: dict[str, Any] = {}

    async def generate() -> dict[str, Any]:
        return await provider.generate(build_prompt(profile), SYSTEM_INSTRUCTIONS)

    async def materialise(artifact: dict[str, Any]) -> None:
        summary.update(await _materialise(db, redis, user_id, profile, artifact, rng))

    cached = await GenerationCache(db).get_or_generate(
        user_id,
        ARTIFACT_TYPE,
        ROADMAP_CACHE_KEY,
        generate,
        on_generated=materialise,
    )

    if cached.from_cache:
        nodes = await get_roadmap(db, user_id)
        return {
            "success": True,
            "message": "Roadmap retrieved from cache",
            "nodes": [node_to_dict(n) for n in nodes],
            "cached": True,
        }

    artifact = cached.artifact
    return {
        "success": True,
        "roadmap": {
            "title": artifact.get("roadmap_title", ""),
            "description": artifact.get("roadmap_description", ""),
            "nodes_created": summary["nodes_created"],
            "estimated_weeks": artifact.get("estimated_completion_weeks"),
        },
        "skill_gaps": summary["skill_gaps"],
        "recommended_projects": summary["projects_created"],
        "recommended_courses": summary["courses_created"],
        "xp_awarded": summary["xp_awarded"],
        "next_steps": summary["next_steps"],
        "cached": False,
    }


async def _materialise(
    db: AsyncSession,
    redis: Any | None,
    user_id: int,
    profile: UserProfile,
    artifact: dict[str, Any],
    rng: random.Random | None,
) -> dict[str, Any]:
    """Persist nodes, skill gaps, projects and courses from a fresh artifact."""
    raw_nodes = artifact.get("nodes")
    if not isinstance(raw_nodes, list) or not raw_nodes:
        raise GenerationFailed("Generated roadmap contains no nodes")

    nodes = await _create_nodes(db, user_id, raw_nodes, rng)
    skill_gaps = await _upsert_skill_gaps(db, user_id, artifact.get("skill_gaps") or [])
    projects = await _create_projects(db, user_id, artifact.get("recommended_projects") or [])
    courses = await _create_courses(db, artifact.get("recommended_courses") or [])

    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            onboarding_complete=True,
            onboarding_data={"career_goal": profile.career_goal},
        )
    )

    bonus = get_settings().onboarding_bonus_xp
    await RewardPipeline(db, redis).award(
        user_id,
        bonus,
        "Completed onboarding",
        XPSource.ONBOARDING,
        OnboardingMeta(roadmap_nodes_created=len(nodes)),
    )

    await notifications.emit(
        db,
        user_id,
        "\U0001f680 Welcome to Your Career Journey!",
        f"Your personalized roadmap to {profile.career_goal} is ready! "
        "Complete nodes to earn XP and level up.",
        notifications.NotificationType.UNLOCK,
        {
            "roadmap_nodes_count": len(nodes),
            "estimated_weeks": artifact.get("estimated_completion_weeks"),
        },
        redis=redis,
    )

    logger.info(
        "roadmap_materialised",
        user_id=user_id,
        nodes=len(nodes),
        projects=len(projects),
        courses=courses,
    )

    return {
        "nodes_created": len(nodes),
        "skill_gaps": skill_gaps,
        "projects_created": len(projects),
        "courses_created": courses,
        "xp_awarded": bonus,
        "next_steps": [n.title for n in nodes[:INITIALLY_UNLOCKED_NODES]],
    }


async def _create_nodes(
    db: AsyncSession,
    user_id: int,
    raw_nodes: list[Any],
    rng: random.Random | None,
) -> list[RoadmapNode]:
    entries = [n for n in raw_nodes if isinstance(n, dict)]
    positions = node_positions(len(entries), rng)
    nodes = []
    for i, (raw, (x, y)) in enumerate(zip(entries, positions)):
        prereqs = _indices(raw.get("prerequisites"), i)
        node = RoadmapNode(
            user_id=user_id,
            node_type=str(raw.get("type") or "skill"),
            title=str(raw.get("title") or f"Step {i + 1}"),
            description=str(raw.get("description") or ""),
            position_x=x,
            position_y=y,
            status="unlocked" if i < INITIALLY_UNLOCKED_NODES else "locked",
            progress_percentage=0,
            xp_reward=_int(raw.get("xp_reward"), 100),
            coin_reward=_int(raw.get("coin_reward"), 10),
            time_estimate_hours=_int(raw.get("time_estimate_hours"), 5),
            required_skills=_str_list(raw.get("required_skills")),
            prerequisites=prereqs,
            difficulty=str(raw.get("difficulty") or "Intermediate"),
            background_theme=str(raw.get("background_theme") or theme_for_index(i)),
            order_index=i,
            external_url=raw.get("external_url"),
            resource_links=_str_list(raw.get("resource_links")),
        )
        db.add(node)
        nodes.append(node)
    await db.flush()
    return nodes


async def _upsert_skill_gaps(db: AsyncSession, user_id: int, gaps: list[Any]) -> int:
    count = 0
    for gap in gaps:
        if not isinstance(gap, dict) or not gap.get("skill"):
            continue
        current, target = gap.get("current"), gap.get("target")
        stmt = dialect_insert(db, UserSkill).values(
            user_id=user_id,
            skill_name=str(gap["skill"]),
            category=str(gap.get("category") or "General"),
            current_level=str(current) if current else "Beginner",
            target_level=str(target) if target is not None else None,
            proficiency_score=level_score(current),
            importance_score=_int(gap.get("importance"), 3),
            is_gap=current != target,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "skill_name"],
            set_={
                "category": stmt.excluded.category,
                "current_level": stmt.excluded.current_level,
                "target_level": stmt.excluded.target_level,
                "proficiency_score": stmt.excluded.proficiency_score,
                "importance_score": stmt.excluded.importance_score,
                "is_gap": stmt.excluded.is_gap,
            },
        )
        await db.execute(stmt)
        count += 1
    return count


async def _create_projects(db: AsyncSession, user_id: int, recommended: list[Any]) -> list[int]:
    created: list[int] = []
    for i, raw in enumerate([p for p in recommended if isinstance(p, dict)][:MAX_RECOMMENDED_PROJECTS]):
        # Prerequisites are indices of earlier recommendations
        prereqs = [created[p] for p in _indices(raw.get("prerequisites"), i)]
        project = await create_project(
            db,
            title=str(raw.get("title") or "Untitled Project"),
            description=str(raw.get("description") or ""),
            category=str(raw.get("category") or "General"),
            difficulty=str(raw.get("difficulty") or "Intermediate"),
            xp_reward=_int(raw.get("xp_reward"), 200),
            coin_reward=_int(raw.get("coin_reward"), 50),
            time_estimate_hours=_int(raw.get("time_estimate_hours"), 10),
            required_skills=_str_list(raw.get("required_skills")),
            tasks=[t for t in raw.get("tasks") or [] if isinstance(t, dict)],
            owner_id=user_id,
            prerequisites=prereqs,
        )
        created.append(project.id)

    await materialise_locked(db, user_id, created)
    return created


async def _create_courses(db: AsyncSession, recommended: list[Any]) -> int:
    count = 0
    for raw in [c for c in recommended if isinstance(c, dict)][:MAX_RECOMMENDED_COURSES]:
        if not raw.get("title"):
            continue
        try:
            rating = float(raw.get("rating") or 4.5)
        except (TypeError, ValueError):
            rating = 4.5
        db.add(Course(
            title=str(raw["title"]),
            platform=str(raw.get("platform") or "Online"),
            url=str(raw.get("url") or ""),
            duration_hours=_int(raw.get("duration_hours"), 10),
            difficulty=str(raw.get("difficulty") or "Beginner"),
            is_free=bool(raw.get("is_free", True)),
            skills_covered=_str_list(raw.get("skills_covered")),
            rating=rating,
        ))
        count += 1
    await db.flush()
    return count
