"""Catalogue project seed data (shared by every user)."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.db.base import dialect_insert
from pathquest.db.models import Project
from pathquest.projects.graph_service import add_prerequisites

logger = logging.getLogger(__name__)

PROJECT_SEED_DATA: list[dict] = [
    {
        "slug": "portfolio-site",
        "title": "Personal Portfolio Website",
        "description": "Build and deploy a static portfolio that showcases your work",
        "category": "Web Development",
        "difficulty": "Beginner",
        "xp_reward": 200,
        "coin_reward": 50,
        "time_estimate_hours": 8,
        "required_skills": [],
        "prerequisites": [],
    },
    {
        "slug": "rest-api",
        "title": "REST API with Authentication",
        "description": "Design a JSON API with token auth, validation and persistence",
        "category": "Backend",
        "difficulty": "Intermediate",
        "xp_reward": 400,
        "coin_reward": 80,
        "time_estimate_hours": 15,
        "required_skills": [],
        "prerequisites": ["portfolio-site"],
    },
    {
        "slug": "react-dashboard",
        "title": "React Analytics Dashboard",
        "description": "Visualise data from a public API with interactive charts",
        "category": "Frontend",
        "difficulty": "Intermediate",
        "xp_reward": 400,
        "coin_reward": 80,
        "time_estimate_hours": 15,
        "required_skills": ["React"],
        "prerequisites": ["portfolio-site"],
    },
    {
        "slug": "full-stack-app",
        "title": "Full-Stack Task Manager",
        "description": "Connect a React frontend to your own API with real-time updates",
        "category": "Full Stack",
        "difficulty": "Advanced",
        "xp_reward": 800,
        "coin_reward": 150,
        "time_estimate_hours": 30,
        "required_skills": ["React"],
        "prerequisites": ["rest-api", "react-dashboard"],
    },
    {
        "slug": "data-pipeline",
        "title": "Data Cleaning Pipeline",
        "description": "Ingest a messy CSV dataset, clean it and publish summary statistics",
        "category": "Data Science",
        "difficulty": "Beginner",
        "xp_reward": 250,
        "coin_reward": 50,
        "time_estimate_hours": 10,
        "required_skills": ["Python"],
        "prerequisites": [],
    },
    {
        "slug": "ml-classifier",
        "title": "Machine Learning Classifier",
        "description": "Train, evaluate and serve a classification model",
        "category": "Machine Learning",
        "difficulty": "Advanced",
        "xp_reward": 1200,
        "coin_reward": 200,
        "time_estimate_hours": 40,
        "required_skills": ["Python"],
        "prerequisites": ["data-pipeline"],
    },
]


async def seed_projects(db: AsyncSession) -> int:
    """Upsert catalogue projects and their prerequisite edges. Returns number seeded."""
    seeded = 0
    for project_data in PROJECT_SEED_DATA:
        values = {k: v for k, v in project_data.items() if k != "prerequisites"}
        stmt = dialect_insert(db, Project).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={
                "title": stmt.excluded.title,
                "description": stmt.excluded.description,
                "category": stmt.excluded.category,
                "difficulty": stmt.excluded.difficulty,
                "xp_reward": stmt.excluded.xp_reward,
                "coin_reward": stmt.excluded.coin_reward,
                "time_estimate_hours": stmt.excluded.time_estimate_hours,
                "required_skills": stmt.excluded.required_skills,
            },
        )
        await db.execute(stmt)
        seeded += 1

    slugs = [p["slug"] for p in PROJECT_SEED_DATA]
    result = await db.execute(select(Project.slug, Project.id).where(Project.slug.in_(slugs)))
    ids = dict(result.all())

    for project_data in PROJECT_SEED_DATA:
        await add_prerequisites(
            db,
            ids[project_data["slug"]],
            [ids[slug] for slug in project_data["prerequisites"]],
        )

    await db.commit()
    logger.info("Seeded %d catalogue projects", seeded)
    return seeded
