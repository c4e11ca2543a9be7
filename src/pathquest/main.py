"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from pathquest.config import get_settings
from pathquest.database import close_db, get_session_factory, init_db
from pathquest.gamification.router import router as gamification_router
from pathquest.generation.router import router as generation_router
from pathquest.health.router import router as health_router
from pathquest.leaderboard.router import router as leaderboard_router
from pathquest.middleware import setup_middleware
from pathquest.projects.router import router as projects_router
from pathquest.projects.seed import seed_projects
from pathquest.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)

    # Redis only carries pub/sub and shared rate-limit counters
    if settings.redis_url:
        try:
            await init_redis(settings.redis_url)
        except (RedisError, OSError, ValueError):
            logger.warning("Redis unavailable, continuing without it", exc_info=True)

    # Seed the project catalogue (idempotent)
    try:
        async with get_session_factory()() as db:
            await seed_projects(db)
    except SQLAlchemyError:
        logger.warning("Project seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="PathQuest API",
        description="Backend API for PathQuest, a gamified career-learning platform",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)
    app.include_router(projects_router)
    app.include_router(leaderboard_router)
    app.include_router(generation_router)

    return app


app = create_app()
