"""AI generation endpoints: onboarding roadmap and resume analysis."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.auth.dependencies import get_current_user
from pathquest.database import get_session
from pathquest.db.models import User
from pathquest.generation import resume_service, roadmap_service
from pathquest.generation.provider import GenerationProvider, get_provider
from pathquest.generation.schemas import ResumeAnalyzeRequest, RoadmapGenerateRequest
from pathquest.middleware.rate_limit import generation_rate_limit
from pathquest.redis_client import get_optional_redis

router = APIRouter(prefix="/api/v1", tags=["Generation"])


@router.post("/roadmap/generate")
async def generate_roadmap(
    body: RoadmapGenerateRequest,
    user: User = Depends(generation_rate_limit),
    db: AsyncSession = Depends(get_session),
    redis=Depends(get_optional_redis),
    provider: GenerationProvider = Depends(get_provider),
):
    """Generate the caller's learning roadmap (once) and award the onboarding bonus."""
    result = await roadmap_service.generate_roadmap(db, redis, provider, user.id, body.user_profile)
    await db.commit()
    return result


@router.get("/roadmap")
async def get_roadmap(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    nodes = await roadmap_service.get_roadmap(db, user.id)
    return {
        "success": True,
        "nodes": [roadmap_service.node_to_dict(n) for n in nodes],
        "total": len(nodes),
    }


@router.post("/resume/analyze")
async def analyze_resume(
    body: ResumeAnalyzeRequest,
    user: User = Depends(generation_rate_limit),
    db: AsyncSession = Depends(get_session),
    provider: GenerationProvider = Depends(get_provider),
):
    """Analyse a resume for ATS compatibility. Identical resumes are analysed once."""
    result = await resume_service.analyze_resume(db, provider, user.id, body)
    await db.commit()
    return result
