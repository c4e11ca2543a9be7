"""Resume analysis for ATS compatibility, cached per resume content."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.config import get_settings
from pathquest.errors import InvalidArgument
from pathquest.generation.cache import GenerationCache, normalize_text
from pathquest.generation.extractor import fetch_resume_text
from pathquest.generation.provider import GenerationProvider
from pathquest.generation.schemas import ResumeAnalyzeRequest

logger = structlog.get_logger()

ARTIFACT_TYPE = "resume_analysis"
MIN_RESUME_CHARS = 100

SYSTEM_INSTRUCTIONS = (
    "You are an expert resume reviewer and ATS optimization specialist "
    "with 10+ years of experience in tech recruiting."
)

SECTIONS = ("summary", "experience", "education", "skills", "projects", "formatting")


def build_prompt(resume_text: str, target_role: str | None, target_company: str | None) -> str:
    target_lines = []
    if target_role:
        target_lines.append(f"**TARGET ROLE:** {target_role}")
    if target_company:
        target_lines.append(f"**TARGET COMPANY:** {target_company}")
    section_shape = (
        '{"score": 0, "strengths": [], "weaknesses": [], "recommendations": []}'
    )
    sections = ",\n    ".join(f'"{name}": {section_shape}' for name in SECTIONS)
    return f"""
Analyze the following resume comprehensively for ATS compatibility and content quality.

**RESUME TEXT:**
{resume_text}

{chr(10).join(target_lines)}

**ANALYSIS REQUIREMENTS:**
1. Overall Score (0-100): holistic resume quality assessment
2. ATS Compatibility (0-100): how well it passes Applicant Tracking Systems
3. Section-by-section analysis: summary, experience, education, skills, projects, formatting
4. Identify missing keywords for {target_role or "the role"}, ATS red flags, weak action verbs,
   quantification opportunities and spelling/grammar issues
5. Provide prioritized improvements, an optimized summary, better experience bullets
   and skills to add

**OUTPUT FORMAT (STRICT JSON):**
{{
  "overall_score": 75,
  "ats_compatibility": 82,
  "sections": {{
    {sections}
  }},
  "improvements": [],
  "keyword_gaps": [],
  "optimized_suggestions": {{
    "summary": "string",
    "experience_bullet_examples": [],
    "skills_to_add": []
  }},
  "ats_tips": []
}}
"""


def cache_input(resume_text: str, target_role: str | None, target_company: str | None) -> str:
    """The cache key covers the resume and the target it is analysed against."""
    return normalize_text("\n".join([resume_text, target_role or "", target_company or ""]))


async def resolve_resume_text(request: ResumeAnalyzeRequest) -> str:
    if request.extracted_text and request.extracted_text.strip():
        text = request.extracted_text.strip()
        if len(text) < MIN_RESUME_CHARS:
            raise InvalidArgument(
                f"extracted_text must be at least {MIN_RESUME_CHARS} characters",
                length=len(text),
            )
        return text

    if not request.resume_url:
        raise InvalidArgument("Provide either extracted_text or resume_url")
    return await fetch_resume_text(
        request.resume_url,
        timeout=get_settings().resume_fetch_timeout_seconds,
    )


async def analyze_resume(
    db: AsyncSession,
    provider: GenerationProvider,
    user_id: int,
    request: ResumeAnalyzeRequest,
) -> dict:
    """Analyse a resume, generating at most once per distinct content."""
    resume_text = await resolve_resume_text(request)

    async def generate() -> dict[str, Any]:
        return await provider.generate(
            build_prompt(resume_text, request.target_role, request.target_company),
            SYSTEM_INSTRUCTIONS,
        )

    cached = await GenerationCache(db).get_or_generate(
        user_id,
        ARTIFACT_TYPE,
        cache_input(resume_text, request.target_role, request.target_company),
        generate,
        source_ref=request.file_url or request.resume_url,
    )

    analysis = cached.artifact
    logger.info(
        "resume_analyzed",
        user_id=user_id,
        analysis_id=cached.entry_id,
        cached=cached.from_cache,
    )

    return {
        "success": True,
        "message": "Analysis retrieved from cache" if cached.from_cache else "Resume analyzed",
        "analysis_id": cached.entry_id,
        "cached": cached.from_cache,
        "analysis": analysis,
        "overall_score": analysis.get("overall_score"),
        "ats_compatibility": analysis.get("ats_compatibility"),
        "sections": analysis.get("sections", {}),
        "improvements": analysis.get("improvements", []),
        "keyword_gaps": analysis.get("keyword_gaps", []),
        "optimized_suggestions": analysis.get("optimized_suggestions", {}),
        "ats_tips": analysis.get("ats_tips", []),
    }
