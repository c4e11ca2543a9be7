"""Pydantic request models for generation endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


# --- Roadmap ---


class SkillLevel(BaseModel):
    skill: str = Field(min_length=1)
    level: str = "Beginner"


class UserProfile(BaseModel):
    name: str = ""
    college: str | None = None
    major: str | None = None
    graduation_year: int | None = None
    career_goal: str = Field(min_length=3)
    current_skills: list[SkillLevel]
    target_skills: list[SkillLevel] = []
    interests: list[str] = []
    timeline_months: int = Field(ge=1, le=120)
    learning_style: str | None = None


class RoadmapGenerateRequest(BaseModel):
    user_profile: UserProfile


# --- Resume ---


class ResumeAnalyzeRequest(BaseModel):
    file_url: str | None = None
    file_name: str | None = None
    resume_url: str | None = None
    extracted_text: str | None = None
    target_role: str | None = None
    target_company: str | None = None

    @model_validator(mode="after")
    def _require_text_or_url(self) -> "ResumeAnalyzeRequest":
        if not (self.extracted_text and self.extracted_text.strip()) and not self.resume_url:
            raise ValueError("Provide either extracted_text or resume_url")
        return self
