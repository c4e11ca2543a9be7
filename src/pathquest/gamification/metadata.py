"""Versioned metadata payloads attached to xp_history rows.

Every payload carries a ``kind`` discriminator and a ``schema_version`` so
the audit trail stays machine-checkable as the shapes evolve.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from pathquest.errors import InvalidArgument

SCHEMA_VERSION = 1


class _MetadataBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int = SCHEMA_VERSION


class ProjectMeta(_MetadataBase):
    kind: Literal["project"] = "project"
    project_id: int
    project_title: str
    github_url: str | None = None
    demo_url: str | None = None


class ProjectUnlockMeta(_MetadataBase):
    kind: Literal["project_unlock"] = "project_unlock"
    project_id: int
    project_title: str


class DailyMeta(_MetadataBase):
    kind: Literal["daily"] = "daily"
    streak: int
    streak_bonus: int


class AchievementMeta(_MetadataBase):
    kind: Literal["achievement"] = "achievement"
    achievement_id: int
    rarity: str


class OnboardingMeta(_MetadataBase):
    kind: Literal["onboarding"] = "onboarding"
    roadmap_nodes_created: int


class ManualMeta(_MetadataBase):
    kind: Literal["manual"] = "manual"
    note: str | None = None
    extra: dict[str, str | int | float | bool | None] = Field(default_factory=dict)


RewardMetadata = Annotated[
    Union[
        ProjectMeta,
        ProjectUnlockMeta,
        DailyMeta,
        AchievementMeta,
        OnboardingMeta,
        ManualMeta,
    ],
    Field(discriminator="kind"),
]

_adapter: TypeAdapter[Any] = TypeAdapter(RewardMetadata)


def parse_metadata(raw: BaseModel | dict[str, Any] | None) -> BaseModel:
    """Validate a metadata payload. ``None`` becomes an empty manual entry."""
    if raw is None:
        return ManualMeta()
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    try:
        return _adapter.validate_python(raw)
    except ValidationError as exc:
        raise InvalidArgument(
            "Invalid reward metadata",
            errors=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc


def dump_metadata(meta: BaseModel) -> dict[str, Any]:
    return meta.model_dump(mode="json")
