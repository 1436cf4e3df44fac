"""Tech stack domain models.

Detections are lightweight tuples produced by the signal detectors.
Everything persisted or returned to callers is a pydantic model so it
serializes to plain JSON (snake_case keys, enum values as strings).
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import ClassVar, Iterable, NamedTuple

from pydantic import BaseModel, Field


class TechCategory(str, Enum):
    """Technology category buckets."""

    LANGUAGE = "Language"
    FRAMEWORK = "Framework"
    LIBRARY = "Library"
    TOOL = "Tool"
    DATABASE = "Database"
    OTHER = "Other"


class Signal(str, Enum):
    """Independent detection heuristics."""

    LANGUAGES = "languages"
    DEPENDENCIES = "dependencies"
    FILE_PRESENCE = "file_presence"
    README = "readme"
    TOPICS = "topics"


class ProfileSource(str, Enum):
    """Tier that served a tech stack lookup."""

    CACHE = "cache"
    DATABASE = "database"
    FRESH_ANALYSIS = "fresh_analysis"
    FORCED_REFRESH = "forced_refresh"


class Detection(NamedTuple):
    """A single raw detection emitted by a detector."""

    name: str
    category: TechCategory
    icon: str | None = None


class SignalDetection(NamedTuple):
    """A raw detection tagged with the signal that produced it."""

    name: str
    category: TechCategory
    icon: str | None
    signal: Signal

    @classmethod
    def tag(cls, detection: Detection, signal: Signal) -> SignalDetection:
        return cls(detection.name, detection.category, detection.icon, signal)


class DetectedTechnology(BaseModel):
    """A deduplicated technology in the final stack."""

    name: str = Field(..., min_length=1)
    category: TechCategory
    icon: str | None = None


class CategorizedTechStack(BaseModel):
    """Technologies grouped by category, each list in ranking order."""

    languages: list[DetectedTechnology] = Field(default_factory=list)
    frameworks: list[DetectedTechnology] = Field(default_factory=list)
    libraries: list[DetectedTechnology] = Field(default_factory=list)
    tools: list[DetectedTechnology] = Field(default_factory=list)
    databases: list[DetectedTechnology] = Field(default_factory=list)
    others: list[DetectedTechnology] = Field(default_factory=list)

    @classmethod
    def from_flat(cls, technologies: Iterable[DetectedTechnology]) -> CategorizedTechStack:
        """Split a ranked flat list into buckets, preserving order."""
        buckets: dict[TechCategory, list[DetectedTechnology]] = {c: [] for c in TechCategory}
        for tech in technologies:
            buckets[tech.category].append(tech)

        return cls(
            languages=buckets[TechCategory.LANGUAGE],
            frameworks=buckets[TechCategory.FRAMEWORK],
            libraries=buckets[TechCategory.LIBRARY],
            tools=buckets[TechCategory.TOOL],
            databases=buckets[TechCategory.DATABASE],
            others=buckets[TechCategory.OTHER],
        )


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TechStackProfile(BaseModel):
    """Persisted result of analyzing a user's repositories.

    One document per user, identified by a deterministic id. A new
    analysis replaces the previous document rather than amending it.
    """

    DOCUMENT_TYPE: ClassVar[str] = "techStackProfile"

    id: str
    user_id: str
    type: str = "techStackProfile"
    categorized: CategorizedTechStack = Field(default_factory=CategorizedTechStack)
    analyzed_at: datetime = Field(default_factory=_utcnow)
    analyzed_repo_count: int = 0
    signal_summary: dict[str, int] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @staticmethod
    def document_id(user_id: str) -> str:
        return f"{TechStackProfile.DOCUMENT_TYPE}-{user_id}"


class TechStackResult(NamedTuple):
    """A profile together with the tier that served it."""

    profile: TechStackProfile
    source: ProfileSource
