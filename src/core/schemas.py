"""Core data models for job ingestion and matching."""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.core.config import Tier

# A posting exactly as a source returned it.
RawPosting = dict[str, Any]

WorkEnvironment = Literal["remote", "hybrid", "office", "on-site"]
JobStatus = Literal["active", "inactive", "filtered"]
MatchMethod = Literal["ai", "fallback", "idempotent"]

# Career-path slugs in tagging priority order.
CAREER_PATHS = ("tech", "data-analytics", "marketing", "finance", "strategy", "product")
UNKNOWN_CAREER_PATH = "unknown"

# Signup form labels mapped onto career-path slugs.
_CAREER_PATH_ALIASES = {
    "technology": "tech",
    "software": "tech",
    "engineering": "tech",
    "data": "data-analytics",
    "analytics": "data-analytics",
    "data analytics": "data-analytics",
    "consulting": "strategy",
    "business": "strategy",
    "design": "product",
    "ux": "product",
    "banking": "finance",
}


def normalize_career_path(value: str) -> str:
    key = " ".join(value.strip().lower().replace("_", "-").split())
    return _CAREER_PATH_ALIASES.get(key, key)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(BaseModel):
    """A normalized, classified job posting keyed by its identity hash.

    Frozen: classification and lifecycle changes go through ``model_copy``.
    """

    model_config = ConfigDict(frozen=True)

    job_hash: str
    source: str
    external_id: str | None = None
    title: str
    company: str = ""
    location: str = ""
    city: str = ""
    country: str = ""
    description: str = ""
    job_url: str = ""
    categories: list[str] = Field(default_factory=list)
    is_internship: bool = False
    is_graduate: bool = False
    is_early_career: bool = False
    work_environment: WorkEnvironment = "on-site"
    language_requirements: list[str] = Field(default_factory=list)
    posted_at: datetime | None = None
    scrape_timestamp: datetime = Field(default_factory=utcnow)
    last_seen_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    is_active: bool = True
    status: JobStatus = "active"
    filtered_reason: str | None = None

    @model_validator(mode="after")
    def internship_graduate_exclusive(self) -> "Job":
        if self.is_internship and self.is_graduate:
            msg = "a job cannot be both an internship and a graduate role"
            raise ValueError(msg)
        return self

    @property
    def career_path(self) -> str:
        for category in self.categories:
            if category in CAREER_PATHS:
                return category
        return UNKNOWN_CAREER_PATH

    @property
    def recency(self) -> datetime:
        """posted_at when known, otherwise when the job was first stored."""
        return self.posted_at or self.created_at


class UserPreferences(BaseModel):
    """What a user asked for at signup. The email is the identity key."""

    email: str
    target_cities: list[str] = Field(default_factory=list)
    career_path: list[str] = Field(default_factory=list)
    languages_spoken: list[str] = Field(default_factory=list)
    visa_status: str | None = None
    work_environment: str | None = None
    entry_level_preference: str | None = None
    subscription_tier: Tier = "free"
    # premium only
    skills: list[str] = Field(default_factory=list)
    industries: list[str] = Field(default_factory=list)
    company_size_preference: str | None = None

    @field_validator("email")
    @classmethod
    def email_not_empty(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            msg = "email must not be empty"
            raise ValueError(msg)
        return v

    @field_validator("career_path")
    @classmethod
    def normalize_career_paths(cls, v: list[str]) -> list[str]:
        paths: list[str] = []
        for raw in v:
            slug = normalize_career_path(raw)
            if slug and slug not in paths:
                paths.append(slug)
        return paths


class ScoredJob(BaseModel):
    """Wrapper that pairs a frozen Job with a 0-1 match score."""

    model_config = ConfigDict(frozen=True)

    job: Job
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    reason: str = ""
    method: Literal["ai", "fallback"] = "fallback"
    career_match: bool = False
    city_match: bool = False
    premium: bool = False


class Match(BaseModel):
    """A persisted match between a user and a job."""

    model_config = ConfigDict(frozen=True)

    user_email: str
    job_hash: str
    score: float = Field(ge=0.0, le=1.0)
    reason: str = ""
    method: Literal["ai", "fallback"] = "fallback"
    rank: int = Field(ge=1)
    matched_at: datetime = Field(default_factory=utcnow)


class MatchingResult(BaseModel):
    """Outcome of one matching request."""

    success: bool
    match_count: int = 0
    matches: list[Match] = Field(default_factory=list)
    method: MatchMethod | None = None
    relaxation_level: str | None = None
    processing_time_ms: float = 0.0
    error: str | None = None


class UpsertResult(BaseModel):
    """Counts from persisting one ingestion batch."""

    inserted: int = 0
    updated: int = 0
    duplicates_removed: int = 0
    errors: list[str] = Field(default_factory=list)


class FunnelSnapshot(BaseModel):
    """Funnel counters for one completed ingestion run."""

    source: str
    raw: int = 0
    eligible: int = 0
    career_tagged: int = 0
    location_tagged: int = 0
    inserted: int = 0
    updated: int = 0
    deactivated: int = 0
    errors: list[str] = Field(default_factory=list)
    samples: list[str] = Field(default_factory=list)
    started_at: datetime
    finished_at: datetime
