"""Configuration models and YAML loader for the early-careers engine."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Tier = Literal["free", "premium_pending"]


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/jobs.db"


class SourceConfig(BaseModel):
    """A single ingestion source.

    ``kind`` selects the adapter; ``name`` is the source label stored on every
    job (and the scope of missing-job deactivation). Two Lever boards would
    share ``kind: lever`` but need distinct names.
    """

    name: str
    kind: str = ""
    enabled: bool = True
    base_url: str | None = None
    max_pages: int = Field(default=5, ge=1, le=100)
    page_size: int = Field(default=100, ge=1, le=1000)
    request_interval_s: float = Field(default=1.0, ge=0.0)
    rate_limit_backoff_s: float = Field(default=2.0, ge=0.0)
    timeout_s: float = Field(default=30.0, gt=0.0)
    api_key_env: str | None = None
    params: dict[str, str] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "source name must not be empty"
            raise ValueError(msg)
        return v.strip()

    @model_validator(mode="after")
    def default_kind(self) -> "SourceConfig":
        if not self.kind:
            self.kind = self.name
        return self


class IngestionConfig(BaseModel):
    """Persistence batching and telemetry limits."""

    batch_size: int = Field(default=50, ge=1, le=1000)
    batch_delay_s: float = Field(default=0.1, ge=0.0)
    max_samples: int = Field(default=3, ge=0)
    deactivate_missing: bool = True
    parallel_sources: bool = False


class ScoringConfig(BaseModel):
    """Weights and thresholds for rule-based match scoring (all scores 0-1)."""

    career_weight: float = Field(default=0.35, ge=0.0, le=1.0)
    city_weight: float = Field(default=0.20, ge=0.0, le=1.0)
    experience_weight: float = Field(default=0.13, ge=0.0, le=1.0)
    work_environment_weight: float = Field(default=0.12, ge=0.0, le=1.0)
    language_weight: float = Field(default=0.10, ge=0.0, le=1.0)
    skills_weight: float = Field(default=0.05, ge=0.0, le=1.0)
    company_weight: float = Field(default=0.03, ge=0.0, le=1.0)
    timing_weight: float = Field(default=0.02, ge=0.0, le=1.0)

    career_city_floor: float = Field(default=0.85, ge=0.0, le=1.0)
    career_city_cap: float = Field(default=0.95, ge=0.0, le=1.0)
    career_floor: float = Field(default=0.75, ge=0.0, le=1.0)
    career_cap: float = Field(default=0.90, ge=0.0, le=1.0)
    no_career_cap: float = Field(default=0.65, ge=0.0, le=1.0)
    no_career_multiplier: float = Field(default=0.7, ge=0.0, le=1.0)
    score_floor: float = Field(default=0.50, ge=0.0, le=1.0)
    no_preference_cap: float = Field(default=0.90, ge=0.0, le=1.0)

    hot_threshold: float = Field(default=0.92, ge=0.0, le=1.0)
    hot_adjusted_score: float = Field(default=0.91, ge=0.0, le=1.0)
    max_hot_matches: int = Field(default=2, ge=0)
    premium_min_score: float = Field(default=0.60, ge=0.0, le=1.0)
    premium_boost: float = Field(default=0.05, ge=0.0, le=0.5)
    visa_boost: float = Field(default=0.05, ge=0.0, le=0.5)
    visa_unknown_penalty: float = Field(default=0.05, ge=0.0, le=0.5)
    visa_local_only_penalty: float = Field(default=0.20, ge=0.0, le=0.5)

    @model_validator(mode="after")
    def check_weights_and_bounds(self) -> "ScoringConfig":
        total = (
            self.career_weight + self.city_weight + self.experience_weight
            + self.work_environment_weight + self.language_weight
            + self.skills_weight + self.company_weight + self.timing_weight
        )
        if abs(total - 1.0) > 0.01:
            msg = f"scoring weights must sum to 1.0 (got {total:.3f})"
            raise ValueError(msg)
        if self.career_city_floor > self.career_city_cap or self.career_floor > self.career_cap:
            msg = "career floors must not exceed their caps"
            raise ValueError(msg)
        if self.hot_adjusted_score >= self.hot_threshold:
            msg = "hot_adjusted_score must be below hot_threshold"
            raise ValueError(msg)
        return self


class AIConfig(BaseModel):
    """AI-assisted scoring settings."""

    enabled: bool = True
    provider: str = "openai"
    model: str | None = None
    timeout_s: float = Field(default=30.0, gt=0.0)
    max_tokens: int = Field(default=2000, ge=100)


class MatchingConfig(BaseModel):
    """Per-tier matching limits. Frozen: tiers are constants once validated."""

    model_config = ConfigDict(frozen=True)

    tier: Tier
    max_matches: int = Field(ge=1)
    job_freshness_days: int = Field(ge=1)
    use_ai: bool = True
    max_jobs_for_ai: int = Field(ge=1)
    fallback_threshold: int = Field(ge=0)
    max_jobs_to_fetch: int = Field(ge=1)
    allow_freshness_override: bool = False

    @model_validator(mode="after")
    def enforce_tier_limits(self) -> "MatchingConfig":
        if self.tier == "free" and self.max_matches > FREE_MAX_MATCHES:
            msg = f"free tier max_matches must be <= {FREE_MAX_MATCHES} (got {self.max_matches})"
            raise ValueError(msg)
        if (
            self.tier == "premium_pending"
            and self.job_freshness_days > PREMIUM_MAX_FRESHNESS_DAYS
            and not self.allow_freshness_override
        ):
            msg = (
                f"premium tier job_freshness_days must be <= {PREMIUM_MAX_FRESHNESS_DAYS} "
                "unless allow_freshness_override is set"
            )
            raise ValueError(msg)
        return self


FREE_MAX_MATCHES = 5
PREMIUM_MAX_FRESHNESS_DAYS = 7

TIER_CONFIGS: dict[str, MatchingConfig] = {
    "free": MatchingConfig(
        tier="free",
        max_matches=5,
        job_freshness_days=30,
        max_jobs_for_ai=20,
        fallback_threshold=3,
        max_jobs_to_fetch=5000,
    ),
    "premium_pending": MatchingConfig(
        tier="premium_pending",
        max_matches=15,
        job_freshness_days=7,
        max_jobs_for_ai=30,
        fallback_threshold=5,
        max_jobs_to_fetch=10000,
    ),
}


def get_tier_config(tier: str) -> MatchingConfig:
    """Return the default MatchingConfig for a tier.

    Raises:
        ValueError: If the tier is unknown.
    """
    if tier not in TIER_CONFIGS:
        valid = ", ".join(sorted(TIER_CONFIGS))
        msg = f"Unknown tier '{tier}'. Available: {valid}"
        raise ValueError(msg)
    return TIER_CONFIGS[tier]


class MatchingSettings(BaseModel):
    """Orchestrator behaviour shared by all tiers, plus per-tier overrides."""

    relaxed_freshness_days: int = Field(default=90, ge=1)
    idempotency_ttl_hours: int = Field(default=168, ge=1)
    claim_wait_s: float = Field(default=30.0, ge=0.0)
    claim_poll_interval_s: float = Field(default=0.5, gt=0.0)
    stale_claim_s: float = Field(default=300.0, gt=0.0)
    tiers: dict[str, MatchingConfig] = Field(default_factory=lambda: dict(TIER_CONFIGS))

    @field_validator("tiers", mode="before")
    @classmethod
    def merge_tier_defaults(cls, v: Any) -> dict[str, Any]:
        """Overlay partial YAML overrides onto the built-in tier constants."""
        merged: dict[str, Any] = {name: cfg.model_dump() for name, cfg in TIER_CONFIGS.items()}
        for name, override in (v or {}).items():
            if name not in merged:
                msg = f"unknown tier '{name}'"
                raise ValueError(msg)
            if isinstance(override, MatchingConfig):
                override = override.model_dump()
            merged[name] = {**merged[name], **override, "tier": name}
        return merged

    def for_tier(self, tier: str) -> MatchingConfig:
        if tier not in self.tiers:
            msg = f"Unknown tier '{tier}'"
            raise ValueError(msg)
        return self.tiers[tier]


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    sources: list[SourceConfig] = Field(default_factory=list)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)

    @field_validator("sources")
    @classmethod
    def unique_source_names(cls, v: list[SourceConfig]) -> list[SourceConfig]:
        names = [s.name for s in v]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            msg = f"duplicate source names: {', '.join(dupes)}"
            raise ValueError(msg)
        return v

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
