"""Rule-based match scoring for jobs against user preferences.

Score range: 0-1. A weighted sum of per-factor scores (weights from
ScoringConfig) gives the base score, then career-path overlap decides the
band it is pushed into:

  career + city match   → [career_city_floor, career_city_cap]   (0.85-0.95)
  career match only     → [career_floor, career_cap]             (0.75-0.90)
  no career overlap     → min(no_career_cap, base * multiplier),
                          floored at score_floor                 (0.50-0.65)
  user has no paths     → base clamped to [score_floor, no_preference_cap]

Premium companies get ``premium_boost`` added inside their band. For users who
need visa sponsorship, jobs that offer it get ``visa_boost`` (still inside the
band); jobs that say nothing lose ``visa_unknown_penalty`` and local-only jobs
lose ``visa_local_only_penalty``, never below ``score_floor``.
"""

import logging
import re
from datetime import datetime
from typing import Literal

from src.core.config import ScoringConfig
from src.core.schemas import Job, ScoredJob, UserPreferences, utcnow
from src.matching.companies import PREMIUM_POINTS, company_tier_score, is_premium_company
from src.pipeline.locations import location_mentions_city

logger = logging.getLogger(__name__)

_NEUTRAL = 0.5

# (user preference, job environment) → compatibility
_WORK_ENV_COMPAT: dict[tuple[str, str], float] = {
    ("remote", "hybrid"): 0.6,
    ("remote", "on-site"): 0.2,
    ("hybrid", "remote"): 0.7,
    ("hybrid", "on-site"): 0.6,
    ("on-site", "hybrid"): 0.7,
    ("on-site", "remote"): 0.4,
}


def canonical_work_environment(value: str | None) -> str | None:
    """Map a work-environment label onto remote/hybrid/on-site; None means no preference."""
    if not value:
        return None
    value = value.strip().lower()
    if value in ("office", "onsite", "on site", "in-office"):
        return "on-site"
    if value in ("unclear", "any", "flexible", "no preference"):
        return None
    return value


# Checked before the offer phrases: "no visa sponsorship" contains "visa sponsorship".
_VISA_LOCAL_ONLY_RE = re.compile(
    r"\b(?:no\s+visa\s+sponsorship|(?:unable|not\s+able)\s+to\s+sponsor|cannot\s+sponsor"
    r"|can'?t\s+sponsor|(?:does|do)\s+not\s+(?:offer|provide)\s+(?:visa\s+)?sponsorship"
    r"|(?:eu|eea|eu/eea|uk)\s+(?:citizens?|nationals?)\s+only|local\s+candidates\s+only"
    r"|(?:must\s+have|requires?)\s+(?:the\s+)?right\s+to\s+work|right\s+to\s+work\s+required"
    r"|must\s+be\s+legally\s+authori[sz]ed\s+to\s+work)\b",
    re.IGNORECASE,
)
_VISA_OFFERED_RE = re.compile(
    r"\b(?:visa\s+sponsorship|sponsor\s+(?:your\s+)?visas?|visa\s+(?:support|assistance)"
    r"|immigration\s+support|work\s+permit\s+(?:sponsorship|support)"
    r"|relocation\s+(?:support|package|assistance)|will\s+sponsor|can\s+sponsor"
    r"|sponsorship\s+available|blue\s+card|skilled\s+worker\s+visa|tier\s+2)\b",
    re.IGNORECASE,
)
_NO_SPONSORSHIP_RE = re.compile(
    r"\b(?:no\s+(?:visa\s+)?sponsorship|not\s+(?:need|require)|does\s+not\s+need)", re.IGNORECASE
)
_SPONSORSHIP_RE = re.compile(
    r"\b(?:non.?eu|non.?eea|need|needs|require|requires|sponsor)", re.IGNORECASE
)
_SETTLED_RE = re.compile(
    r"\b(?:citizen|citizenship|permanent|settled|eu\s+national|right\s+to\s+work)", re.IGNORECASE
)

VisaOutlook = Literal["sponsors", "local-only", "unknown"]


def needs_visa_sponsorship(visa_status: str | None) -> bool:
    """Any stated visa status other than citizen/permanent/settled counts as needing one."""
    if not visa_status or not visa_status.strip():
        return False
    if _NO_SPONSORSHIP_RE.search(visa_status):
        return False
    if _SPONSORSHIP_RE.search(visa_status):
        return True
    return _SETTLED_RE.search(visa_status) is None


def visa_outlook(job: Job) -> VisaOutlook:
    text = f"{job.title} {job.description}"
    if _VISA_LOCAL_ONLY_RE.search(text):
        return "local-only"
    if _VISA_OFFERED_RE.search(text):
        return "sponsors"
    return "unknown"


def matched_city(job: Job, target_cities: list[str]) -> str | None:
    """First target city the job is located in, in the user's order."""
    for city in target_cities:
        if location_mentions_city(job.city, city) or location_mentions_city(job.location, city):
            return city
    return None


def career_overlap(job: Job, career_paths: list[str]) -> bool:
    return bool(career_paths) and any(c in career_paths for c in job.categories)


def _work_environment_score(job: Job, prefs: UserPreferences) -> float:
    wanted = canonical_work_environment(prefs.work_environment)
    actual = canonical_work_environment(job.work_environment) or "on-site"
    if wanted is None:
        return 0.7
    if wanted == actual:
        return 1.0
    return _WORK_ENV_COMPAT.get((wanted, actual), 0.2)


def _experience_score(job: Job, prefs: UserPreferences) -> float:
    wanted = (prefs.entry_level_preference or "").strip().lower()
    if not wanted:
        return 0.8 if job.is_early_career else _NEUTRAL
    if wanted == "internship":
        return 1.0 if job.is_internship else 0.4
    if wanted == "graduate":
        return 1.0 if job.is_graduate else 0.5
    # entry-level / junior
    if job.is_early_career and not job.is_internship:
        return 1.0
    return 0.5


def _language_score(job: Job, prefs: UserPreferences) -> float:
    if not job.language_requirements:
        return 1.0
    spoken = {lang.lower() for lang in prefs.languages_spoken}
    required = {lang.lower() for lang in job.language_requirements}
    return 1.0 if required & spoken else 0.0


def _skills_score(job: Job, prefs: UserPreferences) -> float:
    if not prefs.skills:
        return _NEUTRAL
    text = f"{job.title} {job.description}".lower()
    hits = sum(1 for skill in prefs.skills if skill.strip() and skill.strip().lower() in text)
    return min(1.0, hits / min(3, len(prefs.skills)))


def _company_score(job: Job) -> float:
    return min(1.0, 0.3 + company_tier_score(job.company) / PREMIUM_POINTS * 0.7)


def _timing_score(job: Job, now: datetime) -> float:
    if job.posted_at is None:
        return _NEUTRAL
    age_days = (now - job.posted_at).days
    if age_days <= 7:
        return 1.0
    if age_days <= 30:
        return 0.7
    return 0.4


def score_cap(
    config: ScoringConfig,
    has_career_paths: bool,
    career_match: bool,
    city_match: bool,
) -> float:
    """Upper bound of the score band a job falls into."""
    if not has_career_paths:
        return config.no_preference_cap
    if career_match and city_match:
        return config.career_city_cap
    if career_match:
        return config.career_cap
    return config.no_career_cap


def _build_reason(
    job: Job,
    prefs: UserPreferences,
    city: str | None,
    career_match: bool,
    premium: bool,
    visa: VisaOutlook | None = None,
) -> str:
    parts: list[str] = []
    if city:
        parts.append(f"Located in your target city {city}")
    elif prefs.target_cities:
        parts.append(f"Outside your target cities ({job.city or job.location or 'unknown location'})")
    if career_match:
        parts.append(f"matches your {job.career_path} career path")
    elif prefs.career_path:
        parts.append(f"different career path ({job.career_path})")
    if job.is_graduate:
        parts.append("graduate role")
    elif job.is_internship:
        parts.append("internship")
    parts.append(f"{job.work_environment} work")
    if premium:
        parts.append(f"well-known employer {job.company}")
    if visa == "sponsors":
        parts.append("offers visa sponsorship")
    elif visa == "local-only":
        parts.append("local candidates only, no visa sponsorship")
    elif visa == "unknown":
        parts.append("visa sponsorship not mentioned")
    reason = "; ".join(parts)
    return reason[:1].upper() + reason[1:]


def score_job(
    job: Job,
    prefs: UserPreferences,
    config: ScoringConfig,
    now: datetime | None = None,
) -> ScoredJob:
    """Score a single job for a user.

    Args:
        job: Candidate job.
        prefs: The user's preferences.
        config: Weights and band thresholds.
        now: Clock override for the timing factor.

    Returns:
        ScoredJob with a 0-1 score, a human-readable reason, and match flags.
    """
    now = now or utcnow()
    city = matched_city(job, prefs.target_cities)
    career_match = career_overlap(job, prefs.career_path)
    premium = is_premium_company(job.company)

    city_score = 1.0 if city else (0.0 if prefs.target_cities else _NEUTRAL)
    career_score = 1.0 if career_match else (0.0 if prefs.career_path else _NEUTRAL)

    base = (
        config.career_weight * career_score
        + config.city_weight * city_score
        + config.experience_weight * _experience_score(job, prefs)
        + config.work_environment_weight * _work_environment_score(job, prefs)
        + config.language_weight * _language_score(job, prefs)
        + config.skills_weight * _skills_score(job, prefs)
        + config.company_weight * _company_score(job)
        + config.timing_weight * _timing_score(job, now)
    )

    cap = score_cap(config, bool(prefs.career_path), career_match, city is not None)
    if not prefs.career_path:
        score = min(cap, max(base, config.score_floor))
    elif career_match and city:
        score = min(cap, max(base, config.career_city_floor))
    elif career_match:
        score = min(cap, max(base, config.career_floor))
    else:
        score = max(config.score_floor, min(cap, base * config.no_career_multiplier))

    if premium:
        score = min(cap, score + config.premium_boost)

    visa = visa_outlook(job) if needs_visa_sponsorship(prefs.visa_status) else None
    if visa == "sponsors":
        score = min(cap, score + config.visa_boost)
    elif visa == "local-only":
        score = max(config.score_floor, score - config.visa_local_only_penalty)
    elif visa == "unknown":
        score = max(config.score_floor, score - config.visa_unknown_penalty)

    return ScoredJob(
        job=job,
        score=round(score, 4),
        reason=_build_reason(job, prefs, city, career_match, premium, visa),
        method="fallback",
        career_match=career_match,
        city_match=city is not None,
        premium=premium,
    )


def score_jobs(
    jobs: list[Job],
    prefs: UserPreferences,
    config: ScoringConfig,
    now: datetime | None = None,
) -> list[ScoredJob]:
    """Score a batch of jobs, returning ScoredJob list sorted by score desc."""
    now = now or utcnow()
    scored = [score_job(j, prefs, config, now) for j in jobs]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored
