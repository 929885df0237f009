"""Hard exclusion filters applied to candidate jobs before scoring.

Filter order:
  1. ApplyUrlFilter: job must have an http(s) apply URL
  2. RoleExclusionFilter: teaching, legal, assistant, generic manager titles
  3. UnpaidFilter: unpaid / volunteer postings
  4. LanguageRequirementFilter: languages the user does not speak
"""

import logging
import re
from collections.abc import Callable
from urllib.parse import urlsplit

from src.core.schemas import Job, UserPreferences

logger = logging.getLogger(__name__)

# A filter is a callable that takes jobs and returns a subset.
Filter = Callable[[list[Job]], list[Job]]


def _words(*terms: str) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(terms) + r")\b", re.IGNORECASE)


# (rule name, title pattern, pattern in title+description that keeps the job)
_ROLE_EXCLUSIONS: list[tuple[str, re.Pattern[str], re.Pattern[str] | None]] = [
    (
        "teaching",
        _words(r"teacher", r"teaching", r"educator", r"tutor", r"instructor", r"lecturer"),
        _words(r"business"),
    ),
    (
        "legal",
        _words(r"lawyer", r"attorney", r"solicitor", r"barrister", r"legal\s+counsel",
               r"legal\s+advisor", r"paralegal"),
        _words(r"compliance", r"regulatory", r"business", r"corporate"),
    ),
    (
        "assistant",
        _words(r"virtual\s+assistant", r"executive\s+assistant", r"personal\s+assistant",
               r"administrative\s+assistant"),
        None,
    ),
    (
        "manager",
        _words(r"manager"),
        _words(r"graduate", r"trainee", r"junior", r"entry.?level", r"associate",
               r"compliance", r"regulatory", r"tax", r"legal"),
    ),
]

_UNPAID_RE = _words(r"unpaid", r"no\s+salary", r"without\s+pay", r"volunteer(?:ing)?",
                    r"unbezahlt", r"non\s+rémunéré", r"no\s+remunerad[oa]")

# Description markers for languages English-speaking applicants often lack.
_MARKER_LANGUAGES = {
    "japanese": "Japanese",
    "chinese": "Chinese",
    "mandarin": "Chinese",
    "cantonese": "Chinese",
    "korean": "Korean",
    "arabic": "Arabic",
    "russian": "Russian",
    "hindi": "Hindi",
    "turkish": "Turkish",
    "hebrew": "Hebrew",
    "thai": "Thai",
    "vietnamese": "Vietnamese",
}
_MARKER_NAMES = "|".join(_MARKER_LANGUAGES)
_LANGUAGE_MARKER_RES = (
    re.compile(
        rf"\b(?:fluent|fluency|native|must\s+speak|requires?|required|proficien\w*)\b"
        rf"(?:\s+(?:in|with))?\s+({_MARKER_NAMES})\b",
        re.IGNORECASE,
    ),
    re.compile(rf"\b({_MARKER_NAMES})\s+(?:speaker|speaking|native)\b", re.IGNORECASE),
)


def is_valid_apply_url(url: str) -> bool:
    parts = urlsplit(url.strip())
    return parts.scheme in ("http", "https") and bool(parts.netloc)


class ApplyUrlFilter:
    """Remove jobs without an http(s) apply URL."""

    def __call__(self, jobs: list[Job]) -> list[Job]:
        result = [j for j in jobs if is_valid_apply_url(j.job_url)]
        removed = len(jobs) - len(result)
        if removed:
            logger.debug("ApplyUrlFilter: removed %d jobs", removed)
        return result


class RoleExclusionFilter:
    """Remove role families early-career users should not see.

    Each rule has an escape hatch: a teaching role in a business school or a
    compliance-flavoured legal role is kept.
    """

    def __call__(self, jobs: list[Job]) -> list[Job]:
        result = []
        for job in jobs:
            rule = self.excluded_by(job)
            if rule:
                logger.debug("RoleExclusionFilter: '%s' excluded (%s)", job.title, rule)
            else:
                result.append(job)
        removed = len(jobs) - len(result)
        if removed:
            logger.debug("RoleExclusionFilter: removed %d jobs", removed)
        return result

    @staticmethod
    def excluded_by(job: Job) -> str | None:
        text = f"{job.title} {job.description}"
        for name, title_re, keep_re in _ROLE_EXCLUSIONS:
            if title_re.search(job.title) and not (keep_re and keep_re.search(text)):
                return name
        return None


class UnpaidFilter:
    """Remove unpaid and volunteer postings."""

    def __call__(self, jobs: list[Job]) -> list[Job]:
        result = [j for j in jobs if not _UNPAID_RE.search(f"{j.title} {j.description}")]
        removed = len(jobs) - len(result)
        if removed:
            logger.debug("UnpaidFilter: removed %d jobs", removed)
        return result


class LanguageRequirementFilter:
    """Remove jobs requiring a language the user does not speak.

    Structured requirements must overlap with the user's languages. The
    description is also scanned for "fluent Japanese"/"Korean speaker" style
    markers. A user who listed no languages is treated as English-only.
    """

    def __init__(self, languages_spoken: list[str]) -> None:
        self._spoken = {lang.strip().lower() for lang in languages_spoken if lang.strip()}
        if not self._spoken:
            self._spoken = {"english"}

    def __call__(self, jobs: list[Job]) -> list[Job]:
        result = [j for j in jobs if self.speaks_required(j)]
        removed = len(jobs) - len(result)
        if removed:
            logger.debug("LanguageRequirementFilter: removed %d jobs", removed)
        return result

    def speaks_required(self, job: Job) -> bool:
        required = {lang.lower() for lang in job.language_requirements}
        if required and not required & self._spoken:
            return False
        for pattern in _LANGUAGE_MARKER_RES:
            for m in pattern.finditer(job.description):
                if _MARKER_LANGUAGES[m.group(1).lower()].lower() not in self._spoken:
                    return False
        return True


def build_exclusion_filters(prefs: UserPreferences) -> list[Filter]:
    """Full hard-filter chain for a user."""
    return [
        ApplyUrlFilter(),
        RoleExclusionFilter(),
        UnpaidFilter(),
        LanguageRequirementFilter(prefs.languages_spoken),
    ]


def run_filter_chain(jobs: list[Job], filters: list[Filter]) -> list[Job]:
    """Apply filters in order, returning the surviving jobs."""
    result = jobs
    for f in filters:
        result = f(result)
    return result
