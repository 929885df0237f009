"""Scoring strategies, the AI/fallback boundary, and tier matchers.

One interface, two implementations:
  RuleBasedStrategy  deterministic, no I/O, method "fallback"
  AIStrategy         one LLM call over a rule-ranked shortlist, method "ai"

ScoringBoundary runs the AI strategy under a hard timeout and switches to the
rule-based strategy on timeout, provider error, or an unusable response.
FreeMatcher and PremiumMatcher shape the preferences and candidate list for
their tier before handing them to the boundary.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable

from src.core.config import AIConfig, MatchingConfig, ScoringConfig
from src.core.schemas import Job, ScoredJob, UserPreferences
from src.llm.base import LLMProvider
from src.matching.ai_scorer import (
    MATCHING_SYSTEM_PROMPT,
    AIScoringError,
    build_matching_prompt,
    parse_ai_matches,
)
from src.matching.companies import company_tier_score, is_premium_company
from src.matching.scorer import canonical_work_environment, score_cap, score_jobs

logger = logging.getLogger(__name__)


class ScoringStrategy(ABC):
    """Scores candidate jobs for one user."""

    @property
    @abstractmethod
    def method(self) -> str:
        """Method tag recorded on every match ('ai' or 'fallback')."""

    @abstractmethod
    async def score(self, jobs: list[Job], prefs: UserPreferences) -> list[ScoredJob]:
        """Return scored jobs, best first."""


class RuleBasedStrategy(ScoringStrategy):
    def __init__(self, config: ScoringConfig) -> None:
        self._config = config

    @property
    def method(self) -> str:
        return "fallback"

    async def score(self, jobs: list[Job], prefs: UserPreferences) -> list[ScoredJob]:
        return score_jobs(jobs, prefs, self._config)


class AIStrategy(ScoringStrategy):
    """Ask an LLM to score the rule-based shortlist.

    AI scores are held inside the same bands as rule scores, so a job with no
    career-path overlap stays at or below ``no_career_cap``. Fewer usable AI
    matches than ``fallback_threshold`` counts as a failed response.
    """

    def __init__(
        self,
        provider: LLMProvider,
        ai_config: AIConfig,
        scoring: ScoringConfig,
        matching: MatchingConfig,
    ) -> None:
        self._provider = provider
        self._ai = ai_config
        self._scoring = scoring
        self._matching = matching

    @property
    def method(self) -> str:
        return "ai"

    async def score(self, jobs: list[Job], prefs: UserPreferences) -> list[ScoredJob]:
        shortlist = score_jobs(jobs, prefs, self._scoring)[: self._matching.max_jobs_for_ai]
        if not shortlist:
            return []

        prompt = build_matching_prompt(prefs, [s.job for s in shortlist])
        raw = await self._provider.complete(
            prompt,
            model=self._ai.model,
            system=MATCHING_SYSTEM_PROMPT,
            max_tokens=self._ai.max_tokens,
        )
        parsed = parse_ai_matches(raw, len(shortlist))

        minimum = min(self._matching.fallback_threshold, len(shortlist))
        if len(parsed) < minimum:
            msg = f"AI returned {len(parsed)} matches, expected at least {minimum}"
            raise AIScoringError(msg)

        result: list[ScoredJob] = []
        for index, ai_score, reason in parsed:
            rule = shortlist[index]
            cap = score_cap(
                self._scoring, bool(prefs.career_path), rule.career_match, rule.city_match,
            )
            result.append(
                rule.model_copy(
                    update={
                        "score": min(ai_score, cap),
                        "reason": reason or rule.reason,
                        "method": "ai",
                    }
                )
            )
        result.sort(key=lambda s: s.score, reverse=True)
        logger.info(
            "AI scored %d/%d shortlisted jobs via %s",
            len(result), len(shortlist), self._provider.provider_id,
        )
        return result


class ScoringBoundary:
    """Try the primary strategy under a timeout; fall back on any failure."""

    def __init__(
        self,
        primary: ScoringStrategy | None,
        fallback: ScoringStrategy,
        timeout_s: float,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.timeout_s = timeout_s

    async def score(
        self, jobs: list[Job], prefs: UserPreferences
    ) -> tuple[list[ScoredJob], str]:
        """Return (scored jobs, method tag of the strategy that produced them)."""
        if self.primary is not None and jobs:
            try:
                scored = await asyncio.wait_for(
                    self.primary.score(jobs, prefs), timeout=self.timeout_s
                )
            except TimeoutError:
                logger.warning(
                    "%s scoring timed out after %.1fs, using %s",
                    self.primary.method, self.timeout_s, self.fallback.method,
                )
            except Exception:
                logger.warning(
                    "%s scoring failed, using %s",
                    self.primary.method, self.fallback.method,
                    exc_info=True,
                )
            else:
                if scored:
                    return scored, self.primary.method
                logger.warning("%s scoring returned nothing, using %s",
                               self.primary.method, self.fallback.method)

        return await self.fallback.score(jobs, prefs), self.fallback.method


class TierMatcher(ABC):
    """Tier-specific preparation in front of a ScoringBoundary."""

    def __init__(self, boundary: ScoringBoundary) -> None:
        self.boundary = boundary

    @abstractmethod
    def prepare(
        self, jobs: list[Job], prefs: UserPreferences
    ) -> tuple[list[Job], UserPreferences]:
        """Return the jobs and preferences the boundary should see."""

    async def match(
        self, jobs: list[Job], prefs: UserPreferences
    ) -> tuple[list[ScoredJob], str]:
        jobs, prefs = self.prepare(jobs, prefs)
        return await self.boundary.score(jobs, prefs)


class FreeMatcher(TierMatcher):
    """First career path only; premium-only preferences are ignored."""

    def prepare(
        self, jobs: list[Job], prefs: UserPreferences
    ) -> tuple[list[Job], UserPreferences]:
        trimmed = prefs.model_copy(
            update={
                "career_path": prefs.career_path[:1],
                "skills": [],
                "industries": [],
                "company_size_preference": None,
            }
        )
        return jobs, trimmed


_LARGE_COMPANY = re.compile(r"\b(?:large|enterprise|corporate|big|multinational)\b", re.I)
_SMALL_COMPANY = re.compile(r"\b(?:startup|start-up|small|scale-?up)\b", re.I)


def _mentions_any(job: Job, terms: list[str]) -> bool:
    text = f"{job.title} {job.description}".lower()
    return any(t.strip().lower() in text for t in terms if t.strip())


def _work_environment_fits(job: Job, wanted: str) -> bool:
    actual = canonical_work_environment(job.work_environment) or "on-site"
    return actual == wanted or actual == "hybrid"


def _company_size_fits(job: Job, wanted: str) -> bool:
    established = is_premium_company(job.company) or company_tier_score(job.company) > 0
    if _LARGE_COMPANY.search(wanted):
        return established
    if _SMALL_COMPANY.search(wanted):
        return not established
    return True


class PremiumMatcher(TierMatcher):
    """All career paths plus soft prefilters on the premium preferences.

    Each prefilter (work environment, skills, industries, company size) is
    skipped when it would leave no candidates.
    """

    def prepare(
        self, jobs: list[Job], prefs: UserPreferences
    ) -> tuple[list[Job], UserPreferences]:
        wanted_env = canonical_work_environment(prefs.work_environment)
        prefilters: list[tuple[str, bool, Callable[[Job], bool]]] = [
            (
                "work_environment",
                wanted_env is not None,
                lambda j: _work_environment_fits(j, wanted_env or ""),
            ),
            ("skills", bool(prefs.skills), lambda j: _mentions_any(j, prefs.skills)),
            ("industries", bool(prefs.industries), lambda j: _mentions_any(j, prefs.industries)),
            (
                "company_size",
                bool(prefs.company_size_preference),
                lambda j: _company_size_fits(j, prefs.company_size_preference or ""),
            ),
        ]
        result = jobs
        for name, active, predicate in prefilters:
            if not active:
                continue
            kept = [j for j in result if predicate(j)]
            if kept:
                result = kept
            else:
                logger.debug("Premium prefilter '%s' would empty the list, skipped", name)
        return result, prefs


def get_matcher(tier: str, boundary: ScoringBoundary) -> TierMatcher:
    if tier == "free":
        return FreeMatcher(boundary)
    return PremiumMatcher(boundary)
