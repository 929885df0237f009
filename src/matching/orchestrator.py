"""Matching orchestrator: one request from preferences to persisted matches.

States per request:
  1. IDEMPOTENCY_CHECK   reuse an unexpired completed run, or claim a new one
  2. FETCH_CANDIDATES    freshness-windowed fetch + exclusion filters, relaxed
                         level by level until something survives
  3. STRATEGY_DISPATCH   FreeMatcher / PremiumMatcher → AI or fallback scoring
  4. SCORE_AND_RANK      multi-pass selection bounded by the tier's max_matches
  5. PERSIST_RESULT      store matches and complete the run atomically
"""

import asyncio
import logging
import sqlite3
import time
from datetime import timedelta

from src.core.config import MatchingConfig, Settings
from src.core.db import fetch_candidate_jobs
from src.core.schemas import Job, Match, MatchingResult, UserPreferences, utcnow
from src.llm import get_provider
from src.llm.base import LLMProvider
from src.matching.filters import (
    ApplyUrlFilter,
    Filter,
    build_exclusion_filters,
    run_filter_chain,
)
from src.matching.idempotency import IdempotencyGuard, MatchInProgressError
from src.matching.selection import select_matches
from src.matching.strategies import (
    AIStrategy,
    RuleBasedStrategy,
    ScoringBoundary,
    ScoringStrategy,
    get_matcher,
)

logger = logging.getLogger(__name__)

NO_JOBS_AVAILABLE = "NO_JOBS_AVAILABLE"
MATCH_IN_PROGRESS = "MATCH_IN_PROGRESS"


class RelaxationLevel:
    """One rung of the candidate-fetch ladder."""

    def __init__(
        self,
        name: str,
        freshness_days: int | None,
        career_filter: bool,
        exclusion_filters: bool,
    ) -> None:
        self.name = name
        self.freshness_days = freshness_days
        self.career_filter = career_filter
        self.exclusion_filters = exclusion_filters


def relaxation_levels(config: MatchingConfig, relaxed_days: int) -> list[RelaxationLevel]:
    widened = max(relaxed_days, config.job_freshness_days)
    return [
        RelaxationLevel("tier", config.job_freshness_days, True, True),
        RelaxationLevel("widened_freshness", widened, True, True),
        RelaxationLevel("any_career_path", widened, False, True),
        RelaxationLevel("apply_url_only", None, False, False),
    ]


class MatchingOrchestrator:
    """Run matching requests against the job store.

    Args:
        conn: SQLite connection holding jobs, matches and match runs.
        settings: Loaded settings.
        provider: LLM provider for AI scoring. When None and AI is enabled,
            one is built from ``settings.ai.provider`` on first use.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        settings: Settings,
        provider: LLMProvider | None = None,
    ) -> None:
        self._conn = conn
        self._settings = settings
        self._provider = provider
        self._guard = IdempotencyGuard(conn, settings.matching)

    async def run(self, prefs: UserPreferences) -> MatchingResult:
        started = time.perf_counter()
        email, tier = prefs.email, prefs.subscription_tier
        config = self._settings.matching.for_tier(tier)

        # Step 1: idempotency
        try:
            existing = self._guard.completed_matches(email, tier)
            if existing is None:
                existing = await self._guard.claim(email, tier)
        except MatchInProgressError as e:
            logger.warning("%s", e)
            return MatchingResult(
                success=False, error=MATCH_IN_PROGRESS, processing_time_ms=_elapsed_ms(started)
            )
        if existing is not None:
            logger.info("Idempotent hit for %s (%s): %d matches", email, tier, len(existing))
            return MatchingResult(
                success=True,
                match_count=len(existing),
                matches=existing,
                method="idempotent",
                processing_time_ms=_elapsed_ms(started),
            )

        try:
            # Step 2: candidates
            candidates, level = await self._fetch_candidates(prefs, config)
            if not candidates:
                self._guard.release(email, tier)
                logger.warning("No jobs available for %s at any relaxation level", email)
                return MatchingResult(
                    success=False,
                    error=NO_JOBS_AVAILABLE,
                    processing_time_ms=_elapsed_ms(started),
                )

            # Steps 3-4: score and select
            matcher = get_matcher(tier, self._build_boundary(config))
            scored, method = await matcher.match(candidates, prefs)
            selected = select_matches(
                scored, config.max_matches, self._settings.scoring, prefs.target_cities
            )

            # Step 5: persist
            now = utcnow()
            matches = [
                Match(
                    user_email=email,
                    job_hash=s.job.job_hash,
                    score=s.score,
                    reason=s.reason,
                    method=s.method,
                    rank=rank,
                    matched_at=now,
                )
                for rank, s in enumerate(selected, start=1)
            ]
            self._guard.complete(email, tier, matches, method)
        except Exception:
            self._guard.release(email, tier)
            raise

        elapsed = _elapsed_ms(started)
        logger.info(
            "Matched %s (%s): %d/%d candidates selected via %s at level '%s' in %.0fms",
            email, tier, len(matches), len(candidates), method, level, elapsed,
        )
        return MatchingResult(
            success=True,
            match_count=len(matches),
            matches=matches,
            method=method,  # type: ignore[arg-type]
            relaxation_level=level,
            processing_time_ms=elapsed,
        )

    async def _fetch_candidates(
        self, prefs: UserPreferences, config: MatchingConfig
    ) -> tuple[list[Job], str | None]:
        career_paths = prefs.career_path[:1] if config.tier == "free" else prefs.career_path
        levels = relaxation_levels(config, self._settings.matching.relaxed_freshness_days)
        for level in levels:
            since = (
                utcnow() - timedelta(days=level.freshness_days)
                if level.freshness_days is not None
                else None
            )
            jobs = await asyncio.to_thread(
                fetch_candidate_jobs,
                self._conn,
                limit=config.max_jobs_to_fetch,
                since=since,
                career_paths=career_paths if level.career_filter else None,
                require_apply_url=not level.exclusion_filters,
            )
            filters: list[Filter] = (
                build_exclusion_filters(prefs) if level.exclusion_filters else [ApplyUrlFilter()]
            )
            survivors = run_filter_chain(jobs, filters)
            logger.debug(
                "Level '%s': %d fetched, %d after filters", level.name, len(jobs), len(survivors)
            )
            if survivors:
                if level.name != "tier":
                    logger.info("Relaxed candidate fetch for %s to '%s'", prefs.email, level.name)
                return survivors, level.name
        return [], None

    def _build_boundary(self, config: MatchingConfig) -> ScoringBoundary:
        fallback = RuleBasedStrategy(self._settings.scoring)
        primary: ScoringStrategy | None = None
        if self._settings.ai.enabled and config.use_ai:
            if self._provider is None:
                self._provider = get_provider(self._settings.ai.provider)
            primary = AIStrategy(self._provider, self._settings.ai, self._settings.scoring, config)
        return ScoringBoundary(primary, fallback, self._settings.ai.timeout_s)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)
