"""Tests for the matching orchestrator and its idempotency guard."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from src.core.config import AIConfig, MatchingSettings, Settings, get_tier_config
from src.core.db import (
    claim_match_run,
    complete_match_run,
    get_match_run,
    get_matches,
    init_db,
    upsert_jobs,
)
from src.core.schemas import Job, Match, UserPreferences
from src.llm.base import LLMProvider
from src.matching.idempotency import IdempotencyGuard, MatchInProgressError
from src.matching.orchestrator import (
    MATCH_IN_PROGRESS,
    NO_JOBS_AVAILABLE,
    MatchingOrchestrator,
    relaxation_levels,
)

NOW = datetime.now(timezone.utc)
EMAIL = "ana@example.com"


class CountingProvider(LLMProvider):
    """Scores the first five numbered jobs and counts calls."""

    def __init__(self, delay: float = 0.0, fail: bool = False) -> None:
        self.calls = 0
        self.delay = delay
        self.fail = fail

    @property
    def provider_id(self) -> str:
        return "counting"

    @property
    def default_model(self) -> str:
        return "counting-1"

    @property
    def env_var(self) -> str | None:
        return None

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        max_tokens: int = 2000,
    ) -> str:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            msg = "provider unavailable"
            raise ConnectionError(msg)
        matches = [{"index": i, "score": 95 - i, "reason": f"AI pick {i}"} for i in range(1, 6)]
        return json.dumps({"matches": matches})


def _job(job_hash: str, **kw: object) -> Job:
    defaults: dict[str, object] = {
        "job_hash": job_hash,
        "source": "arbeitnow",
        "title": f"Graduate Software Engineer {job_hash}",
        "company": "Acme",
        "city": "Berlin",
        "location": "Berlin, Germany",
        "country": "Germany",
        "job_url": f"https://example.com/{job_hash}",
        "categories": ["tech", "early-career", "graduate"],
        "is_graduate": True,
        "is_early_career": True,
        "posted_at": NOW - timedelta(days=2),
    }
    defaults.update(kw)
    return Job(**defaults)  # type: ignore[arg-type]


def _seed(conn, count: int, prefix: str = "j", **kw: object) -> None:  # type: ignore[no-untyped-def]
    upsert_jobs(conn, [_job(f"{prefix}{i}", **kw) for i in range(count)])


def _prefs(tier: str = "free", **kw: object) -> UserPreferences:
    defaults: dict[str, object] = {
        "email": EMAIL,
        "target_cities": ["Berlin"],
        "career_path": ["tech"],
        "languages_spoken": ["English"],
        "subscription_tier": tier,
    }
    defaults.update(kw)
    return UserPreferences(**defaults)  # type: ignore[arg-type]


def _settings(ai: bool = False, **matching: object) -> Settings:
    return Settings(
        ai=AIConfig(enabled=ai),
        matching=MatchingSettings(**matching),  # type: ignore[arg-type]
    )


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    return init_db(tmp_path / "test.db")


# ---------------------------------------------------------------------------
# Relaxation ladder
# ---------------------------------------------------------------------------


class TestRelaxationLevels:
    def test_ladder(self) -> None:
        levels = relaxation_levels(get_tier_config("premium_pending"), 90)
        assert [lvl.name for lvl in levels] == [
            "tier", "widened_freshness", "any_career_path", "apply_url_only",
        ]
        assert [lvl.freshness_days for lvl in levels] == [7, 90, 90, None]
        assert [lvl.career_filter for lvl in levels] == [True, True, False, False]
        assert levels[-1].exclusion_filters is False

    def test_widened_never_narrower_than_tier(self) -> None:
        levels = relaxation_levels(get_tier_config("free"), 10)
        assert levels[1].freshness_days == 30


# ---------------------------------------------------------------------------
# Tier limits and scoring method
# ---------------------------------------------------------------------------


class TestTierLimits:
    async def test_free_capped_at_five(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 12)
        result = await MatchingOrchestrator(db, _settings()).run(_prefs())
        assert result.success is True
        assert result.match_count == 5
        assert result.method == "fallback"
        assert result.relaxation_level == "tier"
        assert [m.rank for m in result.matches] == [1, 2, 3, 4, 5]
        assert all(m.user_email == EMAIL for m in result.matches)

    async def test_premium_capped_at_fifteen(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 25)
        result = await MatchingOrchestrator(db, _settings()).run(_prefs("premium_pending"))
        assert result.match_count == 15
        assert len({m.job_hash for m in result.matches}) == 15

    async def test_matches_persisted(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 3)
        result = await MatchingOrchestrator(db, _settings()).run(_prefs())
        stored = get_matches(db, EMAIL, "free")
        assert [m.job_hash for m in stored] == [m.job_hash for m in result.matches]
        assert get_match_run(db, EMAIL, "free")["status"] == "complete"

    async def test_ai_method(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 8)
        provider = CountingProvider()
        result = await MatchingOrchestrator(db, _settings(ai=True), provider).run(_prefs())
        assert result.method == "ai"
        assert provider.calls == 1
        assert all(m.method == "ai" for m in result.matches)
        assert all(m.reason.startswith("AI pick") for m in result.matches)

    async def test_ai_failure_falls_back(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 8)
        provider = CountingProvider(fail=True)
        result = await MatchingOrchestrator(db, _settings(ai=True), provider).run(_prefs())
        assert result.success is True
        assert result.method == "fallback"
        assert result.match_count == 5


# ---------------------------------------------------------------------------
# Idempotency
# ---------------------------------------------------------------------------


class TestIdempotency:
    async def test_second_call_reuses_result(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 8)
        provider = CountingProvider()
        orchestrator = MatchingOrchestrator(db, _settings(ai=True), provider)

        first = await orchestrator.run(_prefs())
        second = await orchestrator.run(_prefs())

        assert second.success is True
        assert second.method == "idempotent"
        assert [m.job_hash for m in second.matches] == [m.job_hash for m in first.matches]
        assert provider.calls == 1

    async def test_tiers_are_independent(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 8)
        orchestrator = MatchingOrchestrator(db, _settings())
        await orchestrator.run(_prefs())
        premium = await orchestrator.run(_prefs("premium_pending"))
        assert premium.method == "fallback"

    async def test_concurrent_requests_compute_once(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 8)
        provider = CountingProvider(delay=0.1)
        settings = _settings(ai=True, claim_wait_s=5.0, claim_poll_interval_s=0.02)
        orchestrator = MatchingOrchestrator(db, settings, provider)

        a, b = await asyncio.gather(orchestrator.run(_prefs()), orchestrator.run(_prefs()))

        assert provider.calls == 1
        assert sorted([a.method, b.method]) == ["ai", "idempotent"]
        assert [m.job_hash for m in a.matches] == [m.job_hash for m in b.matches]

    async def test_in_progress_times_out(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 3)
        claim_match_run(db, EMAIL, "free", 300)
        settings = _settings(claim_wait_s=0.05, claim_poll_interval_s=0.01)
        result = await MatchingOrchestrator(db, settings).run(_prefs())
        assert result.success is False
        assert result.error == MATCH_IN_PROGRESS

    async def test_waiter_gets_concurrent_result(self, db) -> None:  # type: ignore[no-untyped-def]
        claim_match_run(db, EMAIL, "free", 300)
        stored = [Match(user_email=EMAIL, job_hash="x", score=0.8, rank=1)]

        async def finish_elsewhere() -> None:
            await asyncio.sleep(0.05)
            complete_match_run(db, EMAIL, "free", stored, "fallback", 24)

        settings = _settings(claim_wait_s=2.0, claim_poll_interval_s=0.01)
        task = asyncio.create_task(finish_elsewhere())
        result = await MatchingOrchestrator(db, settings).run(_prefs())
        await task
        assert result.method == "idempotent"
        assert [m.job_hash for m in result.matches] == ["x"]


class TestIdempotencyGuard:
    async def test_claim_then_complete(self, db) -> None:  # type: ignore[no-untyped-def]
        guard = IdempotencyGuard(db, MatchingSettings())
        assert await guard.claim(EMAIL, "free") is None
        assert guard.completed_matches(EMAIL, "free") is None
        guard.complete(EMAIL, "free", [Match(user_email=EMAIL, job_hash="a", score=0.7, rank=1)], "ai")
        assert [m.job_hash for m in guard.completed_matches(EMAIL, "free") or []] == ["a"]

    async def test_claim_raises_when_held(self, db) -> None:  # type: ignore[no-untyped-def]
        guard = IdempotencyGuard(db, MatchingSettings(claim_wait_s=0.0))
        await guard.claim(EMAIL, "free")
        with pytest.raises(MatchInProgressError, match="already in progress"):
            await guard.claim(EMAIL, "free")

    async def test_release_allows_reclaim(self, db) -> None:  # type: ignore[no-untyped-def]
        guard = IdempotencyGuard(db, MatchingSettings(claim_wait_s=0.0))
        await guard.claim(EMAIL, "free")
        guard.release(EMAIL, "free")
        assert await guard.claim(EMAIL, "free") is None


# ---------------------------------------------------------------------------
# Candidate relaxation
# ---------------------------------------------------------------------------


class TestRelaxation:
    async def test_widened_freshness(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 3, posted_at=NOW - timedelta(days=60))
        result = await MatchingOrchestrator(db, _settings()).run(_prefs())
        assert result.success is True
        assert result.relaxation_level == "widened_freshness"

    async def test_any_career_path(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 3)
        result = await MatchingOrchestrator(db, _settings()).run(_prefs(career_path=["finance"]))
        assert result.relaxation_level == "any_career_path"
        assert result.match_count == 3

    async def test_apply_url_only(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 3, description="Unpaid position", posted_at=NOW - timedelta(days=400))
        result = await MatchingOrchestrator(db, _settings()).run(_prefs())
        assert result.relaxation_level == "apply_url_only"
        assert result.match_count == 3

    async def test_free_tier_uses_first_career_path_only(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 3, categories=["finance", "early-career"])
        result = await MatchingOrchestrator(db, _settings()).run(
            _prefs(career_path=["tech", "finance"])
        )
        assert result.relaxation_level == "any_career_path"

    async def test_no_jobs_available(self, db) -> None:  # type: ignore[no-untyped-def]
        result = await MatchingOrchestrator(db, _settings()).run(_prefs())
        assert result.success is False
        assert result.error == NO_JOBS_AVAILABLE
        assert result.matches == []
        assert get_match_run(db, EMAIL, "free") is None

    async def test_no_usable_apply_url(self, db) -> None:  # type: ignore[no-untyped-def]
        _seed(db, 2, job_url="mailto:jobs@acme.com")
        result = await MatchingOrchestrator(db, _settings()).run(_prefs())
        assert result.error == NO_JOBS_AVAILABLE
