"""Tests for ranking and multi-pass match selection."""

from datetime import datetime, timedelta, timezone

from src.core.config import ScoringConfig
from src.core.schemas import Job, ScoredJob
from src.matching.selection import SelectionState, rank_candidates, select_matches

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
CONFIG = ScoringConfig()


def _scored(
    job_hash: str,
    score: float,
    *,
    city: str = "Berlin",
    age_days: int = 1,
    career: bool = True,
    city_match: bool = True,
    premium: bool = False,
) -> ScoredJob:
    job = Job(
        job_hash=job_hash,
        source="test",
        title=f"Graduate {job_hash}",
        company="Acme",
        city=city,
        location=city,
        job_url=f"https://example.com/{job_hash}",
        posted_at=NOW - timedelta(days=age_days),
    )
    return ScoredJob(
        job=job, score=score, career_match=career, city_match=city_match, premium=premium
    )


def _hashes(selected: list[ScoredJob]) -> list[str]:
    return [s.job.job_hash for s in selected]


class TestRankCandidates:
    def test_score_first(self) -> None:
        ranked = rank_candidates([_scored("a", 0.7), _scored("b", 0.9)], [])
        assert _hashes(list(ranked)) == ["b", "a"]

    def test_target_city_order_breaks_ties(self) -> None:
        ranked = rank_candidates(
            [_scored("ber", 0.8, city="Berlin"), _scored("par", 0.8, city="Paris")],
            ["Paris", "Berlin"],
        )
        assert _hashes(list(ranked)) == ["par", "ber"]

    def test_recency_then_hash(self) -> None:
        ranked = rank_candidates(
            [_scored("b", 0.8, age_days=5), _scored("c", 0.8, age_days=1), _scored("a", 0.8, age_days=5)],
            [],
        )
        assert _hashes(list(ranked)) == ["c", "a", "b"]

    def test_returns_tuple(self) -> None:
        assert isinstance(rank_candidates([_scored("a", 0.5)], []), tuple)


class TestHotCap:
    def test_at_most_two_hot_matches(self) -> None:
        scored = [_scored(f"h{i}", 0.95, city=f"City{i}") for i in range(5)]
        selected = select_matches(scored, 5, CONFIG)
        assert len(selected) == 5
        hot = [s for s in selected if s.score >= CONFIG.hot_threshold]
        assert len(hot) == 2
        assert all(s.score == CONFIG.hot_adjusted_score for s in selected if s not in hot)

    def test_state_take_adjusts(self) -> None:
        state = SelectionState(5, CONFIG.model_copy(update={"max_hot_matches": 0}))
        state.take(_scored("a", 0.97))
        assert state.chosen[0].score == CONFIG.hot_adjusted_score
        assert state.hot_count == 0


class TestPasses:
    def test_premium_first(self) -> None:
        scored = [
            _scored("top", 0.9, city="Berlin"),
            _scored("prem", 0.7, city="Munich", premium=True),
        ]
        assert _hashes(select_matches(scored, 2, CONFIG)) == ["prem", "top"]

    def test_premium_below_min_score_not_prioritised(self) -> None:
        scored = [
            _scored("top", 0.9),
            _scored("prem", 0.55, city="Munich", city_match=False, career=False, premium=True),
        ]
        assert _hashes(select_matches(scored, 2, CONFIG)) == ["top", "prem"]

    def test_perfect_pass_diversifies_cities(self) -> None:
        scored = [
            _scored("ber1", 0.9, city="Berlin"),
            _scored("ber2", 0.89, city="Berlin"),
            _scored("muc", 0.86, city="Munich"),
        ]
        assert _hashes(select_matches(scored, 2, CONFIG)) == ["ber1", "muc"]

    def test_remaining_pass_fills(self) -> None:
        scored = [
            _scored("ber1", 0.9, city="Berlin"),
            _scored("ber2", 0.89, city="Berlin"),
            _scored("far", 0.6, city="Lisbon", city_match=False, career=False),
        ]
        assert _hashes(select_matches(scored, 3, CONFIG)) == ["ber1", "ber2", "far"]

    def test_city_pass_before_remaining(self) -> None:
        scored = [
            _scored("perfect", 0.9, city="Berlin"),
            _scored("no_city", 0.8, city="Lisbon", city_match=False),
            _scored("city_only", 0.6, city="Munich", career=False),
        ]
        assert _hashes(select_matches(scored, 2, CONFIG)) == ["perfect", "city_only"]


class TestBounds:
    def test_target_respected(self) -> None:
        scored = [_scored(f"j{i}", 0.5 + i / 100, city=f"C{i}") for i in range(20)]
        assert len(select_matches(scored, 5, CONFIG)) == 5
        assert len(select_matches(scored, 15, CONFIG)) == 15

    def test_fewer_candidates_than_target(self) -> None:
        assert len(select_matches([_scored("a", 0.7)], 5, CONFIG)) == 1

    def test_no_duplicates(self) -> None:
        scored = [_scored("a", 0.9, premium=True), _scored("b", 0.8)]
        selected = select_matches(scored, 5, CONFIG)
        assert sorted(_hashes(selected)) == ["a", "b"]

    def test_empty(self) -> None:
        assert select_matches([], 5, CONFIG) == []
