"""Multi-pass greedy selection of the final, bounded match set.

Candidates are ranked once into an immutable tuple. Each pass walks that
tuple in order and adds to a shared SelectionState until the target size is
reached:

  1. premium_pass    premium companies with score >= premium_min_score
  2. perfect_pass    career + city matches, one per distinct job city
  3. city_pass       city matches, one per distinct job city
  4. remaining_pass  everything else, best first

At most ``max_hot_matches`` selected scores may reach ``hot_threshold``;
later hot candidates are lowered to ``hot_adjusted_score`` when taken.
"""

import logging
from collections.abc import Callable

from src.core.config import ScoringConfig
from src.core.schemas import ScoredJob
from src.matching.scorer import matched_city

logger = logging.getLogger(__name__)

Ranked = tuple[ScoredJob, ...]


def _city_key(scored: ScoredJob) -> str:
    job = scored.job
    return (job.city or job.location.split(",")[0]).strip().lower()


def rank_candidates(scored: list[ScoredJob], target_cities: list[str]) -> Ranked:
    """Order candidates by score, then target-city order, then recency, then hash."""

    def key(s: ScoredJob) -> tuple[float, int, float, str]:
        city = matched_city(s.job, target_cities)
        city_rank = target_cities.index(city) if city else len(target_cities)
        return (-s.score, city_rank, -s.job.recency.timestamp(), s.job.job_hash)

    return tuple(sorted(scored, key=key))


class SelectionState:
    """Accumulating result of the selection passes."""

    def __init__(self, target: int, config: ScoringConfig) -> None:
        self.target = target
        self.config = config
        self.chosen: list[ScoredJob] = []
        self.used: set[str] = set()
        self.cities_used: set[str] = set()
        self.hot_count = 0

    @property
    def full(self) -> bool:
        return len(self.chosen) >= self.target

    def available(self, candidate: ScoredJob) -> bool:
        return not self.full and candidate.job.job_hash not in self.used

    def take(self, candidate: ScoredJob, city_key: str | None = None) -> None:
        if candidate.score >= self.config.hot_threshold:
            if self.hot_count >= self.config.max_hot_matches:
                logger.debug(
                    "Hot match cap reached, lowering '%s' from %.2f",
                    candidate.job.title, candidate.score,
                )
                candidate = candidate.model_copy(
                    update={"score": self.config.hot_adjusted_score}
                )
            else:
                self.hot_count += 1
        self.chosen.append(candidate)
        self.used.add(candidate.job.job_hash)
        if city_key is not None:
            self.cities_used.add(city_key)


SelectionPass = Callable[[Ranked, SelectionState], None]


def premium_pass(ranked: Ranked, state: SelectionState) -> None:
    for c in ranked:
        if state.full:
            return
        if state.available(c) and c.premium and c.score >= state.config.premium_min_score:
            state.take(c)


def perfect_pass(ranked: Ranked, state: SelectionState) -> None:
    for c in ranked:
        if state.full:
            return
        city = _city_key(c)
        if state.available(c) and c.career_match and c.city_match and city not in state.cities_used:
            state.take(c, city)


def city_pass(ranked: Ranked, state: SelectionState) -> None:
    for c in ranked:
        if state.full:
            return
        city = _city_key(c)
        if state.available(c) and c.city_match and city not in state.cities_used:
            state.take(c, city)


def remaining_pass(ranked: Ranked, state: SelectionState) -> None:
    for c in ranked:
        if state.full:
            return
        if state.available(c):
            state.take(c)


SELECTION_PASSES: tuple[SelectionPass, ...] = (
    premium_pass,
    perfect_pass,
    city_pass,
    remaining_pass,
)


def select_matches(
    scored: list[ScoredJob],
    target: int,
    config: ScoringConfig,
    target_cities: list[str] | None = None,
) -> list[ScoredJob]:
    """Select up to ``target`` matches. The returned order is selection order."""
    ranked = rank_candidates(scored, target_cities or [])
    state = SelectionState(target, config)
    for selection_pass in SELECTION_PASSES:
        before = len(state.chosen)
        selection_pass(ranked, state)
        logger.debug("%s: +%d", selection_pass.__name__, len(state.chosen) - before)
        if state.full:
            break
    return state.chosen
