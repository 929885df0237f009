"""Funnel telemetry for ingestion runs.

Counters follow the pipeline stages: raw → eligible (early-career) →
career_tagged → location_tagged (EU) → inserted/updated. A run that yields raw
records but zero eligible ones usually means a source changed its response
shape, so it is logged as a warning.
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime

from src.core.schemas import FunnelSnapshot, UpsertResult, utcnow

logger = logging.getLogger(__name__)


class FunnelTracker:
    """Accumulates counters, errors, and a bounded list of sample jobs for one source run."""

    def __init__(
        self,
        source: str,
        max_samples: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.source = source
        self._max_samples = max_samples
        self._clock = clock
        self.started_at = clock()
        self.raw = 0
        self.eligible = 0
        self.career_tagged = 0
        self.location_tagged = 0
        self.inserted = 0
        self.updated = 0
        self.deactivated = 0
        self.errors: list[str] = []
        self.samples: list[str] = []

    def record_error(self, message: str) -> None:
        self.errors.append(message)

    def add_sample(self, sample: str) -> None:
        if len(self.samples) < self._max_samples:
            self.samples.append(sample)

    def record_upsert(self, result: UpsertResult) -> None:
        self.inserted += result.inserted
        self.updated += result.updated
        self.errors.extend(result.errors)

    def snapshot(self) -> FunnelSnapshot:
        """Freeze the counters into a JSON-serializable snapshot."""
        if self.raw and not self.eligible:
            logger.warning(
                "%s: %d raw records but none eligible, check the source payload",
                self.source, self.raw,
            )
        return FunnelSnapshot(
            source=self.source,
            raw=self.raw,
            eligible=self.eligible,
            career_tagged=self.career_tagged,
            location_tagged=self.location_tagged,
            inserted=self.inserted,
            updated=self.updated,
            deactivated=self.deactivated,
            errors=list(self.errors),
            samples=list(self.samples),
            started_at=self.started_at,
            finished_at=self._clock(),
        )


def export_snapshots_json(snapshots: list[FunnelSnapshot]) -> str:
    """Export funnel snapshots as a JSON string."""
    return json.dumps([s.model_dump(mode="json") for s in snapshots], indent=2)
