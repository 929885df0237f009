"""Single-writer guard for matching runs keyed by (user email, tier).

Backed by the ``match_runs`` table, so every request sharing the database
(coroutines, threads or processes) sees the same claim. A completed run is
reused until its TTL expires; a pending claim older than ``stale_claim_s``
is treated as abandoned.
"""

import asyncio
import logging
import sqlite3

from src.core.config import MatchingSettings
from src.core.db import (
    claim_match_run,
    complete_match_run,
    get_match_run,
    get_matches,
    release_match_run,
)
from src.core.schemas import Match

logger = logging.getLogger(__name__)


class MatchInProgressError(RuntimeError):
    """Another request holds the claim and did not finish in time."""


class IdempotencyGuard:
    def __init__(self, conn: sqlite3.Connection, settings: MatchingSettings) -> None:
        self._conn = conn
        self._settings = settings

    def completed_matches(self, email: str, tier: str) -> list[Match] | None:
        """Stored matches of an unexpired completed run, or None."""
        row = get_match_run(self._conn, email, tier)
        if row is None or row["status"] != "complete":
            return None
        return get_matches(self._conn, email, tier)

    async def claim(self, email: str, tier: str) -> list[Match] | None:
        """Claim the run for this caller.

        Returns None when the caller now owns the run and must compute it, or
        the finished matches when another request completed it meanwhile.

        Raises:
            MatchInProgressError: The other request is still running after
                ``claim_wait_s``.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.claim_wait_s
        waited = False
        while True:
            if claim_match_run(self._conn, email, tier, self._settings.stale_claim_s):
                return None
            done = self.completed_matches(email, tier)
            if done is not None:
                if waited:
                    logger.info("Reusing matches computed concurrently for %s (%s)", email, tier)
                return done
            if loop.time() >= deadline:
                msg = f"matching for {email} ({tier}) is already in progress"
                raise MatchInProgressError(msg)
            waited = True
            await asyncio.sleep(self._settings.claim_poll_interval_s)

    def complete(self, email: str, tier: str, matches: list[Match], method: str) -> None:
        complete_match_run(
            self._conn, email, tier, matches, method, self._settings.idempotency_ttl_hours
        )

    def release(self, email: str, tier: str) -> None:
        release_match_run(self._conn, email, tier)
