"""Deduplicate classified jobs and persist them in isolated batches."""

import asyncio
import logging
import sqlite3

from src.core.db import get_active_jobs, mark_jobs_filtered, upsert_jobs
from src.core.schemas import Job, UpsertResult
from src.pipeline.classifier import classify
from src.pipeline.normalizer import composite_key

logger = logging.getLogger(__name__)


def dedupe_jobs(jobs: list[Job]) -> tuple[list[Job], int]:
    """Drop in-batch repeats by identity hash or by title|company|location.

    The first occurrence wins. Returns (unique jobs, number removed).
    """
    seen_hashes: set[str] = set()
    seen_keys: set[str] = set()
    unique: list[Job] = []
    for job in jobs:
        key = composite_key(job.title, job.company, job.location)
        if job.job_hash in seen_hashes or key in seen_keys:
            continue
        seen_hashes.add(job.job_hash)
        seen_keys.add(key)
        unique.append(job)
    removed = len(jobs) - len(unique)
    if removed:
        logger.info("Removed %d duplicate jobs from batch of %d", removed, len(jobs))
    return unique, removed


async def persist_jobs(
    conn: sqlite3.Connection,
    jobs: list[Job],
    batch_size: int = 50,
    batch_delay_s: float = 0.1,
) -> UpsertResult:
    """Dedupe, then upsert in fixed-size batches with a pause between them.

    A batch that fails is rolled back, logged, and recorded in ``errors``;
    the remaining batches still run.
    """
    unique, removed = dedupe_jobs(jobs)
    result = UpsertResult(duplicates_removed=removed)
    batches = [unique[i:i + batch_size] for i in range(0, len(unique), batch_size)]

    for n, batch in enumerate(batches, start=1):
        try:
            inserted, updated = upsert_jobs(conn, batch)
        except sqlite3.Error as e:
            logger.error("Batch %d/%d failed (%d jobs): %s", n, len(batches), len(batch), e)
            result.errors.append(f"batch {n}: {e}")
        else:
            result.inserted += inserted
            result.updated += updated
            logger.debug("Batch %d/%d: %d inserted, %d updated", n, len(batches), inserted, updated)
        if n < len(batches) and batch_delay_s > 0:
            await asyncio.sleep(batch_delay_s)

    logger.info(
        "Persisted %d jobs: %d inserted, %d updated, %d failed batches",
        len(unique), result.inserted, result.updated, len(result.errors),
    )
    return result


def revalidate_active_jobs(conn: sqlite3.Connection, source: str | None = None) -> dict[str, int]:
    """Re-run classification over stored active jobs and mark failures as filtered.

    Returns a count per filtered_reason.
    """
    reasons: dict[str, str] = {}
    for job in get_active_jobs(conn, source):
        reason = classify(job).rejection_reason
        if reason:
            reasons[job.job_hash] = reason
    mark_jobs_filtered(conn, reasons)

    counts: dict[str, int] = {}
    for reason in reasons.values():
        counts[reason] = counts.get(reason, 0) + 1
    if counts:
        logger.info("Revalidation filtered %d jobs: %s", len(reasons), counts)
    return counts
