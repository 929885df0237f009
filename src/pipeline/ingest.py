"""Ingestion runner: wires source adapter, normalizer, classifier, and persistence.

Data flow per source:
  1. Adapter fetch_all → raw postings (failed pages skipped, recorded)
  2. normalize → Job (postings without title/URL counted as errors)
  3. classify → early-career / EU / career path
  4. persist_jobs → dedupe + batched upsert
  5. Deactivate stored jobs the source stopped reporting (clean runs only)
  6. Record the funnel snapshot
"""

import asyncio
import logging
import sqlite3

import httpx

from src.core.config import Settings
from src.core.db import deactivate_missing_jobs, insert_ingestion_run
from src.core.schemas import FunnelSnapshot, Job
from src.pipeline.classifier import classify
from src.pipeline.normalizer import NormalizationError, normalize
from src.pipeline.persistence import persist_jobs
from src.pipeline.telemetry import FunnelTracker
from src.sources import SourceAdapter, get_adapter

logger = logging.getLogger(__name__)

_USER_AGENT = "early-careers-engine/0.1 (+job ingestion)"


async def run_source(
    adapter: SourceAdapter,
    conn: sqlite3.Connection,
    settings: Settings,
) -> FunnelSnapshot:
    """Run one source through the full ingestion pipeline."""
    tracker = FunnelTracker(adapter.name, settings.ingestion.max_samples)

    raw_postings = await adapter.fetch_all()
    tracker.raw = len(raw_postings)
    for error in adapter.page_errors:
        tracker.record_error(error)

    kept: list[Job] = []
    for raw in raw_postings:
        try:
            job = normalize(raw, adapter.name, kind=adapter.source_id)
        except NormalizationError as e:
            logger.debug("Dropping posting: %s", e)
            tracker.record_error(str(e))
            continue

        result = classify(job)
        if not result.early_career:
            continue
        tracker.eligible += 1
        if result.job.career_path != "unknown":
            tracker.career_tagged += 1
        if not result.eu:
            continue
        tracker.location_tagged += 1
        kept.append(result.job)
        tracker.add_sample(f"{job.title} @ {job.company} ({job.location})")

    upsert = await persist_jobs(
        conn,
        kept,
        batch_size=settings.ingestion.batch_size,
        batch_delay_s=settings.ingestion.batch_delay_s,
    )
    tracker.record_upsert(upsert)

    clean_run = bool(raw_postings) and not adapter.page_errors and not upsert.errors
    if settings.ingestion.deactivate_missing and clean_run:
        tracker.deactivated = deactivate_missing_jobs(
            conn, adapter.name, (j.job_hash for j in kept)
        )
    elif settings.ingestion.deactivate_missing:
        logger.info("%s: skipping deactivation after an incomplete run", adapter.name)

    snapshot = tracker.snapshot()
    insert_ingestion_run(conn, snapshot)
    logger.info(
        "Source '%s': %d raw, %d eligible, %d EU, %d inserted, %d updated, %d deactivated",
        adapter.name, snapshot.raw, snapshot.eligible, snapshot.location_tagged,
        snapshot.inserted, snapshot.updated, snapshot.deactivated,
    )
    return snapshot


async def run_all_sources(
    settings: Settings,
    conn: sqlite3.Connection,
    client: httpx.AsyncClient | None = None,
) -> list[FunnelSnapshot]:
    """Run every enabled source. Returns one snapshot per source that ran.

    Sources whose adapter cannot be built (unknown kind, missing API key) are
    logged and skipped.
    """
    own_client = client is None
    http = client or httpx.AsyncClient(
        headers={"User-Agent": _USER_AGENT}, follow_redirects=True
    )
    try:
        adapters: list[SourceAdapter] = []
        for source in settings.sources:
            if not source.enabled:
                continue
            try:
                adapters.append(get_adapter(source, http))
            except ValueError as e:
                logger.error("Skipping source '%s': %s", source.name, e)

        if settings.ingestion.parallel_sources:
            return list(await asyncio.gather(*(run_source(a, conn, settings) for a in adapters)))

        snapshots: list[FunnelSnapshot] = []
        for adapter in adapters:
            snapshots.append(await run_source(adapter, conn, settings))
        return snapshots
    finally:
        if own_client:
            await http.aclose()
