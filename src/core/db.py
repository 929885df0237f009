"""SQLite database layer for jobs, matches, match runs, and ingestion runs."""

import json
import sqlite3
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from pathlib import Path

from src.core.schemas import FunnelSnapshot, Job, Match, utcnow

_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS jobs (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    job_hash              TEXT    NOT NULL UNIQUE,
    source                TEXT    NOT NULL,
    external_id           TEXT,
    title                 TEXT    NOT NULL,
    company               TEXT    NOT NULL DEFAULT '',
    location              TEXT    NOT NULL DEFAULT '',
    city                  TEXT    NOT NULL DEFAULT '',
    country               TEXT    NOT NULL DEFAULT '',
    description           TEXT    NOT NULL DEFAULT '',
    job_url               TEXT    NOT NULL DEFAULT '',
    categories            TEXT    NOT NULL DEFAULT '[]',
    is_internship         INTEGER NOT NULL DEFAULT 0,
    is_graduate           INTEGER NOT NULL DEFAULT 0,
    is_early_career       INTEGER NOT NULL DEFAULT 0,
    work_environment      TEXT    NOT NULL DEFAULT 'on-site',
    language_requirements TEXT    NOT NULL DEFAULT '[]',
    posted_at             TEXT,
    scrape_timestamp      TEXT    NOT NULL,
    last_seen_at          TEXT    NOT NULL,
    created_at            TEXT    NOT NULL,
    is_active             INTEGER NOT NULL DEFAULT 1,
    status                TEXT    NOT NULL DEFAULT 'active',
    filtered_reason       TEXT,
    CHECK (NOT (is_internship = 1 AND is_graduate = 1))
);
"""

_JOBS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_jobs_active_posted
    ON jobs (is_active, status, posted_at);
"""

_MATCHES_TABLE = """
CREATE TABLE IF NOT EXISTS matches (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_email  TEXT    NOT NULL,
    tier        TEXT    NOT NULL,
    job_hash    TEXT    NOT NULL,
    score       REAL    NOT NULL,
    reason      TEXT    NOT NULL DEFAULT '',
    method      TEXT    NOT NULL,
    rank        INTEGER NOT NULL,
    matched_at  TEXT    NOT NULL,
    UNIQUE(user_email, tier, job_hash)
);
"""

_MATCH_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS match_runs (
    user_email   TEXT    NOT NULL,
    tier         TEXT    NOT NULL,
    status       TEXT    NOT NULL DEFAULT 'pending',
    method       TEXT,
    match_count  INTEGER NOT NULL DEFAULT 0,
    created_at   TEXT    NOT NULL,
    completed_at TEXT,
    expires_at   TEXT    NOT NULL,
    UNIQUE(user_email, tier)
);
"""

_INGESTION_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS ingestion_runs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    source          TEXT    NOT NULL,
    raw             INTEGER NOT NULL,
    eligible        INTEGER NOT NULL,
    career_tagged   INTEGER NOT NULL,
    location_tagged INTEGER NOT NULL,
    inserted        INTEGER NOT NULL,
    updated         INTEGER NOT NULL,
    deactivated     INTEGER NOT NULL,
    errors_json     TEXT    NOT NULL,
    samples_json    TEXT    NOT NULL,
    started_at      TEXT    NOT NULL,
    finished_at     TEXT    NOT NULL
);
"""

_UPSERT_JOB = """
INSERT INTO jobs
    (job_hash, source, external_id, title, company, location, city, country,
     description, job_url, categories, is_internship, is_graduate, is_early_career,
     work_environment, language_requirements, posted_at, scrape_timestamp,
     last_seen_at, created_at, is_active, status, filtered_reason)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(job_hash)
DO UPDATE SET
    title = excluded.title,
    company = excluded.company,
    location = excluded.location,
    city = excluded.city,
    country = excluded.country,
    description = excluded.description,
    job_url = excluded.job_url,
    categories = excluded.categories,
    is_internship = excluded.is_internship,
    is_graduate = excluded.is_graduate,
    is_early_career = excluded.is_early_career,
    work_environment = excluded.work_environment,
    language_requirements = excluded.language_requirements,
    posted_at = COALESCE(excluded.posted_at, jobs.posted_at),
    scrape_timestamp = excluded.scrape_timestamp,
    last_seen_at = excluded.last_seen_at,
    is_active = excluded.is_active,
    status = excluded.status,
    filtered_reason = excluded.filtered_reason
"""


def init_db(path: str | Path, *, check_same_thread: bool = False) -> sqlite3.Connection:
    """Create the database and tables, returning a connection.

    The connection may be handed to a worker thread (candidate fetches run
    through ``asyncio.to_thread``), so same-thread checking is off by default.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), check_same_thread=check_same_thread)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_JOBS_TABLE)
    conn.execute(_JOBS_INDEX)
    conn.execute(_MATCHES_TABLE)
    conn.execute(_MATCH_RUNS_TABLE)
    conn.execute(_INGESTION_RUNS_TABLE)
    conn.commit()
    return conn


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _job_params(job: Job) -> tuple[object, ...]:
    return (
        job.job_hash,
        job.source,
        job.external_id,
        job.title,
        job.company,
        job.location,
        job.city,
        job.country,
        job.description,
        job.job_url,
        json.dumps(job.categories),
        int(job.is_internship),
        int(job.is_graduate),
        int(job.is_early_career),
        job.work_environment,
        json.dumps(job.language_requirements),
        _iso(job.posted_at) if job.posted_at else None,
        _iso(job.scrape_timestamp),
        _iso(job.last_seen_at),
        _iso(job.created_at),
        int(job.is_active),
        job.status,
        job.filtered_reason,
    )


def row_to_job(row: sqlite3.Row) -> Job:
    """Rebuild a Job from a ``jobs`` row."""
    return Job(
        job_hash=row["job_hash"],
        source=row["source"],
        external_id=row["external_id"],
        title=row["title"],
        company=row["company"],
        location=row["location"],
        city=row["city"],
        country=row["country"],
        description=row["description"],
        job_url=row["job_url"],
        categories=json.loads(row["categories"]),
        is_internship=bool(row["is_internship"]),
        is_graduate=bool(row["is_graduate"]),
        is_early_career=bool(row["is_early_career"]),
        work_environment=row["work_environment"],
        language_requirements=json.loads(row["language_requirements"]),
        posted_at=_parse_dt(row["posted_at"]),
        scrape_timestamp=_parse_dt(row["scrape_timestamp"]),
        last_seen_at=_parse_dt(row["last_seen_at"]),
        created_at=_parse_dt(row["created_at"]),
        is_active=bool(row["is_active"]),
        status=row["status"],
        filtered_reason=row["filtered_reason"],
    )


def upsert_jobs(conn: sqlite3.Connection, jobs: list[Job]) -> tuple[int, int]:
    """Upsert a batch of jobs keyed by job_hash in a single transaction.

    Conflicting rows are updated, never skipped; created_at is kept from the
    first insert. Returns (inserted, updated). On any database error the whole
    batch is rolled back and the error re-raised.
    """
    inserted = 0
    updated = 0
    try:
        for job in jobs:
            exists = conn.execute(
                "SELECT 1 FROM jobs WHERE job_hash = ?", (job.job_hash,)
            ).fetchone()
            conn.execute(_UPSERT_JOB, _job_params(job))
            if exists:
                updated += 1
            else:
                inserted += 1
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    return inserted, updated


def get_job(conn: sqlite3.Connection, job_hash: str) -> Job | None:
    row = conn.execute("SELECT * FROM jobs WHERE job_hash = ?", (job_hash,)).fetchone()
    return row_to_job(row) if row else None


def fetch_candidate_jobs(
    conn: sqlite3.Connection,
    *,
    limit: int,
    since: datetime | None = None,
    career_paths: list[str] | None = None,
    require_apply_url: bool = False,
) -> list[Job]:
    """Return active, unfiltered jobs, newest first, capped at ``limit``.

    Jobs with no posted_at are always included by the freshness window.
    """
    clauses = ["is_active = 1", "status = 'active'", "filtered_reason IS NULL"]
    params: list[object] = []
    if since is not None:
        clauses.append("(posted_at IS NULL OR posted_at >= ?)")
        params.append(_iso(since))
    if career_paths:
        placeholders = ", ".join("?" for _ in career_paths)
        clauses.append(
            "EXISTS (SELECT 1 FROM json_each(jobs.categories) "
            f"WHERE json_each.value IN ({placeholders}))"
        )
        params.extend(career_paths)
    if require_apply_url:
        clauses.append("(job_url LIKE 'http://%' OR job_url LIKE 'https://%')")
    params.append(limit)

    rows = conn.execute(
        f"""
        SELECT * FROM jobs
        WHERE {' AND '.join(clauses)}
        ORDER BY COALESCE(posted_at, created_at) DESC, job_hash
        LIMIT ?
        """,
        params,
    ).fetchall()
    return [row_to_job(r) for r in rows]


def get_active_jobs(conn: sqlite3.Connection, source: str | None = None) -> list[Job]:
    if source is None:
        rows = conn.execute("SELECT * FROM jobs WHERE is_active = 1").fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM jobs WHERE is_active = 1 AND source = ?", (source,)
        ).fetchall()
    return [row_to_job(r) for r in rows]


def deactivate_missing_jobs(
    conn: sqlite3.Connection,
    source: str,
    seen_hashes: Iterable[str],
) -> int:
    """Soft-deactivate active jobs of ``source`` that are not in ``seen_hashes``.

    Returns the number of rows deactivated.
    """
    seen = set(seen_hashes)
    active = [
        row["job_hash"]
        for row in conn.execute(
            "SELECT job_hash FROM jobs WHERE source = ? AND is_active = 1", (source,)
        ).fetchall()
    ]
    missing = [(h,) for h in active if h not in seen]
    if missing:
        conn.executemany(
            "UPDATE jobs SET is_active = 0, status = 'inactive' WHERE job_hash = ?",
            missing,
        )
        conn.commit()
    return len(missing)


def mark_jobs_filtered(conn: sqlite3.Connection, reasons: dict[str, str]) -> int:
    """Mark jobs as filtered with a reason (job_hash → reason). Returns row count."""
    if not reasons:
        return 0
    conn.executemany(
        """
        UPDATE jobs SET is_active = 0, status = 'filtered', filtered_reason = ?
        WHERE job_hash = ?
        """,
        [(reason, job_hash) for job_hash, reason in reasons.items()],
    )
    conn.commit()
    return len(reasons)


# ---------------------------------------------------------------------------
# Match runs: one authoritative row per (user_email, tier)
# ---------------------------------------------------------------------------


def claim_match_run(
    conn: sqlite3.Connection,
    user_email: str,
    tier: str,
    stale_after_s: float,
) -> bool:
    """Try to become the single writer for (user_email, tier).

    Expired rows (stale pending claims or completed runs past their TTL) are
    cleared first. Returns True if this caller now holds the claim.
    """
    now = utcnow()
    conn.execute(
        "DELETE FROM match_runs WHERE user_email = ? AND tier = ? AND expires_at <= ?",
        (user_email, tier, _iso(now)),
    )
    cursor = conn.execute(
        """
        INSERT INTO match_runs (user_email, tier, status, created_at, expires_at)
        VALUES (?, ?, 'pending', ?, ?)
        ON CONFLICT(user_email, tier) DO NOTHING
        """,
        (user_email, tier, _iso(now), _iso(now + timedelta(seconds=stale_after_s))),
    )
    conn.commit()
    return cursor.rowcount == 1


def get_match_run(
    conn: sqlite3.Connection,
    user_email: str,
    tier: str,
) -> sqlite3.Row | None:
    """Return the unexpired run row for (user_email, tier), if any."""
    return conn.execute(  # type: ignore[no-any-return]
        """
        SELECT * FROM match_runs
        WHERE user_email = ? AND tier = ? AND expires_at > ?
        """,
        (user_email, tier, _iso(utcnow())),
    ).fetchone()


def complete_match_run(
    conn: sqlite3.Connection,
    user_email: str,
    tier: str,
    matches: list[Match],
    method: str,
    ttl_hours: int,
) -> None:
    """Replace the stored matches and mark the run complete, atomically."""
    now = utcnow()
    try:
        conn.execute(
            "DELETE FROM matches WHERE user_email = ? AND tier = ?", (user_email, tier)
        )
        conn.executemany(
            """
            INSERT INTO matches
                (user_email, tier, job_hash, score, reason, method, rank, matched_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    m.user_email, tier, m.job_hash, m.score, m.reason, m.method,
                    m.rank, _iso(m.matched_at),
                )
                for m in matches
            ],
        )
        conn.execute(
            """
            UPDATE match_runs
            SET status = 'complete', method = ?, match_count = ?,
                completed_at = ?, expires_at = ?
            WHERE user_email = ? AND tier = ?
            """,
            (
                method, len(matches), _iso(now),
                _iso(now + timedelta(hours=ttl_hours)), user_email, tier,
            ),
        )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise


def release_match_run(conn: sqlite3.Connection, user_email: str, tier: str) -> None:
    """Drop a pending claim so a later request can retry."""
    conn.execute(
        "DELETE FROM match_runs WHERE user_email = ? AND tier = ? AND status = 'pending'",
        (user_email, tier),
    )
    conn.commit()


def get_matches(conn: sqlite3.Connection, user_email: str, tier: str) -> list[Match]:
    rows = conn.execute(
        "SELECT * FROM matches WHERE user_email = ? AND tier = ? ORDER BY rank",
        (user_email, tier),
    ).fetchall()
    return [
        Match(
            user_email=r["user_email"],
            job_hash=r["job_hash"],
            score=r["score"],
            reason=r["reason"],
            method=r["method"],
            rank=r["rank"],
            matched_at=_parse_dt(r["matched_at"]),
        )
        for r in rows
    ]


def insert_ingestion_run(conn: sqlite3.Connection, snapshot: FunnelSnapshot) -> int:
    """Record a completed ingestion run. Returns the row ID."""
    cursor = conn.execute(
        """
        INSERT INTO ingestion_runs
            (source, raw, eligible, career_tagged, location_tagged, inserted,
             updated, deactivated, errors_json, samples_json, started_at, finished_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            snapshot.source,
            snapshot.raw,
            snapshot.eligible,
            snapshot.career_tagged,
            snapshot.location_tagged,
            snapshot.inserted,
            snapshot.updated,
            snapshot.deactivated,
            json.dumps(snapshot.errors),
            json.dumps(snapshot.samples),
            _iso(snapshot.started_at),
            _iso(snapshot.finished_at),
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0
