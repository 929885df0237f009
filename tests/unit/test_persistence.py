"""Tests for dedupe, batched persistence, and revalidation of stored jobs."""

import sqlite3
from unittest.mock import patch

import pytest

from src.core.db import get_job, init_db, upsert_jobs
from src.core.schemas import Job
from src.pipeline.persistence import dedupe_jobs, persist_jobs, revalidate_active_jobs


def _job(job_hash: str, title: str = "Graduate Analyst", **kw: object) -> Job:
    defaults: dict[str, object] = {
        "job_hash": job_hash,
        "source": "arbeitnow",
        "title": title,
        "company": "Acme",
        "location": "Berlin, Germany",
        "job_url": f"https://example.com/{job_hash}",
    }
    defaults.update(kw)
    return Job(**defaults)  # type: ignore[arg-type]


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    return init_db(tmp_path / "test.db")


class TestDedupeJobs:
    def test_same_hash_first_wins(self) -> None:
        unique, removed = dedupe_jobs([
            _job("a", company="First"), _job("a", company="Second"),
        ])
        assert removed == 1
        assert [j.company for j in unique] == ["First"]

    def test_same_composite_key_different_hash(self) -> None:
        unique, removed = dedupe_jobs([
            _job("a"), _job("b", title=" graduate analyst ", company="ACME"),
        ])
        assert removed == 1
        assert [j.job_hash for j in unique] == ["a"]

    def test_distinct_jobs_kept(self) -> None:
        unique, removed = dedupe_jobs([_job("a"), _job("b", title="Marketing Intern")])
        assert removed == 0
        assert len(unique) == 2


class TestPersistJobs:
    async def test_inserts_then_updates(self, db) -> None:  # type: ignore[no-untyped-def]
        jobs = [_job(f"h{i}", title=f"Graduate Analyst {i}") for i in range(5)]
        first = await persist_jobs(db, jobs, batch_size=2, batch_delay_s=0)
        second = await persist_jobs(db, jobs, batch_size=2, batch_delay_s=0)
        assert (first.inserted, first.updated) == (5, 0)
        assert (second.inserted, second.updated) == (0, 5)

    async def test_reports_duplicates(self, db) -> None:  # type: ignore[no-untyped-def]
        result = await persist_jobs(db, [_job("a"), _job("a")], batch_delay_s=0)
        assert result.duplicates_removed == 1
        assert result.inserted == 1

    async def test_failed_batch_isolated(self, db) -> None:  # type: ignore[no-untyped-def]
        jobs = [_job(f"h{i}", title=f"Graduate Analyst {i}") for i in range(5)]
        with patch(
            "src.pipeline.persistence.upsert_jobs",
            side_effect=[(2, 0), sqlite3.OperationalError("database is locked"), (1, 0)],
        ) as upsert:
            result = await persist_jobs(db, jobs, batch_size=2, batch_delay_s=0)

        assert upsert.call_count == 3
        assert result.inserted == 3
        assert len(result.errors) == 1
        assert "batch 2" in result.errors[0]
        assert "locked" in result.errors[0]

    async def test_empty_input(self, db) -> None:  # type: ignore[no-untyped-def]
        result = await persist_jobs(db, [], batch_delay_s=0)
        assert (result.inserted, result.updated, result.errors) == (0, 0, [])


class TestRevalidate:
    def test_filters_jobs_that_no_longer_classify(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_jobs(db, [
            _job("ok", title="Graduate Analyst"),
            _job("senior", title="Senior Analyst"),
            _job("remote", title="Junior Analyst", location="Remote"),
        ])
        counts = revalidate_active_jobs(db)
        assert counts == {"not_early_career": 1, "non_eu_location": 1}
        assert get_job(db, "ok").is_active is True  # type: ignore[union-attr]
        senior = get_job(db, "senior")
        assert senior is not None
        assert (senior.status, senior.filtered_reason) == ("filtered", "not_early_career")

    def test_scoped_by_source(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_jobs(db, [
            _job("a", title="Senior Analyst"),
            _job("b", title="Senior Engineer", source="lever"),
        ])
        assert revalidate_active_jobs(db, "lever") == {"not_early_career": 1}
        assert get_job(db, "a").is_active is True  # type: ignore[union-attr]

    def test_nothing_to_filter(self, db) -> None:  # type: ignore[no-untyped-def]
        upsert_jobs(db, [_job("a")])
        assert revalidate_active_jobs(db) == {}
