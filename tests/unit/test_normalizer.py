"""Tests for raw posting normalization and identity hashing."""

from datetime import datetime, timedelta, timezone

import pytest

from src.pipeline.normalizer import (
    NormalizationError,
    canonical_url,
    clean_company,
    clean_text,
    combine_locations,
    composite_key,
    compute_job_hash,
    detect_work_environment,
    extract_language_requirements,
    normalize,
    parse_posted_at,
    split_city_country,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _arbeitnow(**kw: object) -> dict[str, object]:
    raw: dict[str, object] = {
        "slug": "graduate-software-engineer-acme-123",
        "company_name": "Acme GmbH",
        "title": "Graduate Software Engineer",
        "description": "<p>Join our <b>graduate</b> programme. Fluent German required.</p>",
        "remote": False,
        "url": "https://www.arbeitnow.com/jobs/acme/graduate-software-engineer-123",
        "tags": ["IT"],
        "job_types": ["full time"],
        "location": "Berlin",
        "created_at": 1717200000,
    }
    raw.update(kw)
    return raw


class TestFieldHelpers:
    def test_clean_text_strips_html(self) -> None:
        assert clean_text("<p>Hello&nbsp;<b>world</b></p>") == "Hello world"

    def test_clean_text_none(self) -> None:
        assert clean_text(None) == ""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Acme GmbH", "Acme"),
            ("Acme Ltd.", "Acme"),
            ("Acme B.V.", "Acme"),
            ("Widgets Inc", "Widgets"),
            ("  Acme   Labs  ", "Acme Labs"),
        ],
    )
    def test_clean_company(self, raw: str, expected: str) -> None:
        assert clean_company(raw) == expected

    def test_canonical_url(self) -> None:
        assert (
            canonical_url("HTTPS://Jobs.Example.com/role/1/?utm_source=x#apply")
            == "https://jobs.example.com/role/1"
        )

    def test_composite_key(self) -> None:
        assert composite_key(" Graduate  Analyst ", "ACME", "Berlin") == "graduate analyst|acme|berlin"


class TestComputeJobHash:
    def test_external_id_strategy_stable(self) -> None:
        a = compute_job_hash(source="lever", title="A", company="X", location="Y",
                             external_id="42", url="https://x.com/42?ref=1")
        b = compute_job_hash(source="lever", title="B", company="Z", location="W",
                             external_id="42", url="https://x.com/42")
        assert a == b

    def test_external_id_scoped_by_source(self) -> None:
        a = compute_job_hash(source="lever", title="A", company="X", location="Y", external_id="42")
        b = compute_job_hash(source="arbeitnow", title="A", company="X", location="Y", external_id="42")
        assert a != b

    def test_composite_fallback_case_insensitive(self) -> None:
        a = compute_job_hash(source="s1", title="Graduate Analyst", company="Acme", location="Paris")
        b = compute_job_hash(source="s2", title=" graduate analyst", company="ACME ", location="paris")
        assert a == b

    def test_hex_digest(self) -> None:
        h = compute_job_hash(source="s", title="t", company="c", location="l")
        assert len(h) == 64


class TestLocations:
    def test_combine_dedupes_and_flattens(self) -> None:
        combined = combine_locations("Berlin, Germany", ["Berlin", "Munich"], None, ["Germany"])
        assert combined == "Berlin, Germany, Munich"

    def test_combine_empty(self) -> None:
        assert combine_locations(None, [], "") == ""

    def test_split_from_text(self) -> None:
        assert split_city_country("Berlin, Germany") == ("Berlin", "Germany")

    def test_split_prefers_hints(self) -> None:
        assert split_city_country("Somewhere", "Lyon", "France") == ("Lyon", "France")

    def test_country_only(self) -> None:
        assert split_city_country("Germany") == ("", "Germany")


class TestParsePostedAt:
    def test_epoch_seconds(self) -> None:
        assert parse_posted_at(1717200000, NOW) == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_epoch_millis(self) -> None:
        assert parse_posted_at(1717200000000, NOW) == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_digit_string(self) -> None:
        assert parse_posted_at("1717200000", NOW) == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_iso_z(self) -> None:
        assert parse_posted_at("2024-05-30T08:00:00Z", NOW) == datetime(
            2024, 5, 30, 8, tzinfo=timezone.utc
        )

    def test_naive_iso_assumed_utc(self) -> None:
        assert parse_posted_at("2024-05-30", NOW) == datetime(2024, 5, 30, tzinfo=timezone.utc)

    def test_day_first(self) -> None:
        assert parse_posted_at("03/05/2024", NOW) == datetime(2024, 5, 3, tzinfo=timezone.utc)

    def test_future_clamped(self) -> None:
        assert parse_posted_at(NOW + timedelta(days=3), NOW) == NOW

    @pytest.mark.parametrize("value", [None, "", "yesterday", True, "31/02/2024"])
    def test_unparseable(self, value: object) -> None:
        assert parse_posted_at(value, NOW) is None


class TestLanguageRequirements:
    def test_cue_before_language(self) -> None:
        assert extract_language_requirements("Fluent German and English required.") == [
            "German", "English",
        ]

    def test_suffix_after_language(self) -> None:
        assert extract_language_requirements("Dutch speaker preferred. French (B2) a plus") == [
            "Dutch", "French",
        ]

    def test_native_names(self) -> None:
        assert extract_language_requirements("Sehr gute Deutschkenntnisse, fließend Deutsch") == [
            "German",
        ]

    def test_bare_mention_ignored(self) -> None:
        assert extract_language_requirements("Our office is near the German border.") == []

    def test_empty(self) -> None:
        assert extract_language_requirements("") == []


class TestWorkEnvironment:
    def test_explicit_alias(self) -> None:
        assert detect_work_environment("Berlin", "", "onsite") == "on-site"

    def test_explicit_true_is_remote(self) -> None:
        assert detect_work_environment("Berlin", "", True) == "remote"

    def test_text_remote(self) -> None:
        assert detect_work_environment("Remote - Germany", "") == "remote"

    def test_text_hybrid(self) -> None:
        assert detect_work_environment("Paris", "Hybrid working, 3 days in the office") == "hybrid"

    def test_default_on_site(self) -> None:
        assert detect_work_environment("Madrid", "Great team") == "on-site"


class TestNormalize:
    def test_arbeitnow_posting(self) -> None:
        job = normalize(_arbeitnow(), "arbeitnow", now=NOW)
        assert job.title == "Graduate Software Engineer"
        assert job.company == "Acme"
        assert job.external_id == "graduate-software-engineer-acme-123"
        assert job.location == "Berlin"
        assert job.city == "Berlin"
        assert job.description.startswith("Join our graduate programme")
        assert job.language_requirements == ["German"]
        assert job.posted_at == datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert job.work_environment == "on-site"
        assert job.scrape_timestamp == NOW

    def test_arbeitnow_remote_flag(self) -> None:
        assert normalize(_arbeitnow(remote=True), "arbeitnow", now=NOW).work_environment == "remote"

    def test_lever_posting(self) -> None:
        raw = {
            "id": "abc-123",
            "text": "Data Analyst Intern",
            "categories": {"location": "Amsterdam", "allLocations": ["Amsterdam", "Rotterdam"]},
            "descriptionPlain": "Summer internship in our analytics team.",
            "hostedUrl": "https://jobs.lever.co/acme/abc-123",
            "createdAt": 1717200000000,
            "workplaceType": "hybrid",
            "_company": "acme",
        }
        job = normalize(raw, "lever-acme", kind="lever", now=NOW)
        assert job.source == "lever-acme"
        assert job.company == "acme"
        assert job.location == "Amsterdam, Rotterdam"
        assert job.work_environment == "hybrid"
        assert job.external_id == "abc-123"

    def test_rapidapi_combines_every_location_hint(self) -> None:
        raw = {
            "id": "987",
            "title": "Marketing Intern",
            "organization": "Brand Co",
            "url": "https://example.com/987",
            "locations_derived": ["Madrid, Community of Madrid, Spain"],
            "cities_derived": ["Madrid"],
            "countries_derived": ["Spain"],
            "date_posted": "2024-05-28T00:00:00",
        }
        job = normalize(raw, "rapidapi-internships", now=NOW)
        assert job.location == "Madrid, Community of Madrid, Spain"
        assert (job.city, job.country) == ("Madrid", "Spain")
        assert "Industry: Unknown" in job.description

    def test_generic_mapper_without_id_uses_composite_hash(self) -> None:
        raw = {"title": "Junior Analyst", "company": "Acme", "location": "Paris",
               "url": "https://acme.example/jobs/1"}
        job = normalize(raw, "custom-feed", now=NOW)
        assert job.external_id is None
        assert job.job_hash == compute_job_hash(
            source="other", title="junior analyst", company="acme", location="paris"
        )

    def test_same_posting_same_hash(self) -> None:
        a = normalize(_arbeitnow(), "arbeitnow", now=NOW)
        b = normalize(_arbeitnow(title="Graduate Software Engineer (updated)"), "arbeitnow", now=NOW)
        assert a.job_hash == b.job_hash

    def test_missing_title(self) -> None:
        with pytest.raises(NormalizationError, match="no title"):
            normalize(_arbeitnow(title="  "), "arbeitnow", now=NOW)

    def test_missing_url(self) -> None:
        with pytest.raises(NormalizationError, match="no URL"):
            normalize(_arbeitnow(url=None), "arbeitnow", now=NOW)

    def test_lever_malformed_categories_and_country(self) -> None:
        raw = {
            "id": "abc-9",
            "text": "Data Analyst Intern",
            "categories": "Amsterdam",
            "country": 31,
            "hostedUrl": "https://jobs.lever.co/acme/abc-9",
        }
        job = normalize(raw, "lever-acme", kind="lever", now=NOW)
        assert job.location == ""
        assert job.country == ""

    def test_malformed_field_raises_normalization_error(self) -> None:
        raw = {
            "id": "987",
            "title": "Marketing Intern",
            "url": "https://example.com/987",
            "employment_type": 5,
        }
        with pytest.raises(NormalizationError, match="malformed posting"):
            normalize(raw, "rapidapi-internships", now=NOW)

    def test_non_object_posting(self) -> None:
        with pytest.raises(NormalizationError, match="not an object"):
            normalize(["Graduate Engineer"], "arbeitnow", now=NOW)  # type: ignore[arg-type]
