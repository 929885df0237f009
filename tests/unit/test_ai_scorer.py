"""Tests for AI matching prompt construction and response parsing."""

import json

import pytest

from src.core.schemas import Job, UserPreferences
from src.matching.ai_scorer import AIScoringError, build_matching_prompt, parse_ai_matches


def _job(n: int, **kw: object) -> Job:
    defaults: dict[str, object] = {
        "job_hash": f"h{n}",
        "source": "test",
        "title": f"Graduate Engineer {n}",
        "company": "Acme",
        "location": "Berlin, Germany",
        "job_url": f"https://example.com/{n}",
        "categories": ["tech", "early-career", "graduate"],
        "is_graduate": True,
    }
    defaults.update(kw)
    return Job(**defaults)  # type: ignore[arg-type]


class TestBuildMatchingPrompt:
    def test_includes_preferences_and_numbered_jobs(self) -> None:
        prefs = UserPreferences(
            email="a@b.c", target_cities=["Berlin"], career_path=["tech"],
            languages_spoken=["English", "German"],
        )
        prompt = build_matching_prompt(prefs, [_job(1), _job(2, language_requirements=["German"])])
        assert "Target cities: Berlin" in prompt
        assert "Languages spoken: English, German" in prompt
        assert "1. Graduate Engineer 1 | Acme | Berlin, Germany | tech" in prompt
        assert "2. Graduate Engineer 2" in prompt
        assert "languages: German" in prompt

    def test_defaults_for_missing_preferences(self) -> None:
        prompt = build_matching_prompt(UserPreferences(email="a@b.c"), [_job(1)])
        assert "Target cities: any EU city" in prompt
        assert "Career paths: open to any" in prompt
        assert "Skills:" not in prompt

    def test_premium_fields_listed(self) -> None:
        prefs = UserPreferences(email="a@b.c", skills=["python"], industries=["fintech"])
        prompt = build_matching_prompt(prefs, [_job(1)])
        assert "Skills: python" in prompt
        assert "Industries: fintech" in prompt

    def test_description_truncated(self) -> None:
        prompt = build_matching_prompt(UserPreferences(email="a@b.c"), [_job(1, description="x" * 2000)])
        assert "x" * 600 in prompt
        assert "x" * 601 not in prompt


class TestParseAIMatches:
    def test_valid_response(self) -> None:
        raw = json.dumps({"matches": [
            {"index": 2, "score": 88, "reason": "Tech role in Berlin"},
            {"index": 1, "score": 70, "reason": "Adjacent path"},
        ]})
        assert parse_ai_matches(raw, 3) == [(1, 0.88, "Tech role in Berlin"), (0, 0.7, "Adjacent path")]

    def test_code_fences_stripped(self) -> None:
        raw = '```json\n{"matches": [{"index": 1, "score": 90, "reason": "ok"}]}\n```'
        assert parse_ai_matches(raw, 1) == [(0, 0.9, "ok")]

    def test_score_clamped(self) -> None:
        raw = json.dumps({"matches": [{"index": 1, "score": 140}, {"index": 2, "score": -5}]})
        assert parse_ai_matches(raw, 2) == [(0, 1.0, ""), (1, 0.0, "")]

    def test_out_of_range_and_duplicates_skipped(self) -> None:
        raw = json.dumps({"matches": [
            {"index": 0, "score": 90},
            {"index": 5, "score": 90},
            {"index": 1, "score": 80},
            {"index": 1, "score": 60},
            {"index": "x", "score": 60},
            {"score": 60},
            "junk",
        ]})
        assert parse_ai_matches(raw, 2) == [(0, 0.8, "")]

    def test_invalid_json(self) -> None:
        with pytest.raises(AIScoringError, match="Failed to parse"):
            parse_ai_matches("not json", 3)

    def test_missing_matches_list(self) -> None:
        with pytest.raises(AIScoringError, match="missing 'matches'"):
            parse_ai_matches(json.dumps({"results": []}), 3)

    def test_top_level_list_rejected(self) -> None:
        with pytest.raises(AIScoringError, match="missing 'matches'"):
            parse_ai_matches("[]", 3)

    def test_no_usable_entries(self) -> None:
        with pytest.raises(AIScoringError, match="no usable matches"):
            parse_ai_matches(json.dumps({"matches": [{"index": 9, "score": 50}]}), 3)
