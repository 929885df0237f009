"""Prompt building and response parsing for AI-assisted match scoring."""

import json
import logging

from src.core.schemas import Job, UserPreferences
from src.llm.base import strip_code_fences

logger = logging.getLogger(__name__)

_DESCRIPTION_CHARS = 600


class AIScoringError(ValueError):
    """The AI response could not be turned into matches."""


MATCHING_SYSTEM_PROMPT = (
    "You are a careers adviser matching graduates and early-career candidates "
    "to jobs in Europe.\n\n"
    "You will receive a candidate's preferences and a numbered list of jobs. "
    "Score each job you consider a reasonable fit on a 0-100 scale:\n"
    "  90-100: same career path and a target city, language and work type fit\n"
    "  75-89:  same career path, location or work type is a compromise\n"
    "  50-74:  adjacent career path or notable mismatches\n"
    "  0-49:   poor fit, omit these\n\n"
    "Never recommend a job that requires a language the candidate does not "
    "speak or that targets experienced hires.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation):\n"
    '{"matches": [{"index": <job number>, "score": <integer 0-100>, '
    '"reason": "<one sentence naming the city and career-path fit>"}]}'
)


def _list_or(values: list[str], default: str) -> str:
    return ", ".join(values) if values else default


def build_matching_prompt(prefs: UserPreferences, jobs: list[Job]) -> str:
    """Assemble the user prompt: candidate preferences plus numbered jobs."""
    lines = [
        "CANDIDATE PREFERENCES",
        f"Target cities: {_list_or(prefs.target_cities, 'any EU city')}",
        f"Career paths: {_list_or(prefs.career_path, 'open to any')}",
        f"Languages spoken: {_list_or(prefs.languages_spoken, 'English')}",
        f"Work environment: {prefs.work_environment or 'no preference'}",
        f"Entry level: {prefs.entry_level_preference or 'any early-career role'}",
        f"Visa status: {prefs.visa_status or 'not specified'}",
    ]
    if prefs.skills:
        lines.append(f"Skills: {', '.join(prefs.skills)}")
    if prefs.industries:
        lines.append(f"Industries: {', '.join(prefs.industries)}")
    if prefs.company_size_preference:
        lines.append(f"Company size: {prefs.company_size_preference}")

    lines += ["", "JOBS"]
    for i, job in enumerate(jobs, start=1):
        job_type = "graduate" if job.is_graduate else "internship" if job.is_internship else "entry-level"
        lines.append(
            f"{i}. {job.title} | {job.company or 'unknown company'} | "
            f"{job.location or 'location not given'} | {job.career_path} | "
            f"{job.work_environment} | {job_type} | "
            f"languages: {_list_or(job.language_requirements, 'none stated')}"
        )
        if job.description:
            lines.append(f"   {job.description[:_DESCRIPTION_CHARS]}")
    return "\n".join(lines)


def parse_ai_matches(raw_text: str, job_count: int) -> list[tuple[int, float, str]]:
    """Parse the AI response into (zero-based job index, 0-1 score, reason).

    Entries pointing outside the job list or repeating an index are dropped.

    Raises:
        AIScoringError: Response is not JSON, has no ``matches`` list, or
            yields no usable entries.
    """
    try:
        data = json.loads(strip_code_fences(raw_text))
    except json.JSONDecodeError as e:
        msg = f"Failed to parse AI match response as JSON: {e}"
        raise AIScoringError(msg) from e

    entries = data.get("matches") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        msg = "AI response missing 'matches' list"
        raise AIScoringError(msg)

    parsed: list[tuple[int, float, str]] = []
    seen: set[int] = set()
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        try:
            index = int(entry["index"]) - 1
            raw_score = float(entry["score"])
        except (KeyError, TypeError, ValueError):
            logger.debug("Skipping malformed AI match entry: %r", entry)
            continue
        if not 0 <= index < job_count or index in seen:
            continue
        seen.add(index)
        score = max(0.0, min(100.0, raw_score)) / 100
        parsed.append((index, round(score, 4), str(entry.get("reason", "")).strip()))

    if not parsed:
        msg = "AI response contained no usable matches"
        raise AIScoringError(msg)
    return parsed
