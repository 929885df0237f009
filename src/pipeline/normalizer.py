"""Map source-shaped raw postings onto the canonical Job record.

Every location hint a source exposes (explicit location, derived city and
country arrays, office names) is folded into one comparable ``location``
string; downstream EU filtering and city matching read that union.

Identity hash:
  - sha256(source|external_id|canonical_url) when the source has stable ids
  - sha256(title|company|location), lower-cased and whitespace-collapsed, otherwise
"""

import hashlib
import html
import logging
import re
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from src.core.schemas import Job, RawPosting, WorkEnvironment, utcnow
from src.pipeline.locations import is_country_name

logger = logging.getLogger(__name__)


class NormalizationError(ValueError):
    """A raw posting is missing a field no Job can exist without."""


_COMPANY_SUFFIXES = re.compile(
    r"[\s,]+(?:ltd\.?|limited|inc\.?|incorporated|gmbh(?:\s*&\s*co\.?\s*kg)?|s\.a\.?|s\.l\.?"
    r"|s\.r\.l\.?|s\.p\.a\.?|llc|llp|plc|corp\.?|corporation|co\.?|company|ag|b\.?v\.?"
    r"|n\.?v\.?|ab|oy|as|sas|sarl|se)$",
    re.IGNORECASE,
)

_TAG_RE = re.compile(r"<[^>]+>")

# (language, aliases in several languages)
_LANGUAGES: list[tuple[str, tuple[str, ...]]] = [
    ("English", ("english", "englisch", "anglais", "inglés", "ingles", "inglese", "engels")),
    ("German", ("german", "deutsch", "allemand", "alemán", "aleman", "tedesco", "duits")),
    ("French", ("french", "français", "francais", "französisch", "francés", "francese", "frans")),
    ("Spanish", ("spanish", "español", "espanol", "castellano", "spanisch", "espagnol", "spagnolo")),
    ("Italian", ("italian", "italiano", "italienisch", "italien")),
    ("Dutch", ("dutch", "nederlands", "niederländisch", "néerlandais", "flemish")),
    ("Portuguese", ("portuguese", "português", "portugues", "portugiesisch")),
    ("Polish", ("polish", "polski", "polnisch")),
    ("Swedish", ("swedish", "svenska", "schwedisch")),
    ("Danish", ("danish", "dansk", "dänisch")),
    ("Norwegian", ("norwegian", "norsk")),
    ("Finnish", ("finnish", "suomi")),
    ("Czech", ("czech", "čeština", "cestina")),
    ("Greek", ("greek", "ελληνικά")),
    ("Romanian", ("romanian", "română")),
    ("Hungarian", ("hungarian", "magyar")),
    ("Russian", ("russian", "русский")),
    ("Arabic", ("arabic",)),
    ("Turkish", ("turkish", "türkçe")),
    ("Japanese", ("japanese",)),
    ("Chinese", ("chinese", "mandarin", "cantonese")),
    ("Korean", ("korean",)),
    ("Hindi", ("hindi",)),
]

_REQUIREMENT_CUES = (
    r"(?:fluent|fluency|native|proficient|proficiency|excellent|strong|good|working"
    r"|business[- ]level|written\s+and\s+spoken|spoken\s+and\s+written|must\s+speak"
    r"|speak|knowledge\s+of|command\s+of|fließend|verhandlungssicher|courant|bilingual)"
)
_REQUIREMENT_SUFFIX = (
    r"(?:speaker|speaking|language|skills|proficiency|fluency|kenntnisse|\(?[abc][12]\b)"
)


def _language_patterns(aliases: tuple[str, ...]) -> tuple[re.Pattern[str], ...]:
    names = "|".join(re.escape(a) for a in aliases)
    return (
        re.compile(rf"\b{_REQUIREMENT_CUES}\b[^.\n;]{{0,40}}?\b({names})\b", re.IGNORECASE),
        re.compile(rf"\b({names})\W{{0,3}}{_REQUIREMENT_SUFFIX}", re.IGNORECASE),
    )


_LANGUAGE_PATTERNS = [(lang, _language_patterns(aliases)) for lang, aliases in _LANGUAGES]

_REMOTE_RE = re.compile(
    r"\b(?:remote|work\s+from\s+home|wfh|anywhere|fully\s+remote|100%\s+remote)\b",
    re.IGNORECASE,
)
_HYBRID_RE = re.compile(
    r"\b(?:hybrid|partially\s+remote|\d-\d\s+days\s+(?:in|at)\s+the\s+office"
    r"|\d\s+days\s+remote|mix\s+of\s+remote)\b",
    re.IGNORECASE,
)

_WORK_ENV_ALIASES: dict[str, WorkEnvironment] = {
    "remote": "remote",
    "hybrid": "hybrid",
    "office": "office",
    "onsite": "on-site",
    "on-site": "on-site",
    "on site": "on-site",
}


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def clean_text(value: Any) -> str:
    """Strip HTML tags/entities and collapse whitespace."""
    if value is None:
        return ""
    text = html.unescape(_TAG_RE.sub(" ", str(value)))
    return " ".join(text.split())


def clean_company(name: Any) -> str:
    """Collapse whitespace and drop trailing legal suffixes (GmbH, Ltd, B.V., ...)."""
    cleaned = clean_text(name)
    previous = None
    while cleaned and cleaned != previous:
        previous = cleaned
        cleaned = _COMPANY_SUFFIXES.sub("", cleaned).strip(" ,")
    return cleaned or clean_text(name)


def canonical_url(url: str) -> str:
    """Lower-case scheme and host, drop query and fragment, trim trailing '/'."""
    url = url.strip()
    if not url:
        return ""
    parts = urlsplit(url)
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


def _norm_key_part(value: str) -> str:
    return " ".join(value.lower().split())


def composite_key(title: str, company: str, location: str) -> str:
    """title|company|location, lower-cased, trimmed, whitespace-collapsed."""
    return "|".join(_norm_key_part(p) for p in (title, company, location))


def compute_job_hash(
    *,
    source: str,
    title: str,
    company: str,
    location: str,
    external_id: str | None = None,
    url: str = "",
) -> str:
    if external_id:
        key = "|".join((source.strip().lower(), str(external_id).strip(), canonical_url(url)))
    else:
        key = composite_key(title, company, location)
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def combine_locations(*hints: Any) -> str:
    """Join every location hint into one string, dropping empties and repeats.

    Hints may be strings or lists of strings; order of first appearance wins.
    """
    seen: set[str] = set()
    parts: list[str] = []
    for hint in _flatten(hints):
        for piece in clean_text(hint).split(","):
            piece = piece.strip()
            if piece and piece.lower() not in seen:
                seen.add(piece.lower())
                parts.append(piece)
    return ", ".join(parts)


def _flatten(values: Iterable[Any]) -> Iterable[Any]:
    for v in values:
        if isinstance(v, (list, tuple)):
            yield from _flatten(v)
        elif v:
            yield v


def split_city_country(
    location: str,
    city_hint: str = "",
    country_hint: str = "",
) -> tuple[str, str]:
    """Prefer structured city/country; fall back to first/last comma part."""
    parts = [p.strip() for p in location.split(",") if p.strip()]
    city = clean_text(city_hint) or (parts[0] if parts else "")
    country = clean_text(country_hint) or (parts[-1] if len(parts) > 1 else "")
    if city and is_country_name(city):
        # "Germany" alone is a country, not a city
        country = country or city
        city = ""
    return city, country


def parse_posted_at(value: Any, now: datetime | None = None) -> datetime | None:
    """Parse ISO strings, DD/MM/YYYY, or epoch seconds/milliseconds into aware UTC.

    Returns None for anything unparseable. Future dates are clamped to ``now``.
    """
    now = now or utcnow()
    dt: datetime | None = None
    try:
        if isinstance(value, bool) or value is None or value == "":
            return None
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, (int, float)):
            seconds = value / 1000 if value > 1e11 else value
            dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
        elif isinstance(value, str):
            s = value.strip()
            if s.isdigit():
                return parse_posted_at(int(s), now)
            m = re.fullmatch(r"(\d{1,2})/(\d{1,2})/(\d{4})", s)
            if m:
                day, month, year = (int(g) for g in m.groups())
                dt = datetime(year, month, day, tzinfo=timezone.utc)
            else:
                dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError):
        logger.debug("Unparseable posted date %r", value)
        return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    if dt > now:
        logger.debug("Clamping future posted date %s to now", dt.isoformat())
        dt = now
    return dt


def extract_language_requirements(description: str) -> list[str]:
    """Languages the description asks for, in order of first mention."""
    if not description:
        return []
    found: list[tuple[int, str]] = []
    for lang, patterns in _LANGUAGE_PATTERNS:
        positions = [m.start(1) for p in patterns if (m := p.search(description))]
        if positions:
            found.append((min(positions), lang))
    return [lang for _, lang in sorted(found)]


def detect_work_environment(
    location: str,
    description: str,
    explicit: Any = None,
) -> WorkEnvironment:
    """Source field when recognised, else remote > hybrid > on-site from text."""
    if isinstance(explicit, str):
        mapped = _WORK_ENV_ALIASES.get(explicit.strip().lower())
        if mapped:
            return mapped
    elif explicit is True:
        return "remote"
    text = f"{location} {description}"
    if _REMOTE_RE.search(text):
        return "remote"
    if _HYBRID_RE.search(text):
        return "hybrid"
    return "on-site"


# ---------------------------------------------------------------------------
# Per-source field mappers
# ---------------------------------------------------------------------------


def _map_arbeitnow(raw: RawPosting) -> dict[str, Any]:
    return {
        "external_id": raw.get("slug"),
        "title": raw.get("title"),
        "company": raw.get("company_name"),
        "location_hints": [raw.get("location")],
        "description": raw.get("description"),
        "url": raw.get("url"),
        "posted_at": raw.get("created_at"),
        "work_environment": True if raw.get("remote") else None,
    }


def _map_lever(raw: RawPosting) -> dict[str, Any]:
    categories = raw.get("categories")
    if not isinstance(categories, dict):
        categories = {}
    country = raw.get("country")
    workplace = raw.get("workplaceType")
    return {
        "external_id": raw.get("id"),
        "title": raw.get("text"),
        "company": raw.get("company") or raw.get("_company"),
        "location_hints": [categories.get("location"), categories.get("allLocations")],
        "country": country if isinstance(country, str) and len(country) > 2 else "",
        "description": raw.get("descriptionPlain") or raw.get("description"),
        "url": raw.get("hostedUrl") or raw.get("applyUrl"),
        "posted_at": raw.get("createdAt"),
        "work_environment": None if workplace == "unspecified" else workplace,
    }


def _map_rapidapi(raw: RawPosting) -> dict[str, Any]:
    employment = raw.get("employment_type") or []
    description = raw.get("description") or "\n\n".join(
        part for part in (
            raw.get("linkedin_org_description") or "",
            f"Industry: {raw.get('linkedin_org_industry') or 'Unknown'}",
            f"Seniority: {raw.get('seniority') or 'Unknown'}",
            f"Employment Type: {', '.join(employment) or 'Unknown'}",
        ) if part
    )
    cities = raw.get("cities_derived") or []
    countries = raw.get("countries_derived") or []
    return {
        "external_id": raw.get("id"),
        "title": raw.get("title"),
        "company": raw.get("organization"),
        "location_hints": [
            raw.get("locations_derived"),
            cities,
            countries,
            raw.get("location"),
            raw.get("linkedin_org_location"),
            raw.get("city"),
            raw.get("country"),
        ],
        "city": cities[0] if cities else raw.get("city") or "",
        "country": countries[0] if countries else raw.get("country") or "",
        "description": description,
        "url": raw.get("url"),
        "posted_at": raw.get("date_posted"),
        "work_environment": True if raw.get("remote_derived") else None,
    }


def _map_generic(raw: RawPosting) -> dict[str, Any]:
    return {
        "external_id": raw.get("id") or raw.get("external_id"),
        "title": raw.get("title"),
        "company": raw.get("company") or raw.get("company_name"),
        "location_hints": [raw.get("location"), raw.get("city"), raw.get("country")],
        "city": raw.get("city") or "",
        "country": raw.get("country") or "",
        "description": raw.get("description"),
        "url": raw.get("url") or raw.get("job_url"),
        "posted_at": raw.get("posted_at"),
        "work_environment": raw.get("work_environment"),
    }


_MAPPERS: dict[str, Callable[[RawPosting], dict[str, Any]]] = {
    "arbeitnow": _map_arbeitnow,
    "lever": _map_lever,
    "rapidapi-internships": _map_rapidapi,
}


def normalize(
    raw: RawPosting,
    source: str,
    *,
    kind: str | None = None,
    now: datetime | None = None,
) -> Job:
    """Map one raw posting onto a Job.

    Args:
        raw: The posting as the source returned it.
        source: Source label stored on the job (and part of the identity hash).
        kind: Adapter kind selecting the field mapper; defaults to ``source``.
        now: Clock override for timestamps.

    Raises:
        NormalizationError: If the posting has no title or no URL.
    """
    now = now or utcnow()
    if not isinstance(raw, dict):
        msg = f"{source}: posting is not an object ({type(raw).__name__})"
        raise NormalizationError(msg)
    try:
        fields = _MAPPERS.get(kind or source, _map_generic)(raw)
    except (AttributeError, TypeError, KeyError, IndexError) as e:
        msg = f"{source}: malformed posting ({e})"
        raise NormalizationError(msg) from e

    title = clean_text(fields.get("title"))
    if not title:
        msg = f"{source}: posting has no title"
        raise NormalizationError(msg)
    url = clean_text(fields.get("url"))
    if not url:
        msg = f"{source}: posting '{title}' has no URL"
        raise NormalizationError(msg)

    company = clean_company(fields.get("company"))
    location = combine_locations(fields.get("location_hints", []))
    city, country = split_city_country(
        location, fields.get("city") or "", fields.get("country") or ""
    )
    description = clean_text(fields.get("description"))
    external_id = fields.get("external_id")
    external_id = str(external_id).strip() if external_id not in (None, "") else None

    return Job(
        job_hash=compute_job_hash(
            source=source,
            title=title,
            company=company,
            location=location,
            external_id=external_id,
            url=url,
        ),
        source=source,
        external_id=external_id,
        title=title,
        company=company,
        location=location,
        city=city,
        country=country,
        description=description,
        job_url=url,
        work_environment=detect_work_environment(
            location, description, fields.get("work_environment")
        ),
        language_requirements=extract_language_requirements(description),
        posted_at=parse_posted_at(fields.get("posted_at"), now),
        scrape_timestamp=now,
        last_seen_at=now,
        created_at=now,
    )
