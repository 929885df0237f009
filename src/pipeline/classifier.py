"""Early-career, job-type, EU-location and career-path classification.

Every decision is total: a job is either early-career or not, EU or not,
and always gets a career-path slug (``unknown`` when nothing matches).

Job-type precedence: graduate patterns are evaluated first. A graduate
programme that also mentions "internship" is a graduate role only, so
``is_internship`` and ``is_graduate`` are never both true.
"""

import logging
import re

from src.core.schemas import UNKNOWN_CAREER_PATH, Job
from src.pipeline.locations import (
    EU_CAPITALS,
    EU_COUNTRIES,
    EU_REGION_PHRASES,
    MAJOR_EU_CITIES,
    NON_EU_MARKERS,
    REMOTE_PATTERN,
    contains_term,
)

logger = logging.getLogger(__name__)


def _words(*terms: str) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(terms) + r")\b", re.IGNORECASE)


# French "stage" only in French context ("un stage", "stage de fin d'études",
# or a title opening with "Stage"); the English "every stage of" never counts.
_STAGE = (
    r"(?:^stage(?!\s+(?:manager|hand|crew|technician|door)\b)"
    r"|(?:un|le|du|ce|votre|notre|en)\s+stage"
    r"|stage\s+(?:de|d['’]|en|chez|r[ée]mun[ée]r[ée]|pr[ée].?embauche|ouvrier|alterné))"
)

# Inclusion terms per language. Patterns, not literals: "." allows "entry-level"/"entry level".
_EARLY_CAREER_TERMS = {
    "en": (
        r"graduate", r"grad", r"new.?grad", r"recent.?graduate", r"campus.?hire",
        r"entry.?level", r"junior", r"trainee", r"traineeship", r"intern", r"internship",
        r"placement", r"apprentice", r"apprenticeship", r"fellowship", r"working.?student",
        r"early.?careers?", r"rotational.?program(?:me)?",
    ),
    "de": (
        r"praktikum", r"praktikant(?:in)?", r"werkstudent(?:in)?", r"absolvent(?:in)?",
        r"absolventenprogramm", r"berufseinsteiger(?:in)?", r"berufseinstieg",
        r"einsteiger(?:in)?", r"auszubildende[rn]?", r"ausbildung", r"traineeprogramm",
    ),
    "fr": (
        _STAGE, r"stagiaire", r"alternance", r"alternant(?:e)?", r"apprenti(?:e)?",
        r"d[ée]butant(?:e)?", r"jeune.?dipl[ôo]m[ée](?:e)?", r"premier.?emploi",
    ),
    "nl": (
        r"stagiair(?:e)?", r"starterfunctie", r"afgestudeerde",
        r"werkstudent", r"leerwerkplek", r"instapfunctie",
    ),
    "es": (
        r"becario", r"becaria", r"pr[aá]cticas", r"reci[eé]n.?titulado(?:a)?",
        r"reci[eé]n.?graduado(?:a)?", r"programa.?de.?graduados", r"nivel.?inicial",
        r"j[uú]nior", r"aprendiz",
    ),
    "it": (
        r"tirocinio", r"tirocinante", r"stagista", r"neolaureato(?:a)?",
        r"neo.?laureato(?:a)?", r"apprendista", r"apprendistato",
    ),
    "sv": (r"praktikant", r"nyexaminerad", r"traineeprogram", r"examensarbete"),
    "da": (r"praktikant", r"nyuddannet", r"studentermedhjælper", r"elev"),
    "pl": (r"staż", r"stażysta", r"stażystka", r"praktykant(?:ka)?", r"praktyki", r"absolwent(?:ka)?",
           r"młodszy"),
    "cs": (r"stáž", r"stážista", r"stážistka", r"absolvent(?:ka)?", r"brigáda", r"praktikant"),
    "pt": (r"est[aá]gio", r"estagi[aá]rio(?:a)?", r"rec[eé]m.?formado(?:a)?",
           r"programa.?de.?trainee", r"j[uú]nior"),
    "el": (r"πρακτική", r"ασκούμενος", r"ασκούμενη", r"απόφοιτος", r"νέος.?απόφοιτος"),
}

_EARLY_CAREER_RE = _words(*(t for terms in _EARLY_CAREER_TERMS.values() for t in terms))

_SENIORITY_RE = _words(
    r"senior", r"sr\.?", r"lead", r"principal", r"director", r"head.?of", r"vp",
    r"vice.?president", r"chief", r"c[tfeo]o", r"staff", r"architect", r"team.?lead",
    r"tech.?lead", r"distinguished", r"executive.?director", r"experienced.?professional",
)

_MANAGER_RE = _words(r"manager", r"managerin")
_QUALIFIED_MANAGER_RE = _words(
    r"(?:graduate|trainee|junior|entry.?level|associate|assistant)\s+managers?",
    r"management\s+trainee",
)

# Explicit multi-year thresholds in EN/DE/FR/ES/IT/NL, captured numerically.
_EXPERIENCE_RES = (
    re.compile(r"\b(\d{1,2})\s*\+\s*(?:years?|yrs?|jahre|ans|años|anni|jaar)", re.IGNORECASE),
    re.compile(
        r"\b(?:minimum(?:\s+of)?|at\s+least|min\.?|mindestens|au\s+moins|al\s+menos"
        r"|almeno|minimaal)\s+(\d{1,2})\s*(?:years?|yrs?|jahre|ans|años|anni|jaar)",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(\d{1,2})\s*(?:-\s*\d{1,2}\s*)?(?:years?|yrs?)\s+(?:of\s+)?"
        r"(?:professional\s+|relevant\s+|proven\s+|industry\s+|work\s+)?experience",
        re.IGNORECASE,
    ),
)
_EXPERIENCE_PHRASE_RE = _words(r"proven\s+track\s+record", r"extensive\s+experience")
EXPERIENCE_THRESHOLD_YEARS = 3

_GRADUATE_TITLE_RE = _words(
    r"graduate", r"grad", r"new.?grad", r"absolvent(?:in)?", r"jeune.?dipl[ôo]m[ée]",
    r"reci[eé]n.?titulado(?:a)?", r"neolaureato(?:a)?", r"afgestudeerde", r"nyexaminerad",
    r"nyuddannet", r"absolwent(?:ka)?", r"rec[eé]m.?formado(?:a)?", r"απόφοιτος",
)
_GRADUATE_PROGRAMME_RE = _words(
    r"graduate\s+(?:programme|program|scheme|trainee|role)",
    r"grad\s+(?:scheme|program)",
    r"(?:management|graduate)\s+trainee",
    r"(?:rotational|leadership|accelerated|fast-track)\s+(?:programme|program)",
    r"campus\s+hire",
    r"new\s+grad(?:uate)?",
    r"recent\s+graduate",
    r"trainee\s+(?:programme|program|scheme)",
    r"traineeprogramm", r"absolventenprogramm", r"programa\s+de\s+graduados",
)
_INTERNSHIP_RE = _words(
    r"intern", r"internship", r"interns", r"(?:summer|winter|spring)\s+(?:intern|placement)",
    r"co-op", r"coop", _STAGE, r"stagiaire", r"stagiair", r"praktikum", r"praktikant(?:in)?",
    r"pr[aá]cticas", r"becari[oa]", r"tirocinio", r"stagista", r"werkstudent(?:in)?",
    r"placement", r"work\s+experience", r"sandwich\s+course", r"year\s+out",
    r"est[aá]gio", r"staż", r"stáž", r"praktyki",
)

# First match wins; order is the tagging priority.
_CAREER_PATH_RULES: list[tuple[str, re.Pattern[str]]] = [
    ("tech", _words(r"software", r"developer", r"engineer(?:ing)?")),
    ("data-analytics", _words(r"data", r"analyst", r"analytics")),
    ("marketing", _words(r"marketing", r"brand", r"digital")),
    ("finance", _words(r"finance", r"financial", r"banking")),
    ("strategy", _words(r"business", r"strategy", r"consulting")),
    ("product", _words(r"design", r"designer", r"creative", r"ux")),
]

_EU_TERMS = EU_CAPITALS + EU_COUNTRIES + MAJOR_EU_CITIES + EU_REGION_PHRASES


class ClassificationResult:
    """A classified job plus the two gate decisions that decide if it is kept."""

    def __init__(self, job: Job, *, early_career: bool, eu: bool) -> None:
        self.job = job
        self.early_career = early_career
        self.eu = eu

    @property
    def eligible(self) -> bool:
        return self.early_career and self.eu

    @property
    def rejection_reason(self) -> str | None:
        if not self.early_career:
            return "not_early_career"
        if not self.eu:
            return "non_eu_location"
        return None


def required_experience_years(text: str) -> int | None:
    """Largest explicit "N+ years"/"minimum N years" figure in ``text``, if any."""
    years = [int(m.group(1)) for pattern in _EXPERIENCE_RES for m in pattern.finditer(text)]
    return max(years) if years else None


def has_seniority_signal(title: str, text: str) -> bool:
    """Senior/lead/director-style title, or a manager title without a junior qualifier."""
    if _SENIORITY_RE.search(title):
        return True
    return bool(_MANAGER_RE.search(title) and not _QUALIFIED_MANAGER_RE.search(text))


def requires_experience(text: str) -> bool:
    years = required_experience_years(text)
    if years is not None and years >= EXPERIENCE_THRESHOLD_YEARS:
        return True
    return bool(_EXPERIENCE_PHRASE_RE.search(text))


def is_early_career(title: str, description: str = "") -> bool:
    """Inclusion term present, and neither a seniority nor an experience exclusion."""
    text = f"{title} {description}"
    return (
        _EARLY_CAREER_RE.search(text) is not None
        and not has_seniority_signal(title, text)
        and not requires_experience(text)
    )


def classify_job_type(title: str, description: str = "") -> tuple[bool, bool]:
    """Return (is_internship, is_graduate); graduate is checked first and wins."""
    text = f"{title} {description}"
    if _GRADUATE_TITLE_RE.search(title) or _GRADUATE_PROGRAMME_RE.search(text):
        return False, True
    return _INTERNSHIP_RE.search(text) is not None, False


def is_eu_location(location: str) -> bool:
    """Whole-word EU location check on the combined location text.

    Remote/anywhere postings are rejected outright. A US or Canadian place
    qualifier rejects the text unless it also names a European country.
    """
    if not location or not location.strip():
        return False
    if REMOTE_PATTERN.search(location):
        return False
    if not contains_term(location, _EU_TERMS):
        return False
    return not (
        contains_term(location, NON_EU_MARKERS) and not contains_term(location, EU_COUNTRIES)
    )


def tag_career_path(title: str, description: str = "") -> str:
    """First matching career path from the title, then the description."""
    for text in (title, description):
        for slug, pattern in _CAREER_PATH_RULES:
            if pattern.search(text):
                return slug
    return UNKNOWN_CAREER_PATH


def _categories(career_path: str, early_career: bool, internship: bool, graduate: bool) -> list[str]:
    categories = [career_path]
    if early_career:
        categories.append("early-career")
    if graduate:
        categories.append("graduate")
    if internship:
        categories.append("internship")
    return categories


def validate_classification(job: Job) -> Job:
    """Re-check job-type flags against the title and auto-correct contradictions.

    Corrections (graduate always wins) are logged as warnings. Cases where the
    title and the description disagree are logged but left untouched.
    """
    title_graduate = _GRADUATE_TITLE_RE.search(job.title) is not None
    title_internship = _INTERNSHIP_RE.search(job.title) is not None
    internship, graduate = job.is_internship, job.is_graduate

    if internship and graduate:
        logger.warning("'%s' flagged internship and graduate, keeping graduate", job.title)
        internship = False
    elif title_graduate and not graduate:
        logger.warning("'%s' has a graduate title but is_graduate=false, correcting", job.title)
        internship, graduate = False, True
    elif title_internship and not title_graduate and not internship and not graduate:
        logger.warning("'%s' has an internship title but no job type, correcting", job.title)
        internship = True
    elif title_internship and not title_graduate and graduate:
        logger.warning(
            "Ambiguous job type for '%s': internship title, graduate description", job.title
        )

    if (internship, graduate) == (job.is_internship, job.is_graduate):
        return job

    career_path = job.career_path
    return job.model_copy(update={
        "is_internship": internship,
        "is_graduate": graduate,
        "categories": _categories(career_path, job.is_early_career, internship, graduate),
    })


def classify(job: Job) -> ClassificationResult:
    """Apply every classification decision to a normalized job."""
    early_career = is_early_career(job.title, job.description)
    internship, graduate = classify_job_type(job.title, job.description)
    career_path = tag_career_path(job.title, job.description)
    eu = is_eu_location(job.location)

    classified = job.model_copy(update={
        "is_early_career": early_career,
        "is_internship": internship,
        "is_graduate": graduate,
        "categories": _categories(career_path, early_career, internship, graduate),
    })
    classified = validate_classification(classified)

    if not early_career:
        logger.debug("Not early-career: '%s'", job.title)
    elif not eu:
        logger.debug("Non-EU location for '%s': %s", job.title, job.location)
    return ClassificationResult(classified, early_career=early_career, eu=eu)
