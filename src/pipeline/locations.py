"""European location vocabulary and word-boundary location matching.

All terms are lower-case. Matching is done on whole words so that short
country codes do not fire inside longer names ("uk" in "ukraine").
"""

import re
from functools import lru_cache

EU_CAPITALS = (
    "berlin", "paris", "madrid", "amsterdam", "london", "dublin", "copenhagen",
    "stockholm", "oslo", "helsinki", "rome", "vienna", "brussels", "zurich",
    "warsaw", "prague", "lisbon", "athens", "luxembourg", "ljubljana", "bratislava",
    "budapest", "bucharest", "sofia", "zagreb", "tallinn", "riga", "vilnius",
    "valletta", "nicosia", "bern", "reykjavik",
)

EU_COUNTRIES = (
    "germany", "france", "spain", "netherlands", "the netherlands", "holland",
    "uk", "united kingdom", "great britain", "england", "scotland", "wales",
    "northern ireland", "ireland", "denmark", "sweden", "norway", "finland",
    "italy", "austria", "belgium", "switzerland", "poland", "czech republic",
    "czechia", "portugal", "greece", "luxembourg", "slovenia", "slovakia",
    "hungary", "romania", "bulgaria", "croatia", "estonia", "latvia",
    "lithuania", "malta", "cyprus", "iceland", "liechtenstein",
    "deutschland", "españa", "nederland", "österreich", "schweiz", "suisse",
    "polska", "italia", "sverige", "danmark", "norge", "suomi", "česko",
)

MAJOR_EU_CITIES = (
    "munich", "hamburg", "frankfurt", "cologne", "stuttgart", "düsseldorf",
    "dusseldorf", "leipzig", "dresden", "hannover", "nuremberg",
    "lyon", "marseille", "toulouse", "nice", "nantes", "strasbourg", "lille", "bordeaux",
    "barcelona", "valencia", "seville", "bilbao", "zaragoza", "malaga", "málaga",
    "rotterdam", "the hague", "utrecht", "eindhoven", "tilburg",
    "birmingham", "manchester", "glasgow", "liverpool", "leeds", "edinburgh",
    "bristol", "cambridge", "oxford", "belfast",
    "cork", "limerick", "galway", "waterford",
    "aarhus", "odense", "aalborg", "esbjerg",
    "gothenburg", "malmö", "malmo", "uppsala", "västerås",
    "bergen", "trondheim", "stavanger", "drammen",
    "espoo", "tampere", "vantaa", "turku",
    "milan", "naples", "turin", "palermo", "genoa", "bologna", "florence",
    "graz", "linz", "salzburg", "innsbruck",
    "antwerp", "ghent", "charleroi", "liège", "leuven",
    "geneva", "basel", "lausanne",
    "krakow", "kraków", "gdansk", "gdańsk", "wroclaw", "wrocław", "poznan", "poznań",
    "brno", "ostrava", "plzen", "liberec",
    "porto", "amadora", "braga", "coimbra",
    "thessaloniki", "patras", "piraeus", "larissa",
    "münchen", "köln", "wien", "praha", "warszawa", "lisboa", "roma", "milano",
    "bruxelles", "københavn", "göteborg", "den haag",
)

EU_REGION_PHRASES = ("europe", "european union", "eu", "eea", "europa", "emea")

# Places that share names with European cities ("Paris, Texas", "London, Ontario").
NON_EU_MARKERS = (
    "usa", "u.s.", "u.s.a.", "united states", "america", "canada", "ontario",
    "texas", "kentucky", "ohio", "georgia", "new hampshire", "new york",
    "tennessee", "illinois", "indiana", "california", "australia", "india",
    "tx", "ky", "oh", "ga", "nh", "ny", "tn", "il",
)

REMOTE_PATTERN = re.compile(
    r"\b(?:remote|work\s+from\s+home|work-from-home|wfh|anywhere|fully\s+remote)\b",
    re.IGNORECASE,
)

# Native-language city names mapped onto the English names users pick.
CITY_ALIASES: dict[str, tuple[str, ...]] = {
    "munich": ("münchen",),
    "cologne": ("köln",),
    "vienna": ("wien",),
    "prague": ("praha",),
    "warsaw": ("warszawa",),
    "lisbon": ("lisboa",),
    "rome": ("roma",),
    "milan": ("milano",),
    "brussels": ("bruxelles", "brussel"),
    "copenhagen": ("københavn",),
    "gothenburg": ("göteborg",),
    "the hague": ("den haag",),
    "zurich": ("zürich",),
    "krakow": ("kraków",),
    "dusseldorf": ("düsseldorf",),
}


@lru_cache(maxsize=32)
def _term_pattern(terms: tuple[str, ...]) -> re.Pattern[str]:
    # lookarounds instead of \b so terms ending in "." (u.s.) still match
    alternation = "|".join(re.escape(t) for t in sorted(terms, key=len, reverse=True))
    return re.compile(rf"(?<!\w)(?:{alternation})(?!\w)", re.IGNORECASE)


def contains_term(text: str, terms: tuple[str, ...]) -> bool:
    """True if any term appears in ``text`` as a whole word or phrase."""
    return bool(text) and _term_pattern(terms).search(text) is not None


def is_country_name(value: str) -> bool:
    return value.strip().lower() in EU_COUNTRIES


def city_variants(city: str) -> tuple[str, ...]:
    key = city.strip().lower()
    for english, natives in CITY_ALIASES.items():
        if key == english or key in natives:
            return (english, *natives)
    return (key,)


def location_mentions_city(location: str, city: str) -> bool:
    """Whole-word check that ``location`` refers to ``city`` (or a native spelling)."""
    if not city.strip():
        return False
    return contains_term(location, city_variants(city))
