"""Premium / well-known company detection.

Two independent signals, either one is enough:
  - brand recognition list (employers early-career users search for by name)
  - company tier score: tier 1 = 12 points, tier 2 = 8 points; premium is >= 12
"""

from src.pipeline.locations import contains_term

TIER1_COMPANIES = (
    "google", "microsoft", "apple", "amazon", "meta", "netflix", "spotify", "uber",
    "airbnb", "mckinsey", "bain", "bcg", "boston consulting group", "deloitte", "pwc",
    "ey", "ernst & young", "kpmg", "goldman sachs", "jpmorgan", "j.p. morgan",
    "morgan stanley", "blackrock",
)

TIER2_COMPANIES = (
    "klarna", "zalando", "delivery hero", "hellofresh", "n26", "revolut", "sap",
    "siemens", "bosch", "adidas", "bmw", "mercedes", "mercedes-benz", "volkswagen",
)

BRAND_COMPANIES = (
    "accenture", "booking.com", "adyen", "asml", "philips", "unilever", "nestle",
    "nestlé", "l'oréal", "l'oreal", "lvmh", "ing", "abn amro", "bnp paribas",
    "societe generale", "santander", "bbva", "allianz", "axa", "ikea", "ericsson",
    "nokia", "novo nordisk", "maersk", "shell", "bp", "astrazeneca", "gsk",
    "deutsche bank", "barclays", "hsbc", "lloyds", "stripe", "wise", "monzo",
    "skyscanner", "deliveroo", "just eat", "bolt", "celonis", "personio",
)

TIER1_POINTS = 12
TIER2_POINTS = 8
PREMIUM_POINTS = 12


def company_tier_score(company: str) -> int:
    """Points for a company's tier: 12, 8, or 0."""
    if contains_term(company, TIER1_COMPANIES):
        return TIER1_POINTS
    if contains_term(company, TIER2_COMPANIES):
        return TIER2_POINTS
    return 0


def is_premium_company(company: str) -> bool:
    if not company or not company.strip():
        return False
    return contains_term(company, BRAND_COMPANIES) or company_tier_score(company) >= PREMIUM_POINTS
