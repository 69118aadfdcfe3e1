"""
Property listing search for the PropertyDatabase tool.

parse_property_query() turns free text into PropertyCriteria with regex
heuristics; search_properties() filters a listing corpus by those criteria,
sorts by match_score (descending) and caps the result.
"""

import re

import structlog

from app.constants import DATABASE_STATS, PROPERTY_CORPUS, PROPERTY_DATABASE_RESULT_LIMIT
from app.models.property import Listing, PriceType, PropertyCriteria, PropertyType

logger = structlog.get_logger(__name__)

_NUMBER = r"(\d+(?:,\d{3})*(?:\.\d+)?)"

# "30000-40000 NPR", "35,000 rs"
PRICE_PATTERN = re.compile(rf"{_NUMBER}(?:\s*-\s*{_NUMBER})?\s*(?:NPR|rupees?|rs\.?)", re.I)
# "budget of 30000-40000", "budget NPR 40000"
BUDGET_PATTERN = re.compile(rf"budget\s+(?:of\s+)?(?:NPR\s+)?{_NUMBER}(?:\s*-\s*{_NUMBER})?", re.I)
# "under NPR 30,000", "max 25000"
MAX_PRICE_PATTERN = re.compile(
    rf"\b(?:under|below|max|maximum|upto|up to)\s+(?:NPR\s*|rs\.?\s*)?{_NUMBER}",
    re.I,
)
BEDROOM_PATTERN = re.compile(r"(\d+)\s*(?:BHK|bedroom|BR|bed)", re.I)
LOCATION_PATTERN = re.compile(r"\b(?:in|at|near|around)\s+(?:the\s+)?([A-Za-z][A-Za-z\-]*)", re.I)

# Words that follow "in/at/near" without naming a place
LOCATION_STOPWORDS: frozenset[str] = frozenset(
    {"a", "an", "my", "our", "your", "buying", "renting", "investing", "budget", "npr", "rs", "total"}
)

# Checked in order; first hit wins.
PROPERTY_TYPE_RULES: list[tuple[PropertyType, tuple[str, ...]]] = [
    (PropertyType.COMMERCIAL, ("commercial", "shop", "office space")),
    (PropertyType.LAND, ("land", "plot")),
    (PropertyType.HOUSE, ("house", "villa", "bungalow")),
    (PropertyType.APARTMENT, ("apartment", "flat")),
]

RENT_KEYWORDS: tuple[str, ...] = ("for rent", "rental", "to rent", "on rent")
SALE_KEYWORDS: tuple[str, ...] = ("for sale", "buy", "purchase")


def _to_int(raw: str) -> int:
    return int(float(raw.replace(",", "")))


def _contains_word(text: str, word: str) -> bool:
    return re.search(rf"\b{re.escape(word)}s?\b", text) is not None


def _apply_amounts(criteria: PropertyCriteria, low: str, high: str | None) -> None:
    # A lone amount is a ceiling; a range sets both bounds.
    if high:
        criteria.min_price = _to_int(low)
        criteria.max_price = _to_int(high)
    else:
        criteria.max_price = _to_int(low)


def parse_property_query(query: str) -> PropertyCriteria:
    """Extract price, bedrooms, location, property type and rent/sale intent."""
    criteria = PropertyCriteria()
    lowered = query.lower()

    match = PRICE_PATTERN.search(query)
    if match:
        _apply_amounts(criteria, match.group(1), match.group(2))

    match = BUDGET_PATTERN.search(query)
    if match:
        _apply_amounts(criteria, match.group(1), match.group(2))

    match = MAX_PRICE_PATTERN.search(query)
    if match:
        criteria.max_price = _to_int(match.group(1))

    match = BEDROOM_PATTERN.search(query)
    if match:
        criteria.bedrooms = int(match.group(1))

    for match in LOCATION_PATTERN.finditer(query):
        candidate = match.group(1)
        if candidate.lower() not in LOCATION_STOPWORDS:
            criteria.location = candidate
            break

    for property_type, keywords in PROPERTY_TYPE_RULES:
        if any(_contains_word(lowered, kw) for kw in keywords):
            criteria.property_type = property_type
            break

    if any(kw in lowered for kw in RENT_KEYWORDS):
        criteria.price_type = PriceType.RENT
    elif any(kw in lowered for kw in SALE_KEYWORDS):
        criteria.price_type = PriceType.SALE

    return criteria


def matches(listing: Listing, criteria: PropertyCriteria) -> bool:
    if criteria.max_price is not None and listing.price > criteria.max_price:
        return False
    if criteria.min_price is not None and listing.price < criteria.min_price:
        return False
    if criteria.bedrooms is not None and listing.bedrooms != criteria.bedrooms:
        return False
    if criteria.location and criteria.location.lower() not in listing.location.lower():
        return False
    if criteria.property_type is not None and listing.property_type != criteria.property_type:
        return False
    if criteria.price_type is not None and listing.price_type != criteria.price_type:
        return False
    return True


def search_properties(
    query: str,
    corpus: list[Listing] | None = None,
    limit: int = PROPERTY_DATABASE_RESULT_LIMIT,
) -> dict:
    """
    Run a PropertyDatabase query against the listing corpus.

    Returns the tool payload: query, total_found, properties (top `limit` by
    match_score), search_criteria and database_stats.
    """
    listings = PROPERTY_CORPUS if corpus is None else corpus
    criteria = parse_property_query(query)

    found = sorted(
        (listing for listing in listings if matches(listing, criteria)),
        key=lambda listing: listing.match_score,
        reverse=True,
    )
    logger.info(
        "property_search_completed",
        criteria=criteria.model_dump(exclude_none=True, mode="json"),
        total_found=len(found),
    )

    return {
        "query": query,
        "total_found": len(found),
        "properties": [listing.model_dump(mode="json") for listing in found[:limit]],
        "search_criteria": criteria.model_dump(exclude_none=True, mode="json"),
        "database_stats": {**DATABASE_STATS, "total_properties": len(listings)},
    }
