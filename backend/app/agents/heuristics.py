"""
Heuristic classifier for free-text user intent.

Two independent classifiers live here, each driven by pattern tables that are
plain module-level data so they can be inspected, tested and swapped:

1. Clarification detection: does a final answer read like a request for more
   detail? (question mark + one of CLARIFICATION_PHRASES)
2. Preference extraction: budget, bedrooms, locations, property types and a
   coarse family-friendly tag, inferred from a single user message.

Both are string matching, not NLU: false positives and negatives are expected
and callers must tolerate them.
"""

import re
from typing import Any

from pydantic import BaseModel, Field

from app.models.memory import PriceRange, UserPreferences

# ---------------------------------------------------------------------------
# Clarification detection
# ---------------------------------------------------------------------------

CLARIFICATION_PHRASES: tuple[str, ...] = (
    "could you",
    "please tell me",
    "what kind of",
    "more details",
    "help me",
    "tell me more",
)


def needs_clarification(final_answer: str, phrases: tuple[str, ...] = CLARIFICATION_PHRASES) -> bool:
    """True iff the answer contains '?' and at least one request-for-detail phrase."""
    if "?" not in final_answer:
        return False
    lowered = final_answer.lower()
    return any(phrase in lowered for phrase in phrases)


# ---------------------------------------------------------------------------
# Preference extraction tables
# ---------------------------------------------------------------------------

# Amounts at or below this are treated as noise ("2 bedrooms", "5 minutes").
MIN_BUDGET_AMOUNT = 1000

AMOUNT_MULTIPLIERS: dict[str, int] = {
    "k": 1_000,
    "lakh": 100_000,
    "lakhs": 100_000,
    "lac": 100_000,
    "lacs": 100_000,
    "crore": 10_000_000,
    "crores": 10_000_000,
}

_AMOUNT = r"(\d[\d,]*(?:\.\d+)?)\s*(k|lakhs?|lacs?|crores?)?\b"
_CURRENCY = r"(?:npr|rs\.?|rupees?)?\s*"

# Ordered: a range wins over a single ceiling.
BUDGET_RANGE_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(rf"budget\s+(?:of\s+|is\s+)?{_CURRENCY}{_AMOUNT}\s*(?:-|to)\s*{_CURRENCY}{_AMOUNT}", re.I),
    re.compile(rf"between\s+{_CURRENCY}{_AMOUNT}\s*(?:-|and|to)\s*{_CURRENCY}{_AMOUNT}", re.I),
)

BUDGET_MAX_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(
        rf"(?:under|below|maximum|max|budget|afford|upto|up to|within)\s*(?:of\s+|is\s+)?{_CURRENCY}{_AMOUNT}",
        re.I,
    ),
    re.compile(rf"{_AMOUNT}\s*(?:npr|rs\b|rupees?)", re.I),
)

SPELLED_NUMBERS: dict[str, int] = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
}

BEDROOM_PATTERN = re.compile(
    r"\b(\d+|one|two|three|four|five)\s*-?\s*(?:bed(?:room)?s?|bhk|br|rooms?)\b",
    re.I,
)

# Canonical display name -> lowercase aliases
LOCATION_GAZETTEER: dict[str, tuple[str, ...]] = {
    "Kathmandu": ("kathmandu", "ktm"),
    "Lalitpur": ("lalitpur", "patan"),
    "Bhaktapur": ("bhaktapur",),
    "Pokhara": ("pokhara",),
    "Chitwan": ("chitwan",),
    "Butwal": ("butwal",),
    "Thamel": ("thamel",),
    "Baneshwor": ("baneshwor", "baneshwar"),
    "Pulchowk": ("pulchowk",),
    "Kupondole": ("kupondole",),
    "Baluwatar": ("baluwatar",),
    "Maharajgunj": ("maharajgunj",),
    "Lazimpat": ("lazimpat",),
    "Jhamsikhel": ("jhamsikhel",),
    "Sanepa": ("sanepa",),
    "Boudha": ("boudha", "boudhanath"),
    "Koteshwor": ("koteshwor",),
    "Godawari": ("godawari",),
    "Budhanilkantha": ("budhanilkantha",),
    "Bhaisepati": ("bhaisepati",),
    "New Road": ("new road",),
    "Durbarmarg": ("durbarmarg", "durbar marg"),
}

# Keyword -> canonical property type
PROPERTY_TYPE_KEYWORDS: dict[str, str] = {
    "apartment": "apartment",
    "flat": "apartment",
    "bhk": "apartment",
    "studio": "apartment",
    "penthouse": "apartment",
    "condo": "apartment",
    "house": "house",
    "villa": "house",
    "bungalow": "house",
    "commercial": "commercial",
    "shop": "commercial",
    "office": "commercial",
    "land": "land",
    "plot": "land",
}

FAMILY_KEYWORDS: tuple[str, ...] = ("family", "kids", "children", "couple")
FAMILY_FRIENDLY_TAG = "family-friendly"


class ExtractedPreferences(BaseModel):
    """Everything one message revealed. Empty fields mean 'not mentioned'."""

    min_price: int | None = None
    max_price: int | None = None
    bedrooms: int | None = None
    locations: list[str] = Field(default_factory=list)
    property_types: list[str] = Field(default_factory=list)
    amenities: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_defaults=True)


def _parse_amount(number: str, unit: str | None) -> int | None:
    try:
        value = float(number.replace(",", ""))
    except ValueError:
        return None
    if unit:
        value *= AMOUNT_MULTIPLIERS.get(unit.lower(), 1)
    return int(value)


def _word_pattern(keyword: str) -> re.Pattern:
    # Allow simple plurals and attached digits ("2bhk") on the left.
    return re.compile(rf"(?:\b|(?<=\d)){re.escape(keyword)}(?:s|es)?\b", re.I)


_PROPERTY_TYPE_PATTERNS = {kw: _word_pattern(kw) for kw in PROPERTY_TYPE_KEYWORDS}
_LOCATION_PATTERNS = {
    name: [re.compile(rf"\b{re.escape(alias)}\b", re.I) for alias in aliases]
    for name, aliases in LOCATION_GAZETTEER.items()
}


def extract_budget(message: str) -> tuple[int | None, int | None]:
    """Return (min, max) budget in NPR; amounts <= MIN_BUDGET_AMOUNT are ignored."""
    for pattern in BUDGET_RANGE_PATTERNS:
        match = pattern.search(message)
        if match:
            low = _parse_amount(match.group(1), match.group(2))
            high = _parse_amount(match.group(3), match.group(4))
            if low and high and low > MIN_BUDGET_AMOUNT and high > MIN_BUDGET_AMOUNT:
                return min(low, high), max(low, high)

    for pattern in BUDGET_MAX_PATTERNS:
        for match in pattern.finditer(message):
            amount = _parse_amount(match.group(1), match.group(2))
            if amount and amount > MIN_BUDGET_AMOUNT:
                return None, amount
    return None, None


def extract_bedrooms(message: str) -> int | None:
    match = BEDROOM_PATTERN.search(message)
    if not match:
        return None
    raw = match.group(1).lower()
    if raw.isdigit():
        return int(raw)
    return SPELLED_NUMBERS.get(raw)


def extract_locations(message: str) -> list[str]:
    """Gazetteer names mentioned anywhere in the message, in gazetteer order."""
    found: list[str] = []
    for name, patterns in _LOCATION_PATTERNS.items():
        if any(p.search(message) for p in patterns):
            found.append(name)
    return found


def extract_property_types(message: str) -> list[str]:
    found: list[str] = []
    for keyword, canonical in PROPERTY_TYPE_KEYWORDS.items():
        if canonical not in found and _PROPERTY_TYPE_PATTERNS[keyword].search(message):
            found.append(canonical)
    return found


def extract_amenities(message: str) -> list[str]:
    lowered = message.lower()
    if any(re.search(rf"\b{kw}\b", lowered) for kw in FAMILY_KEYWORDS):
        return [FAMILY_FRIENDLY_TAG]
    return []


def extract_preferences(message: str) -> ExtractedPreferences:
    """Run every extractor over one user message."""
    min_price, max_price = extract_budget(message)
    return ExtractedPreferences(
        min_price=min_price,
        max_price=max_price,
        bedrooms=extract_bedrooms(message),
        locations=extract_locations(message),
        property_types=extract_property_types(message),
        amenities=extract_amenities(message),
    )


def _union(existing: list[str], new: list[str]) -> list[str]:
    merged = list(existing)
    for item in new:
        if item not in merged:
            merged.append(item)
    return merged


def merge_preferences(current: UserPreferences, extracted: ExtractedPreferences) -> dict[str, Any]:
    """
    Compute the field updates that fold `extracted` into `current`.

    Arrays are merged by order-preserving set union; scalars are overwritten.
    Nothing already known is ever removed. Returns only fields that change.
    """
    updates: dict[str, Any] = {}

    if extracted.max_price is not None:
        current_min = current.price_range.min if current.price_range else 0
        new_range = PriceRange(
            min=extracted.min_price if extracted.min_price is not None else current_min,
            max=extracted.max_price,
        )
        if new_range != current.price_range:
            updates["price_range"] = new_range

    if extracted.bedrooms is not None and extracted.bedrooms != current.bedrooms:
        updates["bedrooms"] = extracted.bedrooms

    for field, new_values in (
        ("locations", extracted.locations),
        ("property_type", extracted.property_types),
        ("amenities", extracted.amenities),
    ):
        existing = getattr(current, field)
        merged = _union(existing, new_values)
        if merged != existing:
            updates[field] = merged

    return updates
