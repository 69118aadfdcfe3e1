"""
Business logic constants for the Ghar property assistant.

These values are stable across environments (dev/staging/prod) and do not
need env-var overrides. For operational parameters that vary per environment
(timeouts, step caps, max_tokens, memory budgets), see config.py.
"""

from app.models.agent import ToolName
from app.models.property import Listing, PriceType, PropertyType

# --- API metadata ---
API_TITLE = "Ghar Agent API"
API_VERSION = "0.1.0"

# --- Canned answers ---
# Returned when a completion carries no Final Answer block
FALLBACK_FINAL_ANSWER = "I need more information to provide a helpful response."
# Returned when the agent loop itself fails
APOLOGY_ANSWER = (
    "I apologize, but I encountered an error while processing your request. "
    "Please try rephrasing your question or being more specific about what you're looking for."
)

# --- Tool catalog ---
# Rendered verbatim into the agent prompt, one line per tool.
TOOL_DESCRIPTIONS: dict[ToolName, str] = {
    ToolName.SEARCH: (
        "Search the web for current property listings, news and market information in Nepal. "
        "Input: a search query string."
    ),
    ToolName.MAPS: (
        "Look up locations, nearby amenities, commute times and infrastructure for an area. "
        "Input: a place or area name."
    ),
    ToolName.CALCULATOR: (
        "Compute ROI, rental yield or plain arithmetic. "
        "Input: an expression, e.g. 'ROI gain 6000000 cost 5000000' or "
        "'rental yield 360000 annual rent 6000000 value' or '35000 * 12'."
    ),
    ToolName.MARKET_ANALYSIS: (
        "Structured analysis of Nepal real estate market trends, investment insights and risks. "
        "Input: the market topic or area to analyse."
    ),
    ToolName.PROPERTY_DATABASE: (
        "Search the property listing database with filters parsed from natural language "
        "(price in NPR, bedrooms, location, property type, rent or sale). "
        "Input: a listing query, e.g. '2BHK apartments for rent in Kupondole budget 30000-40000 NPR'."
    ),
    ToolName.CLARIFY: (
        "Ask the user for missing details before searching. "
        "Input: the clarifying question to ask."
    ),
}

# --- Search result shaping ---
SEARCH_MAX_ORGANIC = 5
SEARCH_MAX_NEWS = 3
SEARCH_MAX_RELATED = 3

# --- Observation text ---
# Maximum characters of tool JSON echoed into an observation step
OBSERVATION_MAX_CHARS = 4000

# =============================================================================
# PROPERTY DATABASE
# Prices in NPR. Rentals are monthly.
# =============================================================================

PROPERTY_CORPUS: list[Listing] = [
    Listing(
        id="1",
        title="Modern 2BHK Apartment in Kupondole",
        price=32000,
        price_type=PriceType.RENT,
        property_type=PropertyType.APARTMENT,
        bedrooms=2,
        bathrooms=2,
        area=950,
        location="Kupondole, Lalitpur",
        amenities=["Parking", "Water Supply", "Security", "Elevator"],
        features=["Furnished", "Balcony", "City View"],
        match_score=0.95,
        property_age="3 years",
        floor="4th floor",
    ),
    Listing(
        id="2",
        title="Spacious 2BHK Flat in Pulchowk",
        price=35000,
        price_type=PriceType.RENT,
        property_type=PropertyType.APARTMENT,
        bedrooms=2,
        bathrooms=1,
        area=1100,
        location="Pulchowk, Lalitpur",
        amenities=["Parking", "Water Supply", "Backup Power"],
        features=["Semi-Furnished", "Near Main Road"],
        match_score=0.88,
        property_age="5 years",
        floor="2nd floor",
    ),
    Listing(
        id="3",
        title="3BHK Family House in Baneshwor",
        price=45000,
        price_type=PriceType.RENT,
        property_type=PropertyType.HOUSE,
        bedrooms=3,
        bathrooms=2,
        area=1800,
        location="Baneshwor, Kathmandu",
        amenities=["Parking", "Garden", "Water Supply", "Security"],
        features=["Unfurnished", "Family Friendly", "Quiet Area"],
        match_score=0.82,
        property_age="8 years",
        floor="Ground + 2 floors",
    ),
    Listing(
        id="4",
        title="Commercial Space in Thamel",
        price=80000,
        price_type=PriceType.RENT,
        property_type=PropertyType.COMMERCIAL,
        bedrooms=0,
        bathrooms=2,
        area=1500,
        location="Thamel, Kathmandu",
        amenities=["Prime Location", "High Footfall", "Parking"],
        features=["Ground Floor", "Street Facing", "Tourist Area"],
        match_score=0.90,
        property_age="10 years",
        floor="Ground floor",
    ),
    Listing(
        id="5",
        title="Residential Land in Godawari",
        price=15_000_000,
        price_type=PriceType.SALE,
        property_type=PropertyType.LAND,
        area=5,
        area_unit="ropani",
        location="Godawari, Lalitpur",
        amenities=["Road Access", "Electricity", "Water Source"],
        features=["Peaceful Area", "Mountain View", "Investment Potential"],
        match_score=0.85,
    ),
    Listing(
        id="6",
        title="Bright 2BHK Apartment in Baluwatar",
        price=28000,
        price_type=PriceType.RENT,
        property_type=PropertyType.APARTMENT,
        bedrooms=2,
        bathrooms=1,
        area=900,
        location="Baluwatar, Kathmandu",
        amenities=["Parking", "Water Supply", "Security"],
        features=["Semi-Furnished", "Quiet Area"],
        match_score=0.91,
        property_age="4 years",
        floor="3rd floor",
    ),
    Listing(
        id="7",
        title="Cozy 2BHK Flat in Maharajgunj",
        price=25000,
        price_type=PriceType.RENT,
        property_type=PropertyType.APARTMENT,
        bedrooms=2,
        bathrooms=1,
        area=820,
        location="Maharajgunj, Kathmandu",
        amenities=["Water Supply", "Backup Power"],
        features=["Unfurnished", "Near Hospital"],
        match_score=0.86,
        property_age="7 years",
        floor="1st floor",
    ),
    Listing(
        id="8",
        title="Premium 2BHK Apartment in Lazimpat",
        price=42000,
        price_type=PriceType.RENT,
        property_type=PropertyType.APARTMENT,
        bedrooms=2,
        bathrooms=2,
        area=1050,
        location="Lazimpat, Kathmandu",
        amenities=["Parking", "Elevator", "Gym", "Security"],
        features=["Fully Furnished", "Embassy Area"],
        match_score=0.93,
        property_age="2 years",
        floor="6th floor",
    ),
    Listing(
        id="9",
        title="1BHK Studio Apartment in Thamel",
        price=18000,
        price_type=PriceType.RENT,
        property_type=PropertyType.APARTMENT,
        bedrooms=1,
        bathrooms=1,
        area=450,
        location="Thamel, Kathmandu",
        amenities=["Water Supply", "Internet"],
        features=["Furnished", "Tourist Area"],
        match_score=0.78,
        property_age="6 years",
        floor="2nd floor",
    ),
    Listing(
        id="10",
        title="2BHK House in Budhanilkantha",
        price=27000,
        price_type=PriceType.RENT,
        property_type=PropertyType.HOUSE,
        bedrooms=2,
        bathrooms=2,
        area=1300,
        location="Budhanilkantha, Kathmandu",
        amenities=["Garden", "Parking", "Water Supply"],
        features=["Unfurnished", "Mountain View"],
        match_score=0.80,
        property_age="12 years",
        floor="Ground + 1 floor",
    ),
    Listing(
        id="11",
        title="3BHK Apartment for Sale in Bhaisepati",
        price=12_500_000,
        price_type=PriceType.SALE,
        property_type=PropertyType.APARTMENT,
        bedrooms=3,
        bathrooms=2,
        area=1450,
        location="Bhaisepati, Lalitpur",
        amenities=["Parking", "Elevator", "Security", "Backup Power"],
        features=["Gated Community", "Children's Park"],
        match_score=0.84,
        property_age="1 year",
        floor="5th floor",
    ),
]

# --- Static database statistics returned with every PropertyDatabase result ---
DATABASE_STATS: dict = {
    "total_properties": len(PROPERTY_CORPUS),
    "avg_rent_2bhk": 35000,
    "avg_sale_price_land": 12_000_000,
    "popular_areas": ["Kupondole", "Pulchowk", "Baneshwor", "Thamel", "Lazimpat"],
}

PROPERTY_DATABASE_RESULT_LIMIT = 10

# =============================================================================
# CALCULATOR INTERPRETATION BANDS
# Ordered (exclusive lower bound, label). First band the value exceeds wins.
# =============================================================================

ROI_BANDS: list[tuple[float, str]] = [
    (20.0, "Excellent ROI - Very attractive investment"),
    (15.0, "Good ROI - Solid investment opportunity"),
    (10.0, "Moderate ROI - Acceptable investment"),
    (5.0, "Low ROI - Consider other options"),
]
ROI_FLOOR_LABEL = "Poor ROI - Not recommended"

RENTAL_YIELD_BANDS: list[tuple[float, str]] = [
    (8.0, "Excellent rental yield - Very profitable"),
    (6.0, "Good rental yield - Profitable investment"),
    (4.0, "Moderate rental yield - Average returns"),
    (2.0, "Low rental yield - Below market average"),
]
RENTAL_YIELD_FLOOR_LABEL = "Poor rental yield - Consider other investments"

BASIC_CALCULATION_LABEL = "Calculation completed successfully"

# =============================================================================
# CLARIFY
# =============================================================================

CLARIFY_DETAIL_MENU: list[str] = [
    "Property type (apartment, house, commercial, land)",
    "Budget range in NPR",
    "Preferred location/area",
    "Number of bedrooms/bathrooms",
    "Rent or purchase",
    "Specific amenities or features",
]

# =============================================================================
# MAPS
# =============================================================================

# Queries naming any of these get the Nepal market context block
NEPAL_CONTEXT_KEYWORDS: tuple[str, ...] = ("nepal", "kathmandu", "lalitpur", "bhaktapur")

NEPAL_MARKET_CONTEXT: dict = {
    "currency": "NPR",
    "typical_rent_range": "10,000-100,000 NPR/month",
    "popular_areas": ["Thamel", "Lalitpur", "Pulchowk", "New Road", "Baneshwor"],
    "infrastructure_notes": "Kathmandu Valley has good connectivity, ongoing road development projects",
}

# Google Places "types" surfaced as nearby amenities
AMENITY_PLACE_TYPES: frozenset[str] = frozenset(
    {"school", "hospital", "shopping_mall", "restaurant", "bank", "pharmacy"}
)

# Synthesized when the places provider is unreachable
MAPS_FALLBACK_COORDINATES: tuple[float, float] = (27.7172, 85.3240)
MAPS_FALLBACK_AMENITIES: list[str] = ["Schools", "Hospitals", "Markets", "Transport"]
MAPS_FALLBACK_COMMUTE_TIMES: dict[str, str] = {
    "City Center": "15-20 minutes",
    "Airport": "30-40 minutes",
    "Business District": "10-15 minutes",
}
MAPS_FALLBACK_INFRASTRUCTURE: list[str] = [
    "Road expansion planned for 2024",
    "New metro line under construction",
]

# =============================================================================
# MARKET ANALYSIS
# =============================================================================

MARKET_ANALYSIS_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "topic": {"type": "string"},
        "market_overview": {"type": "string"},
        "current_trends": {"type": "array", "items": {"type": "string"}},
        "investment_insights": {
            "type": "object",
            "properties": {
                "roi_expectations": {"type": "string"},
                "best_property_types": {"type": "array", "items": {"type": "string"}},
                "recommended_locations": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["roi_expectations", "best_property_types", "recommended_locations"],
            "additionalProperties": False,
        },
        "risk_factors": {"type": "array", "items": {"type": "string"}},
        "opportunities": {"type": "array", "items": {"type": "string"}},
        "price_projections": {
            "type": "object",
            "properties": {
                "short_term": {"type": "string"},
                "long_term": {"type": "string"},
            },
            "required": ["short_term", "long_term"],
            "additionalProperties": False,
        },
        "recommendations": {"type": "array", "items": {"type": "string"}},
    },
    "required": [
        "topic",
        "market_overview",
        "current_trends",
        "investment_insights",
        "risk_factors",
        "opportunities",
        "price_projections",
        "recommendations",
    ],
    "additionalProperties": False,
}

# Wrapped around free-text analysis when structured generation fails
MARKET_FALLBACK_TRENDS: list[str] = [
    "Growing demand in Kathmandu Valley",
    "Infrastructure development driving prices",
    "Foreign investment increasing",
]
MARKET_FALLBACK_INSIGHTS: list[str] = [
    "Land appreciation outpacing built properties",
    "Rental yields averaging 6-8%",
    "Commercial properties showing strong growth",
]
