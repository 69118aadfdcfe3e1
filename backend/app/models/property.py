"""
Data models for the property listing corpus and parsed search criteria.
"""

from enum import Enum

from pydantic import BaseModel, Field


class PropertyType(str, Enum):
    """Canonical property types used in listings and criteria."""

    APARTMENT = "apartment"
    HOUSE = "house"
    COMMERCIAL = "commercial"
    LAND = "land"


class PriceType(str, Enum):
    """Listing intent."""

    RENT = "rent"
    SALE = "sale"


class Listing(BaseModel):
    """A property listing as served by the PropertyDatabase tool."""

    id: str
    title: str
    price: int = Field(ge=0, description="Price in NPR (monthly for rentals)")
    price_type: PriceType
    property_type: PropertyType
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: int = Field(default=0, ge=0)
    area: float = Field(ge=0)
    area_unit: str = "sqft"
    location: str = Field(description="'Neighborhood, City'")
    amenities: list[str] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    match_score: float = Field(ge=0.0, le=1.0)
    property_age: str = "N/A"
    floor: str = "N/A"


class PropertyCriteria(BaseModel):
    """Filter criteria parsed from a free-text PropertyDatabase query."""

    min_price: int | None = None
    max_price: int | None = None
    bedrooms: int | None = None
    location: str | None = None
    property_type: PropertyType | None = None
    price_type: PriceType | None = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)
