"""
Geospatial collaborator backed by the Google Places text search API.

GooglePlacesService.search_places() returns normalized places
({name, address, lat, lng, rating, types, place_id}). The Maps tool payload is
built by build_maps_payload(); when the provider is unreachable the tool uses
fallback_maps_payload() instead and still reports success.
"""

from typing import Protocol

import httpx
import structlog

from app.config import MapsConfig
from app.constants import (
    AMENITY_PLACE_TYPES,
    MAPS_FALLBACK_AMENITIES,
    MAPS_FALLBACK_COMMUTE_TIMES,
    MAPS_FALLBACK_COORDINATES,
    MAPS_FALLBACK_INFRASTRUCTURE,
    NEPAL_CONTEXT_KEYWORDS,
    NEPAL_MARKET_CONTEXT,
)

logger = structlog.get_logger(__name__)

# Places API statuses that mean "no data" rather than failure
_EMPTY_STATUSES = {"OK", "ZERO_RESULTS"}


class MapsError(RuntimeError):
    """Transport or provider failure while looking up places."""


class PlacesProvider(Protocol):
    async def search_places(self, query: str) -> list[dict]: ...


class GooglePlacesService:
    """Text search over Google Places."""

    def __init__(
        self,
        api_key: str,
        maps_config: MapsConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.maps_config = maps_config or MapsConfig()
        self._client = client or httpx.AsyncClient(timeout=self.maps_config.request_timeout_seconds)

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def search_places(self, query: str) -> list[dict]:
        """
        Look up places matching `query`.

        Raises:
            MapsError: missing key, HTTP error or a provider error status.
        """
        if not self.api_key:
            raise MapsError("Google Maps API key not configured")

        try:
            response = await self._client.get(
                self.maps_config.places_url,
                params={"query": query, "key": self.api_key},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise MapsError(f"Google Maps API error: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise MapsError(f"Google Maps API error: {str(e) or type(e).__name__}") from e
        except ValueError as e:
            raise MapsError("Google Maps API error: invalid JSON") from e

        status = data.get("status", "OK")
        if status not in _EMPTY_STATUSES:
            raise MapsError(f"Google Maps API error: {data.get('error_message') or status}")

        places = []
        for result in data.get("results") or []:
            location = (result.get("geometry") or {}).get("location") or {}
            places.append(
                {
                    "name": result.get("name", ""),
                    "address": result.get("formatted_address", ""),
                    "lat": location.get("lat"),
                    "lng": location.get("lng"),
                    "rating": result.get("rating"),
                    "types": result.get("types") or [],
                    "place_id": result.get("place_id"),
                }
            )
        logger.debug("places_search_completed", query=query, count=len(places))
        return places


def is_nepal_query(query: str) -> bool:
    lowered = query.lower()
    return any(keyword in lowered for keyword in NEPAL_CONTEXT_KEYWORDS)


def build_maps_payload(query: str, places: list[dict], max_places: int = 5) -> dict:
    """Maps tool payload from normalized places: top `max_places` plus Nepal context."""
    shaped = []
    for place in places[:max_places]:
        coordinates = None
        if place.get("lat") is not None and place.get("lng") is not None:
            coordinates = {"lat": place["lat"], "lng": place["lng"]}
        shaped.append(
            {
                "name": place.get("name", ""),
                "address": place.get("address", ""),
                "coordinates": coordinates,
                "rating": place.get("rating"),
                "types": place.get("types", []),
                "place_id": place.get("place_id"),
                "nearby_amenities": [t for t in place.get("types", []) if t in AMENITY_PLACE_TYPES],
            }
        )

    payload: dict = {
        "query": query,
        "places": shaped,
        "total_results": len(places),
        "fallback": False,
    }
    if is_nepal_query(query):
        payload["market_context"] = dict(NEPAL_MARKET_CONTEXT)
    return payload


def fallback_maps_payload(query: str) -> dict:
    """Placeholder location data used when the places provider is unreachable."""
    lat, lng = MAPS_FALLBACK_COORDINATES
    return {
        "query": query,
        "places": [
            {
                "name": "Kathmandu Valley" if "kathmandu" in query.lower() else "Nepal Location",
                "address": query,
                "coordinates": {"lat": lat, "lng": lng},
                "nearby_amenities": list(MAPS_FALLBACK_AMENITIES),
                "commute_info": "Well connected to major areas",
                "infrastructure": "Good road connectivity and utilities",
                "safety_rating": "Good",
                "demographics": "Mixed residential and commercial area",
            }
        ],
        "total_results": 1,
        "fallback": True,
        "infrastructure_projects": list(MAPS_FALLBACK_INFRASTRUCTURE),
        "commute_times": dict(MAPS_FALLBACK_COMMUTE_TIMES),
    }
