"""
Google Places (New API) client: distance-ranked text search, details and photos.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from domain.models import (
    MAX_PLACE_IMAGES,
    BusinessStatus,
    Candidate,
    Coordinates,
    PhotoRef,
    PlaceCategory,
    PlaceDetails,
    Review,
)
from services.categories import classify_google_types
from services.errors import MissingCredentials
from services.geo_math import radius_meters
from services.http_client import get_json, post_json
from services.photos import select_photos
from services.providers import DetailsProvider, PhotoProvider, RankedSearchAdapter

PLACES_API_BASE = "https://places.googleapis.com/v1"
PHOTO_MAX_WIDTH_PX = 800
MAX_TEXT_SEARCH_RESULTS = 20
MAX_BIAS_RADIUS_M = 50000.0

SEARCH_FIELD_MASK = ",".join(
    "places." + f
    for f in (
        "id", "displayName", "formattedAddress", "location", "rating", "userRatingCount",
        "types", "businessStatus", "currentOpeningHours", "googleMapsUri",
    )
)
DETAILS_FIELD_MASK = ",".join([
    "id", "displayName", "formattedAddress", "location", "rating", "userRatingCount",
    "currentOpeningHours", "photos", "priceLevel", "types", "websiteUri", "googleMapsUri",
    "businessStatus", "nationalPhoneNumber", "internationalPhoneNumber",
])

_CATEGORY_QUERIES = {
    PlaceCategory.EAT: "top restaurants",
    PlaceCategory.DRINK: "best bars cocktail lounges",
    PlaceCategory.EXPLORE: "top attractions landmarks museums activities things to do",
}


def category_query(categories: Optional[Sequence[PlaceCategory]], query: Optional[str] = None) -> str:
    if query:
        return query
    if not categories:
        return "best restaurants near me"
    parts = [_CATEGORY_QUERIES[c] for c in categories if c in _CATEGORY_QUERIES]
    return " ".join(parts) + " near me" if parts else "best places near me"


def _coordinates(data: Dict[str, Any]) -> Optional[Coordinates]:
    loc = data.get("location") or {}
    if loc.get("latitude") is None or loc.get("longitude") is None:
        return None
    return Coordinates(float(loc["latitude"]), float(loc["longitude"]))


def _display_name(data: Dict[str, Any]) -> str:
    return ((data.get("displayName") or {}).get("text") or "").strip()


def parse_search_place(data: Dict[str, Any]) -> Optional[Candidate]:
    name = _display_name(data)
    if not name:
        return None
    types = list(data.get("types") or [])
    coordinates = _coordinates(data)
    address = data.get("formattedAddress")
    return Candidate(
        name=name,
        source="google",
        provider_id=data.get("id"),
        address=address,
        coordinates=coordinates,
        rating=data.get("rating"),
        review_count=int(data.get("userRatingCount") or 0),
        category_tags=types,
        category_guess=classify_google_types(types).value,
        open_now=(data.get("currentOpeningHours") or {}).get("openNow"),
        business_status=BusinessStatus.parse(data.get("businessStatus")),
        map_link=data.get("googleMapsUri"),
        verified=bool(data.get("id")) and coordinates is not None and bool(address),
    )


class GooglePlacesClient(RankedSearchAdapter, DetailsProvider, PhotoProvider):
    name = "google"

    def __init__(self, api_key: str, base_url: str = PLACES_API_BASE, timeout: float = 10.0, min_rating: float = 3.5):
        super().__init__()
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.min_rating = min_rating

    def _headers(self, field_mask: str) -> Dict[str, str]:
        if not self.api_key:
            raise MissingCredentials(self.name)
        return {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": field_mask,
        }

    def photo_url(self, photo_name: str, max_width: int = PHOTO_MAX_WIDTH_PX) -> str:
        return f"{self.base_url}/{photo_name}/media?key={self.api_key}&maxWidthPx={max_width}"

    def parse_details(self, data: Dict[str, Any], fallback_name: str = "") -> Optional[PlaceDetails]:
        if not data or not data.get("id"):
            return None
        hours = data.get("currentOpeningHours") or {}
        reviews = [
            Review(
                author=(r.get("authorAttribution") or {}).get("displayName") or "Anonymous",
                text=(r.get("text") or {}).get("text") or "",
            )
            for r in data.get("reviews") or []
        ]
        return PlaceDetails(
            provider_id=data["id"],
            name=_display_name(data) or fallback_name,
            address=data.get("formattedAddress"),
            phone=data.get("nationalPhoneNumber") or data.get("internationalPhoneNumber"),
            coordinates=_coordinates(data),
            rating=data.get("rating"),
            review_count=int(data.get("userRatingCount") or 0),
            open_now=hours.get("openNow"),
            weekday_hours=list(hours.get("weekdayDescriptions") or []),
            business_status=BusinessStatus.parse(data.get("businessStatus")),
            types=list(data.get("types") or []),
            photos=[
                PhotoRef(url=self.photo_url(p["name"]), width=int(p.get("widthPx") or 0), height=int(p.get("heightPx") or 0))
                for p in data.get("photos") or []
                if p.get("name")
            ],
            website=data.get("websiteUri"),
            map_link=data.get("googleMapsUri"),
            reviews=reviews,
            provider="google",
        )

    def search(
        self,
        center: Coordinates,
        radius_km: float,
        categories: Optional[Sequence[PlaceCategory]] = None,
        query: Optional[str] = None,
        limit: int = 20,
    ) -> List[Candidate]:
        headers = self._headers(SEARCH_FIELD_MASK)
        body = {
            "textQuery": category_query(categories, query),
            "locationBias": {
                "circle": {
                    "center": {"latitude": center.latitude, "longitude": center.longitude},
                    "radius": min(float(radius_meters(radius_km)), MAX_BIAS_RADIUS_M),
                }
            },
            "rankPreference": "DISTANCE",
            "maxResultCount": min(limit, MAX_TEXT_SEARCH_RESULTS),
        }
        data = post_json(self.name, f"{self.base_url}/places:searchText", json_body=body, headers=headers, timeout=self.timeout)
        places = (data or {}).get("places") or []
        candidates = []
        for item in places:
            candidate = parse_search_place(item)
            if candidate is None:
                continue
            if (candidate.rating or 0) < self.min_rating:
                continue
            candidates.append(candidate)
        self.logger.info("Text search: %d total -> %d rated %.1f+", len(places), len(candidates), self.min_rating)
        return candidates

    def resolve_by_id(self, provider_id: str) -> Optional[PlaceDetails]:
        headers = self._headers(DETAILS_FIELD_MASK)
        data = get_json(self.name, f"{self.base_url}/places/{provider_id}", headers=headers, timeout=self.timeout)
        return self.parse_details(data or {})

    def find_place_id(self, name: str, center: Coordinates, radius_m: int) -> Optional[str]:
        headers = self._headers("places.id,places.displayName,places.formattedAddress,places.location,places.businessStatus")
        body = {
            "textQuery": name,
            "locationBias": {
                "circle": {
                    "center": {"latitude": center.latitude, "longitude": center.longitude},
                    "radius": min(float(radius_m), MAX_BIAS_RADIUS_M),
                }
            },
        }
        data = post_json(self.name, f"{self.base_url}/places:searchText", json_body=body, headers=headers, timeout=self.timeout)
        places = (data or {}).get("places") or []
        if not places:
            return None
        return places[0].get("id")

    def resolve_by_name(self, name: str, center: Coordinates, radius_m: int) -> Optional[PlaceDetails]:
        place_id = self.find_place_id(name, center, radius_m)
        if not place_id:
            self.logger.debug("No place found for %r", name)
            return None
        return self.resolve_by_id(place_id)

    def fetch_photos(self, ref: str, max_count: int = MAX_PLACE_IMAGES, timeout: float = 10.0) -> List[PhotoRef]:
        headers = self._headers("photos")
        data = get_json(self.name, f"{self.base_url}/places/{ref}", headers=headers, timeout=timeout)
        photos = [
            PhotoRef(url=self.photo_url(p["name"]), width=int(p.get("widthPx") or 0), height=int(p.get("heightPx") or 0))
            for p in (data or {}).get("photos") or []
            if p.get("name")
        ]
        return select_photos(photos, max_count)

