"""
Ranked place search over the Foursquare Places API.

Ratings come back on a 0-10 scale and are halved here, so everything past the
parser sees 0-5.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

from domain.models import BusinessStatus, Candidate, Coordinates, PhotoRef, PlaceCategory, PlaceDetails
from services.categories import foursquare_category_ids
from services.errors import MissingCredentials
from services.geo_math import radius_meters
from services.http_client import get_json
from services.providers import DetailsProvider, PhotoProvider, RankedSearchAdapter

FOURSQUARE_BASE_URL = "https://places-api.foursquare.com"
FOURSQUARE_API_VERSION = "2025-06-17"
FOURSQUARE_MAX_RADIUS_M = 100000
SEARCH_FIELDS = "name,location,geocodes,categories,distance,rating,stats,hours,tel,website,price,photos,popularity,date_closed"


def build_maps_link(name: str, coordinates: Optional[Coordinates], address: Optional[str]) -> str:
    if coordinates is not None:
        return (
            "https://www.google.com/maps/search/?api=1"
            f"&query={coordinates.latitude},{coordinates.longitude}&query_place_id={quote(name)}"
        )
    text = f"{name} {address}" if address else name
    return f"https://www.google.com/maps/search/?api=1&query={quote(text)}"


def _coordinates(item: Dict[str, Any]) -> Optional[Coordinates]:
    main = (item.get("geocodes") or {}).get("main") or {}
    if main.get("latitude") is not None and main.get("longitude") is not None:
        return Coordinates(float(main["latitude"]), float(main["longitude"]))
    # newer payloads put the point at the top level
    if item.get("latitude") is not None and item.get("longitude") is not None:
        return Coordinates(float(item["latitude"]), float(item["longitude"]))
    return None


def _photo_refs(item: Dict[str, Any]) -> List[PhotoRef]:
    refs = []
    for photo in item.get("photos") or []:
        prefix, suffix = photo.get("prefix"), photo.get("suffix")
        if not prefix or not suffix:
            continue
        refs.append(PhotoRef(url=f"{prefix}original{suffix}", width=int(photo.get("width") or 0), height=int(photo.get("height") or 0)))
    return refs


def _status(item: Dict[str, Any]) -> BusinessStatus:
    if item.get("date_closed") or item.get("closed_bucket") in ("LikelyClosed", "VeryLikelyClosed"):
        return BusinessStatus.CLOSED_PERMANENTLY
    return BusinessStatus.UNKNOWN


def parse_place(item: Dict[str, Any]) -> Optional[Candidate]:
    """One search result -> Candidate. Results without a name are dropped."""
    name = (item.get("name") or "").strip()
    if not name:
        return None
    location = item.get("location") or {}
    address = location.get("formatted_address") or location.get("address")
    coordinates = _coordinates(item)
    categories = item.get("categories") or []
    raw_rating = item.get("rating")
    hours = item.get("hours") or {}
    return Candidate(
        name=name,
        source="foursquare",
        provider_id=item.get("fsq_place_id") or item.get("fsq_id"),
        address=address,
        coordinates=coordinates,
        rating=round(float(raw_rating) / 2, 1) if raw_rating else None,
        review_count=int((item.get("stats") or {}).get("total_ratings") or 0),
        category_tags=[c.get("name", "") for c in categories if c.get("name")],
        category_id=categories[0].get("fsq_category_id") if categories else None,
        open_now=hours.get("open_now"),
        business_status=_status(item),
        photos=_photo_refs(item),
        phone=item.get("tel"),
        website=item.get("website"),
        map_link=build_maps_link(name, coordinates, address),
        verified=coordinates is not None and bool(address),
    )


def parse_details(item: Dict[str, Any]) -> Optional[PlaceDetails]:
    candidate = parse_place(item)
    if candidate is None or not candidate.provider_id:
        return None
    hours = item.get("hours") or {}
    return PlaceDetails(
        provider_id=candidate.provider_id,
        name=candidate.name,
        address=candidate.address,
        phone=candidate.phone,
        coordinates=candidate.coordinates,
        rating=candidate.rating,
        review_count=candidate.review_count,
        open_now=candidate.open_now,
        weekday_hours=[hours["display"]] if hours.get("display") else [],
        business_status=candidate.business_status,
        types=list(candidate.category_tags),
        photos=list(candidate.photos),
        website=candidate.website,
        map_link=candidate.map_link,
        provider="foursquare",
    )


class FoursquareClient(RankedSearchAdapter, DetailsProvider, PhotoProvider):
    name = "foursquare"

    def __init__(self, api_key: str, base_url: str = FOURSQUARE_BASE_URL, timeout: float = 10.0):
        super().__init__()
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise MissingCredentials(self.name)
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "X-Places-Api-Version": FOURSQUARE_API_VERSION,
        }

    def search(
        self,
        center: Coordinates,
        radius_km: float,
        categories: Optional[Sequence[PlaceCategory]] = None,
        query: Optional[str] = None,
        limit: int = 20,
    ) -> List[Candidate]:
        headers = self._headers()
        radius = min(radius_meters(radius_km), FOURSQUARE_MAX_RADIUS_M)
        params: Dict[str, Any] = {
            "ll": f"{center.latitude},{center.longitude}",
            "radius": radius,
            "limit": limit,
            "sort": "RELEVANCE",
            "fields": SEARCH_FIELDS,
        }
        category_ids = foursquare_category_ids(categories)
        if category_ids:
            params["categories"] = ",".join(category_ids)
        if query and query != "default":
            params["query"] = query

        self.logger.debug("Foursquare search %.4f,%.4f within %sm", center.latitude, center.longitude, radius)
        data = get_json(self.name, f"{self.base_url}/places/search", params=params, headers=headers, timeout=self.timeout)
        results = (data or {}).get("results") or []
        candidates = [c for c in (parse_place(item) for item in results) if c is not None]
        self.logger.info("Foursquare returned %d places (%d usable)", len(results), len(candidates))
        return candidates

    def resolve_by_id(self, provider_id: str) -> Optional[PlaceDetails]:
        headers = self._headers()
        data = get_json(self.name, f"{self.base_url}/places/{provider_id}", headers=headers, timeout=self.timeout)
        return parse_details(data or {})

    def resolve_by_name(self, name: str, center: Coordinates, radius_m: int) -> Optional[PlaceDetails]:
        headers = self._headers()
        params = {
            "ll": f"{center.latitude},{center.longitude}",
            "radius": min(int(radius_m), FOURSQUARE_MAX_RADIUS_M),
            "query": name,
            "limit": 1,
            "fields": SEARCH_FIELDS + ",fsq_place_id",
        }
        data = get_json(self.name, f"{self.base_url}/places/search", params=params, headers=headers, timeout=self.timeout)
        results = (data or {}).get("results") or []
        if not results:
            return None
        return parse_details(results[0])

    def fetch_photos(self, ref: str, max_count: int = 8, timeout: float = 10.0) -> List[PhotoRef]:
        headers = self._headers()
        data = get_json(
            self.name,
            f"{self.base_url}/places/{ref}/photos",
            params={"limit": max_count},
            headers=headers,
            timeout=timeout,
        )
        if not isinstance(data, list):
            return []
        return _photo_refs({"photos": data})[:max_count]
