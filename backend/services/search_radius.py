"""
Default search radius from the wording of a query and the scale of the city.
"""
import re
from typing import Optional, Sequence

from domain.models import PlaceCategory

DEFAULT_RADIUS_KM = 3.2
NEARBY_RADIUS_KM = 3.2
LOCAL_RADIUS_KM = 4.8
FALLBACK_RADIUS_KM = 4.8
MIN_EXPLORE_RADIUS_KM = 6.0

CITY_SCALE_RADIUS_KM = {"major": 20.0, "medium": 14.0, "small": 8.0}

MAJOR_CITIES = [
    "new york", "nyc", "los angeles", "la", "chicago", "london", "tokyo",
    "paris", "dubai", "singapore", "hong kong", "shanghai", "mumbai",
    "delhi", "beijing", "mexico city", "sao paulo", "jakarta",
]
MEDIUM_CITIES = [
    "boston", "seattle", "san francisco", "miami", "denver", "portland",
    "austin", "philadelphia", "phoenix", "san diego", "dallas", "houston",
    "atlanta", "detroit", "washington", "barcelona", "amsterdam", "berlin",
    "rome", "milan", "sydney", "melbourne", "toronto", "vancouver",
]

_NEARBY_RE = re.compile(r"nearby|around here|close by")
_LOCAL_RE = re.compile(r"local|neighborhood|near me")
_ICONIC_RE = re.compile(r"iconic|famous|landmark")
_IN_CITY_RE = re.compile(r"\sin\s+(.+)$")


def _mentions(text: str, names: Sequence[str]) -> bool:
    return any(re.search(r"\b" + re.escape(n) + r"\b", text) for n in names)


def city_scale(city: Optional[str]) -> str:
    text = (city or "").lower()
    if _mentions(text, MAJOR_CITIES):
        return "major"
    if _mentions(text, MEDIUM_CITIES):
        return "medium"
    return "small"


def radius_for_query(query: Optional[str], city: Optional[str] = None) -> float:
    if not query or not query.strip():
        return DEFAULT_RADIUS_KM
    q = query.lower()
    if _NEARBY_RE.search(q):
        return NEARBY_RADIUS_KM
    if _LOCAL_RE.search(q):
        return LOCAL_RADIUS_KM
    match = _IN_CITY_RE.search(q)
    if match:
        return CITY_SCALE_RADIUS_KM[city_scale(match.group(1))]
    if _ICONIC_RE.search(q):
        return CITY_SCALE_RADIUS_KM[city_scale(city)]
    return FALLBACK_RADIUS_KM


def search_radius(
    query: Optional[str],
    city: Optional[str] = None,
    categories: Sequence[PlaceCategory] = (),
) -> float:
    """Query-derived radius, widened for EXPLORE since sights and activities are sparser."""
    radius = radius_for_query(query, city)
    if PlaceCategory.EXPLORE in categories:
        radius = max(radius, MIN_EXPLORE_RADIUS_KM)
    return radius
