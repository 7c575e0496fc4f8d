"""
Community POI search against the OSM Overpass API.

Free and unrated; only used to top up EXPLORE results when ranked search
comes back thin. Attribution: (c) OpenStreetMap contributors.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from domain.models import Candidate, Coordinates, PlaceCategory
from services.foursquare_client import build_maps_link
from services.http_client import post_json, set_min_interval
from services.providers import CommunityPOIAdapter

OVERPASS_API_URL = "https://overpass-api.de/api/interpreter"

# Indoor activity venues. Outdoor climbing crags are left out; they rarely carry addresses.
ACTIVITY_TAGS: Dict[str, List[str]] = {
    "leisure": [
        "amusement_arcade", "bowling_alley", "escape_game", "trampoline_park", "indoor_play",
        "axe_throwing", "go_kart", "miniature_golf", "ice_rink",
    ],
    "sport": [
        "table_tennis", "badminton", "bowling", "billiards", "archery", "shooting",
        "karting", "paintball", "9pin", "laser_tag",
    ],
    "amenity": ["internet_cafe", "public_bath", "spa"],
    "shop": ["games"],
}

_DESCRIPTIONS: Dict[str, Dict[str, str]] = {
    "leisure": {
        "amusement_arcade": "Arcade",
        "bowling_alley": "Bowling Alley",
        "escape_game": "Escape Room",
        "trampoline_park": "Trampoline Park",
        "axe_throwing": "Axe Throwing",
        "go_kart": "Go Kart Track",
        "miniature_golf": "Mini Golf",
        "ice_rink": "Ice Skating Rink",
        "climbing": "Climbing Gym",
        "indoor_play": "Indoor Play Center",
    },
    "sport": {
        "climbing": "Rock Climbing",
        "table_tennis": "Ping Pong / Table Tennis",
        "badminton": "Badminton",
        "billiards": "Pool Hall / Billiards",
        "archery": "Archery Range",
        "paintball": "Paintball",
        "bowling": "Bowling",
        "9pin": "Bowling",
        "karting": "Go Kart Racing",
        "shooting": "Shooting Range",
        "laser_tag": "Laser Tag",
    },
    "amenity": {"internet_cafe": "Internet Cafe", "spa": "Spa", "public_bath": "Bathhouse"},
    "shop": {"games": "Board Game Cafe"},
}


def build_query(center: Coordinates, radius_m: int, tag_filters: Optional[Dict[str, List[str]]] = None) -> str:
    """Overpass QL over nodes and ways for every tag value, with way centers."""
    filters = tag_filters or ACTIVITY_TAGS
    around = f"(around:{int(radius_m)},{center.latitude},{center.longitude})"
    parts = []
    for key, values in filters.items():
        for value in values:
            parts.append(f'node["{key}"="{value}"]{around};')
            parts.append(f'way["{key}"="{value}"]{around};')
    body = "\n  ".join(parts)
    return f"[out:json][timeout:25];\n(\n  {body}\n);\nout body center;"


def describe(tags: Dict[str, str]) -> str:
    for key in ("leisure", "sport", "amenity", "shop"):
        value = tags.get(key)
        if value and value in _DESCRIPTIONS[key]:
            return _DESCRIPTIONS[key][value]
    return tags.get("leisure") or tags.get("sport") or tags.get("amenity") or tags.get("shop") or "Activity Venue"


def format_address(tags: Dict[str, str]) -> str:
    parts = []
    street = tags.get("addr:street")
    if street:
        number = tags.get("addr:housenumber")
        parts.append(f"{number} {street}" if number else street)
    if tags.get("addr:city"):
        parts.append(tags["addr:city"])
    if tags.get("addr:postcode"):
        parts.append(tags["addr:postcode"])
    return ", ".join(parts)


def parse_element(element: Dict[str, Any]) -> Optional[Candidate]:
    """Named node/way with a street address -> Candidate, else None."""
    if element.get("type") not in ("node", "way"):
        return None
    tags = element.get("tags") or {}
    name = (tags.get("name") or "").strip()
    if not name or not tags.get("addr:street"):
        return None

    lat = element.get("lat")
    lon = element.get("lon")
    if lat is None or lon is None:
        center = element.get("center") or {}
        lat, lon = center.get("lat"), center.get("lon")
    coordinates = Coordinates(float(lat), float(lon)) if lat is not None and lon is not None else None
    address = format_address(tags)

    return Candidate(
        name=name,
        source="osm",
        provider_id=f"osm-{element.get('type')}-{element.get('id')}",
        address=address,
        coordinates=coordinates,
        category_tags=[describe(tags)],
        category_guess=PlaceCategory.EXPLORE.value,
        phone=tags.get("phone"),
        website=tags.get("website"),
        map_link=build_maps_link(name, coordinates, address),
        verified=coordinates is not None,
    )


class OverpassClient(CommunityPOIAdapter):
    name = "osm"

    def __init__(self, api_url: str = OVERPASS_API_URL, timeout: float = 30.0, min_interval_s: float = 1.0):
        super().__init__()
        self.api_url = api_url
        self.timeout = timeout
        set_min_interval("overpass-api.de", min_interval_s)

    def search(
        self,
        center: Coordinates,
        radius_m: int,
        tag_filters: Optional[Dict[str, List[str]]] = None,
    ) -> List[Candidate]:
        query = build_query(center, radius_m, tag_filters)
        self.logger.debug("Overpass search %.1fkm around %.4f,%.4f", radius_m / 1000, center.latitude, center.longitude)
        data = post_json(self.name, self.api_url, data={"data": query}, timeout=self.timeout)
        elements = (data or {}).get("elements") or []
        candidates = [c for c in (parse_element(el) for el in elements) if c is not None]
        self.logger.info("Overpass found %d venues with street addresses (%d raw)", len(candidates), len(elements))
        return candidates
