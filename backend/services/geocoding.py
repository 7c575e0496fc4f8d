"""Geocoding helpers using OpenStreetMap Nominatim.

Reverse geocoding gives the best-effort city label shown with a result set;
forward geocoding resolves the location half of queries like "ramen in nyc".
"""

from __future__ import annotations

import logging
import os
import re
import sqlite3
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from domain.models import Coordinates
from services.errors import ProviderUnavailable
from services.http_client import get_json, set_min_interval

NOMINATIM_BASE_URL = os.getenv("NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org").rstrip("/")
logger = logging.getLogger(__name__)
_MIN_INTERVAL_SEC = float(os.getenv("NOMINATIM_MIN_INTERVAL", "1.1"))
NOMINATIM_USER_AGENT = os.getenv("NOMINATIM_USER_AGENT")
NOMINATIM_REFERER = os.getenv("NOMINATIM_REFERER")
NOMINATIM_CACHE_PATH = os.getenv("NOMINATIM_CACHE_PATH")
if not NOMINATIM_CACHE_PATH:
    NOMINATIM_CACHE_PATH = os.path.join(os.path.dirname(__file__), "..", "geocode_cache.sqlite")
NOMINATIM_CACHE_TTL_SECONDS = int(os.getenv("NOMINATIM_CACHE_TTL_SECONDS", str(180 * 24 * 3600)))

FALLBACK_UA = "vibecheck-backend/0.1 (contact: example@example.com)"
if NOMINATIM_USER_AGENT is None:
    logger.warning(
        "NOMINATIM_USER_AGENT not set in environment; using fallback UA. "
        "This may violate Nominatim usage policy."
    )

NOMINATIM_HEADERS = {"User-Agent": NOMINATIM_USER_AGENT or FALLBACK_UA}
if NOMINATIM_REFERER:
    NOMINATIM_HEADERS["Referer"] = NOMINATIM_REFERER

set_min_interval(re.sub(r"^https?://", "", NOMINATIM_BASE_URL).split("/")[0], _MIN_INTERVAL_SEC)

_CACHE_DB_LOCK = threading.Lock()
_CACHE_DB: Optional[sqlite3.Connection] = None

# "X in Y", "X near Y", "X around Y"
_LOCATION_PATTERNS = [
    re.compile(r"(.+?)\s+in\s+(.+)", re.IGNORECASE),
    re.compile(r"(.+?)\s+near\s+(.+)", re.IGNORECASE),
    re.compile(r"(.+?)\s+around\s+(.+)", re.IGNORECASE),
]


@dataclass(frozen=True)
class PlaceLabel:
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None

    @property
    def short_label(self) -> Optional[str]:
        """Return a concise label, preferring city/state when available."""
        if self.city and self.state:
            parts = [self.city, self.state]
        elif self.city and self.country:
            parts = [self.city, self.country]
        elif self.city:
            parts = [self.city]
        elif self.state and self.country:
            parts = [self.state, self.country]
        elif self.country:
            parts = [self.country]
        else:
            return None
        return ", ".join(parts)


@dataclass(frozen=True)
class GeocodeResult:
    coordinates: Coordinates
    formatted_address: str


def _round_coord(value: float, decimals: int = 3) -> float:
    """Round coordinates before caching / lookup to limit request diversity."""
    return round(value, decimals)


def _get_geocode_db() -> sqlite3.Connection:
    """Lazily open the geocode cache DB and ensure schema exists."""
    global _CACHE_DB
    with _CACHE_DB_LOCK:
        if _CACHE_DB is None:
            os.makedirs(os.path.dirname(os.path.abspath(NOMINATIM_CACHE_PATH)), exist_ok=True)
            _CACHE_DB = sqlite3.connect(NOMINATIM_CACHE_PATH, check_same_thread=False)
            _CACHE_DB.execute(
                """
                CREATE TABLE IF NOT EXISTS geocodes (
                    lat REAL NOT NULL,
                    lon REAL NOT NULL,
                    zoom INTEGER NOT NULL,
                    fetched_at INTEGER NOT NULL,
                    city TEXT,
                    state TEXT,
                    country TEXT,
                    PRIMARY KEY (lat, lon, zoom)
                )
                """
            )
            _CACHE_DB.commit()
        return _CACHE_DB


def _get_geocode_from_cache(lat: float, lon: float, zoom: int) -> Optional[PlaceLabel]:
    """Lookup geocode result in SQLite cache respecting TTL."""
    try:
        db = _get_geocode_db()
        with _CACHE_DB_LOCK:
            row = db.execute(
                "SELECT fetched_at, city, state, country FROM geocodes WHERE lat=? AND lon=? AND zoom=?",
                (lat, lon, zoom),
            ).fetchone()
    except sqlite3.Error as exc:
        logger.warning("Geocode cache read failed for %s,%s z=%s: %s", lat, lon, zoom, exc)
        return None
    if not row:
        logger.debug("Geocode cache miss %s,%s z=%s", lat, lon, zoom)
        return None
    fetched_at, city, state, country = row
    if NOMINATIM_CACHE_TTL_SECONDS > 0 and time.time() - (fetched_at or 0) > NOMINATIM_CACHE_TTL_SECONDS:
        logger.debug("Geocode cache expired %s,%s z=%s", lat, lon, zoom)
        return None
    label = PlaceLabel(city=city, state=state, country=country)
    return label if label.short_label else None


def _store_geocode_in_cache(lat: float, lon: float, zoom: int, label: PlaceLabel) -> None:
    """Upsert geocode result into SQLite cache."""
    try:
        db = _get_geocode_db()
        with _CACHE_DB_LOCK:
            db.execute(
                "INSERT OR REPLACE INTO geocodes (lat, lon, zoom, fetched_at, city, state, country) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (lat, lon, zoom, int(time.time()), label.city, label.state, label.country),
            )
            db.commit()
    except sqlite3.Error as exc:
        logger.warning("Geocode cache write failed for %s,%s z=%s: %s", lat, lon, zoom, exc)


def _label_from_address(address: dict) -> PlaceLabel:
    city = (
        address.get("city")
        or address.get("town")
        or address.get("village")
        or address.get("suburb")
        or address.get("hamlet")
    )
    state = address.get("state")
    iso = address.get("ISO3166-2-lvl4") or ""
    # "US-MA" -> "MA"
    if state and iso.startswith("US-"):
        state = iso[3:]
    return PlaceLabel(city=city, state=state, country=address.get("country"))


@lru_cache(maxsize=512)
def reverse_geocode_label(lat: float, lon: float) -> Optional[PlaceLabel]:
    """Reverse geocode a coordinate into a PlaceLabel using Nominatim.

    Returns None on network or parsing errors. Results are cached and inputs
    rounded to avoid hammering the upstream service.
    """
    lat_r = _round_coord(lat)
    lon_r = _round_coord(lon)
    zoom_val = 10

    cached = _get_geocode_from_cache(lat_r, lon_r, zoom_val)
    if cached:
        return cached

    params = {
        "format": "jsonv2",
        "lat": str(lat_r),
        "lon": str(lon_r),
        "zoom": str(zoom_val),
        "addressdetails": "1",
    }
    try:
        data = get_json("nominatim", f"{NOMINATIM_BASE_URL}/reverse", params=params, headers=NOMINATIM_HEADERS, timeout=5.0)
    except ProviderUnavailable as exc:
        logger.warning("Nominatim reverse geocode failed for lat=%s lon=%s: %s", lat_r, lon_r, exc)
        return None

    label = _label_from_address((data or {}).get("address") or {})
    if not label.short_label:
        return None
    _store_geocode_in_cache(lat_r, lon_r, zoom_val, label)
    return label


def reverse_geocode_city(coords: Coordinates) -> Optional[str]:
    """Short "City, ST" label for a coordinate, or None."""
    label = reverse_geocode_label(coords.latitude, coords.longitude)
    return label.short_label if label else None


def geocode_location(location: str, bias: Optional[Coordinates] = None) -> Optional[GeocodeResult]:
    """Forward geocode free text. With `bias`, prefer matches within ~50km of it."""
    params = {"format": "jsonv2", "q": location, "limit": "1"}
    if bias is not None:
        # roughly 0.45 degrees each way
        params["viewbox"] = f"{bias.longitude - 0.45},{bias.latitude + 0.45},{bias.longitude + 0.45},{bias.latitude - 0.45}"
    try:
        data = get_json("nominatim", f"{NOMINATIM_BASE_URL}/search", params=params, headers=NOMINATIM_HEADERS, timeout=5.0)
    except ProviderUnavailable as exc:
        logger.warning("Nominatim geocode failed for %r: %s", location, exc)
        return None
    if not data:
        logger.info("No geocode match for %r", location)
        return None
    first = data[0]
    return GeocodeResult(
        coordinates=Coordinates(float(first["lat"]), float(first["lon"])),
        formatted_address=first.get("display_name") or location,
    )


def parse_location_from_query(search_query: str) -> Tuple[str, Optional[str]]:
    """Split "croissants in paris" into ("croissants", "paris"). Location is None when absent."""
    trimmed = (search_query or "").strip()
    for pattern in _LOCATION_PATTERNS:
        match = pattern.match(trimmed)
        if match:
            return match.group(1).strip(), match.group(2).strip()
    return trimmed, None
