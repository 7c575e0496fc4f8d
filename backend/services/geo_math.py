"""Distance and grid-key helpers. No I/O, no dependencies."""
from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from domain.models import Coordinates

EARTH_RADIUS_KM = 6371.0
KM_PER_MILE = 1.609344


def distance_km(a: Coordinates, b: Coordinates) -> float:
    """Great-circle (Haversine) distance in kilometres."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def round_coord(value: float, decimals: int = 2) -> float:
    """Round half away from zero, independent of float representation quirks."""
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _format_coord(value: float) -> str:
    # 42.30 -> "42.3", 42.0 -> "42"
    text = repr(value)
    if text.endswith(".0"):
        text = text[:-2]
    return "0" if text == "-0" else text


def grid_key(coord: Coordinates, precision_decimals: int = 2, category: Optional[str] = None) -> str:
    """
    Bucket a coordinate into a grid cell key, e.g. "42.36,-71.06:EAT".

    At precision 2 a cell is roughly 1.1 km on a side. Two coordinates in the
    same cell with the same category share a key.
    """
    lat = round_coord(coord.latitude, precision_decimals)
    lng = round_coord(coord.longitude, precision_decimals)
    category_key = category if category else "ALL"
    return f"{_format_coord(lat)},{_format_coord(lng)}:{category_key}"


def km_to_miles(km: float) -> float:
    return km / KM_PER_MILE


def radius_meters(radius_km: float) -> int:
    return int(round(radius_km * 1000))

