"""
Core domain models for the place-discovery backend.
These are framework-agnostic and can be used across all services.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


MAX_PLACE_IMAGES = 8


class PlaceCategory(str, Enum):
    """
    The app's fixed taxonomy.

    EXPLORE covers both sights (landmarks, museums) and activities
    (bowling, escape rooms, ...). UNKNOWN never reaches a final result.
    """
    EAT = "EAT"
    DRINK = "DRINK"
    EXPLORE = "EXPLORE"
    UNKNOWN = "UNKNOWN"


class ReviewType(str, Enum):
    USER = "user"
    CRITIC = "critic"


class BusinessStatus(str, Enum):
    """Operating status as reported by the details provider."""
    OPERATIONAL = "OPERATIONAL"
    CLOSED_TEMPORARILY = "CLOSED_TEMPORARILY"
    CLOSED_PERMANENTLY = "CLOSED_PERMANENTLY"
    UNKNOWN = "UNKNOWN"

    @property
    def is_closed(self) -> bool:
        return self in (BusinessStatus.CLOSED_TEMPORARILY, BusinessStatus.CLOSED_PERMANENTLY)

    @classmethod
    def parse(cls, value: Optional[str]) -> "BusinessStatus":
        if not value:
            return cls.UNKNOWN
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Coordinates"]:
        if not data:
            return None
        lat = data.get("latitude", data.get("lat"))
        lon = data.get("longitude", data.get("lng", data.get("lon")))
        if lat is None or lon is None:
            return None
        return cls(latitude=float(lat), longitude=float(lon))


@dataclass
class Review:
    author: str
    text: str
    type: ReviewType = ReviewType.USER

    def to_dict(self) -> Dict[str, Any]:
        return {"author": self.author, "text": self.text, "type": self.type.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Review":
        return cls(
            author=data.get("author", "Anonymous"),
            text=data.get("text", ""),
            type=ReviewType(data.get("type", ReviewType.USER.value)),
        )


@dataclass(frozen=True)
class PhotoRef:
    """A provider photo: a fetchable URL plus its pixel size."""
    url: str
    width: int = 0
    height: int = 0

    @property
    def aspect_ratio(self) -> Optional[float]:
        if not self.width or not self.height:
            return None
        return self.width / self.height

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PhotoRef":
        return cls(
            url=data.get("url", ""),
            width=int(data.get("width") or 0),
            height=int(data.get("height") or 0),
        )


def normalize_name(name: Optional[str]) -> str:
    """Deduplication key: case-insensitive, trimmed."""
    return (name or "").strip().lower()


@dataclass
class Candidate:
    """
    An unverified place reference before detail resolution and filtering.

    Every provider parser converts its own response shape into this one, so the
    aggregation engine never sees provider JSON.
    """
    name: str
    source: str  # e.g. "foursquare", "google", "osm", "discovery"
    provider_id: Optional[str] = None
    address: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    rating: Optional[float] = None  # normalized to a 0-5 scale
    review_count: int = 0
    category_tags: List[str] = field(default_factory=list)
    category_id: Optional[str] = None
    category_guess: Optional[str] = None  # free-text guess from discovery
    vibe_text: Optional[str] = None
    open_now: Optional[bool] = None
    business_status: BusinessStatus = BusinessStatus.UNKNOWN
    photos: List[PhotoRef] = field(default_factory=list)
    phone: Optional[str] = None
    website: Optional[str] = None
    map_link: Optional[str] = None
    reviews: List[Review] = field(default_factory=list)
    verified: bool = False  # arrived with a provider-verified id and location

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    @property
    def needs_details(self) -> bool:
        return self.coordinates is None or not self.address

    def merged_with(self, details: "PlaceDetails") -> "Candidate":
        """Return a copy with resolved details layered over what the candidate already had."""
        return replace(
            self,
            source=details.provider if details.provider and details.provider_id else self.source,
            provider_id=details.provider_id or self.provider_id,
            address=details.address or self.address,
            coordinates=details.coordinates or self.coordinates,
            rating=details.rating if details.rating is not None else self.rating,
            review_count=details.review_count or self.review_count,
            category_tags=self.category_tags or list(details.types),
            open_now=details.open_now if details.open_now is not None else self.open_now,
            business_status=(
                details.business_status
                if details.business_status != BusinessStatus.UNKNOWN
                else self.business_status
            ),
            photos=self.photos or list(details.photos),
            phone=details.phone or self.phone,
            website=details.website or self.website,
            map_link=details.map_link or self.map_link,
            reviews=self.reviews or list(details.reviews),
            verified=True,
        )


@dataclass
class PlaceDetails:
    """Full details for one provider place id."""
    provider_id: str
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    rating: Optional[float] = None  # 0-5 scale
    review_count: int = 0
    open_now: Optional[bool] = None
    weekday_hours: List[str] = field(default_factory=list)
    business_status: BusinessStatus = BusinessStatus.UNKNOWN
    types: List[str] = field(default_factory=list)
    photos: List[PhotoRef] = field(default_factory=list)
    website: Optional[str] = None
    map_link: Optional[str] = None
    reviews: List[Review] = field(default_factory=list)
    provider: Optional[str] = None  # "google", "foursquare"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "provider_id": self.provider_id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
            "rating": self.rating,
            "review_count": self.review_count,
            "open_now": self.open_now,
            "weekday_hours": list(self.weekday_hours),
            "business_status": self.business_status.value,
            "types": list(self.types),
            "photos": [p.to_dict() for p in self.photos],
            "website": self.website,
            "map_link": self.map_link,
            "reviews": [r.to_dict() for r in self.reviews],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlaceDetails":
        return cls(
            provider_id=data["provider_id"],
            name=data.get("name", ""),
            address=data.get("address"),
            phone=data.get("phone"),
            coordinates=Coordinates.from_dict(data.get("coordinates")),
            rating=data.get("rating"),
            review_count=int(data.get("review_count") or 0),
            open_now=data.get("open_now"),
            weekday_hours=data.get("weekday_hours") or [],
            business_status=BusinessStatus.parse(data.get("business_status")),
            types=data.get("types") or [],
            photos=[PhotoRef.from_dict(p) for p in data.get("photos") or []],
            website=data.get("website"),
            map_link=data.get("map_link"),
            reviews=[Review.from_dict(r) for r in data.get("reviews") or []],
            provider=data.get("provider"),
        )


@dataclass
class Place:
    """
    The canonical output entity.

    `id` is unique within one result set only. After construction only
    `images` and `tips` change (lazy loading).
    """
    id: str
    name: str
    category: PlaceCategory
    description: str = ""
    rating: Optional[str] = None  # display string, e.g. "4.3 stars (120 reviews)"
    rating_value: Optional[float] = None
    review_count: int = 0
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    map_link: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    distance_km: Optional[float] = None
    is_open: Optional[bool] = None
    provider: Optional[str] = None
    provider_id: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    reviews: List[Review] = field(default_factory=list)
    tips: List[str] = field(default_factory=list)

    @staticmethod
    def generate_id() -> str:
        return f"place-{uuid.uuid4().hex[:12]}"

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    def add_images(self, urls: List[str]) -> None:
        for url in urls:
            if len(self.images) >= MAX_PLACE_IMAGES:
                break
            if url and url not in self.images:
                self.images.append(url)

    def set_tips(self, tips: List[str]) -> None:
        self.tips = [t for t in tips if t]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "description": self.description,
            "rating": self.rating,
            "rating_value": self.rating_value,
            "review_count": self.review_count,
            "address": self.address,
            "phone": self.phone,
            "website": self.website,
            "map_link": self.map_link,
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
            "distance_km": self.distance_km,
            "is_open": self.is_open,
            "provider": self.provider,
            "provider_id": self.provider_id,
            "tags": list(self.tags),
            "images": list(self.images),
            "reviews": [r.to_dict() for r in self.reviews],
            "tips": list(self.tips),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Place":
        return cls(
            id=data["id"],
            name=data["name"],
            category=PlaceCategory(data.get("category", PlaceCategory.UNKNOWN.value)),
            description=data.get("description") or "",
            rating=data.get("rating"),
            rating_value=data.get("rating_value"),
            review_count=int(data.get("review_count") or 0),
            address=data.get("address"),
            phone=data.get("phone"),
            website=data.get("website"),
            map_link=data.get("map_link"),
            coordinates=Coordinates.from_dict(data.get("coordinates")),
            distance_km=data.get("distance_km"),
            is_open=data.get("is_open"),
            provider=data.get("provider"),
            provider_id=data.get("provider_id"),
            tags=data.get("tags") or [],
            images=data.get("images") or [],
            reviews=[Review.from_dict(r) for r in data.get("reviews") or []],
            tips=data.get("tips") or [],
        )


# Cache entries

@dataclass
class GridCacheEntry:
    grid_key: str
    places: List[Place]
    timestamp: float
    search_count: int = 1
    category: Optional[str] = None
    query: Optional[str] = None
    city: Optional[str] = None


@dataclass
class LastSearchCacheEntry:
    places: List[Place]
    city: str
    latitude: float
    longitude: float
    timestamp: float
    query: Optional[str] = None

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude)


@dataclass
class PlaceDetailsCacheEntry:
    place_id: str
    details: PlaceDetails
    timestamp: float


@dataclass
class UsageStats:
    """Monthly and all-time counters for one anonymous device."""
    device_id: str
    current_month: str  # YYYY-MM
    search_count: int = 0
    place_view_count: int = 0
    total_searches_all_time: int = 0
    last_search_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "current_month": self.current_month,
            "search_count": self.search_count,
            "place_view_count": self.place_view_count,
            "total_searches_all_time": self.total_searches_all_time,
            "last_search_at": self.last_search_at.isoformat() if self.last_search_at else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class SavedPlace:
    """A place the user bookmarked, as it looked when saved."""
    place: Place
    saved_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class HistoryEntry:
    """A place shown to the user, with the search that surfaced it."""
    place: Place
    viewed_at: datetime = field(default_factory=datetime.utcnow)
    search_query: Optional[str] = None
    location: str = "Unknown"


@dataclass
class Collection:
    id: str
    name: str
    icon: Optional[str] = None
    place_ids: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @staticmethod
    def generate_id() -> str:
        return f"collection-{uuid.uuid4().hex[:12]}"
