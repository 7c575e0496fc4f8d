"""
Search API routes.
"""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.dependencies import get_recommendation_service, get_usage_governor
from domain.models import Coordinates, Place, PlaceCategory, Review
from services.errors import QuotaExceeded
from services.recommendations import RecommendationService
from services.usage import UsageGovernor
from settings import settings

router = APIRouter()
logger = logging.getLogger(__name__)


class SearchRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    query: Optional[str] = None
    categories: List[PlaceCategory] = Field(default_factory=list)
    radius_km: Optional[float] = Field(default=None, gt=0)
    append: bool = False
    exclude_names: List[str] = Field(default_factory=list)
    device_id: Optional[str] = None
    city: Optional[str] = None


class ReviewModel(BaseModel):
    author: str
    text: str
    type: str


class PlaceModel(BaseModel):
    id: str
    name: str
    category: PlaceCategory
    description: str = ""
    rating: Optional[str] = None
    rating_value: Optional[float] = None
    review_count: int = 0
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    map_link: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance_km: Optional[float] = None
    is_open: Optional[bool] = None
    provider: Optional[str] = None
    provider_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    reviews: List[ReviewModel] = Field(default_factory=list)
    tips: List[str] = Field(default_factory=list)


class SearchResponse(BaseModel):
    places: List[PlaceModel]
    city: str
    can_load_more: bool
    message: Optional[str] = None
    from_cache: bool = False
    radius_km: Optional[float] = None


class LastSearchResponse(BaseModel):
    places: List[PlaceModel]
    city: str
    latitude: float
    longitude: float
    query: Optional[str] = None
    timestamp: float


class UsageResponse(BaseModel):
    device_id: str
    current_month: str
    search_count: int
    place_view_count: int
    total_searches_all_time: int
    remaining_searches: int
    limit: int
    exceeded: bool


def place_to_model(place: Place) -> PlaceModel:
    """Convert domain Place to API response."""
    return PlaceModel(
        id=place.id,
        name=place.name,
        category=place.category,
        description=place.description,
        rating=place.rating,
        rating_value=place.rating_value,
        review_count=place.review_count,
        address=place.address,
        phone=place.phone,
        website=place.website,
        map_link=place.map_link,
        latitude=place.coordinates.latitude if place.coordinates else None,
        longitude=place.coordinates.longitude if place.coordinates else None,
        distance_km=place.distance_km,
        is_open=place.is_open,
        provider=place.provider,
        provider_id=place.provider_id,
        tags=list(place.tags),
        images=list(place.images),
        reviews=[ReviewModel(**r.to_dict()) for r in place.reviews],
        tips=list(place.tips),
    )


def model_to_place(model: PlaceModel) -> Place:
    """Inverse of place_to_model, for places the client sends back (saving, collections)."""
    coordinates = None
    if model.latitude is not None and model.longitude is not None:
        coordinates = Coordinates(model.latitude, model.longitude)
    return Place(
        id=model.id,
        name=model.name,
        category=model.category,
        description=model.description,
        rating=model.rating,
        rating_value=model.rating_value,
        review_count=model.review_count,
        address=model.address,
        phone=model.phone,
        website=model.website,
        map_link=model.map_link,
        coordinates=coordinates,
        distance_km=model.distance_km,
        is_open=model.is_open,
        provider=model.provider,
        provider_id=model.provider_id,
        tags=list(model.tags),
        images=list(model.images),
        reviews=[Review.from_dict({"author": r.author, "text": r.text, "type": r.type}) for r in model.reviews],
        tips=list(model.tips),
    )


@router.post("", response_model=SearchResponse)
def search(data: SearchRequest, service: RecommendationService = Depends(get_recommendation_service)):
    """Find places around a point. Returns 429 once the monthly free searches are used up."""
    try:
        outcome = service.search(
            Coordinates(data.latitude, data.longitude),
            query=data.query,
            categories=data.categories,
            radius_km=data.radius_km,
            append=data.append,
            exclude_names=data.exclude_names,
            device_id=data.device_id,
            city=data.city,
        )
    except QuotaExceeded as exc:
        raise HTTPException(status_code=429, detail=str(exc))
    return SearchResponse(
        places=[place_to_model(p) for p in outcome.places],
        city=outcome.city,
        can_load_more=outcome.can_load_more,
        message=outcome.message,
        from_cache=outcome.from_cache,
        radius_km=outcome.radius_km,
    )


@router.get("/last", response_model=LastSearchResponse)
def last_search(
    device_id: Optional[str] = None,
    service: RecommendationService = Depends(get_recommendation_service),
):
    """Most recent fresh search, for a warm start."""
    entry = service.restore_last_search(device_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="No recent search")
    return LastSearchResponse(
        places=[place_to_model(p) for p in entry.places],
        city=entry.city,
        latitude=entry.latitude,
        longitude=entry.longitude,
        query=entry.query,
        timestamp=entry.timestamp,
    )


usage_router = APIRouter()


@usage_router.get("", response_model=UsageResponse)
def usage(device_id: Optional[str] = None, governor: UsageGovernor = Depends(get_usage_governor)):
    device_id = device_id or settings.DEFAULT_DEVICE_ID
    stats = governor.get_stats(device_id)
    remaining = max(0, governor.limit - stats.search_count)
    return UsageResponse(
        device_id=stats.device_id,
        current_month=stats.current_month,
        search_count=stats.search_count,
        place_view_count=stats.place_view_count,
        total_searches_all_time=stats.total_searches_all_time,
        remaining_searches=remaining,
        limit=governor.limit,
        exceeded=remaining == 0,
    )
