"""
Per-place API routes: hidden and saved places, tips, photos and view tracking.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.dependencies import get_photo_services, get_session_factory, get_tips_service, get_usage_governor
from api.routes.search import PlaceModel, model_to_place, place_to_model
from domain.models import MAX_PLACE_IMAGES, Place, PlaceCategory
from repositories import HiddenPlacesRepository, SavedPlacesRepository
from services.photos import PhotoService
from services.tips import TipsService
from services.usage import UsageGovernor
from settings import settings

router = APIRouter()
hidden_repo = HiddenPlacesRepository()
saved_repo = SavedPlacesRepository()
logger = logging.getLogger(__name__)


class HiddenPlaceRequest(BaseModel):
    name: str = Field(..., min_length=1)
    device_id: Optional[str] = None


class HiddenPlacesResponse(BaseModel):
    device_id: str
    names: List[str]


class PlaceRef(BaseModel):
    name: str
    category: PlaceCategory = PlaceCategory.UNKNOWN
    address: Optional[str] = None
    provider: Optional[str] = None
    provider_id: Optional[str] = None


class TipsResponse(BaseModel):
    name: str
    tips: List[str]


class PhotosRequest(BaseModel):
    provider: str
    provider_id: str
    name: Optional[str] = None
    category: PlaceCategory = PlaceCategory.UNKNOWN
    max_count: int = Field(default=MAX_PLACE_IMAGES, ge=1, le=MAX_PLACE_IMAGES)


class PhotosResponse(BaseModel):
    images: List[str]
    error: Optional[str] = None


class PlaceViewRequest(BaseModel):
    device_id: Optional[str] = None


class SavePlaceRequest(BaseModel):
    place: PlaceModel
    device_id: Optional[str] = None


class SavedPlaceModel(BaseModel):
    place: PlaceModel
    saved_at: datetime


class SavedPlacesResponse(BaseModel):
    device_id: str
    places: List[SavedPlaceModel]


def _device(device_id: Optional[str]) -> str:
    return device_id or settings.DEFAULT_DEVICE_ID


@router.post("/hidden", response_model=HiddenPlacesResponse)
def hide_place(data: HiddenPlaceRequest, session_factory=Depends(get_session_factory)):
    """Hide a place by name from all future results."""
    device_id = _device(data.device_id)
    with session_factory() as session:
        hidden_repo.hide(session, device_id, data.name)
        return HiddenPlacesResponse(device_id=device_id, names=hidden_repo.list_names(session, device_id))


@router.get("/hidden", response_model=HiddenPlacesResponse)
def list_hidden(device_id: Optional[str] = None, session_factory=Depends(get_session_factory)):
    device_id = _device(device_id)
    with session_factory() as session:
        return HiddenPlacesResponse(device_id=device_id, names=hidden_repo.list_names(session, device_id))


@router.delete("/hidden/{name}", response_model=HiddenPlacesResponse)
def unhide_place(name: str, device_id: Optional[str] = None, session_factory=Depends(get_session_factory)):
    device_id = _device(device_id)
    with session_factory() as session:
        if not hidden_repo.unhide(session, device_id, name):
            raise HTTPException(status_code=404, detail="Place is not hidden")
        return HiddenPlacesResponse(device_id=device_id, names=hidden_repo.list_names(session, device_id))


def _saved_response(session, device_id: str) -> SavedPlacesResponse:
    return SavedPlacesResponse(
        device_id=device_id,
        places=[
            SavedPlaceModel(place=place_to_model(s.place), saved_at=s.saved_at)
            for s in saved_repo.list(session, device_id)
        ],
    )


@router.post("/saved", response_model=SavedPlacesResponse)
def save_place(data: SavePlaceRequest, session_factory=Depends(get_session_factory)):
    """Bookmark a place. Saving a name twice keeps the first copy."""
    device_id = _device(data.device_id)
    with session_factory() as session:
        saved_repo.save(session, device_id, model_to_place(data.place))
        return _saved_response(session, device_id)


@router.get("/saved", response_model=SavedPlacesResponse)
def list_saved(device_id: Optional[str] = None, session_factory=Depends(get_session_factory)):
    with session_factory() as session:
        return _saved_response(session, _device(device_id))


@router.delete("/saved/{name}", response_model=SavedPlacesResponse)
def unsave_place(name: str, device_id: Optional[str] = None, session_factory=Depends(get_session_factory)):
    device_id = _device(device_id)
    with session_factory() as session:
        if not saved_repo.unsave(session, device_id, name):
            raise HTTPException(status_code=404, detail="Place is not saved")
        return _saved_response(session, device_id)


@router.post("/tips", response_model=TipsResponse)
def place_tips(data: PlaceRef, tips_service: Optional[TipsService] = Depends(get_tips_service)):
    """Generate (or fetch cached) visitor tips for one place."""
    if tips_service is None:
        raise HTTPException(status_code=503, detail="Tips are not configured")
    place = Place(
        id=Place.generate_id(),
        name=data.name,
        category=data.category,
        address=data.address,
        provider=data.provider,
        provider_id=data.provider_id,
    )
    return TipsResponse(name=data.name, tips=tips_service.tips_for(place))


@router.post("/photos", response_model=PhotosResponse)
def place_photos(data: PhotosRequest, photo_services: Dict[str, PhotoService] = Depends(get_photo_services)):
    """Lazily load photo URLs for a place the search returned without images.

    Pass name and category to get a Wikipedia lead image first for attractions.
    """
    service = photo_services.get(data.provider)
    if service is None:
        raise HTTPException(status_code=400, detail=f"No photo provider configured for {data.provider}")
    place = Place(
        id=Place.generate_id(),
        name=data.name or "",
        category=data.category,
        provider=data.provider,
        provider_id=data.provider_id,
    )
    result = service.load_into(place, data.max_count)
    return PhotosResponse(images=place.images[: data.max_count], error=result.error)


@router.post("/view")
def record_view(data: PlaceViewRequest, governor: UsageGovernor = Depends(get_usage_governor)):
    stats = governor.record_place_view(_device(data.device_id))
    return {"place_view_count": stats.place_view_count}
