"""
Collections and search history routes.
"""
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.dependencies import get_session_factory
from api.routes.search import PlaceModel, place_to_model
from domain.models import Collection
from repositories import CollectionsRepository, HistoryRepository
from settings import settings

router = APIRouter()
history_router = APIRouter()
collections_repo = CollectionsRepository()
history_repo = HistoryRepository()


class CollectionCreate(BaseModel):
    name: str = Field(..., min_length=1)
    icon: Optional[str] = None
    device_id: Optional[str] = None


class CollectionPlaceRequest(BaseModel):
    place_id: str = Field(..., min_length=1)
    device_id: Optional[str] = None


class CollectionResponse(BaseModel):
    id: str
    name: str
    icon: Optional[str] = None
    place_ids: List[str]
    created_at: datetime
    updated_at: datetime


class HistoryEntryModel(BaseModel):
    place: PlaceModel
    viewed_at: datetime
    search_query: Optional[str] = None
    location: str


def _device(device_id: Optional[str]) -> str:
    return device_id or settings.DEFAULT_DEVICE_ID


def _collection_response(collection: Collection) -> CollectionResponse:
    return CollectionResponse(
        id=collection.id,
        name=collection.name,
        icon=collection.icon,
        place_ids=list(collection.place_ids),
        created_at=collection.created_at,
        updated_at=collection.updated_at,
    )


def _not_found():
    return HTTPException(status_code=404, detail="Collection not found")


@router.post("", response_model=CollectionResponse, status_code=201)
def create_collection(data: CollectionCreate, session_factory=Depends(get_session_factory)):
    with session_factory() as session:
        collection = collections_repo.create(session, _device(data.device_id), data.name, data.icon)
        return _collection_response(collection)


@router.get("", response_model=List[CollectionResponse])
def list_collections(device_id: Optional[str] = None, session_factory=Depends(get_session_factory)):
    with session_factory() as session:
        return [_collection_response(c) for c in collections_repo.list(session, _device(device_id))]


@router.delete("/{collection_id}")
def delete_collection(collection_id: str, device_id: Optional[str] = None, session_factory=Depends(get_session_factory)):
    with session_factory() as session:
        if not collections_repo.delete(session, _device(device_id), collection_id):
            raise _not_found()
    return {"deleted": collection_id}


@router.post("/{collection_id}/places", response_model=CollectionResponse)
def add_to_collection(collection_id: str, data: CollectionPlaceRequest, session_factory=Depends(get_session_factory)):
    with session_factory() as session:
        collection = collections_repo.add_place(session, _device(data.device_id), collection_id, data.place_id)
        if collection is None:
            raise _not_found()
        return _collection_response(collection)


@router.delete("/{collection_id}/places/{place_id}", response_model=CollectionResponse)
def remove_from_collection(
    collection_id: str,
    place_id: str,
    device_id: Optional[str] = None,
    session_factory=Depends(get_session_factory),
):
    with session_factory() as session:
        collection = collections_repo.remove_place(session, _device(device_id), collection_id, place_id)
        if collection is None:
            raise _not_found()
        return _collection_response(collection)


@router.get("/{collection_id}/places", response_model=List[PlaceModel])
def collection_places(collection_id: str, device_id: Optional[str] = None, session_factory=Depends(get_session_factory)):
    """Member places, looked up in saved places and history."""
    with session_factory() as session:
        places = collections_repo.places_in(session, _device(device_id), collection_id)
        if places is None:
            raise _not_found()
        return [place_to_model(p) for p in places]


@history_router.get("", response_model=List[HistoryEntryModel])
def list_history(
    device_id: Optional[str] = None,
    limit: Optional[int] = None,
    session_factory=Depends(get_session_factory),
):
    """Places shown to this device, most recent first."""
    with session_factory() as session:
        return [
            HistoryEntryModel(
                place=place_to_model(e.place),
                viewed_at=e.viewed_at,
                search_query=e.search_query,
                location=e.location,
            )
            for e in history_repo.list(session, _device(device_id), limit=limit)
        ]


@history_router.delete("")
def clear_history(device_id: Optional[str] = None, session_factory=Depends(get_session_factory)):
    with session_factory() as session:
        cleared = history_repo.clear(session, _device(device_id))
    return {"cleared": cleared}
