"""
Named collections of places. A collection holds place ids only; the places
themselves are looked up in the device's saved places and history.
"""
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from domain.models import Collection, Place
from repositories.history import HistoryRepository
from repositories.models import CollectionORM
from repositories.saved_places import SavedPlacesRepository


def _collection_from_orm(orm: CollectionORM) -> Collection:
    return Collection(
        id=orm.id,
        name=orm.name,
        icon=orm.icon,
        place_ids=list(orm.place_ids or []),
        created_at=orm.created_at,
        updated_at=orm.updated_at,
    )


class CollectionsRepository:
    def __init__(
        self,
        saved_places: Optional[SavedPlacesRepository] = None,
        history: Optional[HistoryRepository] = None,
    ):
        self.saved_places = saved_places or SavedPlacesRepository()
        self.history = history or HistoryRepository()

    def _get_orm(self, session: Session, device_id: str, collection_id: str) -> Optional[CollectionORM]:
        orm = session.get(CollectionORM, collection_id)
        if orm is None or orm.device_id != device_id:
            return None
        return orm

    def create(self, session: Session, device_id: str, name: str, icon: Optional[str] = None) -> Collection:
        now = datetime.utcnow()
        orm = CollectionORM(
            id=Collection.generate_id(),
            device_id=device_id,
            name=name.strip(),
            icon=icon,
            place_ids=[],
            created_at=now,
            updated_at=now,
        )
        session.add(orm)
        session.commit()
        session.refresh(orm)
        return _collection_from_orm(orm)

    def get(self, session: Session, device_id: str, collection_id: str) -> Optional[Collection]:
        orm = self._get_orm(session, device_id, collection_id)
        return _collection_from_orm(orm) if orm else None

    def list(self, session: Session, device_id: str) -> List[Collection]:
        rows = (
            session.query(CollectionORM)
            .filter(CollectionORM.device_id == device_id)
            .order_by(CollectionORM.created_at.asc())
            .all()
        )
        return [_collection_from_orm(r) for r in rows]

    def delete(self, session: Session, device_id: str, collection_id: str) -> bool:
        orm = self._get_orm(session, device_id, collection_id)
        if orm is None:
            return False
        session.delete(orm)
        session.commit()
        return True

    def add_place(self, session: Session, device_id: str, collection_id: str, place_id: str) -> Optional[Collection]:
        """None when the collection does not exist. Adding a member twice is a no-op."""
        orm = self._get_orm(session, device_id, collection_id)
        if orm is None:
            return None
        ids = list(orm.place_ids or [])
        if place_id not in ids:
            # reassign so the JSON column is flagged dirty
            orm.place_ids = ids + [place_id]
            orm.updated_at = datetime.utcnow()
            session.commit()
        return _collection_from_orm(orm)

    def remove_place(self, session: Session, device_id: str, collection_id: str, place_id: str) -> Optional[Collection]:
        orm = self._get_orm(session, device_id, collection_id)
        if orm is None:
            return None
        orm.place_ids = [pid for pid in (orm.place_ids or []) if pid != place_id]
        orm.updated_at = datetime.utcnow()
        session.commit()
        return _collection_from_orm(orm)

    def places_in(self, session: Session, device_id: str, collection_id: str) -> Optional[List[Place]]:
        """Member places in insertion order; ids no longer known anywhere are skipped."""
        collection = self.get(session, device_id, collection_id)
        if collection is None:
            return None
        known: Dict[str, Place] = {s.place.id: s.place for s in self.saved_places.list(session, device_id)}
        known.update(self.history.places_by_id(session, device_id))
        return [known[pid] for pid in collection.place_ids if pid in known]
