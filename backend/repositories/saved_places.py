"""
Saved places: a per-device bookmark list, newest first. Names are the key, so
saving the same place from a later search is a no-op.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from domain.models import Place, SavedPlace, normalize_name
from repositories.models import SavedPlaceORM


def _saved_from_orm(orm: SavedPlaceORM) -> SavedPlace:
    return SavedPlace(place=Place.from_dict(orm.place), saved_at=orm.saved_at)


class SavedPlacesRepository:
    def save(self, session: Session, device_id: str, place: Place, saved_at: Optional[datetime] = None) -> bool:
        """Returns False if a place with this name is already saved."""
        key = normalize_name(place.name)
        if not key or session.get(SavedPlaceORM, (device_id, key)) is not None:
            return False
        session.add(
            SavedPlaceORM(
                device_id=device_id,
                normalized_name=key,
                name=place.name.strip(),
                place=place.to_dict(),
                saved_at=saved_at or datetime.utcnow(),
            )
        )
        session.commit()
        return True

    def unsave(self, session: Session, device_id: str, name: str) -> bool:
        orm = session.get(SavedPlaceORM, (device_id, normalize_name(name)))
        if orm is None:
            return False
        session.delete(orm)
        session.commit()
        return True

    def is_saved(self, session: Session, device_id: str, name: str) -> bool:
        return session.get(SavedPlaceORM, (device_id, normalize_name(name))) is not None

    def list(self, session: Session, device_id: str) -> List[SavedPlace]:
        rows = (
            session.query(SavedPlaceORM)
            .filter(SavedPlaceORM.device_id == device_id)
            .order_by(SavedPlaceORM.saved_at.desc(), SavedPlaceORM.name.asc())
            .all()
        )
        return [_saved_from_orm(r) for r in rows]
