"""
Hidden places: names a user never wants to see again, applied as a post-filter
on every search result.
"""
from datetime import datetime
from typing import List, Set
from sqlalchemy.orm import Session

from domain.models import normalize_name
from repositories.models import HiddenPlaceORM


class HiddenPlacesRepository:
    def hide(self, session: Session, device_id: str, name: str) -> bool:
        """Returns False if the name was already hidden."""
        key = normalize_name(name)
        if not key:
            return False
        if session.get(HiddenPlaceORM, (device_id, key)) is not None:
            return False
        session.add(HiddenPlaceORM(device_id=device_id, normalized_name=key, name=name.strip(), hidden_at=datetime.utcnow()))
        session.commit()
        return True

    def unhide(self, session: Session, device_id: str, name: str) -> bool:
        orm = session.get(HiddenPlaceORM, (device_id, normalize_name(name)))
        if orm is None:
            return False
        session.delete(orm)
        session.commit()
        return True

    def list_names(self, session: Session, device_id: str) -> List[str]:
        rows = (
            session.query(HiddenPlaceORM)
            .filter(HiddenPlaceORM.device_id == device_id)
            .order_by(HiddenPlaceORM.hidden_at.asc(), HiddenPlaceORM.name.asc())
            .all()
        )
        return [r.name for r in rows]

    def normalized_names(self, session: Session, device_id: str) -> Set[str]:
        rows = session.query(HiddenPlaceORM.normalized_name).filter(HiddenPlaceORM.device_id == device_id).all()
        return {r[0] for r in rows}

    def is_hidden(self, session: Session, device_id: str, name: str) -> bool:
        return session.get(HiddenPlaceORM, (device_id, normalize_name(name))) is not None
