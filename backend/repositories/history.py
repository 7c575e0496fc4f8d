"""
Search history: every place shown to a device, most recent first.

A place seen again moves back to the front instead of being duplicated, and
only the newest MAX_HISTORY_ENTRIES survive per device.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence
from sqlalchemy.orm import Session

from domain.models import HistoryEntry, Place, normalize_name
from repositories.models import HistoryEntryORM

MAX_HISTORY_ENTRIES = 100
UNKNOWN_LOCATION = "Unknown"


def location_from_address(address: Optional[str]) -> str:
    """Last two comma-separated parts: "63 Salem St, Boston, MA" -> "Boston, MA"."""
    if not address:
        return UNKNOWN_LOCATION
    parts = [p.strip() for p in address.split(",")[-2:]]
    return ", ".join(p for p in parts if p) or UNKNOWN_LOCATION


def _entry_from_orm(orm: HistoryEntryORM) -> HistoryEntry:
    return HistoryEntry(
        place=Place.from_dict(orm.place),
        viewed_at=orm.viewed_at,
        search_query=orm.search_query,
        location=orm.location or UNKNOWN_LOCATION,
    )


class HistoryRepository:
    def __init__(self, max_entries: int = MAX_HISTORY_ENTRIES):
        self.max_entries = max_entries

    def record(
        self,
        session: Session,
        device_id: str,
        places: Sequence[Place],
        search_query: Optional[str] = None,
        location: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Add places in display order; the last one ends up newest. Returns the
        number of entries trimmed past the cap.
        """
        now = now or datetime.utcnow()
        seen = set()
        for offset, place in enumerate(places):
            key = normalize_name(place.name)
            if not key or key in seen:
                continue
            seen.add(key)
            viewed_at = now + timedelta(microseconds=offset)
            orm = session.get(HistoryEntryORM, (device_id, key))
            if orm is None:
                session.add(
                    HistoryEntryORM(
                        device_id=device_id,
                        normalized_name=key,
                        place_id=place.id,
                        place=place.to_dict(),
                        search_query=search_query,
                        location=location or location_from_address(place.address),
                        viewed_at=viewed_at,
                    )
                )
            else:
                # refresh the details but keep the id collections point at
                orm.place = dict(place.to_dict(), id=orm.place_id)
                orm.search_query = search_query
                orm.location = location or location_from_address(place.address)
                orm.viewed_at = viewed_at
        session.flush()

        stale = (
            session.query(HistoryEntryORM)
            .filter(HistoryEntryORM.device_id == device_id)
            .order_by(HistoryEntryORM.viewed_at.desc())
            .offset(self.max_entries)
            .all()
        )
        for orm in stale:
            session.delete(orm)
        session.commit()
        return len(stale)

    def list(self, session: Session, device_id: str, limit: Optional[int] = None) -> List[HistoryEntry]:
        query = (
            session.query(HistoryEntryORM)
            .filter(HistoryEntryORM.device_id == device_id)
            .order_by(HistoryEntryORM.viewed_at.desc())
        )
        if limit:
            query = query.limit(limit)
        return [_entry_from_orm(r) for r in query.all()]

    def places_by_id(self, session: Session, device_id: str) -> Dict[str, Place]:
        rows = session.query(HistoryEntryORM).filter(HistoryEntryORM.device_id == device_id).all()
        return {r.place_id: Place.from_dict(r.place) for r in rows}

    def clear(self, session: Session, device_id: str) -> int:
        deleted = session.query(HistoryEntryORM).filter(HistoryEntryORM.device_id == device_id).delete()
        session.commit()
        return deleted
