"""
Usage stats repository backed by SQLAlchemy.
"""
from typing import Optional
from sqlalchemy.orm import Session

from domain.models import UsageStats
from repositories.models import UsageStatsORM


def _stats_from_orm(orm: UsageStatsORM) -> UsageStats:
    return UsageStats(
        device_id=orm.device_id,
        current_month=orm.current_month,
        search_count=orm.search_count or 0,
        place_view_count=orm.place_view_count or 0,
        total_searches_all_time=orm.total_searches_all_time or 0,
        last_search_at=orm.last_search_at,
        created_at=orm.created_at,
    )


class UsageRepository:
    """Load and save per-device usage counters."""

    def get(self, session: Session, device_id: str) -> Optional[UsageStats]:
        orm = session.get(UsageStatsORM, device_id)
        return _stats_from_orm(orm) if orm else None

    def save(self, session: Session, stats: UsageStats) -> UsageStats:
        orm = session.get(UsageStatsORM, stats.device_id)
        if orm is None:
            orm = UsageStatsORM(device_id=stats.device_id, created_at=stats.created_at)
            session.add(orm)
        orm.current_month = stats.current_month
        orm.search_count = stats.search_count
        orm.place_view_count = stats.place_view_count
        orm.total_searches_all_time = stats.total_searches_all_time
        orm.last_search_at = stats.last_search_at
        session.commit()
        session.refresh(orm)
        return _stats_from_orm(orm)

    def delete(self, session: Session, device_id: str) -> bool:
        orm = session.get(UsageStatsORM, device_id)
        if not orm:
            return False
        session.delete(orm)
        session.commit()
        return True
