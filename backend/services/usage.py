"""
Free-tier usage governor.

Counts searches per anonymous device and calendar month. Cache hits and
"load more" requests are not searches; the caller decides when to record one.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from domain.models import UsageStats
from repositories.usage import UsageRepository
from settings import settings

logger = logging.getLogger(__name__)


def month_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


class UsageGovernor:
    def __init__(
        self,
        session_factory: Callable,
        limit: Optional[int] = None,
        repository: Optional[UsageRepository] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._session_factory = session_factory
        self.limit = settings.FREE_SEARCHES_PER_MONTH if limit is None else limit
        self.repository = repository or UsageRepository()
        self._clock = clock

    def _load(self, session, device_id: str) -> UsageStats:
        now = self._clock()
        current = month_key(now)
        stats = self.repository.get(session, device_id)
        if stats is None:
            return self.repository.save(session, UsageStats(device_id=device_id, current_month=current, created_at=now))
        if stats.current_month != current:
            logger.info("Usage month rolled over for %s: %s -> %s", device_id, stats.current_month, current)
            stats = UsageStats(
                device_id=device_id,
                current_month=current,
                total_searches_all_time=stats.total_searches_all_time,
                last_search_at=stats.last_search_at,
                created_at=stats.created_at,
            )
            stats = self.repository.save(session, stats)
        return stats

    def get_stats(self, device_id: str) -> UsageStats:
        with self._session_factory() as session:
            return self._load(session, device_id)

    def record_search(self, device_id: str) -> UsageStats:
        with self._session_factory() as session:
            stats = self._load(session, device_id)
            stats.search_count += 1
            stats.total_searches_all_time += 1
            stats.last_search_at = self._clock()
            stats = self.repository.save(session, stats)
        logger.debug("Search %d/%d this month for %s", stats.search_count, self.limit, device_id)
        return stats

    def record_place_view(self, device_id: str) -> UsageStats:
        with self._session_factory() as session:
            stats = self._load(session, device_id)
            stats.place_view_count += 1
            return self.repository.save(session, stats)

    def has_exceeded_quota(self, device_id: str) -> bool:
        return self.get_stats(device_id).search_count >= self.limit

    def remaining_searches(self, device_id: str) -> int:
        return max(0, self.limit - self.get_stats(device_id).search_count)

    def reset(self, device_id: str) -> None:
        with self._session_factory() as session:
            self.repository.delete(session, device_id)
