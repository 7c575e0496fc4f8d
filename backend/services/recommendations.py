"""
Search façade: grid cache, quota gate, aggregation run, hidden-place filter and
the bookkeeping that follows a search (usage, caches, history).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set, Tuple

from domain.models import Coordinates, LastSearchCacheEntry, Place, PlaceCategory, normalize_name
from repositories.hidden_places import HiddenPlacesRepository
from repositories.history import HistoryRepository
from services.aggregation import UNKNOWN_CITY, AggregationEngine, AggregationRequest
from services.errors import PlacesError, QuotaExceeded
from services.geocoding import GeocodeResult, parse_location_from_query
from services.search_cache_sqlite import GridCache, LastSearchCache
from services.search_radius import search_radius
from services.usage import UsageGovernor
from settings import settings as default_settings

logger = logging.getLogger(__name__)

APPEND_THRESHOLD = 8
NO_RESULTS_MESSAGE = "No places found nearby. Try a wider search or a different area."
FAILED_MESSAGE = "Failed to get recommendations. Please try again."
_RELATIVE_LOCATIONS = {"me", "here", "my area"}


@dataclass
class SearchOutcome:
    places: List[Place] = field(default_factory=list)
    city: str = UNKNOWN_CITY
    can_load_more: bool = False
    message: Optional[str] = None
    from_cache: bool = False
    radius_km: Optional[float] = None


class RecommendationService:
    def __init__(
        self,
        engine: AggregationEngine,
        usage: Optional[UsageGovernor] = None,
        session_factory: Optional[Callable] = None,
        hidden_places: Optional[HiddenPlacesRepository] = None,
        history: Optional[HistoryRepository] = None,
        grid_cache: Optional[GridCache] = None,
        last_search_cache: Optional[LastSearchCache] = None,
        geocoder: Optional[Callable[[str, Coordinates], Optional[GeocodeResult]]] = None,
        append_threshold: int = APPEND_THRESHOLD,
    ):
        self.engine = engine
        self.usage = usage
        self._session_factory = session_factory
        self.hidden_places = hidden_places or HiddenPlacesRepository()
        self.history = history or HistoryRepository()
        self.grid_cache = grid_cache
        self.last_search_cache = last_search_cache
        self.geocoder = geocoder
        self.append_threshold = append_threshold

    def _hidden_names(self, device_id: str) -> Set[str]:
        if self._session_factory is None:
            return set()
        with self._session_factory() as session:
            return self.hidden_places.normalized_names(session, device_id)

    def _visible(self, places: Sequence[Place], device_id: str) -> List[Place]:
        hidden = self._hidden_names(device_id)
        if not hidden:
            return list(places)
        return [p for p in places if p.normalized_name not in hidden]

    def _record_history(self, device_id: str, places: Sequence[Place], query: Optional[str], city: Optional[str]) -> None:
        if self._session_factory is None or not places:
            return
        location = city if city and city != UNKNOWN_CITY else None
        with self._session_factory() as session:
            self.history.record(session, device_id, places, search_query=query, location=location)

    def _city_for(self, center: Coordinates, category_key: Optional[str], hint: Optional[str]) -> str:
        if hint:
            return hint
        if self.grid_cache is not None:
            return self.grid_cache.city_for(center, category_key) or UNKNOWN_CITY
        return UNKNOWN_CITY

    def _relocate(self, center: Coordinates, query: Optional[str]) -> Tuple[Coordinates, Optional[str]]:
        """Move the search to an explicit location ("pizza in nyc"). The query keeps its topic only."""
        if not query or self.geocoder is None:
            return center, query
        topic, location = parse_location_from_query(query)
        if not location or location.lower() in _RELATIVE_LOCATIONS:
            return center, query
        found = self.geocoder(location, center)
        if found is None:
            return center, query
        logger.info("Search relocated to %r at %s", location, found.coordinates)
        return found.coordinates, topic or None

    def search(
        self,
        center: Coordinates,
        query: Optional[str] = None,
        categories: Sequence[PlaceCategory] = (),
        radius_km: Optional[float] = None,
        append: bool = False,
        exclude_names: Sequence[str] = (),
        device_id: Optional[str] = None,
        city: Optional[str] = None,
    ) -> SearchOutcome:
        """
        Run one search.

        Cache hits are free. Every engine run, appends included, is gated by the
        monthly quota and raises QuotaExceeded past it; only fresh runs are
        counted. Any other pipeline failure comes back as an empty outcome with
        a message. Caches hold unfiltered results and each device's hidden
        places are removed on the way out.
        """
        device_id = device_id or default_settings.DEFAULT_DEVICE_ID
        categories = list(categories)
        query = (query or "").strip() or None
        radius = radius_km if radius_km else search_radius(query, city, categories)
        relocated, query = self._relocate(center, query)
        if relocated != center:
            center, city = relocated, None
        category_key = categories[0].value if len(categories) == 1 else None

        if not append and self.grid_cache is not None:
            cached = self.grid_cache.lookup(center, category_key, query)
            if cached:
                places = self._visible(cached, device_id)
                city = self._city_for(center, category_key, city)
                self._record_history(device_id, places, query, city)
                return SearchOutcome(
                    places=places,
                    city=city,
                    can_load_more=True,
                    from_cache=True,
                    radius_km=radius,
                )

        if self.usage is not None and self.usage.has_exceeded_quota(device_id):
            stats = self.usage.get_stats(device_id)
            raise QuotaExceeded(stats.search_count, self.usage.limit)

        logger.info("Search %r at %s (%.1fkm, categories=%s, append=%s)", query, center, radius, categories, append)
        request = AggregationRequest(
            center=center,
            radius_km=radius,
            query=query,
            categories=categories,
            exclude_names=list(exclude_names),
        )
        try:
            result = self.engine.run(request)
        except PlacesError as exc:
            logger.warning("Search failed: %s", exc)
            return SearchOutcome(city=city or UNKNOWN_CITY, message=FAILED_MESSAGE, radius_km=radius)

        places = self._visible(result.places, device_id)

        if append:
            already_shown = {normalize_name(n) for n in exclude_names}
            new_places = [p for p in places if p.normalized_name not in already_shown]
            self._record_history(device_id, new_places, query, result.city)
            return SearchOutcome(
                places=new_places,
                city=result.city,
                can_load_more=len(new_places) >= self.append_threshold,
                message=None if new_places else NO_RESULTS_MESSAGE,
                radius_km=result.radius_km,
            )

        if self.usage is not None:
            self.usage.record_search(device_id)

        if result.places:
            if self.last_search_cache is not None:
                self.last_search_cache.store(result.places, result.city, center, query)
            if self.grid_cache is not None:
                self.grid_cache.store(center, result.places, category_key, query, city=result.city)

        self._record_history(device_id, places, query, result.city)

        return SearchOutcome(
            places=places,
            city=result.city,
            can_load_more=bool(places),
            message=None if places else NO_RESULTS_MESSAGE,
            radius_km=result.radius_km,
        )

    def restore_last_search(self, device_id: Optional[str] = None) -> Optional[LastSearchCacheEntry]:
        """The last fresh result set within its TTL, with hidden places removed."""
        if self.last_search_cache is None:
            return None
        entry = self.last_search_cache.lookup()
        if entry is None:
            return None
        entry.places = self._visible(entry.places, device_id or default_settings.DEFAULT_DEVICE_ID)
        return entry


def build_service(settings=default_settings, session_factory: Optional[Callable] = None) -> RecommendationService:
    """Service wired with the default caches, the geocoder city label and the usage governor."""
    from services.aggregation import build_engine
    from services.geocoding import geocode_location, reverse_geocode_city
    from services.search_cache_sqlite import (
        get_default_grid_cache,
        get_default_last_search_cache,
        get_default_place_details_cache,
    )

    engine = build_engine(
        settings,
        details_cache=get_default_place_details_cache(),
        city_resolver=reverse_geocode_city,
    )
    usage = UsageGovernor(session_factory, limit=settings.FREE_SEARCHES_PER_MONTH) if session_factory else None
    return RecommendationService(
        engine,
        usage=usage,
        session_factory=session_factory,
        grid_cache=get_default_grid_cache(),
        last_search_cache=get_default_last_search_cache(),
        geocoder=geocode_location,
    )
