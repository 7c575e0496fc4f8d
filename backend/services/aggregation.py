"""
Multi-source place aggregation.

One engine, parametrised by an ordered list of adapters. Each attempt:

1. discover candidates from every ranked source plus the discovery model
2. drop duplicates, chains and excluded names, then resolve missing details
3. filter by category, business status and distance (hard ceiling radius * 1.5)
4. top up EXPLORE from community POI data when it comes back thin
5. sort by popularity = rating * log10(reviews + 10)

If fewer than `min_results` survive, the radius grows and the loop repeats,
up to `max_attempts`. The largest set seen is returned either way; too few
results is an outcome, not an error.
"""
from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set, Tuple

from domain.models import Candidate, Coordinates, Place, PlaceCategory, normalize_name
from services.categories import classify_candidate
from services.chains import is_chain
from services.details_resolver import DetailsResolver
from services.errors import MissingCredentials, ProviderUnavailable
from services.geo_math import distance_km, radius_meters
from services.photos import select_photos
from services.providers import CommunityPOIAdapter, DiscoveryAdapter, RankedSearchAdapter

logger = logging.getLogger(__name__)

UNKNOWN_CITY = "Unknown Location"
CityResolver = Callable[[Coordinates], Optional[str]]


@dataclass(frozen=True)
class AggregationConfig:
    max_attempts: int = 3
    growth_factor: float = 1.5
    discovery_only_growth_factor: float = 2.0
    min_results: int = 8
    explore_min_results: int = 4
    result_cap: int = 18
    discovery_only_result_cap: int = 8
    distance_ceiling_factor: float = 1.5
    batch_size: int = 10
    batch_delay_s: float = 0.1
    tie_threshold: float = 0.15
    exclude_chains: bool = True
    use_discovery: bool = True
    search_limit: int = 20
    discovery_count: int = 8

    @classmethod
    def from_settings(cls, settings) -> "AggregationConfig":
        return cls(
            max_attempts=max(1, settings.AGGREGATION_MAX_ATTEMPTS),
            exclude_chains=settings.EXCLUDE_CHAINS,
            use_discovery=settings.DISCOVERY_ENABLED,
        )


@dataclass
class AggregationRequest:
    center: Coordinates
    radius_km: float = 4.8
    query: Optional[str] = None
    categories: Sequence[PlaceCategory] = ()
    exclude_names: Sequence[str] = ()
    min_results: Optional[int] = None

    def effective_min_results(self, config: AggregationConfig) -> int:
        if self.min_results is not None:
            return self.min_results
        if list(self.categories) == [PlaceCategory.EXPLORE]:
            return config.explore_min_results
        return config.min_results


@dataclass
class AggregationResult:
    city: str
    places: List[Place] = field(default_factory=list)
    attempts: int = 0
    radius_km: float = 0.0
    met_minimum: bool = False


@dataclass
class _Accepted:
    candidate: Candidate
    category: PlaceCategory
    distance_km: Optional[float]

    @property
    def popularity(self) -> float:
        return popularity_score(self.candidate.rating, self.candidate.review_count)


def popularity_score(rating: Optional[float], review_count: int) -> float:
    """rating (0-5) * log10(review_count + 10); a missing rating scores 0."""
    return (rating or 0.0) * math.log10(max(review_count, 0) + 10)


def rating_display(rating: Optional[float], review_count: int) -> str:
    if not rating:
        return "New"
    return f"{rating:.1f} stars ({review_count} reviews)"


def sort_by_popularity(
    items: List[_Accepted],
    categories: Sequence[PlaceCategory],
    tie_threshold: float,
) -> List[_Accepted]:
    """
    Descending popularity. When filtering to categories that exclude EAT, places
    within `tie_threshold` of the most popular place in their group keep their
    upstream order. Groups never straddle a larger gap, so a place is never
    ranked below one it beats by more than the threshold.
    """
    ranked = sorted(items, key=lambda item: item.popularity, reverse=True)
    if not categories or PlaceCategory.EAT in categories:
        return ranked

    upstream = {id(item): index for index, item in enumerate(items)}
    result: List[_Accepted] = []
    group: List[_Accepted] = []
    for item in ranked:
        if group:
            leader = group[0].popularity
            if leader <= 0 or (leader - item.popularity) / leader >= tie_threshold:
                result.extend(sorted(group, key=lambda g: upstream[id(g)]))
                group = []
        group.append(item)
    result.extend(sorted(group, key=lambda g: upstream[id(g)]))
    return result


class AggregationEngine:
    def __init__(
        self,
        config: Optional[AggregationConfig] = None,
        ranked_sources: Sequence[RankedSearchAdapter] = (),
        discovery: Optional[DiscoveryAdapter] = None,
        poi_fallback: Optional[CommunityPOIAdapter] = None,
        details: Optional[DetailsResolver] = None,
        city_resolver: Optional[CityResolver] = None,
    ):
        self.config = config or AggregationConfig()
        self.ranked_sources = list(ranked_sources)
        self.discovery = discovery if self.config.use_discovery else None
        self.poi_fallback = poi_fallback
        self.details = details
        self.city_resolver = city_resolver

    @property
    def discovery_only(self) -> bool:
        return not self.ranked_sources and self.discovery is not None

    @property
    def result_cap(self) -> int:
        return self.config.discovery_only_result_cap if self.discovery_only else self.config.result_cap

    @property
    def growth_factor(self) -> float:
        return self.config.discovery_only_growth_factor if self.discovery_only else self.config.growth_factor

    def run(self, request: AggregationRequest) -> AggregationResult:
        if not self.ranked_sources and self.discovery is None:
            raise MissingCredentials("places")

        config = self.config
        categories = list(request.categories)
        min_results = request.effective_min_results(config)
        exclude = {normalize_name(n) for n in request.exclude_names if n}
        radius = request.radius_km

        city: Optional[str] = None
        best: List[_Accepted] = []
        best_radius = radius
        met_minimum = False
        attempt = 0

        while attempt < config.max_attempts:
            attempt += 1
            hinted_city, accepted = self._attempt(request, radius, categories, min_results, exclude)
            city = city or hinted_city
            logger.info(
                "Attempt %d/%d at %.1fkm: %d places (need %d)",
                attempt, config.max_attempts, radius, len(accepted), min_results,
            )
            if len(accepted) >= min_results:
                best, best_radius, met_minimum = accepted, radius, True
                break
            if len(accepted) > len(best) or not best:
                best, best_radius = accepted, radius
            if attempt < config.max_attempts:
                radius *= self.growth_factor

        if not city and self.city_resolver is not None:
            city = self.city_resolver(request.center)

        run_id = uuid.uuid4().hex[:8]
        places = [self._to_place(item, f"place-{run_id}-{i}") for i, item in enumerate(best[: self.result_cap])]
        if not met_minimum:
            logger.info("Returning best-effort set of %d places after %d attempts", len(places), attempt)
        return AggregationResult(
            city=city or UNKNOWN_CITY,
            places=places,
            attempts=attempt,
            radius_km=best_radius,
            met_minimum=met_minimum,
        )

    # one attempt

    def _gather(
        self, request: AggregationRequest, radius: float, categories: List[PlaceCategory]
    ) -> Tuple[Optional[str], List[Candidate]]:
        candidates: List[Candidate] = []
        for source in self.ranked_sources:
            try:
                found = source.search(
                    request.center, radius, categories=categories or None,
                    query=request.query, limit=self.config.search_limit,
                )
            except ProviderUnavailable as exc:
                logger.warning("%s unavailable, continuing without it: %s", source.name, exc)
                continue
            candidates.extend(found)

        city = None
        if self.discovery is not None:
            try:
                city, found = self.discovery.discover_with_city(
                    request.center, radius, query=request.query,
                    category_hints=categories or None, count=self.config.discovery_count,
                )
            except ProviderUnavailable as exc:
                logger.warning("Discovery unavailable, continuing without it: %s", exc)
            else:
                candidates.extend(found)
        return city, candidates

    def _passes_name_filters(self, candidate: Candidate, seen: Set[str], exclude: Set[str]) -> bool:
        key = candidate.normalized_name
        if not key or key in seen:
            return False
        if key in exclude:
            return False
        if self.config.exclude_chains and is_chain(candidate.name):
            logger.debug("Skipping chain: %s", candidate.name)
            return False
        return True

    def _accept(
        self,
        candidate: Candidate,
        center: Coordinates,
        radius: float,
        categories: List[PlaceCategory],
    ) -> Optional[_Accepted]:
        category = classify_candidate(candidate)
        if category == PlaceCategory.UNKNOWN:
            return None
        if categories and category not in categories:
            return None
        if candidate.business_status.is_closed:
            logger.debug("Skipping closed business: %s (%s)", candidate.name, candidate.business_status.value)
            return None
        distance = None
        if candidate.coordinates is not None:
            distance = distance_km(center, candidate.coordinates)
            if distance > radius * self.config.distance_ceiling_factor:
                logger.debug("Rejecting %s: %.2fkm away (limit %.2fkm)", candidate.name, distance, radius)
                return None
        return _Accepted(candidate=candidate, category=category, distance_km=distance)

    def _attempt(
        self,
        request: AggregationRequest,
        radius: float,
        categories: List[PlaceCategory],
        min_results: int,
        exclude: Set[str],
    ) -> Tuple[Optional[str], List[_Accepted]]:
        city, raw = self._gather(request, radius, categories)
        search_radius_m = radius_meters(radius * self.config.distance_ceiling_factor)

        # name-only filters first so paid detail lookups are not spent on rejects
        seen: Set[str] = set()
        shortlist: List[Candidate] = []
        for candidate in raw:
            if self._passes_name_filters(candidate, seen, exclude):
                seen.add(candidate.normalized_name)
                shortlist.append(candidate)

        if self.details is not None:
            resolved = self.details.resolve_many(shortlist, request.center, search_radius_m)
        else:
            resolved = list(shortlist)

        accepted: List[_Accepted] = []
        names: Set[str] = set()
        for candidate in resolved:
            if candidate is None:
                continue
            item = self._accept(candidate, request.center, radius, categories)
            if item is None or candidate.normalized_name in names:
                continue
            names.add(candidate.normalized_name)
            accepted.append(item)

        explore_count = sum(1 for a in accepted if a.category == PlaceCategory.EXPLORE)
        if self.poi_fallback is not None and PlaceCategory.EXPLORE in categories and explore_count < min_results:
            accepted.extend(self._poi_top_up(request, radius, categories, names, exclude))

        return city, sort_by_popularity(accepted, categories, self.config.tie_threshold)

    def _poi_top_up(
        self,
        request: AggregationRequest,
        radius: float,
        categories: List[PlaceCategory],
        names: Set[str],
        exclude: Set[str],
    ) -> List[_Accepted]:
        try:
            found = self.poi_fallback.search(request.center, radius_meters(radius))
        except ProviderUnavailable as exc:
            logger.warning("Community POI fallback unavailable: %s", exc)
            return []
        extra: List[_Accepted] = []
        for candidate in found:
            if not self._passes_name_filters(candidate, names, exclude):
                continue
            item = self._accept(candidate, request.center, radius, categories)
            if item is None:
                continue
            names.add(candidate.normalized_name)
            extra.append(item)
        logger.info("Community POI fallback added %d places", len(extra))
        return extra

    def _to_place(self, item: _Accepted, place_id: str) -> Place:
        c = item.candidate
        description = c.vibe_text or ", ".join(c.category_tags[:2])
        place = Place(
            id=place_id,
            name=c.name.strip(),
            category=item.category,
            description=description,
            rating=rating_display(c.rating, c.review_count),
            rating_value=c.rating,
            review_count=c.review_count,
            address=c.address,
            phone=c.phone,
            website=c.website,
            map_link=c.map_link,
            coordinates=c.coordinates,
            distance_km=round(item.distance_km, 2) if item.distance_km is not None else None,
            is_open=c.open_now,
            provider=c.source,
            provider_id=c.provider_id,
            tags=list(c.category_tags),
            reviews=list(c.reviews),
        )
        place.add_images([p.url for p in select_photos(c.photos)])
        return place


def build_engine(
    settings,
    details_cache=None,
    city_resolver: Optional[CityResolver] = None,
) -> AggregationEngine:
    """
    Wire adapters by API-key presence.

    Foursquare is the primary ranked source when configured, with Google as the
    ranked source otherwise. Google resolves details when available.
    """
    from services.discovery_client import GeminiDiscoveryClient
    from services.foursquare_client import FoursquareClient
    from services.google_places_client import GooglePlacesClient
    from services.overpass_client import OverpassClient

    config = AggregationConfig.from_settings(settings)
    foursquare = FoursquareClient(settings.FOURSQUARE_API_KEY) if settings.FOURSQUARE_API_KEY else None
    google = GooglePlacesClient(settings.GOOGLE_PLACES_API_KEY) if settings.GOOGLE_PLACES_API_KEY else None

    ranked: List[RankedSearchAdapter] = []
    if foursquare is not None:
        ranked.append(foursquare)
    elif google is not None:
        ranked.append(google)

    discovery = None
    if settings.GEMINI_API_KEY and config.use_discovery:
        discovery = GeminiDiscoveryClient(settings.GEMINI_API_KEY, model=settings.GEMINI_MODEL)

    details_provider = google or foursquare
    details = None
    if details_provider is not None:
        details = DetailsResolver(
            details_provider,
            cache=details_cache,
            batch_size=config.batch_size,
            batch_delay_s=config.batch_delay_s,
        )

    poi = OverpassClient() if settings.COMMUNITY_POI_ENABLED and ranked else None

    logger.info(
        "Engine wired: ranked=%s discovery=%s details=%s poi=%s",
        [s.name for s in ranked],
        discovery.name if discovery else None,
        details_provider.name if details_provider else None,
        poi.name if poi else None,
    )
    return AggregationEngine(
        config,
        ranked_sources=ranked,
        discovery=discovery,
        poi_fallback=poi,
        details=details,
        city_resolver=city_resolver,
    )
