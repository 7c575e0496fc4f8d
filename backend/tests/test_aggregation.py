from types import SimpleNamespace
from typing import List, Optional
from unittest.mock import MagicMock

import pytest

from domain.models import BusinessStatus, Candidate, Coordinates, PlaceCategory, PlaceDetails
from services.aggregation import (
    UNKNOWN_CITY,
    AggregationConfig,
    AggregationEngine,
    AggregationRequest,
    build_engine,
    popularity_score,
    rating_display,
    sort_by_popularity,
)
from services.details_resolver import DetailsResolver
from services.errors import MissingCredentials, ProviderUnavailable
from services.providers import CommunityPOIAdapter, DiscoveryAdapter, RankedSearchAdapter

BOSTON = Coordinates(42.3601, -71.0589)
KM_PER_DEGREE_LAT = 111.195


def north_of(center: Coordinates, km: float) -> Coordinates:
    return Coordinates(center.latitude + km / KM_PER_DEGREE_LAT, center.longitude)


def candidate(
    name: str,
    km: float = 1.0,
    tags: Optional[List[str]] = None,
    rating: Optional[float] = 4.5,
    reviews: int = 100,
    source: str = "foursquare",
    **kwargs,
) -> Candidate:
    return Candidate(
        name=name,
        source=source,
        provider_id=kwargs.pop("provider_id", f"{source}-{name}"),
        address=kwargs.pop("address", f"{int(km * 100)} Main St, Boston, MA"),
        coordinates=kwargs.pop("coordinates", north_of(BOSTON, km)),
        rating=rating,
        review_count=reviews,
        category_tags=tags if tags is not None else ["Restaurant"],
        verified=True,
        **kwargs,
    )


class FakeRanked(RankedSearchAdapter):
    name = "foursquare"

    def __init__(self, pool=None, within_radius: bool = False, error: Optional[Exception] = None):
        super().__init__()
        self.pool = list(pool or [])
        self.within_radius = within_radius
        self.error = error
        self.radii: List[float] = []
        self.calls: List[dict] = []

    def search(self, center, radius_km, categories=None, query=None, limit=20):
        self.radii.append(radius_km)
        self.calls.append({"categories": categories, "query": query, "limit": limit})
        if self.error is not None:
            raise self.error
        if not self.within_radius:
            return list(self.pool)
        from services.geo_math import distance_km

        return [c for c in self.pool if distance_km(center, c.coordinates) <= radius_km]


class FakeDiscovery(DiscoveryAdapter):
    name = "discovery"

    def __init__(self, pool=None, city: Optional[str] = None, error: Optional[Exception] = None):
        super().__init__()
        self.pool = list(pool or [])
        self.city = city
        self.error = error
        self.radii: List[float] = []

    def discover(self, center, radius_km, query=None, category_hints=None, count=8):
        return self.discover_with_city(center, radius_km, query, category_hints, count)[1]

    def discover_with_city(self, center, radius_km, query=None, category_hints=None, count=8):
        self.radii.append(radius_km)
        if self.error is not None:
            raise self.error
        return self.city, list(self.pool)


class FakePOI(CommunityPOIAdapter):
    name = "osm"

    def __init__(self, pool=None):
        super().__init__()
        self.pool = list(pool or [])
        self.calls = 0

    def search(self, center, radius_m, tag_filters=None):
        self.calls += 1
        return list(self.pool)


def engine(**kwargs) -> AggregationEngine:
    kwargs.setdefault("config", AggregationConfig(batch_delay_s=0.0))
    return AggregationEngine(**kwargs)


def restaurants(n: int, start_km: float = 0.5, step_km: float = 0.2) -> List[Candidate]:
    return [
        candidate(f"Restaurant {i}", km=start_km + i * step_km, rating=4.0 + (i % 10) / 10, reviews=50 + i * 10)
        for i in range(n)
    ]


# scoring helpers

def test_popularity_score():
    assert popularity_score(4.0, 90) == pytest.approx(8.0)
    assert popularity_score(None, 500) == 0.0


def test_rating_display():
    assert rating_display(4.3, 120) == "4.3 stars (120 reviews)"
    assert rating_display(None, 0) == "New"
    assert rating_display(0.0, 12) == "New"


# happy path

def test_boston_dinner_meets_minimum_in_one_attempt():
    ranked = FakeRanked(restaurants(12))
    result = engine(ranked_sources=[ranked], city_resolver=lambda c: "Boston, MA").run(
        AggregationRequest(center=BOSTON, radius_km=4.8, query="dinner")
    )

    assert result.met_minimum
    assert result.attempts == 1
    assert result.city == "Boston, MA"
    assert len(result.places) == 12
    assert ranked.calls[0]["query"] == "dinner"

    scores = [popularity_score(p.rating_value, p.review_count) for p in result.places]
    assert scores == sorted(scores, reverse=True)

    ids = [p.id for p in result.places]
    assert len(set(ids)) == len(ids)
    assert all(i.startswith("place-") for i in ids)
    assert all(p.category == PlaceCategory.EAT for p in result.places)
    assert all(p.distance_km is not None and p.distance_km <= 4.8 * 1.5 for p in result.places)


def test_result_cap_with_ranked_source():
    result = engine(ranked_sources=[FakeRanked(restaurants(25, step_km=0.1))]).run(
        AggregationRequest(center=BOSTON)
    )
    assert len(result.places) == 18


def test_place_ids_differ_between_runs():
    eng = engine(ranked_sources=[FakeRanked(restaurants(8))])
    first = {p.id for p in eng.run(AggregationRequest(center=BOSTON)).places}
    second = {p.id for p in eng.run(AggregationRequest(center=BOSTON)).places}
    assert not first & second


# filters

def test_chains_are_excluded():
    pool = restaurants(8) + [candidate("Starbucks", tags=["Coffee Shop"], rating=4.9, reviews=5000)]
    result = engine(ranked_sources=[FakeRanked(pool)]).run(AggregationRequest(center=BOSTON))
    assert "Starbucks" not in [p.name for p in result.places]


def test_chains_kept_when_filter_disabled():
    pool = restaurants(8) + [candidate("Starbucks", tags=["Coffee Shop"], rating=4.9, reviews=5000)]
    config = AggregationConfig(exclude_chains=False, batch_delay_s=0.0)
    result = engine(config=config, ranked_sources=[FakeRanked(pool)]).run(AggregationRequest(center=BOSTON))
    assert result.places[0].name == "Starbucks"


def test_duplicates_across_sources_collapse_case_insensitively():
    ranked = FakeRanked(restaurants(8) + [candidate("Neptune Oyster", rating=4.7, reviews=2500)])
    discovery = FakeDiscovery([candidate("  neptune oyster ", source="discovery", rating=4.8, reviews=10)])
    result = engine(ranked_sources=[ranked], discovery=discovery).run(AggregationRequest(center=BOSTON))

    names = [p.normalized_name for p in result.places]
    assert names.count("neptune oyster") == 1
    # first occurrence wins
    assert next(p for p in result.places if p.normalized_name == "neptune oyster").provider == "foursquare"


def test_far_away_places_are_rejected():
    pool = restaurants(8) + [candidate("Worcester Diner", km=60.0, rating=5.0, reviews=9000)]
    result = engine(ranked_sources=[FakeRanked(pool)]).run(AggregationRequest(center=BOSTON, radius_km=4.8))
    assert "Worcester Diner" not in [p.name for p in result.places]


def test_closed_and_unknown_places_are_rejected():
    pool = restaurants(8) + [
        candidate("Old Spot", business_status=BusinessStatus.CLOSED_PERMANENTLY),
        candidate("Reno Break", business_status=BusinessStatus.CLOSED_TEMPORARILY),
        candidate("CVS Pharmacy", tags=["Pharmacy"]),
    ]
    result = engine(ranked_sources=[FakeRanked(pool)]).run(AggregationRequest(center=BOSTON))
    names = {p.name for p in result.places}
    assert not names & {"Old Spot", "Reno Break", "CVS Pharmacy"}


def test_category_filter_keeps_only_requested():
    pool = restaurants(4) + [candidate(f"Bar {i}", tags=["Cocktail Bar"]) for i in range(8)]
    ranked = FakeRanked(pool)
    result = engine(ranked_sources=[ranked]).run(
        AggregationRequest(center=BOSTON, categories=[PlaceCategory.DRINK])
    )
    assert len(result.places) == 8
    assert {p.category for p in result.places} == {PlaceCategory.DRINK}
    assert ranked.calls[0]["categories"] == [PlaceCategory.DRINK]


def test_excluded_names_never_returned():
    pool = restaurants(10)
    exclude = [c.name.upper() for c in pool[:5]]
    result = engine(ranked_sources=[FakeRanked(pool)]).run(
        AggregationRequest(center=BOSTON, exclude_names=exclude)
    )
    returned = {p.normalized_name for p in result.places}
    assert not returned & {n.lower() for n in exclude}


def test_append_exhaustion_returns_empty_after_all_attempts():
    pool = restaurants(10)
    ranked = FakeRanked(pool)
    result = engine(ranked_sources=[ranked]).run(
        AggregationRequest(center=BOSTON, exclude_names=[c.name for c in pool])
    )
    assert result.places == []
    assert result.attempts == 3
    assert not result.met_minimum


# radius expansion

def test_radius_grows_until_minimum_met():
    pool = [candidate(f"Near {i}", km=km) for i, km in enumerate((1, 2, 3))]
    pool += [candidate(f"Far {i}", km=km) for i, km in enumerate((6, 7, 8, 9, 10))]
    ranked = FakeRanked(pool, within_radius=True)

    result = engine(ranked_sources=[ranked]).run(AggregationRequest(center=BOSTON, radius_km=4.8))

    assert result.met_minimum
    assert result.attempts == 3
    assert ranked.radii == pytest.approx([4.8, 7.2, 10.8])
    assert result.radius_km == pytest.approx(10.8)
    assert len(result.places) == 8


def test_retry_terminates_and_returns_best_seen():
    ranked = FakeRanked([candidate(f"Only {i}", km=1 + i) for i in range(3)], within_radius=True)

    result = engine(ranked_sources=[ranked]).run(AggregationRequest(center=BOSTON, radius_km=4.8))

    assert not result.met_minimum
    assert result.attempts == 3
    assert len(result.places) == 3
    assert result.radius_km == pytest.approx(4.8)


def test_max_attempts_is_configurable():
    ranked = FakeRanked([])
    config = AggregationConfig(max_attempts=5, batch_delay_s=0.0)
    result = engine(config=config, ranked_sources=[ranked]).run(AggregationRequest(center=BOSTON))
    assert result.attempts == 5
    assert len(ranked.radii) == 5


# discovery

def test_discovery_only_caps_results_and_grows_faster():
    pool = [
        candidate(f"Spot {i}", source="discovery", tags=[], category_guess="EAT", provider_id=None)
        for i in range(12)
    ]
    result = engine(discovery=FakeDiscovery(pool, city="Boston, MA")).run(AggregationRequest(center=BOSTON))
    assert len(result.places) == 8
    assert result.city == "Boston, MA"

    empty = FakeDiscovery([])
    engine(discovery=empty).run(AggregationRequest(center=BOSTON, radius_km=4.8))
    assert empty.radii == pytest.approx([4.8, 9.6, 19.2])


def test_discovery_candidates_are_resolved_and_unfound_dropped():
    details_provider = MagicMock()
    details_provider.name = "google"

    def resolve_by_name(name, center, radius_m):
        if name == "Imaginary Bistro":
            return None
        return PlaceDetails(
            provider_id=f"g-{name}",
            name=name,
            address="1 Hanover St, Boston, MA",
            coordinates=north_of(BOSTON, 0.8),
            rating=4.6,
            review_count=800,
            types=["restaurant"],
        )

    details_provider.resolve_by_name.side_effect = resolve_by_name
    resolver = DetailsResolver(details_provider, sleep=lambda s: None)
    discovery = FakeDiscovery([
        Candidate(name="Mamma Maria", source="discovery", category_guess="EAT", vibe_text="Candlelit North End classic"),
        Candidate(name="Imaginary Bistro", source="discovery", category_guess="EAT"),
    ])

    result = engine(ranked_sources=[FakeRanked(restaurants(8))], discovery=discovery, details=resolver).run(
        AggregationRequest(center=BOSTON)
    )

    names = [p.name for p in result.places]
    assert "Mamma Maria" in names
    assert "Imaginary Bistro" not in names
    mamma = next(p for p in result.places if p.name == "Mamma Maria")
    assert mamma.address == "1 Hanover St, Boston, MA"
    assert mamma.description == "Candlelit North End classic"


# EXPLORE fallback

def test_explore_tops_up_from_community_poi():
    ranked = FakeRanked([candidate("Museum of Fine Arts", tags=["Art Museum"], rating=4.8, reviews=9000)])
    poi = FakePOI([
        Candidate(
            name=f"Lanes {i}", source="osm", provider_id=f"osm-node-{i}",
            address=f"{i} Bowling Way", coordinates=north_of(BOSTON, 1 + i),
            category_guess="EXPLORE", category_tags=["Bowling alley"],
        )
        for i in range(4)
    ])

    result = engine(ranked_sources=[ranked], poi_fallback=poi).run(
        AggregationRequest(center=BOSTON, categories=[PlaceCategory.EXPLORE])
    )

    assert poi.calls == 1
    assert result.met_minimum
    assert result.places[0].name == "Museum of Fine Arts"
    assert [p.name for p in result.places[1:]] == [f"Lanes {i}" for i in range(4)]
    assert all(p.rating == "New" for p in result.places[1:])


def test_poi_fallback_not_used_without_explore():
    poi = FakePOI([])
    engine(ranked_sources=[FakeRanked(restaurants(8))], poi_fallback=poi).run(AggregationRequest(center=BOSTON))
    assert poi.calls == 0


# ordering

def test_near_ties_keep_upstream_order_without_eat():
    bars = [
        candidate("Lower Bar", tags=["Cocktail Bar"], rating=4.5, reviews=100),
        candidate("Higher Bar", tags=["Cocktail Bar"], rating=4.7, reviews=120),
    ]
    config = AggregationConfig(min_results=2, batch_delay_s=0.0)

    drink_only = engine(config=config, ranked_sources=[FakeRanked(bars)]).run(
        AggregationRequest(center=BOSTON, categories=[PlaceCategory.DRINK], min_results=2)
    )
    assert [p.name for p in drink_only.places] == ["Lower Bar", "Higher Bar"]

    unfiltered = engine(config=config, ranked_sources=[FakeRanked(bars)]).run(
        AggregationRequest(center=BOSTON, min_results=2)
    )
    assert [p.name for p in unfiltered.places] == ["Higher Bar", "Lower Bar"]


def test_clear_winner_sorts_first_without_eat():
    bars = [
        candidate("Quiet Bar", tags=["Pub"], rating=3.9, reviews=20),
        candidate("Famous Bar", tags=["Pub"], rating=4.8, reviews=4000),
    ]
    result = engine(ranked_sources=[FakeRanked(bars)]).run(
        AggregationRequest(center=BOSTON, categories=[PlaceCategory.DRINK], min_results=2)
    )
    assert [p.name for p in result.places] == ["Famous Bar", "Quiet Bar"]



def test_small_steps_do_not_chain_into_one_tie():
    upstream = [
        SimpleNamespace(name="C", popularity=6.0),
        SimpleNamespace(name="B", popularity=6.6),
        SimpleNamespace(name="A", popularity=7.2),
        SimpleNamespace(name="Z", popularity=8.0),
    ]

    ordered = sort_by_popularity(upstream, [PlaceCategory.DRINK], 0.15)

    assert [p.name for p in ordered] == ["A", "Z", "C", "B"]
    for i, earlier in enumerate(ordered):
        for later in ordered[i + 1:]:
            assert (later.popularity - earlier.popularity) / later.popularity < 0.15


def test_sort_without_category_filter_is_plain_descending():
    upstream = [SimpleNamespace(name=n, popularity=p) for n, p in (("C", 6.0), ("B", 6.6), ("A", 7.2))]
    assert [p.name for p in sort_by_popularity(upstream, [], 0.15)] == ["A", "B", "C"]


# failures

def test_provider_failure_counts_as_zero_candidates():
    broken = FakeRanked(error=ProviderUnavailable("503", provider_name="foursquare"))
    discovery = FakeDiscovery(
        [candidate(f"Spot {i}", source="discovery", category_guess="EAT") for i in range(8)],
        city="Boston, MA",
    )
    result = engine(ranked_sources=[broken], discovery=discovery).run(AggregationRequest(center=BOSTON))
    assert result.met_minimum
    assert len(result.places) == 8


def test_all_providers_failing_returns_empty_result():
    broken = FakeRanked(error=ProviderUnavailable("timeout"))
    discovery = FakeDiscovery(error=ProviderUnavailable("timeout"))
    result = engine(ranked_sources=[broken], discovery=discovery).run(AggregationRequest(center=BOSTON))
    assert result.places == []
    assert result.city == UNKNOWN_CITY


def test_missing_credentials_aborts_the_run():
    ranked = FakeRanked(error=MissingCredentials("foursquare"))
    with pytest.raises(MissingCredentials):
        engine(ranked_sources=[ranked]).run(AggregationRequest(center=BOSTON))
    assert len(ranked.radii) == 1


def test_no_adapters_configured_is_missing_credentials():
    with pytest.raises(MissingCredentials):
        engine().run(AggregationRequest(center=BOSTON))


# wiring

def _settings(**overrides):
    values = dict(
        FOURSQUARE_API_KEY="", GOOGLE_PLACES_API_KEY="", GEMINI_API_KEY="", GEMINI_MODEL="gemini-test",
        DISCOVERY_ENABLED=True, EXCLUDE_CHAINS=True, COMMUNITY_POI_ENABLED=True, AGGREGATION_MAX_ATTEMPTS=3,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_build_engine_prefers_foursquare_and_google_details():
    eng = build_engine(_settings(FOURSQUARE_API_KEY="f", GOOGLE_PLACES_API_KEY="g", GEMINI_API_KEY="k"))
    assert [s.name for s in eng.ranked_sources] == ["foursquare"]
    assert eng.details.provider.name == "google"
    assert eng.discovery.name == "discovery"
    assert eng.poi_fallback.name == "osm"
    assert eng.result_cap == 18


def test_build_engine_discovery_only():
    eng = build_engine(_settings(GEMINI_API_KEY="k"))
    assert eng.discovery_only
    assert eng.poi_fallback is None
    assert eng.details is None
    assert eng.result_cap == 8


def test_build_engine_respects_discovery_switch():
    eng = build_engine(_settings(GOOGLE_PLACES_API_KEY="g", GEMINI_API_KEY="k", DISCOVERY_ENABLED=False))
    assert eng.discovery is None
    assert [s.name for s in eng.ranked_sources] == ["google"]
