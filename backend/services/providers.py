"""
Provider adapter interfaces.

Each concrete client parses its own response shape into Candidate /
PlaceDetails / PhotoRef before anything reaches the aggregation engine.
All methods raise ProviderUnavailable on upstream failure and
MissingCredentials when invoked without an API key.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from domain.models import Candidate, Coordinates, PhotoRef, PlaceCategory, PlaceDetails


class Provider(ABC):
    """Base provider: a name for logging and error attribution."""

    name: str = "provider"

    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)


class DiscoveryAdapter(Provider):
    """LLM + map grounding. Names are not guaranteed to exist or be in range."""

    @abstractmethod
    def discover(
        self,
        center: Coordinates,
        radius_km: float,
        query: Optional[str] = None,
        category_hints: Optional[Sequence[PlaceCategory]] = None,
        count: int = 8,
    ) -> List[Candidate]:
        ...

    def discover_with_city(
        self,
        center: Coordinates,
        radius_km: float,
        query: Optional[str] = None,
        category_hints: Optional[Sequence[PlaceCategory]] = None,
        count: int = 8,
    ) -> Tuple[Optional[str], List[Candidate]]:
        """Candidates plus the area name when the adapter can tell. Defaults to no city."""
        return None, self.discover(center, radius_km, query=query, category_hints=category_hints, count=count)


class RankedSearchAdapter(Provider):
    """Keyword / category search over a commercial places index."""

    @abstractmethod
    def search(
        self,
        center: Coordinates,
        radius_km: float,
        categories: Optional[Sequence[PlaceCategory]] = None,
        query: Optional[str] = None,
        limit: int = 20,
    ) -> List[Candidate]:
        ...


class CommunityPOIAdapter(Provider):
    """Tag-based search over community map data. No ratings."""

    @abstractmethod
    def search(
        self,
        center: Coordinates,
        radius_m: int,
        tag_filters: Optional[dict] = None,
    ) -> List[Candidate]:
        ...


class DetailsProvider(Provider):
    """Resolves a bare candidate into full details."""

    @abstractmethod
    def resolve_by_name(self, name: str, center: Coordinates, radius_m: int) -> Optional[PlaceDetails]:
        """Name search near `center`, then details for the best match. None when not found."""
        ...

    @abstractmethod
    def resolve_by_id(self, provider_id: str) -> Optional[PlaceDetails]:
        ...


class PhotoProvider(Provider):
    @abstractmethod
    def fetch_photos(self, ref: str, max_count: int = 8, timeout: float = 10.0) -> List[PhotoRef]:
        """Photos for a provider id, filtered to sane aspect ratios, largest first."""
        ...
