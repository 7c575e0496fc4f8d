"""Lazy photo loading for places, with escalating timeouts per attempt."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from domain.models import MAX_PLACE_IMAGES, PhotoRef, Place, PlaceCategory
from services.errors import ProviderUnavailable
from services.providers import PhotoProvider
from services.retry import PHOTO_RETRY_POLICY, RetryPolicy, retry_with_backoff

logger = logging.getLogger(__name__)

MIN_PHOTO_ASPECT = 0.5
MAX_PHOTO_ASPECT = 2.5
FALLBACK_CATEGORIES = (PlaceCategory.EXPLORE,)


def select_photos(photos: Sequence[PhotoRef], max_count: int = MAX_PLACE_IMAGES) -> List[PhotoRef]:
    """
    Keep photos with aspect ratio in [0.5, 2.5], widest first.

    Photos with unknown dimensions are kept after the measured ones.
    """
    measured = [
        p for p in photos
        if p.aspect_ratio is not None and MIN_PHOTO_ASPECT <= p.aspect_ratio <= MAX_PHOTO_ASPECT
    ]
    measured.sort(key=lambda p: p.width, reverse=True)
    unmeasured = [p for p in photos if p.aspect_ratio is None and p.url]
    return (measured + unmeasured)[:max_count]


@dataclass
class PhotoFetchResult:
    urls: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PhotoService:
    """
    Photos from one provider, plus an optional keyless fallback whose lead
    image goes first for landmark-style places.
    """

    def __init__(
        self,
        provider: PhotoProvider,
        policy: RetryPolicy = PHOTO_RETRY_POLICY,
        sleep: Optional[Callable[[float], None]] = None,
        fallback: Optional[PhotoProvider] = None,
        fallback_categories: Sequence[PlaceCategory] = FALLBACK_CATEGORIES,
    ):
        self.provider = provider
        self.policy = policy
        self._sleep = sleep
        self.fallback = fallback
        self.fallback_categories = frozenset(fallback_categories)

    def _fetch_from(self, provider: PhotoProvider, ref: str, max_count: int) -> PhotoFetchResult:
        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        try:
            photos = retry_with_backoff(
                lambda timeout: provider.fetch_photos(ref, max_count=max_count, timeout=timeout),
                self.policy,
                **kwargs,
            )
        except ProviderUnavailable as exc:
            logger.warning("Photo fetch from %s failed for %s: %s", provider.name, ref, exc)
            return PhotoFetchResult(error=str(exc))
        return PhotoFetchResult(urls=[p.url for p in select_photos(photos, max_count)])

    def fetch(self, ref: str, max_count: int = MAX_PLACE_IMAGES) -> PhotoFetchResult:
        """Photo URLs for a provider place id, or an error once the retry policy is exhausted."""
        return self._fetch_from(self.provider, ref, max_count)

    def fetch_fallback(self, place: Place, max_count: int = MAX_PLACE_IMAGES) -> List[str]:
        """Fallback image URLs looked up by place name; empty when not applicable or on failure."""
        if self.fallback is None or place.category not in self.fallback_categories or not place.name:
            return []
        return self._fetch_from(self.fallback, place.name, max_count).urls

    def load_into(self, place: Place, max_count: int = MAX_PLACE_IMAGES) -> PhotoFetchResult:
        """
        Fill place.images (capped): fallback images first, then the provider's.
        Errors only when neither source produced anything.
        """
        fallback_urls = self.fetch_fallback(place, max_count)
        if fallback_urls:
            merged = fallback_urls + [u for u in place.images if u not in fallback_urls]
            place.images = []
            place.add_images(merged)

        if not place.provider_id or place.provider != self.provider.name:
            if fallback_urls:
                return PhotoFetchResult(urls=fallback_urls)
            return PhotoFetchResult(error="no photo reference for this place")

        result = self.fetch(place.provider_id, max_count)
        if result.ok:
            place.add_images(result.urls)
            return PhotoFetchResult(urls=fallback_urls + [u for u in result.urls if u not in fallback_urls])
        if fallback_urls:
            return PhotoFetchResult(urls=fallback_urls)
        return result
