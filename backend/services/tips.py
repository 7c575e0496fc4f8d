"""On-demand visitor tips, cached per place."""
from __future__ import annotations

import logging
from typing import List, Optional

from domain.models import Place
from services.errors import ProviderUnavailable
from services.search_cache_sqlite import PlaceTipsCache

logger = logging.getLogger(__name__)


def tips_key(place: Place) -> str:
    if place.provider and place.provider_id:
        return f"{place.provider}:{place.provider_id}"
    return f"name:{place.normalized_name}|{(place.address or '').strip().lower()}"


class TipsService:
    def __init__(self, generator, cache: Optional[PlaceTipsCache] = None):
        # generator: anything with generate_tips(name, category=None, address=None)
        self.generator = generator
        self.cache = cache

    def tips_for(self, place: Place) -> List[str]:
        """Cached tips, or freshly generated ones. Upstream failures give an empty list and are not cached."""
        key = tips_key(place)
        if self.cache is not None:
            cached = self.cache.lookup(key)
            if cached is not None:
                return cached
        try:
            tips = self.generator.generate_tips(place.name, category=place.category.value, address=place.address)
        except ProviderUnavailable as exc:
            logger.warning("Tips generation failed for %s: %s", place.name, exc)
            return []
        if tips and self.cache is not None:
            self.cache.store(key, tips)
        return tips

    def load_into(self, place: Place) -> List[str]:
        tips = self.tips_for(place)
        place.set_tips(tips)
        return place.tips
