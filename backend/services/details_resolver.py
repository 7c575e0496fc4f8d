"""
Resolve bare candidates into full details through a DetailsProvider, with the
place-details cache in front of every paid call.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence

from domain.models import Candidate, Coordinates, PlaceDetails
from services.errors import ProviderUnavailable
from services.providers import DetailsProvider
from services.search_cache_sqlite import PlaceDetailsCache

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_DELAY_S = 0.1


class DetailsResolver:
    def __init__(
        self,
        provider: DetailsProvider,
        cache: Optional[PlaceDetailsCache] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_s: float = DEFAULT_BATCH_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.cache = cache
        self.batch_size = max(1, batch_size)
        self.batch_delay_s = batch_delay_s
        self._sleep = sleep

    def resolve_by_id(self, provider_id: str) -> Optional[PlaceDetails]:
        if self.cache is not None:
            cached = self.cache.lookup(provider_id)
            if cached is not None:
                logger.debug("Place details cache hit for %s", provider_id)
                return cached
        details = self.provider.resolve_by_id(provider_id)
        if details is not None and self.cache is not None:
            self.cache.store(provider_id, details)
        return details

    def resolve_by_name(self, name: str, center: Coordinates, radius_m: int) -> Optional[PlaceDetails]:
        details = self.provider.resolve_by_name(name, center, radius_m)
        if details is not None and self.cache is not None:
            self.cache.store(details.provider_id, details)
        return details

    def resolve(self, candidate: Candidate, center: Coordinates, radius_m: int) -> Optional[Candidate]:
        """
        Candidate with details merged in, or None when the provider cannot find it.

        Candidates that already carry an address and coordinates are returned as-is.
        Candidates holding an id from this provider skip the name search.
        """
        if not candidate.needs_details:
            return candidate
        if candidate.provider_id and candidate.source == self.provider.name:
            details = self.resolve_by_id(candidate.provider_id)
        else:
            details = self.resolve_by_name(candidate.name, center, radius_m)
        if details is None:
            logger.info("Place not found: %s", candidate.name)
            return None
        return candidate.merged_with(details)

    def _resolve_or_keep(self, candidate: Candidate, center: Coordinates, radius_m: int) -> Optional[Candidate]:
        try:
            return self.resolve(candidate, center, radius_m)
        except ProviderUnavailable as exc:
            logger.warning("Details lookup failed for %s, keeping unresolved: %s", candidate.name, exc)
            return candidate

    def resolve_many(
        self, candidates: Sequence[Candidate], center: Coordinates, radius_m: int
    ) -> List[Optional[Candidate]]:
        """
        Resolve in batches of `batch_size`, pausing between batches.

        Output is aligned with input: None marks a candidate the provider could not
        find. Upstream failures keep the candidate unresolved. MissingCredentials
        propagates.
        """
        results: List[Optional[Candidate]] = list(candidates)
        pending = [i for i, c in enumerate(candidates) if c.needs_details]
        if not pending:
            return results

        batches = [pending[i:i + self.batch_size] for i in range(0, len(pending), self.batch_size)]
        with ThreadPoolExecutor(max_workers=self.batch_size) as pool:
            for n, batch in enumerate(batches):
                if n > 0 and self.batch_delay_s > 0:
                    self._sleep(self.batch_delay_s)
                futures = {i: pool.submit(self._resolve_or_keep, candidates[i], center, radius_m) for i in batch}
                for i, future in futures.items():
                    results[i] = future.result()
        logger.debug("Resolved %d candidates in %d batches", len(pending), len(batches))
        return results
