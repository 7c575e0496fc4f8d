"""
Error taxonomy for the recommendation pipeline.

Only ProviderUnavailable is expected in normal operation; the aggregation
engine absorbs it and carries on with the remaining adapters.
"""
from typing import Any, Dict, Optional


class PlacesError(Exception):
    """Base exception for pipeline errors."""


class ProviderUnavailable(PlacesError):
    """An upstream call failed, timed out, or hit its quota."""

    def __init__(self, message: str, provider_name: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.provider_name = provider_name
        self.details = details or {}


class MissingCredentials(PlacesError):
    """A provider was invoked without its API key. Aborts the run."""

    def __init__(self, provider_name: str):
        super().__init__(f"{provider_name} API key is not configured")
        self.provider_name = provider_name


class QuotaExceeded(PlacesError):
    """The monthly free search quota is used up."""

    def __init__(self, search_count: int, limit: int):
        super().__init__(f"Monthly search limit reached ({search_count}/{limit})")
        self.search_count = search_count
        self.limit = limit


class CacheCorrupt(PlacesError):
    """A stored cache row could not be decoded."""
