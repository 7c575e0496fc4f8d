"""
Lazily built service singletons for the routes. Tests swap them through
app.dependency_overrides.
"""
from functools import lru_cache
from typing import Dict, Optional

from db import SessionLocal
from services.photos import PhotoService
from services.recommendations import RecommendationService, build_service
from services.search_cache_sqlite import get_default_place_tips_cache
from services.tips import TipsService
from services.usage import UsageGovernor
from settings import settings


@lru_cache(maxsize=1)
def get_recommendation_service() -> RecommendationService:
    return build_service(settings, session_factory=SessionLocal)


@lru_cache(maxsize=1)
def get_usage_governor() -> UsageGovernor:
    return UsageGovernor(SessionLocal, limit=settings.FREE_SEARCHES_PER_MONTH)


def get_session_factory():
    return SessionLocal


@lru_cache(maxsize=1)
def get_tips_service() -> Optional[TipsService]:
    if not settings.GEMINI_API_KEY:
        return None
    from services.discovery_client import GeminiDiscoveryClient

    generator = GeminiDiscoveryClient(settings.GEMINI_API_KEY, model=settings.GEMINI_MODEL)
    return TipsService(generator, cache=get_default_place_tips_cache())


@lru_cache(maxsize=1)
def get_photo_services() -> Dict[str, PhotoService]:
    """Photo services keyed by provider name, one per configured provider."""
    from services.foursquare_client import FoursquareClient
    from services.google_places_client import GooglePlacesClient
    from services.wikipedia_client import WikipediaClient

    fallback = WikipediaClient() if settings.WIKIPEDIA_IMAGES_ENABLED else None
    services: Dict[str, PhotoService] = {}
    if settings.GOOGLE_PLACES_API_KEY:
        services["google"] = PhotoService(GooglePlacesClient(settings.GOOGLE_PLACES_API_KEY), fallback=fallback)
    if settings.FOURSQUARE_API_KEY:
        services["foursquare"] = PhotoService(FoursquareClient(settings.FOURSQUARE_API_KEY), fallback=fallback)
    return services
