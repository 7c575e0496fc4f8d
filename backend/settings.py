import os

# Basic settings helper to read environment configuration.


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_int(val: str | None, default: int) -> int:
    if val is None or not val.strip():
        return default
    try:
        return int(val)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        # Provider credentials. An adapter is only wired in when its key is present.
        self.FOURSQUARE_API_KEY: str = os.getenv("FOURSQUARE_API_KEY", "")
        self.GOOGLE_PLACES_API_KEY: str = os.getenv("GOOGLE_PLACES_API_KEY", "")
        self.GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

        # Pipeline switches
        self.DISCOVERY_ENABLED: bool = _as_bool(os.getenv("DISCOVERY_ENABLED"), True)
        self.EXCLUDE_CHAINS: bool = _as_bool(os.getenv("EXCLUDE_CHAINS"), True)
        self.COMMUNITY_POI_ENABLED: bool = _as_bool(os.getenv("COMMUNITY_POI_ENABLED"), True)
        self.AGGREGATION_MAX_ATTEMPTS: int = _as_int(os.getenv("AGGREGATION_MAX_ATTEMPTS"), 3)
        self.WIKIPEDIA_IMAGES_ENABLED: bool = _as_bool(os.getenv("WIKIPEDIA_IMAGES_ENABLED"), True)

        # Persistence
        self.SEARCH_CACHE_PATH: str | None = os.getenv("SEARCH_CACHE_PATH")
        self.DATABASE_URL: str | None = os.getenv("DATABASE_URL")

        # Usage governor
        self.FREE_SEARCHES_PER_MONTH: int = _as_int(os.getenv("FREE_SEARCHES_PER_MONTH"), 10)
        self.DEFAULT_DEVICE_ID: str = os.getenv("DEFAULT_DEVICE_ID", "local-device")


settings = Settings()
