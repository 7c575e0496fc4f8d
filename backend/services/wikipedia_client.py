"""
Wikipedia lead-image lookup, used as a photo fallback for landmarks and
attractions. Keyless: the ref is the place name.
"""
from __future__ import annotations

from typing import List

from domain.models import MAX_PLACE_IMAGES, PhotoRef
from services.http_client import get_json
from services.providers import PhotoProvider

WIKIPEDIA_API_URL = "https://en.wikipedia.org/w/api.php"
THUMBNAIL_WIDTH_PX = 800


class WikipediaClient(PhotoProvider):
    name = "wikipedia"

    def __init__(self, api_url: str = WIKIPEDIA_API_URL, thumb_size: int = THUMBNAIL_WIDTH_PX):
        super().__init__()
        self.api_url = api_url
        self.thumb_size = thumb_size

    def fetch_photos(self, ref: str, max_count: int = MAX_PLACE_IMAGES, timeout: float = 10.0) -> List[PhotoRef]:
        """The lead image of the best-matching article, if it has one."""
        if not ref or not ref.strip():
            return []
        params = {
            "action": "query",
            "format": "json",
            "generator": "search",
            "gsrnamespace": 0,
            "gsrlimit": 1,
            "gsrsearch": ref.strip(),
            "prop": "pageimages",
            "pithumbsize": self.thumb_size,
        }
        data = get_json(self.name, self.api_url, params=params, timeout=timeout)
        pages = ((data or {}).get("query") or {}).get("pages") or {}
        photos: List[PhotoRef] = []
        for page in pages.values():
            thumb = page.get("thumbnail") or {}
            if thumb.get("source"):
                photos.append(
                    PhotoRef(url=thumb["source"], width=int(thumb.get("width") or 0), height=int(thumb.get("height") or 0))
                )
        if photos:
            self.logger.debug("Found Wikipedia image for %s", ref)
        return photos[:max_count]
