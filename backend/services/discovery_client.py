"""
LLM place discovery through the Gemini generateContent REST endpoint, grounded
on Google Maps.

The model answers in a line format:

    City: Boston
    Name | Category | Vibe | Rating | Reason | Signature | Address | Phone | Reviews | ImageURL

Nothing it returns is trusted: every candidate still goes through detail
resolution and the engine's filters.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from domain.models import Candidate, Coordinates, PhotoRef, PlaceCategory, Review, ReviewType
from services.errors import MissingCredentials
from services.geo_math import km_to_miles
from services.http_client import post_json
from services.providers import DiscoveryAdapter

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
UNKNOWN_CITY = "Unknown Location"

_CATEGORY_GUIDANCE = {
    PlaceCategory.EAT: "ALL results MUST be EAT category only - restaurants, cafes and dining establishments.",
    PlaceCategory.DRINK: "ALL results MUST be DRINK category only - bars, breweries, coffee shops.",
    PlaceCategory.EXPLORE: "ALL results MUST be EXPLORE category only - landmarks, museums, activities and entertainment.",
}

_NUMBERING_RE = re.compile(r"^\d+\.\s*")
_MARKDOWN_RE = re.compile(r"^[*_]+|[*_]+$")
_RATING_RE = re.compile(r"\d+(?:\.\d+)?")
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


def build_prompt(
    center: Coordinates,
    radius_km: float,
    query: Optional[str],
    category_hints: Optional[Sequence[PlaceCategory]],
    count: int,
) -> str:
    radius_miles = km_to_miles(radius_km)
    lines = [f"I am currently at latitude: {center.latitude}, longitude: {center.longitude}."]
    if query:
        lines.append(f'Focus on places related to "{query}". ALL results MUST be directly relevant to this query.')
    hints = [c for c in category_hints or [] if c in _CATEGORY_GUIDANCE]
    if len(hints) == 1:
        lines.append(_CATEGORY_GUIDANCE[hints[0]])
    elif not query:
        lines.append("Provide a DIVERSE mix: approximately 3 EAT, 2 DRINK and 3 EXPLORE.")
    lines += [
        "Task 1: Identify the specific City or Neighborhood name I am in.",
        f"Task 2: Find exactly {count} popular or highly-rated places within a STRICT "
        f"{radius_km:.1f}km ({radius_miles:.1f} miles) radius.",
        "Only include real, currently operating places with a street address. Do not invent places.",
        "Format the output strictly as follows (one line per place, no numbering or markdown):",
        "City: [City Name]",
        "[Name] | [Category: EAT, DRINK or EXPLORE] | [Vibe] | [Rating] | [Reason] | [Signature Items] | "
        "[Address] | [Phone] | [Review 1] ### [Review 2] ### [Critic Review 1] ### [Critic Review 2] | [ImageURL]",
    ]
    return "\n".join(lines)


def _clean_name(raw: str) -> str:
    name = _NUMBERING_RE.sub("", raw.strip())
    return _MARKDOWN_RE.sub("", name).strip()


def _parse_reviews(raw: str) -> List[Review]:
    reviews = []
    for i, part in enumerate(p.strip() for p in raw.split("###")):
        if not part:
            continue
        # first two are local voices, the rest critics
        review_type = ReviewType.USER if i < 2 else ReviewType.CRITIC
        default_author = "Local Guide" if i < 2 else "Travel Magazine"
        author, sep, text = part.partition(":")
        if sep and author.strip() and len(author) < 60:
            reviews.append(Review(author=author.strip(), text=text.strip().strip('"'), type=review_type))
        else:
            reviews.append(Review(author=default_author, text=part.strip('"'), type=review_type))
    return reviews


def _grounded_link(name: str, chunks: Sequence[Dict[str, Any]]) -> Optional[str]:
    for chunk in chunks:
        for key in ("maps", "web"):
            source = chunk.get(key) or {}
            if name in (source.get("title") or "") and source.get("uri"):
                return source["uri"]
    return None


def parse_discovery_text(
    text: str, grounding_chunks: Sequence[Dict[str, Any]] = ()
) -> Tuple[Optional[str], List[Candidate]]:
    """Parse the model's line format. Lines with fewer than five fields are ignored."""
    city: Optional[str] = None
    candidates: List[Candidate] = []
    for line in (l.strip() for l in (text or "").splitlines()):
        if not line:
            continue
        if line.startswith("City:"):
            city = line[len("City:"):].strip() or None
            continue
        parts = [p.strip() for p in line.split("|")]
        if len(parts) < 5:
            continue
        name = _clean_name(parts[0])
        if not name:
            continue

        def field_at(i: int) -> str:
            return parts[i] if len(parts) > i else ""

        rating_match = _RATING_RE.search(field_at(3))
        rating = float(rating_match.group()) if rating_match else None
        image = field_at(9)
        candidates.append(
            Candidate(
                name=name,
                source="discovery",
                address=field_at(6) or None,
                rating=rating if rating is not None and rating <= 5 else None,
                category_guess=field_at(1).upper() or None,
                vibe_text=field_at(2) or None,
                phone=field_at(7) or None,
                map_link=_grounded_link(name, grounding_chunks),
                reviews=_parse_reviews(field_at(8)),
                photos=[PhotoRef(url=image)] if image.startswith("http") else [],
            )
        )
    return city, candidates


def parse_tips(text: str, max_tips: int = 5) -> List[str]:
    tips = []
    for line in (text or "").splitlines():
        tip = _BULLET_RE.sub("", line).strip().strip("*").strip()
        if tip:
            tips.append(tip)
    return tips[:max_tips]


def _response_text(data: Dict[str, Any]) -> Tuple[str, List[Dict[str, Any]]]:
    candidates = (data or {}).get("candidates") or []
    if not candidates:
        return "", []
    first = candidates[0]
    parts = (first.get("content") or {}).get("parts") or []
    text = "".join(p.get("text", "") for p in parts)
    chunks = (first.get("groundingMetadata") or {}).get("groundingChunks") or []
    return text, chunks


class GeminiDiscoveryClient(DiscoveryAdapter):
    name = "discovery"

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash", base_url: str = GEMINI_API_BASE, timeout: float = 30.0):
        super().__init__()
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _generate(self, prompt: str, center: Optional[Coordinates] = None) -> Tuple[str, List[Dict[str, Any]]]:
        if not self.api_key:
            raise MissingCredentials(self.name)
        body: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if center is not None:
            body["tools"] = [{"googleMaps": {}}]
            body["toolConfig"] = {
                "retrievalConfig": {"latLng": {"latitude": center.latitude, "longitude": center.longitude}}
            }
        data = post_json(
            self.name,
            f"{self.base_url}/models/{self.model}:generateContent",
            params={"key": self.api_key},
            json_body=body,
            timeout=self.timeout,
        )
        return _response_text(data)

    def discover_with_city(
        self,
        center: Coordinates,
        radius_km: float,
        query: Optional[str] = None,
        category_hints: Optional[Sequence[PlaceCategory]] = None,
        count: int = 8,
    ) -> Tuple[Optional[str], List[Candidate]]:
        prompt = build_prompt(center, radius_km, query, category_hints, count)
        text, chunks = self._generate(prompt, center)
        city, candidates = parse_discovery_text(text, chunks)
        self.logger.info("Discovery suggested %d places (city=%s)", len(candidates), city or UNKNOWN_CITY)
        return city, candidates

    def discover(
        self,
        center: Coordinates,
        radius_km: float,
        query: Optional[str] = None,
        category_hints: Optional[Sequence[PlaceCategory]] = None,
        count: int = 8,
    ) -> List[Candidate]:
        return self.discover_with_city(center, radius_km, query, category_hints, count)[1]

    def generate_tips(self, name: str, category: Optional[str] = None, address: Optional[str] = None) -> List[str]:
        """Three to five short practical tips for a visitor, one per line."""
        where = f" at {address}" if address else ""
        kind = f" ({category})" if category else ""
        prompt = (
            f"Give 3 to 5 short, practical 'know before you go' tips for visiting {name}{kind}{where}. "
            "Cover things like best times to visit, reservations, parking or what to order. "
            "One tip per line, no numbering, no markdown, each under 20 words."
        )
        text, _ = self._generate(prompt)
        return parse_tips(text)
