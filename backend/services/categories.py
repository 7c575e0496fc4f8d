"""
Map provider category tags onto the app taxonomy (EAT / DRINK / EXPLORE / UNKNOWN).

Lookup order for `classify`:
1. exact provider category id (static table)
2. non-hospitality denylist -> UNKNOWN, unless the tags also indicate food service
3. drink keywords -> DRINK
4. explore keywords (sights and activity venues) -> EXPLORE
5. food-service keywords -> EAT
6. otherwise UNKNOWN, which is dropped from final results
"""
from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Sequence

from domain.models import Candidate, PlaceCategory

# Foursquare category ids (24-char hex, Places API) grouped by app category.
FOURSQUARE_CATEGORY_IDS: Dict[PlaceCategory, List[str]] = {
    PlaceCategory.EAT: [
        "4d4b7105d754a06374d81259",  # Food (parent)
        "4bf58dd8d48988d1c4941735",  # Restaurant
        "4bf58dd8d48988d16c941735",  # Burger Joint
        "4bf58dd8d48988d1ca941735",  # Pizza Place
        "4bf58dd8d48988d110941735",  # Italian Restaurant
        "4bf58dd8d48988d16e941735",  # Fast Food
        "4bf58dd8d48988d16a941735",  # Bakery
        "4bf58dd8d48988d143941735",  # Breakfast Spot
    ],
    PlaceCategory.DRINK: [
        "4d4b7105d754a06376d81259",  # Nightlife (parent)
        "4bf58dd8d48988d116941735",  # Bar
        "4bf58dd8d48988d11b941735",  # Pub
        "4bf58dd8d48988d117941735",  # Beer Garden
        "4bf58dd8d48988d11e941735",  # Cocktail Bar
        "4bf58dd8d48988d119941735",  # Wine Bar
        "4bf58dd8d48988d1e0931735",  # Coffee Shop
        "4bf58dd8d48988d155941735",  # Brewery
    ],
    PlaceCategory.EXPLORE: [
        "4bf58dd8d48988d181941735",  # Museum
        "4bf58dd8d48988d18f941735",  # Art Museum
        "4bf58dd8d48988d190941735",  # History Museum
        "4bf58dd8d48988d191941735",  # Science Museum
        "4bf58dd8d48988d1e2931735",  # Art Gallery
        "4deefb944765f83613cdba6e",  # Historic Site
        "4bf58dd8d48988d12d941735",  # Monument / Landmark
        "4bf58dd8d48988d163941735",  # Park
        "4bf58dd8d48988d165941735",  # Scenic Lookout
        "4bf58dd8d48988d17b941735",  # Zoo
        "52e81612bcbc57f1066b7a22",  # Botanical Garden
        "52e81612bcbc57f1066b7a14",  # Palace
        "4d4b7104d754a06370d81259",  # Arts & Entertainment (parent)
        "4bf58dd8d48988d17f941735",  # Movie Theater
        "4bf58dd8d48988d1ac941735",  # Concert Hall
        "4bf58dd8d48988d182941735",  # Theme Park
        "4bf58dd8d48988d1e1931735",  # Arcade
        "4bf58dd8d48988d184941735",  # Bowling Alley
        "52e81612bcbc57f1066b7a21",  # Spa
        "52e81612bcbc57f1066b7a13",  # Trampoline Park
        "4bf58dd8d48988d1e3931735",  # Pool Hall
        "58daa1558bbb0b01f18ec1b1",  # Go Kart Track
        "52e81612bcbc57f1066b79eb",  # Climbing Gym
        "4bf58dd8d48988d1e9931735",  # Rock Climbing Spot
        "4bf58dd8d48988d168941735",  # Golf Course
        "4bf58dd8d48988d167941735",  # Mini Golf
        "5bae9231bedf3950379f89d4",  # Golf Driving Range
        "4bf58dd8d48988d1e4931735",  # Batting Cage
        "4bf58dd8d48988d1e5931735",  # Shooting Range
        "52e81612bcbc57f1066b7a2e",  # Laser Tag
        "56aa371be4b08b9a8d573541",  # Escape Room
        "4bf58dd8d48988d15c941735",  # Ice Skating Rink
        "4bf58dd8d48988d15d941735",  # Roller Rink
        "5032833091d4c4b30a586d60",  # Recreation Center
        "4bf58dd8d48988d159941735",  # Hiking Trail
        "52e81612bcbc57f1066b7a0d",  # Trail
        "4bf58dd8d48988d1f0931735",  # Internet Cafe
        "52e81612bcbc57f1066b7a26",  # Axe Throwing
        "5744ccdfe4b0c0459246b4c3",  # VR Cafe
        "4bf58dd8d48988d1e8931735",  # Paintball Field
        "4f4528bc4b90abdf24c9de85",  # Badminton Court
        "52e81612bcbc57f1066b7a27",  # Table Tennis
    ],
}

_CATEGORY_BY_ID: Dict[str, PlaceCategory] = {
    category_id: category
    for category, ids in FOURSQUARE_CATEGORY_IDS.items()
    for category_id in ids
}

NON_HOSPITALITY_KEYWORDS = [
    "store", "shop", "retail", "clothing", "apparel", "furniture", "hardware",
    "automotive", "sporting goods", "department", "discount", "grocery", "supermarket",
    "pharmacy", "drugstore", "bank", "atm", "gas station", "medical", "hospital",
    "clinic", "butcher", "meat market", "tuxedo", "formal wear", "wholesale",
    "dentist", "laundry", "car wash", "insurance", "real estate",
]

FOOD_SERVICE_KEYWORDS = [
    "food", "farmers", "restaurant", "eatery", "dining", "kitchen", "diner", "bistro",
    "bakery", "pizza", "burger", "steakhouse", "sushi", "taco", "noodle", "ramen",
    "bbq", "barbecue", "deli", "sandwich", "breakfast", "brunch", "meal_takeaway",
    "meal_delivery", "coffee", "cafe", "café", "tea room", "ice cream", "dessert", "donut",
    "bagel", "creamery",
]

DRINK_KEYWORDS = [
    "bar", "pub", "brewery", "wine", "cocktail", "nightclub", "night_club",
    "coffee", "cafe", "café", "taproom", "lounge", "gastropub",
]

EXPLORE_KEYWORDS = [
    # sights
    "museum", "monument", "landmark", "historic", "gallery", "galleries", "park", "garden", "zoo",
    "scenic", "tourist_attraction", "art_gallery", "aquarium",
    # activity venues
    "trampoline", "archery", "axe throwing", "bowling", "bowling_alley", "arcade",
    "escape room", "laser tag", "go kart", "go-kart", "climbing", "golf", "mini golf",
    "putt", "driving range", "simulator", "theater", "theatre", "cinema", "movie_theater",
    "skating", "spa", "pool hall", "billiard", "pool table", "game room", "gaming",
    "recreation", "fun center", "hiking", "trail", "internet cafe", "cyber cafe",
    "vr", "virtual reality", "ping pong", "table tennis", "badminton", "paintball",
    "rock wall", "bouldering", "amusement_park", "amusement",
]


def _keyword_pattern(keywords: Sequence[str]) -> re.Pattern:
    # Whole-word match with an optional plural, so "bar" does not hit "barbershop"
    # and "spa" does not hit "spanish".
    alternatives = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"(?<![a-z])(?:{alternatives})(?:s|es)?(?![a-z])")


_DRINK_RE = _keyword_pattern(DRINK_KEYWORDS)
_EXPLORE_RE = _keyword_pattern(EXPLORE_KEYWORDS)
_FOOD_RE = _keyword_pattern(FOOD_SERVICE_KEYWORDS)


def _tag_text(raw_tags: Iterable[str]) -> str:
    return " | ".join(t.strip().lower() for t in raw_tags if t and t.strip())


def is_non_hospitality(raw_tags: Iterable[str]) -> bool:
    """True for retail / medical / financial venues that are not food hybrids."""
    text = _tag_text(raw_tags)
    if not text or _FOOD_RE.search(text):
        return False
    return any(keyword in text for keyword in NON_HOSPITALITY_KEYWORDS)


def classify(raw_tags: Sequence[str], raw_category_id: Optional[str] = None) -> PlaceCategory:
    if raw_category_id and raw_category_id in _CATEGORY_BY_ID:
        return _CATEGORY_BY_ID[raw_category_id]

    text = _tag_text(raw_tags)
    if not text:
        return PlaceCategory.UNKNOWN
    if is_non_hospitality(raw_tags):
        return PlaceCategory.UNKNOWN
    if _DRINK_RE.search(text):
        return PlaceCategory.DRINK
    if _EXPLORE_RE.search(text):
        return PlaceCategory.EXPLORE
    if _FOOD_RE.search(text):
        return PlaceCategory.EAT
    return PlaceCategory.UNKNOWN


def classify_google_types(types: Sequence[str]) -> PlaceCategory:
    """
    Google type lists carry several tags at once ("restaurant", "bar", "food").
    A place that serves food is EAT even if it also has a bar.
    """
    lowered = [t.lower() for t in types or []]
    if not lowered:
        return PlaceCategory.UNKNOWN
    if any(t in ("restaurant", "cafe", "bakery", "meal_takeaway", "meal_delivery", "food") for t in lowered):
        return PlaceCategory.EAT
    if any(t in ("bar", "night_club", "brewery", "wine_bar", "pub") for t in lowered):
        return PlaceCategory.DRINK
    return classify(lowered)


def category_from_guess(guess: Optional[str]) -> PlaceCategory:
    """Map a discovery model's free-text category guess, including legacy DO / SIGHT labels."""
    text = (guess or "").strip().upper()
    if not text:
        return PlaceCategory.UNKNOWN
    if "EAT" in text:
        return PlaceCategory.EAT
    if "DRINK" in text:
        return PlaceCategory.DRINK
    if "EXPLORE" in text or "SIGHT" in text or text.startswith("DO"):
        return PlaceCategory.EXPLORE
    return classify([text.lower()])


_QUERY_FOOD_RE = re.compile(
    r"\b(pizza|ramen|sushi|burger|steak|pasta|tacos|sandwich|noodles|curry|bbq|seafood|chicken|"
    r"pork|beef|salad|soup|breakfast|brunch|lunch|dinner|eat|food|restaurants?|dining|cuisine)\b",
    re.IGNORECASE,
)
_QUERY_DRINK_RE = re.compile(
    r"\b(drinks?|bars?|cocktails?|brewery|breweries|coffee|cafe|beer|wine|tea|juice)\b", re.IGNORECASE
)
_QUERY_EXPLORE_RE = re.compile(
    r"\b(activities|things to do|entertainment|sports|spa|parks?|sights?|see|views?|landmarks?|"
    r"attractions?|museums?|monuments?|statues?|architecture)\b",
    re.IGNORECASE,
)


def categories_for_query(query: Optional[str]) -> List[PlaceCategory]:
    """Infer the single category a free-text query is about, if any."""
    if not query:
        return []
    if _QUERY_FOOD_RE.search(query):
        return [PlaceCategory.EAT]
    if _QUERY_DRINK_RE.search(query):
        return [PlaceCategory.DRINK]
    if _QUERY_EXPLORE_RE.search(query):
        return [PlaceCategory.EXPLORE]
    return []


def foursquare_category_ids(categories: Optional[Sequence[PlaceCategory]]) -> List[str]:
    """Provider category filter; all hospitality categories when none are requested."""
    wanted = list(categories) if categories else [PlaceCategory.EAT, PlaceCategory.DRINK, PlaceCategory.EXPLORE]
    ids: List[str] = []
    for category in wanted:
        ids.extend(FOURSQUARE_CATEGORY_IDS.get(category, []))
    return ids


def classify_candidate(candidate: Candidate) -> PlaceCategory:
    """
    Category for a candidate from any source.

    An explicit guess (discovery model, community POI) wins unless the tags mark
    the venue as non-hospitality; otherwise the tags and provider id decide.
    """
    tags = candidate.category_tags
    if tags and is_non_hospitality(tags):
        return PlaceCategory.UNKNOWN
    if candidate.category_guess:
        guessed = category_from_guess(candidate.category_guess)
        if guessed != PlaceCategory.UNKNOWN:
            return guessed
    return classify(tags, candidate.category_id)
