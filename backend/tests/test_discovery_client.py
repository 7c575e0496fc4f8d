from unittest.mock import patch

import pytest

from domain.models import Coordinates, PlaceCategory, ReviewType
from services.discovery_client import (
    GeminiDiscoveryClient,
    build_prompt,
    parse_discovery_text,
    parse_tips,
)
from services.errors import MissingCredentials

BOSTON = Coordinates(42.3601, -71.0589)

MODEL_TEXT = """City: North End, Boston
1. **Mamma Maria** | EAT | Candlelit townhouse Italian | 4.7 | Romantic | Osso buco | 3 North Square, Boston, MA | (617) 523-0077 | Dana: Best date night ### Perfect pasta ### Boston Globe: A classic ### Still great | https://img.example/mm.jpg
Bell in Hand Tavern | DRINK | Oldest tavern in America | 8.9 | History | Draft beer | 45 Union St | | |
Too | Few | Fields
"""


def test_parse_discovery_text():
    chunks = [{"maps": {"title": "Mamma Maria", "uri": "https://maps.google.com/?cid=42"}}]
    city, candidates = parse_discovery_text(MODEL_TEXT, chunks)

    assert city == "North End, Boston"
    assert [c.name for c in candidates] == ["Mamma Maria", "Bell in Hand Tavern"]

    mamma, bell = candidates
    assert mamma.source == "discovery"
    assert mamma.category_guess == "EAT"
    assert mamma.rating == 4.7
    assert mamma.address == "3 North Square, Boston, MA"
    assert mamma.map_link == "https://maps.google.com/?cid=42"
    assert mamma.photos[0].url == "https://img.example/mm.jpg"
    assert [r.type for r in mamma.reviews] == [ReviewType.USER, ReviewType.USER, ReviewType.CRITIC, ReviewType.CRITIC]
    assert mamma.reviews[0].author == "Dana"
    assert mamma.reviews[1].author == "Local Guide"
    assert mamma.reviews[2].author == "Boston Globe"

    assert bell.rating is None  # out-of-range ratings are dropped
    assert bell.phone is None
    assert bell.needs_details


def test_parse_discovery_text_without_city():
    city, candidates = parse_discovery_text("")
    assert city is None
    assert candidates == []


def test_build_prompt_single_category_guidance():
    prompt = build_prompt(BOSTON, 4.8, None, [PlaceCategory.DRINK], 8)
    assert "DRINK category only" in prompt
    assert "4.8km" in prompt
    assert "exactly 8" in prompt


def test_build_prompt_mix_without_query():
    assert "DIVERSE mix" in build_prompt(BOSTON, 4.8, None, None, 8)
    assert "DIVERSE mix" not in build_prompt(BOSTON, 4.8, "ramen", None, 8)


def test_parse_tips():
    text = "- Arrive before 5pm\n2. Cash only\n\n* Ask for the off-menu cannoli\n"
    assert parse_tips(text) == ["Arrive before 5pm", "Cash only", "Ask for the off-menu cannoli"]


@patch("services.discovery_client.post_json")
def test_discover_with_city_grounds_on_location(mock_post):
    mock_post.return_value = {
        "candidates": [
            {
                "content": {"parts": [{"text": MODEL_TEXT}]},
                "groundingMetadata": {"groundingChunks": []},
            }
        ]
    }
    client = GeminiDiscoveryClient("gem-key", model="gemini-test")

    city, candidates = client.discover_with_city(BOSTON, 4.8, query="italian")

    assert city == "North End, Boston"
    assert len(candidates) == 2
    args, kwargs = mock_post.call_args
    assert args[1].endswith("/models/gemini-test:generateContent")
    assert kwargs["params"] == {"key": "gem-key"}
    assert kwargs["json_body"]["toolConfig"]["retrievalConfig"]["latLng"]["latitude"] == 42.3601


@patch("services.discovery_client.post_json")
def test_generate_tips(mock_post):
    mock_post.return_value = {"candidates": [{"content": {"parts": [{"text": "Go early\nBring cash"}]}}]}
    tips = GeminiDiscoveryClient("k").generate_tips("Regina Pizzeria", category="EAT")
    assert tips == ["Go early", "Bring cash"]
    assert "tools" not in mock_post.call_args.kwargs["json_body"]


def test_missing_key_raises():
    with pytest.raises(MissingCredentials):
        GeminiDiscoveryClient("").discover(BOSTON, 4.8)
