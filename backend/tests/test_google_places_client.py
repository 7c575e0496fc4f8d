from unittest.mock import patch

import pytest

from domain.models import BusinessStatus, Coordinates, PlaceCategory
from services.errors import MissingCredentials
from services.google_places_client import GooglePlacesClient, category_query, parse_search_place

BOSTON = Coordinates(42.3601, -71.0589)


def _place(pid="ChIJ1", name="Giacomo's", rating=4.6, types=("restaurant", "bar", "food"), status="OPERATIONAL"):
    return {
        "id": pid,
        "displayName": {"text": name},
        "formattedAddress": "355 Hanover St, Boston, MA",
        "location": {"latitude": 42.3646, "longitude": -71.0542},
        "rating": rating,
        "userRatingCount": 1500,
        "types": list(types),
        "businessStatus": status,
        "currentOpeningHours": {"openNow": False},
        "googleMapsUri": "https://maps.google.com/?cid=1",
    }


def test_parse_search_place_uses_type_category():
    c = parse_search_place(_place())
    assert c.name == "Giacomo's"
    assert c.category_guess == PlaceCategory.EAT.value
    assert c.business_status == BusinessStatus.OPERATIONAL
    assert c.open_now is False
    assert c.verified


def test_category_query():
    assert category_query(None, "tacos") == "tacos"
    assert category_query([PlaceCategory.DRINK]) == "best bars cocktail lounges near me"
    assert category_query([]) == "best restaurants near me"


@patch("services.google_places_client.post_json")
def test_search_filters_low_ratings_and_caps_bias(mock_post):
    mock_post.return_value = {"places": [_place(), _place(pid="ChIJ2", name="Meh Diner", rating=3.1)]}
    client = GooglePlacesClient("g-key")

    results = client.search(BOSTON, 80.0, categories=[PlaceCategory.EAT])

    assert [c.name for c in results] == ["Giacomo's"]
    body = mock_post.call_args.kwargs["json_body"]
    assert body["rankPreference"] == "DISTANCE"
    assert body["locationBias"]["circle"]["radius"] == 50000.0
    assert mock_post.call_args.kwargs["headers"]["X-Goog-Api-Key"] == "g-key"


@patch("services.google_places_client.get_json")
@patch("services.google_places_client.post_json")
def test_resolve_by_name_goes_through_place_id(mock_post, mock_get):
    mock_post.return_value = {"places": [{"id": "ChIJ1"}]}
    mock_get.return_value = dict(
        _place(),
        nationalPhoneNumber="(617) 523-9026",
        photos=[{"name": "places/ChIJ1/photos/p1", "widthPx": 1200, "heightPx": 900}],
        reviews=[{"authorAttribution": {"displayName": "Sam"}, "text": {"text": "Worth the line"}}],
    )
    client = GooglePlacesClient("g-key")

    details = client.resolve_by_name("Giacomo's", BOSTON, 7200)

    assert details.provider_id == "ChIJ1"
    assert details.phone == "(617) 523-9026"
    assert details.photos[0].url.startswith("https://places.googleapis.com/v1/places/ChIJ1/photos/p1/media")
    assert details.reviews[0].author == "Sam"
    assert mock_get.call_args.args[1].endswith("/places/ChIJ1")


@patch("services.google_places_client.post_json")
def test_resolve_by_name_not_found(mock_post):
    mock_post.return_value = {"places": []}
    assert GooglePlacesClient("k").resolve_by_name("Nowhere", BOSTON, 1000) is None


@patch("services.google_places_client.get_json")
def test_fetch_photos_filters_and_sorts(mock_get):
    mock_get.return_value = {
        "photos": [
            {"name": "places/x/photos/small", "widthPx": 400, "heightPx": 300},
            {"name": "places/x/photos/tall", "widthPx": 300, "heightPx": 1200},
            {"name": "places/x/photos/big", "widthPx": 1600, "heightPx": 1200},
        ]
    }
    photos = GooglePlacesClient("k").fetch_photos("x", max_count=8, timeout=8.0)
    assert ["big" in photos[0].url, "small" in photos[1].url] == [True, True]
    assert len(photos) == 2


def test_missing_key_raises():
    with pytest.raises(MissingCredentials):
        GooglePlacesClient("").search(BOSTON, 4.8)
