import pytest

from domain.models import Candidate, PlaceCategory
from services.categories import (
    categories_for_query,
    category_from_guess,
    classify,
    classify_candidate,
    classify_google_types,
    foursquare_category_ids,
    is_non_hospitality,
)


@pytest.mark.parametrize(
    "tags, expected",
    [
        (["Pizza Place"], PlaceCategory.EAT),
        (["Cocktail Bar"], PlaceCategory.DRINK),
        (["Coffee Shop"], PlaceCategory.DRINK),
        (["Bowling Alley"], PlaceCategory.EXPLORE),
        (["Art Museum"], PlaceCategory.EXPLORE),
        (["Escape Room"], PlaceCategory.EXPLORE),
        (["Sporting Goods Store"], PlaceCategory.UNKNOWN),
        (["Pharmacy"], PlaceCategory.UNKNOWN),
        (["Bank"], PlaceCategory.UNKNOWN),
        ([], PlaceCategory.UNKNOWN),
    ],
)
def test_classify_by_tags(tags, expected):
    assert classify(tags) == expected


def test_classify_prefers_provider_id():
    # Bowling Alley id wins over misleading tag text
    assert classify(["Restaurant"], "4bf58dd8d48988d184941735") == PlaceCategory.EXPLORE


def test_food_hybrid_retail_is_not_denylisted():
    tags = ["Grocery Store", "Deli"]
    assert not is_non_hospitality(tags)
    assert classify(tags) == PlaceCategory.EAT


def test_keywords_match_whole_words():
    assert classify(["Barbershop"]) == PlaceCategory.UNKNOWN
    assert classify(["Spanish Restaurant"]) == PlaceCategory.EAT


def test_google_types_food_wins_over_bar():
    assert classify_google_types(["restaurant", "bar", "food", "point_of_interest"]) == PlaceCategory.EAT
    assert classify_google_types(["bar", "night_club"]) == PlaceCategory.DRINK
    assert classify_google_types(["museum", "tourist_attraction"]) == PlaceCategory.EXPLORE
    assert classify_google_types([]) == PlaceCategory.UNKNOWN


@pytest.mark.parametrize(
    "guess, expected",
    [
        ("EAT", PlaceCategory.EAT),
        ("drink", PlaceCategory.DRINK),
        ("DO", PlaceCategory.EXPLORE),
        ("SIGHT", PlaceCategory.EXPLORE),
        ("EXPLORE", PlaceCategory.EXPLORE),
        ("", PlaceCategory.UNKNOWN),
        (None, PlaceCategory.UNKNOWN),
    ],
)
def test_category_from_guess(guess, expected):
    assert category_from_guess(guess) == expected


def test_categories_for_query():
    assert categories_for_query("best pizza") == [PlaceCategory.EAT]
    assert categories_for_query("cocktail bars") == [PlaceCategory.DRINK]
    assert categories_for_query("things to do") == [PlaceCategory.EXPLORE]
    assert categories_for_query("somewhere fun") == []
    assert categories_for_query(None) == []


def test_foursquare_ids_default_to_all_categories():
    eat_only = foursquare_category_ids([PlaceCategory.EAT])
    everything = foursquare_category_ids(None)
    assert "4bf58dd8d48988d1ca941735" in eat_only
    assert "4bf58dd8d48988d116941735" not in eat_only
    assert set(eat_only) < set(everything)


def test_classify_candidate_guess_wins():
    c = Candidate(name="Skyline Park", source="discovery", category_guess="EXPLORE", category_tags=["Restaurant"])
    assert classify_candidate(c) == PlaceCategory.EXPLORE


def test_classify_candidate_denylist_overrides_guess():
    c = Candidate(name="Big Box", source="discovery", category_guess="EAT", category_tags=["Department Store"])
    assert classify_candidate(c) == PlaceCategory.UNKNOWN


def test_classify_candidate_falls_back_to_tags():
    c = Candidate(name="The Pour House", source="foursquare", category_tags=["Pub"])
    assert classify_candidate(c) == PlaceCategory.DRINK
