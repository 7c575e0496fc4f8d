from unittest.mock import patch

import pytest

from domain.models import Coordinates
from services import geocoding as geo
from services.errors import ProviderUnavailable
from services.geocoding import PlaceLabel, parse_location_from_query, reverse_geocode_label


@pytest.fixture(autouse=True)
def isolated_cache(monkeypatch, tmp_path):
    reverse_geocode_label.cache_clear()
    monkeypatch.setattr(geo, "_CACHE_DB", None, raising=False)
    monkeypatch.setattr(geo, "NOMINATIM_CACHE_PATH", str(tmp_path / "geocode.sqlite"))
    yield
    reverse_geocode_label.cache_clear()


@patch("services.geocoding.get_json")
def test_reverse_geocode_label_parses_city_state(mock_get):
    mock_get.return_value = {
        "address": {
            "city": "Chicago",
            "state": "Illinois",
            "ISO3166-2-lvl4": "US-IL",
            "country": "United States",
        }
    }

    label = reverse_geocode_label(41.88, -87.63)
    assert isinstance(label, PlaceLabel)
    assert label.short_label == "Chicago, IL"


@patch("services.geocoding.get_json")
def test_reverse_geocode_label_returns_none_on_missing_address(mock_get):
    mock_get.return_value = {}
    assert reverse_geocode_label(0.0, 0.0) is None


@patch("services.geocoding.get_json")
def test_reverse_geocode_label_returns_none_when_upstream_fails(mock_get):
    mock_get.side_effect = ProviderUnavailable("boom", provider_name="nominatim")
    assert reverse_geocode_label(10.0, 10.0) is None


@patch("services.geocoding.get_json")
def test_reverse_geocode_city_falls_back_to_town(mock_get):
    mock_get.return_value = {"address": {"town": "Concord", "country": "United States"}}
    assert geo.reverse_geocode_city(Coordinates(42.46, -71.35)) == "Concord, United States"


@patch("services.geocoding.get_json")
def test_geocode_location_returns_first_match(mock_get):
    mock_get.return_value = [{"lat": "40.7128", "lon": "-74.0060", "display_name": "New York, United States"}]

    result = geo.geocode_location("nyc", bias=Coordinates(42.36, -71.06))

    assert result.coordinates == Coordinates(40.7128, -74.006)
    assert result.formatted_address == "New York, United States"
    params = mock_get.call_args.kwargs["params"]
    assert params["q"] == "nyc"
    assert "viewbox" in params


@patch("services.geocoding.get_json")
def test_geocode_location_no_match(mock_get):
    mock_get.return_value = []
    assert geo.geocode_location("nowhere at all") is None


@pytest.mark.parametrize(
    "text, expected",
    [
        ("pizza in nyc", ("pizza", "nyc")),
        ("ramen near Cambridge MA", ("ramen", "Cambridge MA")),
        ("bars around downtown", ("bars", "downtown")),
        ("  tacos  ", ("tacos", None)),
    ],
)
def test_parse_location_from_query(text, expected):
    assert parse_location_from_query(text) == expected
