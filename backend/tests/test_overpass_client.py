from unittest.mock import patch

from domain.models import Coordinates, PlaceCategory
from services.overpass_client import OverpassClient, build_query, describe, format_address, parse_element

BOSTON = Coordinates(42.3601, -71.0589)


def test_build_query_covers_nodes_and_ways():
    q = build_query(BOSTON, 4800, {"leisure": ["bowling_alley"]})
    assert 'node["leisure"="bowling_alley"](around:4800,42.3601,-71.0589);' in q
    assert 'way["leisure"="bowling_alley"](around:4800,42.3601,-71.0589);' in q
    assert q.startswith("[out:json]")
    assert q.rstrip().endswith("out body center;")


def test_describe_and_address():
    assert describe({"leisure": "escape_game"}) == "Escape Room"
    assert describe({"sport": "table_tennis"}) == "Ping Pong / Table Tennis"
    assert describe({"leisure": "sauna"}) == "sauna"
    assert format_address({"addr:housenumber": "10", "addr:street": "Lansdowne St", "addr:city": "Boston"}) == (
        "10 Lansdowne St, Boston"
    )


def test_parse_way_uses_center():
    element = {
        "type": "way",
        "id": 123,
        "center": {"lat": 42.347, "lon": -71.095},
        "tags": {"name": "Lucky Strike", "leisure": "bowling_alley", "addr:street": "Lansdowne St"},
    }
    c = parse_element(element)
    assert c.provider_id == "osm-way-123"
    assert c.coordinates == Coordinates(42.347, -71.095)
    assert c.category_guess == PlaceCategory.EXPLORE.value
    assert c.category_tags == ["Bowling Alley"]
    assert c.rating is None


def test_parse_drops_unnamed_or_unaddressed():
    assert parse_element({"type": "node", "id": 1, "lat": 1, "lon": 1, "tags": {"addr:street": "X"}}) is None
    assert parse_element({"type": "node", "id": 2, "lat": 1, "lon": 1, "tags": {"name": "No Address"}}) is None
    assert parse_element({"type": "relation", "id": 3, "tags": {"name": "R", "addr:street": "X"}}) is None


@patch("services.overpass_client.post_json")
def test_search_posts_query(mock_post):
    mock_post.return_value = {
        "elements": [
            {"type": "node", "id": 9, "lat": 42.35, "lon": -71.06,
             "tags": {"name": "Escape the Room", "leisure": "escape_game", "addr:street": "Tremont St"}},
            {"type": "node", "id": 10, "lat": 42.35, "lon": -71.06, "tags": {"leisure": "escape_game"}},
        ]
    }
    results = OverpassClient(min_interval_s=0.0).search(BOSTON, 6000)
    assert [c.name for c in results] == ["Escape the Room"]
    assert "data" in mock_post.call_args.kwargs["data"]
