from unittest.mock import patch

import pytest

from services.errors import ProviderUnavailable
from services.wikipedia_client import WikipediaClient


def _response(thumbnail=None):
    page = {"pageid": 123, "title": "Museum of Fine Arts, Boston"}
    if thumbnail:
        page["thumbnail"] = thumbnail
    return {"query": {"pages": {"123": page}}}


@patch("services.wikipedia_client.get_json")
def test_fetch_photos_returns_lead_image(mock_get):
    mock_get.return_value = _response({"source": "https://upload.wikimedia.org/mfa.jpg", "width": 800, "height": 533})

    photos = WikipediaClient().fetch_photos("Museum of Fine Arts", timeout=5.0)

    assert [p.url for p in photos] == ["https://upload.wikimedia.org/mfa.jpg"]
    assert photos[0].width == 800
    assert photos[0].height == 533
    params = mock_get.call_args.kwargs["params"]
    assert params["gsrsearch"] == "Museum of Fine Arts"
    assert params["prop"] == "pageimages"
    assert params["pithumbsize"] == 800
    assert mock_get.call_args.kwargs["timeout"] == 5.0


@patch("services.wikipedia_client.get_json")
def test_article_without_image_is_empty(mock_get):
    mock_get.return_value = _response()
    assert WikipediaClient().fetch_photos("Some Bar") == []


@patch("services.wikipedia_client.get_json")
def test_no_search_results_is_empty(mock_get):
    mock_get.return_value = {"batchcomplete": ""}
    assert WikipediaClient().fetch_photos("Nowhere In Particular") == []


@patch("services.wikipedia_client.get_json")
def test_blank_name_skips_the_request(mock_get):
    assert WikipediaClient().fetch_photos("  ") == []
    mock_get.assert_not_called()


@patch("services.wikipedia_client.get_json")
def test_upstream_failure_propagates(mock_get):
    mock_get.side_effect = ProviderUnavailable("timeout", provider_name="wikipedia")
    with pytest.raises(ProviderUnavailable):
        WikipediaClient().fetch_photos("Museum of Fine Arts")
