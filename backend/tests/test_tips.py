from unittest.mock import MagicMock

from domain.models import Place, PlaceCategory
from services.errors import ProviderUnavailable
from services.search_cache_sqlite import PlaceTipsCache
from services.tips import TipsService, tips_key


def _place(**kwargs):
    defaults = dict(id="place-1", name="Regina Pizzeria", category=PlaceCategory.EAT, address="11 1/2 Thacher St")
    defaults.update(kwargs)
    return Place(**defaults)


def test_tips_key_prefers_provider_id():
    assert tips_key(_place(provider="google", provider_id="abc")) == "google:abc"
    assert tips_key(_place()) == "name:regina pizzeria|11 1/2 thacher st"


def test_tips_generated_once_then_cached(tmp_path):
    generator = MagicMock()
    generator.generate_tips.return_value = ["Cash only", "Expect a line"]
    cache = PlaceTipsCache(str(tmp_path / "cache.sqlite"))
    service = TipsService(generator, cache=cache)

    place = _place(provider="google", provider_id="abc")
    assert service.load_into(place) == ["Cash only", "Expect a line"]
    assert place.tips == ["Cash only", "Expect a line"]

    assert service.tips_for(_place(provider="google", provider_id="abc")) == ["Cash only", "Expect a line"]
    generator.generate_tips.assert_called_once_with("Regina Pizzeria", category="EAT", address="11 1/2 Thacher St")
    cache.close()


def test_failures_are_not_cached(tmp_path):
    generator = MagicMock()
    generator.generate_tips.side_effect = [ProviderUnavailable("quota"), ["Go early"]]
    cache = PlaceTipsCache(str(tmp_path / "cache.sqlite"))
    service = TipsService(generator, cache=cache)

    assert service.tips_for(_place()) == []
    assert service.tips_for(_place()) == ["Go early"]
    cache.close()
