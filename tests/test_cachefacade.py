from cachelib import SimpleCache

from roster.client.cache import CacheFacade
from roster.config import Settings


def test_set_get_and_keys():
    facade = CacheFacade()
    facade.set("students_a", {"data": []})
    facade.set("record_1", {"name": "Ada"})
    assert facade.get("record_1") == {"name": "Ada"}
    assert facade.get("missing") is None
    assert facade.keys() == ["record_1", "students_a"]


def test_invalidate_by_substring_and_all():
    facade = CacheFacade()
    for key in ("students_x", "students_y", "record_1", "dashboard_stats"):
        facade.set(key, key)

    assert facade.invalidate("students") == 2
    assert facade.keys() == ["dashboard_stats", "record_1"]
    assert facade.has("record_1")

    facade.invalidate()
    assert facade.keys() == []
    assert facade.get("record_1") is None


def test_cached_values_are_copies():
    facade = CacheFacade()
    payload = {"data": [1]}
    facade.set("k", payload)
    payload["data"].append(2)
    assert facade.get("k") == {"data": [1]}


def test_from_settings_builds_simple_cache():
    facade = CacheFacade.from_settings(Settings(cache_type="SimpleCache", cache_threshold=10))
    assert isinstance(facade.backend, SimpleCache)
    assert facade.timeout_seconds == 0
