"""Tests for the in-memory result cache."""

from unittest.mock import patch

from src.cache import ResultCache, make_key


class TestMakeKey:
    """Tests for cache key derivation."""

    def test_stable_across_option_order(self):
        a = make_key("https://example.com/v", {"includeTranscript": True, "includeAnalysis": False})
        b = make_key("https://example.com/v", {"includeAnalysis": False, "includeTranscript": True})
        assert a == b

    def test_options_change_key(self):
        a = make_key("https://example.com/v", {"includeTranscript": True})
        b = make_key("https://example.com/v", {"includeTranscript": False})
        assert a != b

    def test_surrounding_whitespace_ignored(self):
        assert make_key(" https://example.com/v ", {}) == make_key("https://example.com/v", {})


class TestResultCache:
    """Tests for ResultCache."""

    def test_set_and_get(self):
        cache = ResultCache()
        cache.set("k", {"v": 1})

        assert cache.get("k") == {"v": 1}
        assert len(cache) == 1

    def test_missing_key(self):
        assert ResultCache().get("absent") is None

    def test_expiry(self):
        cache = ResultCache(default_ttl=10)
        with patch("src.cache.time.monotonic", return_value=1000.0):
            cache.set("k", "v")
        with patch("src.cache.time.monotonic", return_value=1009.0):
            assert cache.get("k") == "v"
        with patch("src.cache.time.monotonic", return_value=1010.0):
            assert cache.get("k") is None
        assert len(cache) == 0

    def test_zero_ttl_not_stored(self):
        cache = ResultCache()
        cache.set("k", "v", ttl=0)

        assert cache.get("k") is None

    def test_max_entries_evicts_oldest(self):
        cache = ResultCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_overwrite_does_not_evict(self):
        cache = ResultCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)

        assert cache.get("a") == 10
        assert cache.get("b") == 2

    def test_clear(self):
        cache = ResultCache()
        cache.set("a", 1)
        cache.clear()

        assert len(cache) == 0
