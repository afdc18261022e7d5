"""Tests for ``opsync.core.cache.durable``: TTL and version per entry."""

from opsync.core.cache.backends import InMemoryCache
from opsync.core.cache.durable import CacheEntry, DurableCache
from opsync.core.cache.keys import CacheKey


KEY = CacheKey("user", "42")


class TestCacheEntry:
    def test_fresh(self):
        entry = CacheEntry({"a": 1}, cached_at=100.0, ttl=60, version="1.1")
        assert entry.is_stale(150.0, "1.1") is False

    def test_expired(self):
        entry = CacheEntry({"a": 1}, cached_at=100.0, ttl=60, version="1.1")
        assert entry.is_stale(161.0, "1.1") is True

    def test_version_mismatch(self):
        entry = CacheEntry({"a": 1}, cached_at=100.0, ttl=60, version="1.0")
        assert entry.is_stale(100.0, "1.1") is True

    def test_dict_form(self):
        entry = CacheEntry("v", cached_at=1.0, ttl=2.0, version="3")
        assert CacheEntry.from_dict(entry.to_dict()) == entry


class TestDurableCache:
    def test_set_get_namespaced(self, durable, backend):
        durable.set(KEY, {"name": "Anna"})
        assert durable.get(KEY) == {"name": "Anna"}
        assert backend.exists("test:user:42")

    def test_ttl_expiry_deletes_entry(self, durable, backend, clock):
        durable.set(KEY, {"name": "Anna"})
        clock.advance(901)
        assert durable.get(KEY) is None
        assert not backend.exists("test:user:42")

    def test_per_write_ttl(self, durable, clock):
        durable.set(KEY, 1, ttl_seconds=10)
        clock.advance(11)
        assert durable.get(KEY) is None

    def test_version_change_clears_namespace(self, durable, backend):
        durable.set(KEY, 1)
        backend.set("elsewhere:user:1", "kept")
        durable.update_options(version="1.2")
        assert durable.version == "1.2"
        assert durable.get(KEY) is None
        assert backend.get("elsewhere:user:1") == "kept"

    def test_same_version_keeps_entries(self, durable):
        durable.set(KEY, 1)
        durable.update_options(version="1.1", ttl_seconds=60)
        assert durable.get(KEY) == 1
        assert durable.ttl_seconds == 60

    def test_entry_from_older_version_is_stale(self, backend, clock):
        old = DurableCache(backend, namespace="test", version="1.0", clock=clock)
        old.set(KEY, "old")
        new = DurableCache(backend, namespace="test", version="1.1", clock=clock)
        assert new.get(KEY) is None

    def test_corrupt_entry_removed(self, durable, backend):
        backend.set("test:user:42", "not an entry")
        assert durable.get(KEY) is None
        assert not backend.exists("test:user:42")

    def test_get_or_set(self, durable):
        calls = []

        def loader():
            calls.append(1)
            return {"name": "Anna"}

        assert durable.get_or_set(KEY, loader) == {"name": "Anna"}
        assert durable.get_or_set(KEY, loader) == {"name": "Anna"}
        assert len(calls) == 1

    def test_keys_strip_namespace(self, durable):
        durable.set(KEY, 1)
        durable.set(KEY.child("profile"), 2)
        durable.set(CacheKey("team", "7"), 3)
        assert sorted(durable.keys("user:")) == ["user:42", "user:42:profile"]

    def test_clear_counts(self, durable, backend):
        durable.set(KEY, 1)
        durable.set(CacheKey("team", "7"), 2)
        backend.set("other:x", 1)
        assert durable.clear() == 2
        assert backend.size() == 1

    def test_string_keys(self):
        durable = DurableCache(InMemoryCache(), namespace="users")
        durable.set("user:email:anna@example.se", "42")
        assert durable.get("user:email:anna@example.se") == "42"
