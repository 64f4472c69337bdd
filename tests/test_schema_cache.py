"""Tests for the TTL schema cache."""

import threading

from datagate.catalog.schema_cache import SchemaCache, get_schema_cache, reset_schema_cache
from datagate.config import Config, SchemaConfig, set_config


class TestSchemaCache:

    def test_miss_then_hit(self, clock):
        cache = SchemaCache(ttl_seconds=60, clock=clock)
        assert cache.get("k") is None
        cache.set("k", "orders.id integer")
        assert cache.get("k") == "orders.id integer"

    def test_expiry_is_a_miss_and_evicts(self, clock):
        cache = SchemaCache(ttl_seconds=60, clock=clock)
        cache.set("k", "v")
        clock.advance(59)
        assert cache.get("k") == "v"
        clock.advance(1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self, clock):
        cache = SchemaCache(ttl_seconds=60, clock=clock)
        cache.set("short", "v", ttl_seconds=1)
        cache.set("long", "v")
        clock.advance(2)
        assert cache.get("short") is None
        assert cache.get("long") == "v"

    def test_set_refreshes_expiry(self, clock):
        cache = SchemaCache(ttl_seconds=10, clock=clock)
        cache.set("k", "old")
        clock.advance(8)
        cache.set("k", "new")
        clock.advance(8)
        assert cache.get("k") == "new"

    def test_invalidate_and_clear(self, clock):
        cache = SchemaCache(ttl_seconds=60, clock=clock)
        cache.set("a", "1")
        cache.set("b", "2")
        cache.invalidate("a")
        cache.invalidate("missing")
        assert cache.get("a") is None
        assert len(cache) == 1
        cache.clear()
        assert cache.get("b") is None

    def test_concurrent_writers(self):
        cache = SchemaCache()

        def write(n: int) -> None:
            for i in range(200):
                cache.set(f"{n}:{i}", str(i))

        threads = [threading.Thread(target=write, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(cache) == 800


class TestSharedCache:

    def test_singleton(self):
        assert get_schema_cache() is get_schema_cache()

    def test_ttl_from_config(self):
        set_config(Config(schema=SchemaConfig(cache_ttl_seconds=42)))
        reset_schema_cache()
        assert get_schema_cache().ttl_seconds == 42

    def test_reset_builds_new_instance(self):
        first = get_schema_cache()
        reset_schema_cache()
        assert get_schema_cache() is not first
