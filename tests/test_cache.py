"""
Tests for the Cache Tier

Memory TTL behaviour, the SQLite durable store, promotion of durable hits
and best-effort handling of durable failures.

Run with:
    python -m pytest tests/test_cache.py -v
"""

import unittest
from unittest import mock

import redis

from atlas_orbit.cache import (
    MemoryTTLCache,
    RedisStore,
    SQLiteStore,
    TieredCache,
    make_cache_key,
)
from atlas_orbit.models import CacheEntry


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestCacheKey(unittest.TestCase):

    def test_key_is_order_independent(self):
        """Parameter order does not change the key."""
        a = make_cache_key("dual_trajectory", {"days": 60, "step": 2})
        b = make_cache_key("dual_trajectory", {"step": 2, "days": 60})
        self.assertEqual(a, b)
        self.assertEqual(len(a.params_hash), 32)

    def test_key_depends_on_params_and_endpoint(self):
        self.assertNotEqual(make_cache_key("velocity", {"days": 60}), make_cache_key("velocity", {"days": 30}))
        self.assertNotEqual(make_cache_key("velocity", {"days": 60}), make_cache_key("trend", {"days": 60}))
        self.assertTrue(str(make_cache_key("velocity")).startswith("velocity:"))


class TestMemoryTTLCache(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.cache = MemoryTTLCache(clock=self.clock)
        self.key = make_cache_key("dual_trajectory", {"days": 60})

    def test_hit_within_ttl(self):
        self.cache.set(self.key, {"points": 31}, ttl=900)
        self.clock.now += 900
        self.assertEqual(self.cache.get(self.key), {"points": 31})

    def test_expired_entry_evicted(self):
        """Entries past their TTL are removed on lookup."""
        self.cache.set(self.key, {"points": 31}, ttl=900)
        self.clock.now += 901
        self.assertIsNone(self.cache.get(self.key))
        self.assertEqual(len(self.cache), 0)

    def test_delete_and_clear(self):
        self.cache.set(self.key, 1, ttl=10)
        self.cache.set(make_cache_key("other"), 2, ttl=10)
        self.cache.delete(self.key)
        self.assertIsNone(self.cache.get(self.key))
        self.cache.clear()
        self.assertEqual(len(self.cache), 0)


class TestSQLiteStore(unittest.TestCase):

    def setUp(self):
        self.store = SQLiteStore(":memory:")
        self.key = make_cache_key("velocity_profile", {"days": 30})

    def tearDown(self):
        self.store.close()

    def test_roundtrip_and_expiry(self):
        entry = CacheEntry(data=[{"v": 58.1}], created_at=1000.0, ttl=600)
        self.store.set(self.key, entry)

        hit = self.store.get(self.key, now=1600.0)
        self.assertEqual(hit.data, [{"v": 58.1}])
        self.assertEqual(hit.created_at, 1000.0)
        self.assertIsNone(self.store.get(self.key, now=1600.5))

    def test_replace_keeps_one_row(self):
        """(endpoint, params_hash) is unique; a second write replaces the first."""
        self.store.set(self.key, CacheEntry(data=1, created_at=1000.0, ttl=600))
        self.store.set(self.key, CacheEntry(data=2, created_at=1100.0, ttl=600))
        self.assertEqual(self.store.get(self.key, now=1200.0).data, 2)
        count = self.store.conn.execute("SELECT COUNT(*) FROM api_cache").fetchone()[0]
        self.assertEqual(count, 1)

    def test_purge_expired(self):
        self.store.set(self.key, CacheEntry(data=1, created_at=0.0, ttl=10))
        self.store.set(make_cache_key("other"), CacheEntry(data=2, created_at=0.0, ttl=1000))
        self.assertEqual(self.store.purge_expired(now=500.0), 1)

    def test_available(self):
        self.assertTrue(self.store.available())
        self.store.close()
        self.assertFalse(self.store.available())


class TestRedisStore(unittest.TestCase):

    def test_set_uses_setex(self):
        client = mock.Mock()
        store = RedisStore(client)
        key = make_cache_key("dual_trajectory", {"days": 60})
        store.set(key, CacheEntry(data={"a": 1}, created_at=10.0, ttl=899.5))
        name, ttl, _ = client.setex.call_args.args
        self.assertEqual(name, f"atlas_orbit:dual_trajectory:{key.params_hash}")
        self.assertEqual(ttl, 900)

    def test_get_decodes_entry(self):
        client = mock.Mock()
        client.get.return_value = '{"data": {"a": 1}, "created_at": 10.0, "ttl": 900}'
        entry = RedisStore(client).get(make_cache_key("x"), now=20.0)
        self.assertEqual(entry.data, {"a": 1})

    def test_unreachable_server_is_unavailable(self):
        client = mock.Mock()
        client.ping.side_effect = redis.exceptions.ConnectionError("refused")
        self.assertFalse(RedisStore(client).available())


class TestTieredCache(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.durable = SQLiteStore(":memory:")
        self.cache = TieredCache(durable=self.durable, clock=self.clock)
        self.key = make_cache_key("dual_trajectory", {"days": 60})

    def tearDown(self):
        self.durable.close()

    def test_get_or_compute_runs_producer_once(self):
        producer = mock.Mock(return_value={"points": 31})
        self.assertEqual(self.cache.get_or_compute(self.key, 900, producer), {"points": 31})
        self.assertEqual(self.cache.get_or_compute(self.key, 900, producer), {"points": 31})
        producer.assert_called_once_with()
        self.assertEqual(self.cache.stats["misses"], 1)
        self.assertEqual(self.cache.stats["memory_hits"], 1)

    def test_producer_runs_again_after_ttl(self):
        producer = mock.Mock(side_effect=[{"points": 31}, {"points": 32}])
        self.assertEqual(self.cache.get_or_compute(self.key, 1.0, producer), {"points": 31})
        self.clock.now += 1.001
        self.assertEqual(self.cache.get_or_compute(self.key, 1.0, producer), {"points": 32})
        self.assertEqual(producer.call_count, 2)
        self.assertEqual(self.cache.stats["misses"], 2)

    def test_durable_hit_promoted_with_remaining_ttl(self):
        """A fresh process sees the durable entry and keeps its original expiry."""
        self.cache.put(self.key, {"points": 31}, ttl=900)
        self.clock.now += 600

        restarted = TieredCache(durable=self.durable, clock=self.clock)
        self.assertEqual(restarted.get(self.key), {"points": 31})
        self.assertEqual(restarted.stats["durable_hits"], 1)
        self.assertEqual(len(restarted.memory), 1)

        self.clock.now += 301
        self.assertIsNone(restarted.get(self.key))

    def test_producer_errors_not_cached(self):
        producer = mock.Mock(side_effect=RuntimeError("upstream down"))
        with self.assertRaises(RuntimeError):
            self.cache.get_or_compute(self.key, 900, producer)
        self.assertIsNone(self.cache.get(self.key))

    def test_durable_failures_are_not_raised(self):
        """A broken durable store degrades to a memory-only cache."""
        self.durable.close()
        with self.assertLogs("atlas_orbit.cache", level="WARNING"):
            self.cache.put(self.key, {"points": 31}, ttl=900)
        self.assertEqual(self.cache.get(self.key), {"points": 31})

        other = make_cache_key("velocity_profile", {"days": 30})
        with self.assertLogs("atlas_orbit.cache", level="WARNING"):
            self.assertIsNone(self.cache.get(other))
        self.assertGreaterEqual(self.cache.stats["durable_errors"], 2)
        self.assertFalse(self.cache.available())

    def test_memory_only_cache_is_available(self):
        cache = TieredCache(clock=self.clock)
        self.assertTrue(cache.available())
        self.assertIsNone(cache.describe()["durable_backend"])

    def test_describe(self):
        self.cache.put(self.key, 1, ttl=10)
        description = self.cache.describe()
        self.assertEqual(description["durable_backend"], "sqlite")
        self.assertEqual(description["memory_entries"], 1)
        self.assertTrue(description["available"])


if __name__ == "__main__":
    unittest.main()
