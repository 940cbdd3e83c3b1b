"""
Cache Tier

Two-level TTL cache in front of every expensive computation:

    memory (per process, lock protected)  ->  durable (SQLite or Redis)  ->  producer

A durable hit is promoted into memory with its remaining lifetime. Durable
reads and writes are best effort: failures are logged and the request
carries on as a miss. Concurrent misses for the same key each run the
producer; there is no single-flight.
"""

import hashlib
import json
import logging
import math
import os
import sqlite3
import threading
import time
from typing import Any, Callable, Dict, NamedTuple, Optional

import redis

from atlas_orbit.models import CacheEntry

logger = logging.getLogger(__name__)

DURABLE_ERRORS = (sqlite3.Error, redis.exceptions.RedisError, OSError, TypeError, ValueError)


class CacheKey(NamedTuple):
    endpoint: str
    params_hash: str

    def __str__(self) -> str:
        return f"{self.endpoint}:{self.params_hash}"


def make_cache_key(endpoint: str, params: Optional[Dict[str, Any]] = None) -> CacheKey:
    """Stable key from an endpoint name and its (JSON-serialisable) parameters."""
    canonical = json.dumps(params or {}, sort_keys=True, separators=(',', ':'), default=str)
    return CacheKey(endpoint, hashlib.sha256(canonical.encode('utf-8')).hexdigest()[:32])


class MemoryTTLCache:
    """In-process cache; expired entries are evicted lazily on lookup."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._store: Dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[Any]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._store[key]
                return None
            return entry.data

    def set(self, key: CacheKey, data: Any, ttl: float) -> None:
        self.set_entry(key, CacheEntry(data=data, created_at=self._clock(), ttl=ttl))

    def set_entry(self, key: CacheKey, entry: CacheEntry) -> None:
        with self._lock:
            self._store[key] = entry

    def delete(self, key: CacheKey) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


class SQLiteStore:
    """
    Durable cache rows in ``api_cache``, one per (endpoint, params_hash).

    Args:
        path: Database file; ':memory:' for a throwaway store
    """

    name = 'sqlite'

    def __init__(self, path: str):
        self.path = path
        directory = os.path.dirname(path)
        if path != ':memory:' and directory:
            os.makedirs(directory, exist_ok=True)
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self.lock = threading.Lock()
        self._init()

    def _init(self):
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("""CREATE TABLE IF NOT EXISTS api_cache (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                endpoint TEXT NOT NULL,
                params_hash TEXT NOT NULL,
                response_data TEXT NOT NULL,
                created_at REAL NOT NULL,
                ttl_seconds REAL NOT NULL,
                expires_at REAL NOT NULL,
                UNIQUE(endpoint, params_hash)
            )""")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_api_cache_expires ON api_cache (expires_at)")
            self.conn.commit()

    def get(self, key: CacheKey, now: float) -> Optional[CacheEntry]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                "SELECT response_data, created_at, ttl_seconds FROM api_cache "
                "WHERE endpoint=? AND params_hash=? AND expires_at >= ?",
                (key.endpoint, key.params_hash, now),
            )
            row = cur.fetchone()
        if not row:
            return None
        return CacheEntry(data=json.loads(row[0]), created_at=row[1], ttl=row[2])

    def set(self, key: CacheKey, entry: CacheEntry) -> None:
        payload = json.dumps(entry.data, separators=(',', ':'))
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                "REPLACE INTO api_cache (endpoint, params_hash, response_data, created_at, ttl_seconds, expires_at) "
                "VALUES (?,?,?,?,?,?)",
                (key.endpoint, key.params_hash, payload, entry.created_at, entry.ttl,
                 entry.created_at + entry.ttl),
            )
            self.conn.commit()

    def purge_expired(self, now: float) -> int:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("DELETE FROM api_cache WHERE expires_at < ?", (now,))
            self.conn.commit()
            return cur.rowcount

    def available(self) -> bool:
        try:
            with self.lock:
                self.conn.execute("SELECT 1")
            return True
        except sqlite3.Error as e:
            logger.warning(f"SQLite cache unavailable: {e}")
            return False

    def close(self) -> None:
        with self.lock:
            self.conn.close()


class RedisStore:
    """Durable cache in Redis; expiry is delegated to SETEX."""

    name = 'redis'

    def __init__(self, client: redis.Redis, prefix: str = 'atlas_orbit'):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> 'RedisStore':
        return cls(redis.from_url(url, decode_responses=True))

    def _redis_key(self, key: CacheKey) -> str:
        return f"{self.prefix}:{key.endpoint}:{key.params_hash}"

    def get(self, key: CacheKey, now: float) -> Optional[CacheEntry]:
        raw = self.client.get(self._redis_key(key))
        if not raw:
            return None
        entry = CacheEntry(**json.loads(raw))
        return None if entry.is_expired(now) else entry

    def set(self, key: CacheKey, entry: CacheEntry) -> None:
        payload = json.dumps({'data': entry.data, 'created_at': entry.created_at, 'ttl': entry.ttl})
        self.client.setex(self._redis_key(key), max(1, math.ceil(entry.ttl)), payload)

    def purge_expired(self, now: float) -> int:
        return 0

    def available(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.exceptions.RedisError as e:
            logger.warning(f"Redis cache unavailable: {e}")
            return False


class TieredCache:
    """
    Memory cache backed by an optional durable store.

    Args:
        memory: In-process cache (created if omitted)
        durable: SQLiteStore / RedisStore, or None for memory only
        clock: Wall-clock seconds, shared with the memory cache
    """

    def __init__(self, memory: Optional[MemoryTTLCache] = None, durable=None,
                 clock: Callable[[], float] = time.time):
        self._clock = clock
        self.memory = memory if memory is not None else MemoryTTLCache(clock=clock)
        self.durable = durable
        self.stats = {'memory_hits': 0, 'durable_hits': 0, 'misses': 0, 'durable_errors': 0}
        self._stats_lock = threading.Lock()

    def _count(self, field: str) -> None:
        with self._stats_lock:
            self.stats[field] += 1

    def get(self, key: CacheKey) -> Optional[Any]:
        """Memory, then durable lookup; None on miss."""
        data = self.memory.get(key)
        if data is not None:
            self._count('memory_hits')
            return data

        if self.durable is None:
            return None

        now = self._clock()
        try:
            entry = self.durable.get(key, now)
        except DURABLE_ERRORS as e:
            self._count('durable_errors')
            logger.warning(f"Durable cache read failed for {key}: {e}")
            return None

        if entry is None or entry.is_expired(now):
            return None

        self._count('durable_hits')
        # keep the original creation time so the remaining TTL carries over
        self.memory.set_entry(key, entry)
        return entry.data

    def put(self, key: CacheKey, data: Any, ttl: float) -> None:
        entry = CacheEntry(data=data, created_at=self._clock(), ttl=ttl)
        self.memory.set_entry(key, entry)
        if self.durable is None:
            return
        try:
            self.durable.set(key, entry)
        except DURABLE_ERRORS as e:
            self._count('durable_errors')
            logger.warning(f"Durable cache write failed for {key}: {e}")

    def get_or_compute(self, key: CacheKey, ttl: float, producer: Callable[[], Any]) -> Any:
        """
        Return the cached value for ``key`` or compute, store and return it.

        Exceptions raised by ``producer`` propagate and nothing is cached.
        """
        data = self.get(key)
        if data is not None:
            return data

        self._count('misses')
        data = producer()
        self.put(key, data, ttl)
        return data

    def available(self) -> bool:
        """Memory is always up; with a durable store configured, its connectivity decides."""
        if self.durable is None:
            return True
        return self.durable.available()

    def describe(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = dict(self.stats)
        return {
            'memory_entries': len(self.memory),
            'durable_backend': getattr(self.durable, 'name', None),
            'available': self.available(),
            **stats,
        }
