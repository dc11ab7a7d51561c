"""Query result cache for ragcrawl.

Cache-aside: the retrieval pipeline computes results itself and this module
only short-circuits repeats. Keys are a pure function of their inputs and TTL
expiry is the only eviction. Any backend failure degrades to a miss.
"""

import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import RedisError

from config.settings import CacheConfig
from indexer.errors import CacheUnavailable
from indexer.models import RetrievalResult

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Hit/miss counters for the query cache."""
    hits: int = 0
    misses: int = 0
    errors: int = 0
    last_updated: datetime = field(default_factory=datetime.now)

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        if self.total_requests == 0:
            return 0.0
        return self.hits / self.total_requests

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hits': self.hits,
            'misses': self.misses,
            'errors': self.errors,
            'total_requests': self.total_requests,
            'hit_rate': self.hit_rate,
            'last_updated': self.last_updated.isoformat()
        }


class CacheKey:
    """Utility class for generating consistent cache keys."""

    @staticmethod
    def query_result(query: str, top_k: int, threshold: Optional[float] = None,
                     prefix: str = "rag") -> str:
        """Key for a retrieval result.

        The threshold only takes part when given; by default callers leave it
        out so queries differing only in threshold share an entry.
        """
        key_data: Dict[str, Any] = {'query': query, 'top_k': top_k}
        if threshold is not None:
            key_data['threshold'] = threshold
        key_string = json.dumps(key_data, sort_keys=True, ensure_ascii=False)
        return f"{prefix}:query:{hashlib.sha256(key_string.encode('utf-8')).hexdigest()}"


class CacheBackend(ABC):
    """Raw string key/value storage with per-entry TTL."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value or None. Raises CacheUnavailable on failure."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> None:
        """Store ``value`` for ``ttl`` seconds. Raises CacheUnavailable on failure."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key."""

    async def close(self) -> None:
        return None


class NullCache(CacheBackend):
    """Backend used when no cache is reachable: every lookup misses."""

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl: int) -> None:
        return None

    async def delete(self, key: str) -> bool:
        return False


class MemoryCache(CacheBackend):
    """Process-local cache with TTL expiry.

    Expired entries are dropped when read, and swept from the whole cache every
    ``sweep_interval`` writes.
    """

    def __init__(self, sweep_interval: int = 100):
        self.cache: Dict[str, Tuple[str, float]] = {}  # key -> (value, expires_at)
        self.sweep_interval = max(1, sweep_interval)
        self._writes = 0

    async def get(self, key: str) -> Optional[str]:
        entry = self.cache.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= time.time():
            del self.cache[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        self.cache[key] = (value, time.time() + ttl)
        self._writes += 1
        if self._writes % self.sweep_interval == 0:
            self.cleanup_expired()

    async def delete(self, key: str) -> bool:
        return self.cache.pop(key, None) is not None

    def cleanup_expired(self) -> int:
        """Remove expired entries and return count."""
        now = time.time()
        expired = [key for key, (_, expires_at) in self.cache.items() if expires_at <= now]
        for key in expired:
            del self.cache[key]
        return len(expired)

    def size(self) -> int:
        return len(self.cache)


class RedisCache(CacheBackend):
    """Redis backend. Construct with :meth:`connect`."""

    def __init__(self, client: aioredis.Redis):
        self.client = client

    @classmethod
    async def connect(cls, config: CacheConfig) -> 'RedisCache':
        """Open a client and verify it with PING."""
        client = aioredis.Redis(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            decode_responses=True,
            socket_connect_timeout=config.socket_timeout,
            socket_timeout=config.socket_timeout
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            await client.aclose()
            raise CacheUnavailable(str(e), operation="connect",
                                   detail={'host': config.host, 'port': config.port}) from e

        logger.info(f"Connected to Redis database {config.db} at {config.host}:{config.port}")
        return cls(client)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(key)
        except (RedisError, OSError) as e:
            raise CacheUnavailable(str(e), operation="get", detail=key) from e

    async def set(self, key: str, value: str, ttl: int) -> None:
        try:
            await self.client.setex(key, ttl, value)
        except (RedisError, OSError) as e:
            raise CacheUnavailable(str(e), operation="set", detail=key) from e

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self.client.delete(key))
        except (RedisError, OSError) as e:
            raise CacheUnavailable(str(e), operation="delete", detail=key) from e

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis disconnected")


class QueryCache:
    """Maps query fingerprints to serialized RetrievalResults."""

    def __init__(self, backend: CacheBackend, ttl: int = 3600, key_prefix: str = "rag",
                 key_includes_threshold: bool = False):
        self.backend = backend
        self.ttl = ttl
        self.key_prefix = key_prefix
        self.key_includes_threshold = key_includes_threshold
        self.stats = CacheStats()

    def key_for(self, query: str, top_k: int, threshold: float) -> str:
        return CacheKey.query_result(
            query,
            top_k,
            threshold if self.key_includes_threshold else None,
            prefix=self.key_prefix
        )

    def _record(self, hit: bool) -> None:
        if hit:
            self.stats.hits += 1
        else:
            self.stats.misses += 1
        self.stats.last_updated = datetime.now()

    async def get(self, key: str) -> Optional[RetrievalResult]:
        try:
            raw = await self.backend.get(key)
        except CacheUnavailable as e:
            logger.warning(f"Cache get failed, treating as miss: {e}")
            self.stats.errors += 1
            raw = None

        if raw is None:
            self._record(hit=False)
            return None

        try:
            result = RetrievalResult.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            self.stats.errors += 1
            self._record(hit=False)
            return None

        self._record(hit=True)
        return result

    async def set(self, key: str, result: RetrievalResult) -> bool:
        """Best-effort write. Returns False when the backend failed."""
        try:
            await self.backend.set(key, result.model_dump_json(), self.ttl)
        except CacheUnavailable as e:
            logger.warning(f"Cache set failed for {key}: {e}")
            self.stats.errors += 1
            return False
        return True

    async def close(self) -> None:
        await self.backend.close()


async def create_query_cache(config: CacheConfig) -> QueryCache:
    """Connect to Redis, degrading to a memory or null backend when unreachable."""
    try:
        backend: CacheBackend = await RedisCache.connect(config)
    except CacheUnavailable as e:
        if config.enable_memory_fallback:
            logger.warning(f"Redis unavailable ({e}); using in-process cache")
            backend = MemoryCache()
        else:
            logger.warning(f"Redis unavailable ({e}); query caching disabled")
            backend = NullCache()

    return QueryCache(
        backend,
        ttl=config.ttl,
        key_prefix=config.key_prefix,
        key_includes_threshold=config.key_includes_threshold
    )
