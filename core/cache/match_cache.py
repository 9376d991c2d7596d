"""Match Cache - Two-tier cache for per-phase scoring results.

Tier 1 is a bounded in-process LRU split into independently locked shards so
concurrent workers never contend on a single lock. Tier 2 is Redis, consulted
on a tier-1 miss and written through on every set. Redis problems are logged
and otherwise ignored; the cache never raises into the matching path.
"""
import json
import logging
import threading
import time
import zlib
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from redis import Redis

from core.config_loader import CacheConfig
from core.models import Phase, ScoredCandidate

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

# Most advanced phase first
LOOKUP_ORDER: Tuple[Phase, ...] = (Phase.FINAL, Phase.REFINED, Phase.INSTANT)


def _sanitize_url(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    try:
        parsed = urlparse(url)
        if parsed.password:
            sanitized = parsed._replace(
                netloc=f"{parsed.username or ''}:*@{parsed.hostname}:{parsed.port or 6379}"
            )
            return sanitized.geturl()
        return url
    except ValueError:
        return url


@dataclass(frozen=True)
class CacheEntry:
    result: ScoredCandidate
    phase: Phase
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result.to_dict(),
            "phase": self.phase.value,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            result=ScoredCandidate.from_dict(data["result"]),
            phase=Phase(data["phase"]),
            created_at=float(data["created_at"]),
            expires_at=float(data["expires_at"]),
        )


class _Shard:
    __slots__ = ("lock", "entries", "capacity", "hits", "misses")

    def __init__(self, capacity: int):
        self.lock = threading.Lock()
        self.entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.capacity = capacity
        self.hits = 0
        self.misses = 0


class StripedLRUCache:
    """
    Bounded LRU split across shards, each with its own lock.

    The total bound is honored by giving each shard floor(capacity / shards)
    slots; when capacity is smaller than the shard count, fewer shards are used.
    """

    def __init__(self, capacity: int = 500, shards: int = 16, clock: Clock = time.time):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        shard_count = max(1, min(shards, capacity))
        per_shard = max(1, capacity // shard_count)
        self.capacity = capacity
        self._clock = clock
        self._shards: List[_Shard] = [_Shard(per_shard) for _ in range(shard_count)]

    def _shard_for(self, key: str) -> _Shard:
        return self._shards[zlib.crc32(key.encode("utf-8")) % len(self._shards)]

    def get(self, key: str) -> Optional[CacheEntry]:
        shard = self._shard_for(key)
        with shard.lock:
            entry = shard.entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del shard.entries[key]
                return None
            shard.entries.move_to_end(key)
            return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        shard = self._shard_for(key)
        with shard.lock:
            shard.entries[key] = entry
            shard.entries.move_to_end(key)
            while len(shard.entries) > shard.capacity:
                shard.entries.popitem(last=False)

    def record(self, key: str, hit: bool) -> None:
        shard = self._shard_for(key)
        with shard.lock:
            if hit:
                shard.hits += 1
            else:
                shard.misses += 1

    def clear_expired(self) -> int:
        now = self._clock()
        removed = 0
        for shard in self._shards:
            with shard.lock:
                expired = [k for k, e in shard.entries.items() if e.is_expired(now)]
                for key in expired:
                    del shard.entries[key]
                removed += len(expired)
        return removed

    def snapshot(self) -> Dict[str, Any]:
        """Size, hit/miss counters and creation times across all shards."""
        size = hits = misses = 0
        created: List[float] = []
        for shard in self._shards:
            with shard.lock:
                size += len(shard.entries)
                hits += shard.hits
                misses += shard.misses
                created.extend(e.created_at for e in shard.entries.values())
        return {"size": size, "hits": hits, "misses": misses, "created": created}

    def __len__(self) -> int:
        return sum(len(s.entries) for s in self._shards)


class RedisMatchCacheStore:
    """
    Durable tier backed by Redis.

    Entries are stored as JSON with SETEX so Redis expires them on its own.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        password: Optional[str] = None,
        socket_timeout: float = 0.5,
        redis_client: Optional[Redis] = None,
    ):
        self.redis_url = redis_url
        self._redis: Optional[Redis] = redis_client
        self._available = redis_client is not None

        if self._redis is None and redis_url:
            try:
                self._redis = Redis.from_url(
                    redis_url,
                    password=password,
                    decode_responses=True,
                    socket_connect_timeout=socket_timeout,
                    socket_timeout=socket_timeout
                )
                self._redis.ping()
                self._available = True
                logger.info(f"Match cache connected to Redis at {_sanitize_url(redis_url)}")
            except Exception as e:
                logger.warning(f"Match cache Redis unavailable: {e}")
                self._redis = None
                self._available = False

    @property
    def is_available(self) -> bool:
        return self._available and self._redis is not None

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        if not self.is_available:
            return None
        try:
            data = self._redis.get(key)
            return json.loads(data) if data else None
        except Exception as e:
            logger.warning(f"Error reading from match cache: {e}")
            return None

    def set(self, key: str, payload: Dict[str, Any], ttl_seconds: int) -> bool:
        if not self.is_available:
            return False
        try:
            self._redis.setex(key, max(1, int(ttl_seconds)), json.dumps(payload))
            return True
        except Exception as e:
            logger.warning(f"Error writing to match cache: {e}")
            return False


class MatchCache:
    """
    Per-phase result cache keyed by (brief hash, candidate id, phase).

    get() without a phase returns the most advanced live entry, so a later
    phase's result takes precedence over an earlier one's.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        durable: Optional[RedisMatchCacheStore] = None,
        clock: Clock = time.time,
    ):
        self.config = config or CacheConfig()
        self._clock = clock
        self.memory = StripedLRUCache(
            capacity=self.config.memory_max_entries,
            shards=self.config.memory_shards,
            clock=clock,
        )
        self.durable = durable

    @classmethod
    def from_config(cls, config: CacheConfig) -> "MatchCache":
        durable = None
        if config.redis_url:
            durable = RedisMatchCacheStore(
                redis_url=config.redis_url,
                password=config.redis_password,
                socket_timeout=config.socket_timeout_seconds,
            )
        return cls(config=config, durable=durable)

    def _make_key(self, brief_hash: str, candidate_id: str, phase: Phase) -> str:
        return f"{self.config.key_prefix}:{brief_hash}:{candidate_id}:{phase.value}"

    def ttl_for(self, phase: Phase) -> int:
        return {
            Phase.INSTANT: self.config.instant_ttl_seconds,
            Phase.REFINED: self.config.refined_ttl_seconds,
            Phase.FINAL: self.config.final_ttl_seconds,
        }[phase]

    def _lookup(self, key: str) -> Optional[CacheEntry]:
        entry = self.memory.get(key)
        if entry is not None:
            return entry

        if self.durable is None:
            return None
        payload = self.durable.get(key)
        if payload is None:
            return None
        try:
            entry = CacheEntry.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed match cache entry {key}: {e}")
            return None
        if entry.is_expired(self._clock()):
            return None

        self.memory.set(key, entry)
        return entry

    def get(self, brief_hash: str, candidate_id: str, phase: Optional[Phase] = None) -> Optional[CacheEntry]:
        phases = (phase,) if phase is not None else LOOKUP_ORDER
        first_key = self._make_key(brief_hash, candidate_id, phases[0])
        for p in phases:
            entry = self._lookup(self._make_key(brief_hash, candidate_id, p))
            if entry is not None:
                self.memory.record(first_key, hit=True)
                return entry
        self.memory.record(first_key, hit=False)
        return None

    def set(
        self,
        brief_hash: str,
        candidate_id: str,
        result: ScoredCandidate,
        phase: Optional[Phase] = None,
        ttl: Optional[int] = None,
    ) -> CacheEntry:
        phase = phase or result.phase
        ttl = ttl if ttl is not None else self.ttl_for(phase)
        now = self._clock()
        entry = CacheEntry(result=result, phase=phase, created_at=now, expires_at=now + ttl)
        key = self._make_key(brief_hash, candidate_id, phase)

        self.memory.set(key, entry)
        if self.durable is not None:
            self.durable.set(key, entry.to_dict(), ttl)

        logger.debug(f"Cached {phase.value} result for {candidate_id} (TTL: {ttl}s)")
        return entry

    def clear_expired(self) -> int:
        removed = self.memory.clear_expired()
        if removed:
            logger.info(f"Evicted {removed} expired match cache entries")
        return removed

    def get_stats(self) -> Dict[str, Any]:
        snap = self.memory.snapshot()
        now = self._clock()
        lookups = snap["hits"] + snap["misses"]
        ages = [now - created for created in snap["created"]]
        return {
            "size": snap["size"],
            "capacity": self.memory.capacity,
            "hits": snap["hits"],
            "misses": snap["misses"],
            "hit_rate": snap["hits"] / lookups if lookups else 0.0,
            "avg_age_seconds": sum(ages) / len(ages) if ages else 0.0,
            "durable_available": bool(self.durable and self.durable.is_available),
        }
