"""Cache Module - Two-tier per-phase result cache."""
from core.cache.match_cache import (
    CacheEntry,
    MatchCache,
    RedisMatchCacheStore,
    StripedLRUCache,
)

__all__ = [
    'CacheEntry',
    'MatchCache',
    'RedisMatchCacheStore',
    'StripedLRUCache',
]
