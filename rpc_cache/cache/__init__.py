"""Redis cache engine for readthrough of RPC responses.

This package provides:
- Readthrough engine with its own connection pool (RedisCacheEngine)
- TTL presets (CacheTTL)
- Graceful fail-open behavior
"""

from rpc_cache.cache.manager import RedisCacheEngine
from rpc_cache.cache.ttl import CacheTTL

__all__ = [
    # Engine
    "RedisCacheEngine",
    # TTL presets
    "CacheTTL",
]
