"""Redis-backed cache engine with fail-open error handling.

This module provides RedisCacheEngine, a readthrough cache engine for
CacheableIntegration. Redis errors degrade to cache misses; producer
errors always propagate.
"""

import json
import os
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import redis.asyncio as redis
import structlog
from pydantic import BaseModel
from redis.asyncio.connection import ConnectionPool

logger = structlog.get_logger(__name__)

Producer = Callable[[], Awaitable[Any]]


def _encode(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


class RedisCacheEngine:
    """
    Readthrough cache engine storing JSON entries in Redis.

    Entries are stored as ``{"data": ..., "cached_at": ..., "ttl": ...}``
    and expire through SETEX. Concurrent misses on one key each run the
    producer and each write the entry.

    Attributes:
        redis_url: Redis URL the pool was built from
        pool: Connection pool, or None when a client was injected
        redis: Redis client instance, or None when Redis is unavailable
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Optional[redis.Redis] = None,
        max_connections: int = 20,
    ) -> None:
        """
        Initialize the engine.

        A pool is built from ``redis_url`` (or REDIS_URL) unless a client
        is passed in. No connection is opened until the first command.

        Args:
            redis_url: Redis URL, defaults to the REDIS_URL environment variable
            client: Ready-made Redis client; skips pool creation
            max_connections: Pool size
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.pool: Optional[ConnectionPool] = None
        self.redis: Optional[redis.Redis] = client

        if client is None:
            self._initialize_pool(max_connections)

    def _initialize_pool(self, max_connections: int) -> None:
        try:
            self.pool = ConnectionPool.from_url(
                self.redis_url,
                max_connections=max_connections,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True,
            )
            self.redis = redis.Redis(connection_pool=self.pool)

            logger.info(
                "redis_pool_initialized",
                max_connections=max_connections,
                redis_url=self.redis_url.split("@")[-1],  # Don't log credentials
            )

        except Exception as e:
            logger.error(
                "redis_pool_initialization_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            # Fail open: every readthrough goes straight to its producer
            self.pool = None
            self.redis = None

    async def close(self) -> None:
        """Close the client and disconnect the pool, if any."""
        try:
            if self.redis:
                await self.redis.aclose()
            if self.pool:
                await self.pool.disconnect()
            logger.info("redis_engine_closed")

        except Exception as e:
            logger.error(
                "redis_close_error",
                error=str(e),
                error_type=type(e).__name__,
            )

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve a cached entry by key.

        Args:
            key: Cache key to retrieve

        Returns:
            Cached entry with an added ``age_seconds``, or None if not found
        """
        if not self.redis:
            logger.debug("cache_get_skipped", reason="redis_not_available", key=key)
            return None

        try:
            value = await self.redis.get(key)

            if value:
                cached_data = json.loads(value)

                cached_at = datetime.fromisoformat(cached_data["cached_at"])
                age_seconds = int((datetime.now(timezone.utc) - cached_at).total_seconds())

                logger.debug(
                    "cache_hit",
                    key=key,
                    age_seconds=age_seconds,
                    ttl=cached_data.get("ttl"),
                )

                cached_data["age_seconds"] = age_seconds

                return cached_data

            logger.debug("cache_miss", key=key)
            return None

        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.error(
                "cache_get_decode_error",
                key=key,
                error=str(e),
            )
            # Invalid cached data - delete it
            await self.delete(key)
            return None

        except Exception as e:
            logger.error(
                "cache_get_error",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            # Fail open - treat as a miss
            return None

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        """
        Store a value with TTL.

        Args:
            key: Cache key
            value: JSON-serializable data or a pydantic model
            ttl: Time to live in seconds

        Returns:
            True if cached successfully, False otherwise
        """
        if not self.redis:
            logger.debug("cache_set_skipped", reason="redis_not_available", key=key)
            return False

        try:
            payload = json.dumps(
                {
                    "data": _encode(value),
                    "cached_at": datetime.now(timezone.utc).isoformat(),
                    "ttl": ttl,
                }
            )

            await self.redis.setex(key, ttl, payload)

            logger.debug("cache_set", key=key, ttl=ttl, data_size=len(payload))

            return True

        except (TypeError, ValueError) as e:
            logger.error(
                "cache_set_serialization_error",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        except Exception as e:
            logger.error(
                "cache_set_error",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            # Cache write failures never fail the call
            return False

    async def delete(self, key: str) -> bool:
        """
        Delete a cached value by key.

        Returns:
            True if deleted, False otherwise
        """
        if not self.redis:
            logger.debug("cache_delete_skipped", reason="redis_not_available", key=key)
            return False

        try:
            result = await self.redis.delete(key)
            logger.debug("cache_delete", key=key, deleted=bool(result))
            return bool(result)

        except Exception as e:
            logger.error(
                "cache_delete_error",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def readthrough(self, key: str, producer: Producer, ttl: int) -> Any:
        """
        Return the cached value for ``key``, producing and storing it on a miss.

        Args:
            key: Cache key
            producer: Coroutine function computing the value on a miss
            ttl: Time to live in seconds for a freshly produced value

        Returns:
            Cached data (as decoded JSON) or the producer's result

        Raises:
            Any error raised by the producer

        Example:
            >>> engine = RedisCacheEngine()
            >>> async def load_user():
            ...     return await users.find(123)
            >>> user = await engine.readthrough("rpc.UserService.find.id:123", load_user, ttl=60)
        """
        cached = await self.get(key)

        if cached:
            logger.info(
                "cache_hit_readthrough",
                key=key,
                cache_age_seconds=cached.get("age_seconds", 0),
            )
            return cached["data"]

        logger.info("cache_miss_producing", key=key)

        try:
            value = await producer()
        except Exception as e:
            logger.error(
                "producer_error",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        await self.set(key, value, ttl)

        return value
