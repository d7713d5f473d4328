"""
Cache integration for RPC services.

Services opt in by mixing in Cacheable and declaring a policy per method,
either with the ``cached`` decorator or with ``cache()`` after the class
body:

    class UserService(Cacheable, Service):
        @cached(on=["id", "name"], ttl=300, require=["id"])
        @rpc(FindUserRequest, UserResponse)
        async def find(self, request):
            ...

    service = UserService(cache_engine=RedisCacheEngine())
    response = await service.dispatch("find", FindUserRequest(id=123))

The cache engine is injected when the service is constructed and is never
created here. Concurrent misses on the same key are not coalesced: each
one runs its own producer.
"""

import time
from typing import Any, Awaitable, Callable, ClassVar, FrozenSet, Optional, Protocol

from pydantic import BaseModel

from rpc_cache.exceptions import ConfigurationError
from rpc_cache.rpc.cache_policy import CachePolicy
from rpc_cache.rpc.registry import CachePolicyRegistry
from rpc_cache.rpc.request import CacheableRequest
from rpc_cache.rpc.service import RPC_ATTRIBUTE, RpcMethod
from rpc_cache.utils.logger import log_readthrough


Producer = Callable[[], Awaitable[Any]]

CACHE_ATTRIBUTE = "__cache_options__"


class CacheEngine(Protocol):
    """External cache store offering a readthrough read."""

    async def readthrough(self, key: str, producer: Producer, ttl: int) -> Any:
        """
        Return the value cached under ``key``.

        On a miss the engine awaits ``producer``, stores its result under
        ``key`` for ``ttl`` seconds and returns it.
        """
        ...


def cached(**options: Any) -> Callable[[Callable], Callable]:
    """
    Declare a cache policy on an RPC handler.

    Accepts the same options as ``Cacheable.cache``. Stacks with ``rpc``
    in either order.
    """

    def decorator(handler: Callable) -> Callable:
        setattr(handler, CACHE_ATTRIBUTE, options)
        return handler

    return decorator


class CacheableIntegration:
    """
    Instance-facing cache facade of a service.

    Attributes:
        service: Service instance the facade belongs to
        registry: Cache policies of the service's class
        engine: Injected cache engine
    """

    def __init__(
        self,
        service: Any,
        registry: CachePolicyRegistry,
        engine: CacheEngine,
    ) -> None:
        self.service = service
        self.registry = registry
        self.engine = engine

    def policy(self, method_key: str) -> Optional[CachePolicy]:
        return self.registry.lookup(method_key)

    def is_cacheable(self, method_key: str) -> bool:
        """
        Check whether a cache policy is declared for a method.

        This looks only at the declaration. Whether a given request
        qualifies is decided by ``CachePolicy.cacheable``.
        """
        return method_key in self.registry.configured_methods()

    def cache_key(self, method_key: str, request: CacheableRequest) -> Optional[str]:
        """
        Return the cache key for a request, if the method has a policy.

        Note:
            A returned key does not mean the request is cacheable. Callers
            must still check ``CachePolicy.cacheable`` before reading or
            writing the cache with it; ``readthrough_or_compute`` does.

        Returns:
            Cache key, or None if no policy is declared for the method
        """
        policy = self.policy(method_key)
        if policy is None:
            return None
        return policy.key(request)

    async def readthrough_or_compute(
        self,
        method_key: str,
        request: CacheableRequest,
        producer: Producer,
    ) -> Any:
        """
        Serve a call through the cache engine when the request allows it.

        If the method has a policy and the request is cacheable, the engine
        reads through under the request's key with the policy's ttl.
        Otherwise ``producer`` is awaited directly and the engine is not
        touched.

        Args:
            method_key: RPC method being invoked
            request: Incoming request
            producer: Coroutine function computing the real response

        Returns:
            Cached or freshly produced response

        Raises:
            Any error raised by the engine or the producer, unchanged
        """
        service_name = type(self.service).__name__
        policy = self.policy(method_key)

        start_time = time.time()

        if policy is None or not policy.cacheable(request):
            value = await producer()
            log_readthrough(
                service_name,
                method_key,
                cached=False,
                duration_ms=(time.time() - start_time) * 1000,
                reason="no_policy" if policy is None else "not_cacheable",
            )
            return value

        key = policy.key(request)

        try:
            value = await self.engine.readthrough(key, producer, ttl=policy.ttl)
        except Exception as e:
            log_readthrough(
                service_name,
                method_key,
                cached=True,
                duration_ms=(time.time() - start_time) * 1000,
                error=str(e),
                key=key,
                error_type=type(e).__name__,
            )
            raise

        log_readthrough(
            service_name,
            method_key,
            cached=True,
            duration_ms=(time.time() - start_time) * 1000,
            key=key,
            ttl=policy.ttl,
        )

        return self._restore_response(method_key, value)

    def _restore_response(self, method_key: str, value: Any) -> Any:
        # Engines that serialize hand back plain dicts on a hit.
        rpc_method = getattr(self.service, "rpc_method", None)
        method = rpc_method(method_key) if rpc_method else None
        response_type = method.response_type if method else None

        if (
            isinstance(value, dict)
            and isinstance(response_type, type)
            and issubclass(response_type, BaseModel)
        ):
            return response_type.model_validate(value)

        return value


class Cacheable:
    """
    Service mixin adding declarative response caching.

    Mix in before Service. Every subclass gets its own policy registry,
    populated while the class is defined.
    """

    cache_policies: ClassVar[CachePolicyRegistry]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)

        inherited = next(
            (
                vars(base)["cache_policies"]
                for base in cls.__mro__[1:]
                if "cache_policies" in vars(base)
            ),
            None,
        )

        cls.cache_policies = CachePolicyRegistry(cls.__name__)

        # Parent policies are redeclared under this class's key prefix,
        # whether they came from @cached or from cache().
        if inherited is not None:
            for method_key, options in inherited.declarations().items():
                cls.cache(method_key, **options)

        for attribute, handler in vars(cls).items():
            options = getattr(handler, CACHE_ATTRIBUTE, None)
            if options is None:
                continue

            method = getattr(handler, RPC_ATTRIBUTE, None)
            if not isinstance(method, RpcMethod):
                raise ConfigurationError(
                    f"{cls.__name__}.{attribute} is marked @cached but is not an rpc method",
                    method_key=attribute,
                )

            cls.cache(method.name, **options)

    def __init__(self, *args: Any, cache_engine: CacheEngine, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.caching = CacheableIntegration(self, type(self).cache_policies, cache_engine)

    @classmethod
    def cache(cls, method_key: str, **options: Any) -> CachePolicy:
        """
        Declare the cache policy of an RPC method.

        Args:
            method_key: Name of a method declared with ``rpc``
            **options: on, ttl, require, if_ (or "if"), unless

        Returns:
            The stored CachePolicy

        Raises:
            ConfigurationError: If the method is unknown or the options
                are invalid
        """
        method = getattr(cls, "rpcs", {}).get(method_key)
        if method is None:
            raise ConfigurationError(
                f"{cls.__name__} declares no rpc method with this name",
                method_key=method_key,
            )

        return cls.cache_policies.declare(method_key, options, method.request_type)

    @classmethod
    def cached_methods(cls) -> FrozenSet[str]:
        return cls.cache_policies.configured_methods()

    async def dispatch(self, method_key: str, request: Any) -> Any:
        """Invoke a handler, reading through the cache when its policy allows."""
        handler = self.handler_for(method_key)
        return await self.caching.readthrough_or_compute(
            method_key,
            request,
            lambda: handler(request),
        )
