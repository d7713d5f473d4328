"""
Declarative response caching for RPC service methods.

Example:
    >>> from rpc_cache import Cacheable, RequestMessage, Service, cached, rpc
    >>> class UserService(Cacheable, Service):
    ...     @cached(on=["id", "name"], ttl=300)
    ...     @rpc(FindUserRequest, UserResponse)
    ...     async def find(self, request):
    ...         ...
"""

from rpc_cache.exceptions import ConfigurationError, RpcCacheError
from rpc_cache.rpc import (
    Cacheable,
    CacheableIntegration,
    CacheableRequest,
    CacheEngine,
    CachePolicy,
    CachePolicyRegistry,
    RequestMessage,
    RpcMethod,
    Service,
    cached,
    rpc,
)

__version__ = "1.0.0"

__all__ = [
    # Exceptions
    "RpcCacheError",
    "ConfigurationError",
    # Policy layer
    "CachePolicy",
    "CachePolicyRegistry",
    "CacheableIntegration",
    "CacheEngine",
    "Cacheable",
    "cached",
    # Service and request plumbing
    "Service",
    "RpcMethod",
    "rpc",
    "CacheableRequest",
    "RequestMessage",
]
