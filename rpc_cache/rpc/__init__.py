"""
RPC cache policy layer.

This package provides:
- CachePolicy: per-method key derivation and cacheability
- CachePolicyRegistry: per-service map of method policies
- CacheableIntegration: instance facade performing readthrough
- Cacheable: service mixin with the cache() declaration
- Service and rpc: minimal method declaration and dispatch
- CacheableRequest and RequestMessage: request field probes
"""

from rpc_cache.rpc.cache_policy import CachePolicy
from rpc_cache.rpc.cacheable import (
    Cacheable,
    CacheableIntegration,
    CacheEngine,
    cached,
)
from rpc_cache.rpc.registry import CachePolicyRegistry
from rpc_cache.rpc.request import (
    CacheableRequest,
    RequestMessage,
    declared_fields,
    is_present,
)
from rpc_cache.rpc.service import RpcMethod, Service, rpc

__all__ = [
    # Policies
    "CachePolicy",
    "CachePolicyRegistry",
    # Integration
    "Cacheable",
    "CacheableIntegration",
    "CacheEngine",
    "cached",
    # Requests
    "CacheableRequest",
    "RequestMessage",
    "declared_fields",
    "is_present",
    # Services
    "RpcMethod",
    "Service",
    "rpc",
]
