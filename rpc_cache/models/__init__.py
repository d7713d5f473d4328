"""Pydantic models for cache declarations."""

from rpc_cache.models.options import CacheOptions

__all__ = ["CacheOptions"]
