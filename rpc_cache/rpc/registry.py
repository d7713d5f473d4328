"""Per-service registry of cache policies."""

from typing import Any, Dict, FrozenSet, Mapping, Optional

import structlog

from rpc_cache.models.options import CacheOptions
from rpc_cache.rpc.cache_policy import CachePolicy

logger = structlog.get_logger(__name__)


class CachePolicyRegistry:
    """
    Maps method keys of one service type to their CachePolicy.

    Written only while the service class is being defined and read-only
    afterwards, so lookups need no locking.
    """

    def __init__(self, service_id: str) -> None:
        self.service_id = service_id
        self._policies: Dict[str, CachePolicy] = {}
        self._options: Dict[str, Dict[str, Any]] = {}

    def declare(
        self,
        method_key: str,
        options: Mapping[str, Any],
        request_type: Any,
    ) -> CachePolicy:
        """
        Build a policy for a method and store it.

        Declaring the same method twice replaces the earlier policy.

        Args:
            method_key: RPC method name
            options: Raw cache options (on, ttl, require, if, unless)
            request_type: The method's request class

        Returns:
            The stored CachePolicy

        Raises:
            ConfigurationError: If the options or field names are invalid
        """
        policy = CachePolicy(
            self.service_id,
            method_key,
            CacheOptions.build(method_key, options),
            request_type,
        )

        if method_key in self._policies:
            logger.warning(
                "cache_policy_redeclared",
                service=self.service_id,
                method=method_key,
            )

        self._policies[method_key] = policy
        self._options[method_key] = dict(options)

        logger.debug(
            "cache_policy_declared",
            service=self.service_id,
            method=method_key,
            key_fields=list(policy.key_fields),
            required_fields=sorted(policy.required_fields),
            ttl=policy.ttl,
        )

        return policy

    def lookup(self, method_key: str) -> Optional[CachePolicy]:
        return self._policies.get(method_key)

    def declarations(self) -> Dict[str, Dict[str, Any]]:
        """Return the raw options of every declared method."""
        return {method_key: dict(options) for method_key, options in self._options.items()}

    def configured_methods(self) -> FrozenSet[str]:
        return frozenset(self._policies)

    def __contains__(self, method_key: object) -> bool:
        return method_key in self._policies

    def __len__(self) -> int:
        return len(self._policies)
