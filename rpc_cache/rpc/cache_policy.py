"""Per-method cache policy: key derivation and cacheability.

A CachePolicy is built once, when a service class declares caching for
one of its methods, and is then shared read-only by every call to that
method.
"""

from typing import Any, FrozenSet, Optional, Tuple

from rpc_cache.exceptions import ConfigurationError
from rpc_cache.models.options import CacheOptions, Predicate
from rpc_cache.rpc.request import CacheableRequest, declared_fields

KEY_NAMESPACE = "rpc"
KEY_SEPARATOR = "."


class CachePolicy:
    """
    Cache configuration for a single RPC method.

    Attributes:
        service_id: Name of the owning service type
        method_key: Name of the method this policy governs
        key_fields: Ordered, duplicate-free request fields used in the key
        required_fields: Fields that must be present for caching
        ttl: Advisory time to live in seconds
        admit: Optional admission predicate
        deny: Optional denial predicate
        key_prefix: ``rpc.<service_id>.<method_key>``
    """

    __slots__ = (
        "_service_id",
        "_method_key",
        "_key_fields",
        "_required_fields",
        "_ttl",
        "_admit",
        "_deny",
        "_key_prefix",
    )

    def __init__(
        self,
        service_id: str,
        method_key: str,
        options: CacheOptions,
        request_type: Any,
    ) -> None:
        """
        Build and validate a policy.

        Args:
            service_id: Name of the owning service type
            method_key: Name of the method
            options: Validated cache options
            request_type: The method's request class, used to check that
                every named field exists

        Raises:
            ConfigurationError: If a key or required field is not declared
                on the request type
        """
        fields = declared_fields(request_type)

        for field in options.on:
            if field not in fields:
                raise ConfigurationError(
                    f"key field is not declared on {request_type.__name__}",
                    method_key=method_key,
                    field=field,
                )

        undeclared = sorted(options.require - fields)
        if undeclared:
            raise ConfigurationError(
                f"required field is not declared on {request_type.__name__}",
                method_key=method_key,
                field=undeclared[0],
            )

        self._service_id = service_id
        self._method_key = method_key
        self._key_fields: Tuple[str, ...] = options.on
        self._required_fields: FrozenSet[str] = options.require
        self._ttl: int = options.ttl
        self._admit: Optional[Predicate] = options.if_
        self._deny: Optional[Predicate] = options.unless
        self._key_prefix = KEY_SEPARATOR.join((KEY_NAMESPACE, service_id, method_key))

    @property
    def service_id(self) -> str:
        return self._service_id

    @property
    def method_key(self) -> str:
        return self._method_key

    @property
    def key_fields(self) -> Tuple[str, ...]:
        return self._key_fields

    @property
    def required_fields(self) -> FrozenSet[str]:
        return self._required_fields

    @property
    def ttl(self) -> int:
        return self._ttl

    @property
    def admit(self) -> Optional[Predicate]:
        return self._admit

    @property
    def deny(self) -> Optional[Predicate]:
        return self._deny

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    def cacheable(self, request: CacheableRequest) -> bool:
        """
        Decide whether a request may be served through the cache.

        Required fields are checked first, then the admission predicate,
        then the denial predicate. Evaluation stops at the first gate that
        blocks, so later predicates are not called.

        Args:
            request: Incoming request

        Returns:
            True if the request is cacheable
        """
        return (
            self.required_fields_present(request)
            and self._admitted(request)
            and not self._denied(request)
        )

    def required_fields_present(self, request: CacheableRequest) -> bool:
        """Check that every required field is carried and non-empty."""
        return all(request.has_and_present(field) for field in self._required_fields)

    def key(self, request: CacheableRequest) -> str:
        """
        Return the cache key for a request.

        Example:
            Given ``cache("find", on=["id", "name"])`` on UserService and a
            request ``{id: 123, name: "jeff"}``, the key is::

                rpc.UserService.find.id:123.name:jeff

        Key fields the request does not carry are left out of the key
        entirely, so requests that differ only in an unset key field share
        a key. With no carried key fields the bare prefix is returned.

        Args:
            request: Incoming request

        Returns:
            Cache key string
        """
        fragments = [
            f"{field}:{request.value_of(field)}"
            for field in self._key_fields
            if request.has_field(field)
        ]
        return KEY_SEPARATOR.join([self._key_prefix, *fragments])

    def _admitted(self, request: CacheableRequest) -> bool:
        if self._admit is None:
            return True
        return bool(self._admit(request))

    def _denied(self, request: CacheableRequest) -> bool:
        if self._deny is None:
            return False
        return bool(self._deny(request))

    def __repr__(self) -> str:
        return (
            f"CachePolicy({self._key_prefix!r}, key_fields={list(self._key_fields)!r}, "
            f"ttl={self._ttl})"
        )
