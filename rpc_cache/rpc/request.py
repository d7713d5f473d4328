"""
Request field-reflection capability consumed by cache policies.

A cache policy never reads request attributes directly. It asks the
request whether it carries a field, whether that field holds a meaningful
value, and what the value is. Any request type can take part by
implementing CacheableRequest; pydantic messages get it by subclassing
RequestMessage.
"""

from collections.abc import Sized
from typing import Any, FrozenSet, Protocol, runtime_checkable

from pydantic import BaseModel

from rpc_cache.exceptions import ConfigurationError


@runtime_checkable
class CacheableRequest(Protocol):
    """Field probes a request must answer for cache key and gate evaluation."""

    def has_field(self, name: str) -> bool:
        ...

    def has_and_present(self, name: str) -> bool:
        ...

    def value_of(self, name: str) -> Any:
        ...


def is_present(value: Any) -> bool:
    """
    Check whether a value is meaningful for required-field gating.

    None and empty strings, bytes and collections are not present.
    Zero and False are present values.

    Example:
        >>> is_present("")
        False
        >>> is_present(0)
        True
    """
    if value is None:
        return False
    if isinstance(value, Sized):
        return len(value) > 0
    return True


class RequestMessage(BaseModel):
    """
    Base class for pydantic request messages.

    A field counts as carried only when it was set explicitly to something
    other than None, so a field left at its default is skipped by cache
    keys and fails required-field gates.

    Example:
        >>> class FindUserRequest(RequestMessage):
        ...     id: Optional[int] = None
        ...     name: Optional[str] = None
        >>> request = FindUserRequest(id=123)
        >>> request.has_field("id"), request.has_field("name")
        (True, False)
    """

    @classmethod
    def declared_fields(cls) -> FrozenSet[str]:
        return frozenset(cls.model_fields)

    def has_field(self, name: str) -> bool:
        return name in self.model_fields_set and getattr(self, name) is not None

    def has_and_present(self, name: str) -> bool:
        return self.has_field(name) and is_present(getattr(self, name))

    def value_of(self, name: str) -> Any:
        return getattr(self, name)


def declared_fields(request_type: Any) -> FrozenSet[str]:
    """
    Return the field names declared by a request type.

    Args:
        request_type: A class exposing a declared_fields() classmethod or
            a pydantic model class

    Returns:
        Frozen set of declared field names

    Raises:
        ConfigurationError: If the type declares its fields in neither way
    """
    declared = getattr(request_type, "declared_fields", None)
    if callable(declared):
        return frozenset(declared())

    model_fields = getattr(request_type, "model_fields", None)
    if isinstance(model_fields, dict):
        return frozenset(model_fields)

    raise ConfigurationError(
        f"Request type {getattr(request_type, '__name__', request_type)!r} "
        "does not declare its fields"
    )
