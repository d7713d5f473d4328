"""
Pydantic model for per-method cache declarations.

The keyword bag given to ``cache()`` is validated into a frozen
CacheOptions before any CachePolicy is built from it. Unknown keys are
rejected so a misspelled option fails at definition time instead of being
silently ignored.
"""
from typing import Any, Callable, FrozenSet, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, validator

from rpc_cache.cache.ttl import CacheTTL
from rpc_cache.exceptions import ConfigurationError

Predicate = Callable[[Any], bool]


class CacheOptions(BaseModel):
    """
    Validated cache configuration for one RPC method.

    ``if`` is a Python keyword, so the admit predicate may be passed either
    as ``if_`` or, through a mapping, as ``"if"``.
    """

    on: Tuple[str, ...] = Field(
        (),
        description="Request fields that make up the cache key, in order",
    )
    ttl: int = Field(
        CacheTTL.DEFAULT.value,
        gt=0,
        description="Advisory time to live in seconds, enforced by the engine",
    )
    require: FrozenSet[str] = Field(
        frozenset(),
        description="Request fields that must be present for a request to be cacheable",
    )
    if_: Optional[Predicate] = Field(
        None,
        alias="if",
        description="Admission predicate; the request is cacheable only if it returns True",
    )
    unless: Optional[Predicate] = Field(
        None,
        description="Denial predicate; the request is not cacheable if it returns True",
    )

    @validator("on")
    def collapse_duplicate_fields(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """Drop repeated key fields, keeping the first occurrence."""
        return tuple(dict.fromkeys(v))

    @validator("ttl", pre=True)
    def resolve_ttl_preset(cls, v: Any) -> Any:
        """Accept CacheTTL presets as well as plain seconds."""
        return CacheTTL.resolve(v) if isinstance(v, CacheTTL) else v

    class Config:
        frozen = True
        extra = "forbid"
        populate_by_name = True

    @classmethod
    def build(cls, method_key: str, options: Mapping[str, Any]) -> "CacheOptions":
        """
        Validate a declaration's options.

        Args:
            method_key: RPC method being declared (for error context)
            options: Raw option mapping; it is read, never mutated

        Returns:
            Frozen CacheOptions

        Raises:
            ConfigurationError: If an option is unknown or has an invalid value

        Example:
            >>> opts = CacheOptions.build("find", {"on": ["id", "name", "id"]})
            >>> opts.on
            ('id', 'name')
        """
        try:
            return cls(**dict(options))
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or None
            raise ConfigurationError(
                f"invalid cache option ({error['msg']})",
                method_key=method_key,
                field=field,
            ) from e
