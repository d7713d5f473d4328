"""TTL (Time To Live) presets for cached RPC responses.

A method's TTL is advisory: the policy layer carries it and hands it to the
cache engine, which is the only component that enforces expiry.
"""

from enum import Enum
from typing import Union

import structlog

logger = structlog.get_logger(__name__)


class CacheTTL(Enum):
    """
    Named TTL presets usable in cache declarations.

    Values are in seconds.

    Example:
        >>> class UserService(Cacheable, Service):
        ...     rpc("find", FindUserRequest, UserResponse)
        ...     cache("find", on=["id"], ttl=CacheTTL.MEDIUM)
    """

    # Applied when a declaration names no ttl
    DEFAULT = 60

    # Volatile data (counters, presence)
    SHORT = 15

    # Lookups that tolerate a few minutes of staleness
    MEDIUM = 300

    # Reference data (catalogs, configuration)
    LONG = 3600

    # Effectively static data
    DAY = 86400

    @staticmethod
    def resolve(ttl: Union["CacheTTL", int]) -> int:
        """
        Turn a preset or a plain number of seconds into seconds.

        Args:
            ttl: CacheTTL member or int seconds

        Returns:
            TTL in seconds

        Example:
            >>> CacheTTL.resolve(CacheTTL.LONG)
            3600
            >>> CacheTTL.resolve(90)
            90
        """
        if isinstance(ttl, CacheTTL):
            seconds = ttl.value
            logger.debug("ttl_preset_resolved", preset=ttl.name, ttl_seconds=seconds)
            return seconds

        return ttl
