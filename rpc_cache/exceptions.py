"""
Exceptions raised by the RPC cache policy layer.

Only definition-time mistakes are errors here. A request that does not
qualify for caching is ordinary control flow and never raises.
"""

from typing import Optional


class RpcCacheError(Exception):
    """
    Base exception for all cache policy errors.

    Use this for catching any error raised by rpc_cache itself. Errors
    coming out of a cache engine or a producer are not wrapped.
    """

    def __init__(self, message: str, method_key: Optional[str] = None) -> None:
        """
        Initialize RpcCacheError.

        Args:
            message: Error description
            method_key: Optional RPC method the error relates to
        """
        self.message = message
        self.method_key = method_key
        super().__init__(self.message)


class ConfigurationError(RpcCacheError):
    """
    Raised when a cache declaration is invalid.

    This occurs when:
    - A key field is not declared on the method's request type
    - A required field is not declared on the method's request type
    - The options contain an unknown key or an invalid value
    - The method was never declared on the service

    Raised while the service class is being defined, so a broken policy
    never reaches request handling.

    Example:
        >>> raise ConfigurationError("unknown field", method_key="find", field="nmae")
    """

    def __init__(
        self,
        message: str,
        method_key: Optional[str] = None,
        field: Optional[str] = None,
    ) -> None:
        """
        Initialize ConfigurationError.

        Args:
            message: Error description
            method_key: RPC method whose declaration failed
            field: Optional field name that failed validation
        """
        self.field = field

        if field:
            message = f"{field}: {message}"

        super().__init__(message, method_key=method_key)
