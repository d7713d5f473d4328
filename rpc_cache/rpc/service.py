"""
RPC service base class and method declarations.

Handlers are declared with the ``rpc`` decorator, which records the
request and response types of each method on the service class:

    class UserService(Service):
        @rpc(FindUserRequest, UserResponse)
        async def find(self, request):
            ...

Transport is not handled here; ``dispatch`` simply awaits the handler.
"""

from typing import Any, Awaitable, Callable, ClassVar, Dict, NamedTuple, Optional

import structlog

logger = structlog.get_logger(__name__)

Handler = Callable[[Any, Any], Awaitable[Any]]

RPC_ATTRIBUTE = "__rpc__"


class RpcMethod(NamedTuple):
    """Declared signature of one RPC method."""

    name: str
    request_type: Any
    response_type: Optional[Any]
    handler_name: str


def rpc(
    request_type: Any,
    response_type: Optional[Any] = None,
    name: Optional[str] = None,
) -> Callable[[Handler], Handler]:
    """
    Mark a coroutine method as an RPC handler.

    Args:
        request_type: Request message class of the method
        response_type: Optional response message class
        name: Method key, defaults to the function name

    Returns:
        Decorator that leaves the handler unchanged apart from the marker
    """

    def decorator(handler: Handler) -> Handler:
        setattr(
            handler,
            RPC_ATTRIBUTE,
            RpcMethod(
                name or handler.__name__,
                request_type,
                response_type,
                handler.__name__,
            ),
        )
        return handler

    return decorator


class Service:
    """
    Base class for RPC services.

    Each subclass gets its own ``rpcs`` map, inherited methods included.
    """

    rpcs: ClassVar[Dict[str, RpcMethod]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)

        rpcs: Dict[str, RpcMethod] = dict(cls.rpcs)
        for attribute in vars(cls).values():
            method = getattr(attribute, RPC_ATTRIBUTE, None)
            if isinstance(method, RpcMethod):
                rpcs[method.name] = method
        cls.rpcs = rpcs

    @classmethod
    def rpc_method(cls, method_key: str) -> Optional[RpcMethod]:
        return cls.rpcs.get(method_key)

    def handler_for(self, method_key: str) -> Handler:
        """
        Find the bound handler for a method key.

        Raises:
            LookupError: If the service has no such method
        """
        method = self.rpc_method(method_key)
        if method is None:
            raise LookupError(f"{type(self).__name__} has no rpc method {method_key!r}")

        return getattr(self, method.handler_name)

    async def dispatch(self, method_key: str, request: Any) -> Any:
        """Invoke the handler for ``method_key`` with ``request``."""
        handler = self.handler_for(method_key)
        logger.debug("rpc_dispatch", service=type(self).__name__, method=method_key)
        return await handler(request)
