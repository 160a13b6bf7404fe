"""Runtime request dispatch for dynamically deployed endpoints.

Example:
    >>> from waypost.dispatch import RouteDispatcher, DispatchRequest
    >>> dispatcher = RouteDispatcher()
    >>> dispatcher.dispatch(DispatchRequest(method="GET", path="/unbound")) is None
    True
"""

from waypost.dispatch.dispatcher import (
    ContentRouteHandler,
    DispatchRequest,
    DispatchResponse,
    RouteBinding,
    RouteDispatcher,
    RouteHandler,
)
from waypost.dispatch.proxy import ProxyHandler

__all__ = [
    "ContentRouteHandler",
    "DispatchRequest",
    "DispatchResponse",
    "ProxyHandler",
    "RouteBinding",
    "RouteDispatcher",
    "RouteHandler",
]
