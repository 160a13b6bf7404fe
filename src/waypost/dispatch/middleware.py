"""ASGI middleware wiring the route dispatcher into a Starlette/FastAPI app.

Requests whose path is not bound in the dispatcher go straight to the wrapped
application; bound paths are answered by the dispatcher and never reach it.
Handlers are synchronous, so they run in Starlette's thread pool.

Example:
    >>> from fastapi import FastAPI
    >>> from waypost.dispatch.middleware import DispatchMiddleware
    >>> app = FastAPI()
    >>> app.add_middleware(DispatchMiddleware, dispatcher=manager.dispatcher)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from waypost.dispatch.dispatcher import DispatchRequest, RouteDispatcher
from waypost.observability import get_logger

logger = get_logger(__name__)


class DispatchMiddleware(BaseHTTPMiddleware):
    """Answer requests for bound paths from the route dispatcher.

    Attributes:
        dispatcher: The dispatcher whose bindings are served
    """

    def __init__(self, app: Any, dispatcher: RouteDispatcher) -> None:
        super().__init__(app)
        self.dispatcher = dispatcher

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Any]]
    ) -> Any:
        if not self.dispatcher.handles(request.url.path):
            return await call_next(request)

        dispatch_request = DispatchRequest(
            method=request.method,
            path=request.url.path,
            headers=dict(request.headers),
            body=await request.body(),
            query=request.url.query,
        )
        result = await run_in_threadpool(self.dispatcher.dispatch, dispatch_request)
        if result is None:
            # Unbound between the guard and the lookup.
            return await call_next(request)

        headers = {k: v for k, v in result.headers.items() if k.lower() != "content-length"}
        return Response(content=result.body, status_code=result.status_code, headers=headers)
