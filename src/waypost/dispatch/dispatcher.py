"""Runtime route dispatcher.

The dispatcher maps public paths to route handlers. It is consulted on every
incoming request, so the miss path is a single membership test against a
frozenset that is rebuilt only when bindings change.

Thread Safety:
    Binding and unbinding take an internal RLock. Dispatch reads the current
    frozenset and binding snapshot without holding the lock while the handler
    runs, so a slow content generator never blocks (un)registration.

Example:
    >>> from waypost.dispatch.dispatcher import (
    ...     ContentRouteHandler, DispatchRequest, RouteDispatcher,
    ... )
    >>> dispatcher = RouteDispatcher()
    >>> dispatcher.bind("/llms.txt", ContentRouteHandler(lambda: (b"# Site", "text/plain")))
    >>> response = dispatcher.dispatch(DispatchRequest(method="GET", path="/llms.txt"))
    >>> response.status_code
    200
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from threading import RLock
from typing import Protocol

from waypost.models.constants import (
    CORS_ALLOW_HEADERS,
    HANDLER_HEADER,
    HANDLER_HEADER_VALUE,
)
from waypost.models.entities import ContentGenerator
from waypost.observability import get_logger, get_metrics

logger = get_logger(__name__)


@dataclass(frozen=True)
class DispatchRequest:
    """Framework-neutral view of an incoming request."""

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    query: str = ""

    def header(self, name: str, default: str | None = None) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default


@dataclass
class DispatchResponse:
    """Response produced by a route handler."""

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


class RouteHandler(Protocol):
    """Callable answering requests for one bound path."""

    def __call__(self, request: DispatchRequest) -> DispatchResponse: ...


def cors_headers(methods: tuple[str, ...]) -> dict[str, str]:
    """Permissive CORS headers for a resource answering ``methods``."""
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": ", ".join(methods),
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
    }


class ContentRouteHandler:
    """Serves a content generator's output, invoking it on every request.

    Args:
        generator: Content generator returning ``(content, content_type)``
        content_type: Used when the generator returns an empty content type
        cache_control: Cache-Control header value, if any
        cors: Whether to add permissive CORS headers
        methods: Methods the route answers; HEAD is implied by GET
    """

    def __init__(
        self,
        generator: ContentGenerator,
        content_type: str = "text/plain; charset=utf-8",
        cache_control: str | None = None,
        cors: bool = False,
        methods: tuple[str, ...] = ("GET",),
    ) -> None:
        self.generator = generator
        self.content_type = content_type
        self.cache_control = cache_control
        self.cors = cors
        allowed = {m.upper() for m in methods}
        if "GET" in allowed:
            allowed.add("HEAD")
        if cors:
            allowed.add("OPTIONS")
        self.methods = tuple(sorted(allowed))

    def _base_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.cors:
            headers.update(cors_headers(self.methods))
        return headers

    def __call__(self, request: DispatchRequest) -> DispatchResponse:
        method = request.method.upper()
        if method not in self.methods:
            return DispatchResponse(
                status_code=405,
                headers={"Allow": ", ".join(self.methods), **self._base_headers()},
            )
        if method == "OPTIONS":
            return DispatchResponse(status_code=204, headers=self._base_headers())

        content, content_type = self.generator()
        if isinstance(content, str):
            content = content.encode("utf-8")
        headers = self._base_headers()
        headers["Content-Type"] = content_type or self.content_type
        if self.cache_control:
            headers["Cache-Control"] = self.cache_control
        body = b"" if method == "HEAD" else content
        if method == "HEAD":
            headers["Content-Length"] = str(len(content))
        return DispatchResponse(status_code=200, headers=headers, body=body)


@dataclass(frozen=True)
class RouteBinding:
    """A handler bound to a path."""

    path: str
    handler: RouteHandler
    transient: bool = False
    owner: str | None = None


class RouteDispatcher:
    """Path to handler table consulted by the host application per request.

    Attributes:
        paths: Frozenset of currently bound paths (the fast-path guard)
    """

    def __init__(self) -> None:
        self._bindings: dict[str, RouteBinding] = {}
        self._lock = RLock()
        self.paths: frozenset[str] = frozenset()

    def _rebuild(self) -> None:
        self.paths = frozenset(self._bindings)

    def bind(
        self,
        path: str,
        handler: RouteHandler,
        transient: bool = False,
        owner: str | None = None,
    ) -> RouteBinding | None:
        """Bind ``handler`` to ``path``, returning the binding it replaced."""
        binding = RouteBinding(path=path, handler=handler, transient=transient, owner=owner)
        with self._lock:
            previous = self._bindings.get(path)
            self._bindings[path] = binding
            self._rebuild()
        logger.debug(
            "waypost.route.bound",
            path=path,
            handler_name=type(handler).__name__,
            transient=transient,
            is_override=previous is not None,
        )
        return previous

    def restore(self, path: str, binding: RouteBinding | None) -> None:
        """Put back a binding returned by ``bind``/``unbind`` (None unbinds)."""
        with self._lock:
            if binding is None:
                self._bindings.pop(path, None)
            else:
                self._bindings[path] = binding
            self._rebuild()

    def unbind(self, path: str) -> RouteBinding | None:
        """Remove the binding for ``path``; returns it, or None if unbound."""
        with self._lock:
            previous = self._bindings.pop(path, None)
            if previous is not None:
                self._rebuild()
        if previous is not None:
            logger.debug("waypost.route.unbound", path=path, transient=previous.transient)
        return previous

    def binding(self, path: str) -> RouteBinding | None:
        with self._lock:
            return self._bindings.get(path)

    def handles(self, path: str) -> bool:
        return path in self.paths

    def dispatch(self, request: DispatchRequest) -> DispatchResponse | None:
        """Answer ``request`` if its path is bound, else return None.

        Unbound paths return before any lock, lookup or logging. Handler
        exceptions are logged and turned into a 500 response; the host
        application never sees them.
        """
        if request.path not in self.paths:
            return None

        binding = self._bindings.get(request.path)
        if binding is None:
            return None

        start_time = time.perf_counter()
        try:
            response = binding.handler(request)
        except Exception as exc:
            logger.exception(
                "waypost.dispatch.error",
                path=request.path,
                method=request.method,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            response = DispatchResponse(
                status_code=500,
                headers={"Content-Type": "text/plain; charset=utf-8"},
                body=b"Internal Server Error",
            )

        response.headers[HANDLER_HEADER] = HANDLER_HEADER_VALUE
        duration_ms = (time.perf_counter() - start_time) * 1000
        get_metrics().increment_counter(
            "waypost_dispatch_requests_total",
            {"status": str(response.status_code), "transient": str(binding.transient).lower()},
        )
        logger.debug(
            "waypost.dispatch.completed",
            path=request.path,
            method=request.method,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        return response
