"""HTTP client port used for probe round-trips and proxy forwarding.

The engine only talks to the network through the ``HttpClient`` protocol, so
tests (and embedding applications) can substitute any implementation. The
default ``HttpxClient`` wraps a synchronous ``httpx.Client``; passing an
``httpx.MockTransport`` routes every request to an in-process handler.

Example:
    >>> from waypost.transport.http import HttpxClient
    >>> with HttpxClient(timeout=3.0) as client:
    ...     response = client.get("https://example.com/llms.txt")
    ...     response.status_code
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from threading import Lock
from typing import Protocol, runtime_checkable

import httpx

from waypost.errors import HttpRequestError
from waypost.models.constants import DEFAULT_HTTP_TIMEOUT_SECONDS, DEFAULT_USER_AGENT
from waypost.observability import get_logger
from waypost.utils.sanitization import sanitize_url

logger = get_logger(__name__)


@dataclass(frozen=True)
class HttpResponse:
    """Transport-neutral response returned by every HttpClient.

    Attributes:
        status_code: HTTP status code
        headers: Response headers with lower-cased names
        body: Raw response body
        elapsed_ms: Round-trip time in milliseconds
    """

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    elapsed_ms: float = 0.0

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


@runtime_checkable
class HttpClient(Protocol):
    """Port for outbound HTTP.

    Implementations raise ``HttpRequestError`` when no response arrives
    (timeout, refused connection, DNS failure); any HTTP status is a response.
    """

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        content: bytes | None = None,
        timeout: float | None = None,
        verify: bool = True,
    ) -> HttpResponse: ...

    def get(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        verify: bool = True,
    ) -> HttpResponse: ...

    def post(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        content: bytes | None = None,
        timeout: float | None = None,
        verify: bool = True,
    ) -> HttpResponse: ...


class HttpxClient:
    """HttpClient backed by ``httpx.Client``.

    TLS verification is a client-level setting in httpx, so one pooled client
    is kept per verification mode and created lazily.

    Args:
        timeout: Default per-request timeout in seconds
        user_agent: User-Agent header sent with every request
        transport: Optional httpx transport (e.g. ``httpx.MockTransport``)
        follow_redirects: Whether redirects are followed
    """

    def __init__(
        self,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.BaseTransport | None = None,
        follow_redirects: bool = False,
    ) -> None:
        self._timeout = timeout
        self._user_agent = user_agent
        self._transport = transport
        self._follow_redirects = follow_redirects
        self._clients: dict[bool, httpx.Client] = {}
        self._lock = Lock()

    def _client_for(self, verify: bool) -> httpx.Client:
        with self._lock:
            client = self._clients.get(verify)
            if client is None:
                client = httpx.Client(
                    timeout=httpx.Timeout(self._timeout),
                    verify=verify,
                    transport=self._transport,
                    follow_redirects=self._follow_redirects,
                    headers={"User-Agent": self._user_agent},
                )
                self._clients[verify] = client
            return client

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        content: bytes | None = None,
        timeout: float | None = None,
        verify: bool = True,
    ) -> HttpResponse:
        client = self._client_for(verify)
        start = time.perf_counter()
        try:
            response = client.request(
                method.upper(),
                url,
                headers=dict(headers or {}),
                content=content,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.TimeoutException as exc:
            logger.debug("waypost.http.timeout", method=method, url=sanitize_url(url))
            raise HttpRequestError(
                sanitize_url(url), str(exc) or "timed out", timed_out=True
            ) from exc
        except httpx.HTTPError as exc:
            logger.debug(
                "waypost.http.error",
                method=method,
                url=sanitize_url(url),
                error_type=type(exc).__name__,
            )
            raise HttpRequestError(sanitize_url(url), str(exc) or type(exc).__name__) from exc

        elapsed_ms = (time.perf_counter() - start) * 1000
        return HttpResponse(
            status_code=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            body=response.content,
            elapsed_ms=round(elapsed_ms, 2),
        )

    def get(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        verify: bool = True,
    ) -> HttpResponse:
        return self.request("GET", url, headers=headers, timeout=timeout, verify=verify)

    def post(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        content: bytes | None = None,
        timeout: float | None = None,
        verify: bool = True,
    ) -> HttpResponse:
        return self.request(
            "POST", url, headers=headers, content=content, timeout=timeout, verify=verify
        )

    def close(self) -> None:
        with self._lock:
            for client in self._clients.values():
                client.close()
            self._clients.clear()

    def __enter__(self) -> HttpxClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
