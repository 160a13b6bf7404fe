"""Proxy route handler for API endpoints such as ``/ask``.

GET answers with service information, OPTIONS answers the CORS preflight, and
POST forwards a validated JSON question to the upstream service through the
HTTP client port. Upstream failures never escape: they become 502 (bad or
missing upstream response) or 504 (upstream timeout) JSON errors.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from waypost.dispatch.dispatcher import DispatchRequest, DispatchResponse
from waypost.errors import HttpRequestError
from waypost.models.constants import CORS_ALLOW_HEADERS, CORS_MAX_AGE_SECONDS
from waypost.models.entities import ContentGenerator
from waypost.models.ids import generate_id
from waypost.observability import get_logger, sanitize_for_logging
from waypost.transport.http import HttpClient
from waypost.utils.sanitization import sanitize_url

logger = get_logger(__name__)

PROXY_METHODS = ("GET", "POST", "OPTIONS")
JSON_CONTENT_TYPE = "application/json; charset=utf-8"
SOURCE_NAME = "waypost"


class ProxyRequestError(ValueError):
    """Client sent an unusable proxy request (answered with HTTP 400)."""


def _json_response(status_code: int, payload: dict[str, Any]) -> DispatchResponse:
    return DispatchResponse(
        status_code=status_code,
        headers={"Content-Type": JSON_CONTENT_TYPE, "Access-Control-Allow-Origin": "*"},
        body=json.dumps(payload).encode("utf-8"),
    )


def _error(status_code: int, message: str) -> DispatchResponse:
    return _json_response(status_code, {"error": message, "status": "error"})


def parse_question(body: bytes) -> dict[str, Any]:
    """Validate a proxy POST body.

    Args:
        body: Raw request body.

    Returns:
        The decoded JSON object, with ``message`` stripped.

    Raises:
        ProxyRequestError: If the body is not a JSON object with a non-empty
            string ``message``.
    """
    try:
        payload = json.loads(body or b"null")
    except (ValueError, UnicodeDecodeError) as exc:
        raise ProxyRequestError("Invalid request: body must be JSON") from exc
    if not isinstance(payload, dict) or "message" not in payload:
        raise ProxyRequestError("Invalid request: message is required")
    message = payload["message"]
    if not isinstance(message, str) or not message.strip():
        raise ProxyRequestError("Message cannot be empty")
    return {**payload, "message": message.strip()}


def _extract_answer(body: bytes) -> Any:
    try:
        decoded = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return body.decode("utf-8", errors="replace")
    if isinstance(decoded, dict):
        for key in ("response", "answer", "message"):
            if key in decoded:
                return decoded[key]
    return decoded


class ProxyHandler:
    """Route handler that forwards questions to an upstream service.

    Args:
        target: Upstream URL receiving forwarded POSTs
        client: HTTP client port used for forwarding
        timeout: Upstream timeout in seconds
        site_url: Public site URL included in forwarded payloads
        info_generator: Content generator for the GET info document
        verify: TLS verification for upstream requests
    """

    def __init__(
        self,
        target: str,
        client: HttpClient,
        timeout: float,
        site_url: str = "",
        info_generator: ContentGenerator | None = None,
        verify: bool = True,
    ) -> None:
        self.target = target
        self.client = client
        self.timeout = timeout
        self.site_url = site_url
        self.info_generator = info_generator
        self.verify = verify

    def __call__(self, request: DispatchRequest) -> DispatchResponse:
        method = request.method.upper()
        if method == "OPTIONS":
            return self.preflight()
        if method == "POST":
            return self.forward(request)
        if method in ("GET", "HEAD"):
            response = self.info()
            if method == "HEAD":
                response.body = b""
            return response
        return DispatchResponse(
            status_code=405,
            headers={"Allow": ", ".join(PROXY_METHODS), "Access-Control-Allow-Origin": "*"},
        )

    def preflight(self) -> DispatchResponse:
        return DispatchResponse(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": "*",
                "Access-Control-Allow-Methods": ", ".join(PROXY_METHODS),
                "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
                "Access-Control-Max-Age": str(CORS_MAX_AGE_SECONDS),
            },
        )

    def info(self) -> DispatchResponse:
        """Service description served on GET."""
        if self.info_generator is not None:
            content, content_type = self.info_generator()
            if isinstance(content, str):
                content = content.encode("utf-8")
            return DispatchResponse(
                status_code=200,
                headers={
                    "Content-Type": content_type or JSON_CONTENT_TYPE,
                    "Access-Control-Allow-Origin": "*",
                },
                body=content,
            )
        return _json_response(
            200,
            {
                "service": "waypost proxy",
                "endpoints": {
                    "POST": "Submit a question or request",
                    "GET": "This information document",
                },
                "usage": {
                    "method": "POST",
                    "content_type": "application/json",
                    "body": {"message": "Your question here", "session_id": "optional"},
                },
                "status": "active",
            },
        )

    def forward(self, request: DispatchRequest) -> DispatchResponse:
        """Validate a POSTed question and relay it upstream."""
        try:
            question = parse_question(request.body)
        except ProxyRequestError as exc:
            return _error(400, str(exc))

        session_id = str(question.get("session_id") or f"chat_{generate_id()}")
        timestamp = datetime.now(timezone.utc).isoformat()
        payload: dict[str, Any] = {
            "query": question["message"],
            "session_id": session_id,
            "source": SOURCE_NAME,
            "site_url": self.site_url,
            "timestamp": timestamp,
        }
        if question.get("context"):
            payload["context"] = question["context"]

        logger.info(
            "waypost.proxy.forwarding",
            target=sanitize_url(self.target),
            request_headers=sanitize_for_logging(dict(request.headers)),
            session_id=session_id,
        )
        try:
            upstream = self.client.post(
                self.target,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                content=json.dumps(payload).encode("utf-8"),
                timeout=self.timeout,
                verify=self.verify,
            )
        except HttpRequestError as exc:
            logger.warning(
                "waypost.proxy.upstream_unreachable",
                target=sanitize_url(self.target),
                timed_out=exc.timed_out,
                error=exc.message,
            )
            if exc.timed_out:
                return _error(504, "Upstream service timed out. Please try again later.")
            return _error(502, "Unable to connect to upstream service. Please try again later.")

        if upstream.status_code not in (200, 201):
            logger.warning(
                "waypost.proxy.upstream_error",
                target=sanitize_url(self.target),
                status_code=upstream.status_code,
            )
            return _error(502, "Upstream service temporarily unavailable. Please try again later.")

        return _json_response(
            200,
            {
                "response": _extract_answer(upstream.body),
                "session_id": session_id,
                "timestamp": timestamp,
                "status": "success",
            },
        )
