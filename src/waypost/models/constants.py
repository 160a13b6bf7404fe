"""Constants for waypost.

This module defines deployment-wide constants used across the codebase.
"""

# HTTP round-trips made while probing run inline during activation.
DEFAULT_HTTP_TIMEOUT_SECONDS = 3.0
"""Default timeout for outbound probe requests.

Probing blocks the caller, so a slow or unreachable host must be reported as
"approach unavailable" within low single-digit seconds instead of hanging.
"""

DEFAULT_PROXY_TIMEOUT_SECONDS = 30.0
"""Default timeout for requests forwarded by the proxy route handler."""

DEFAULT_USER_AGENT = "waypost-route-tester/1.0"

DEFAULT_REWRITE_CONFIG = ".htaccess"
"""File (relative to the document root) that receives rewrite fragments."""

DEFAULT_CACHE_CONTROL = "public, max-age=3600"
"""Cache-Control applied to deployed discovery resources."""

# Marker delimiting every fragment waypost writes into a shared file.
MARKER_PREFIX = "waypost"
BEGIN_MARKER_TEMPLATE = "# BEGIN {prefix} {path}"
END_MARKER_TEMPLATE = "# END {prefix} {path}"

TEST_PATH_INFIX = "-waypost-test-"
"""Inserted into probe paths so probes never touch the real endpoint."""

HANDLER_HEADER = "X-Waypost-Handler"
"""Response header set by the dispatcher; proves a response came from a dynamic route."""

HANDLER_HEADER_VALUE = "dispatcher"

STATE_KEY_PREFIX = "waypost.strategy."
"""Prefix of persistence keys holding per-endpoint StrategyState."""

LOCAL_HOST_MARKERS = ("localhost", ".local", "127.0.0.1", "::1")
"""Host fragments that mark a local development site (TLS verification off)."""

CORS_ALLOW_HEADERS = "Content-Type, Authorization, X-Requested-With"
CORS_MAX_AGE_SECONDS = 86400

DEFAULT_CONTENT_TYPES: dict[str, str] = {
    ".json": "application/json",
    ".txt": "text/plain; charset=utf-8",
    ".html": "text/html; charset=utf-8",
    ".xml": "application/xml",
}
"""Content type by path suffix; anything else is served as text/plain."""
