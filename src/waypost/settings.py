"""Runtime settings for the deployment engine.

Settings are an immutable model built either explicitly (tests, embedding
applications) or from ``WAYPOST_*`` environment variables via ``from_env``.

Environment Variables:
    WAYPOST_DOCUMENT_ROOT: Directory the web server serves static files from
    WAYPOST_SITE_URL: Public base URL of the site (used for probe round-trips)
    WAYPOST_HTTP_TIMEOUT: Probe request timeout in seconds
    WAYPOST_VERIFY_TLS: "auto" (off for local hosts), "true" or "false"
    WAYPOST_REWRITE_CONFIG: Rewrite config file, relative to the document root
    WAYPOST_FRONT_CONTROLLER: Script dynamic rewrite rules forward to
    WAYPOST_PROXY_TIMEOUT: Upstream timeout for proxy routes in seconds
    WAYPOST_USER_AGENT: User-Agent sent with outbound requests
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from urllib.parse import urlparse

from pydantic import Field, field_validator

from waypost.models.base import WaypostBaseModel
from waypost.models.constants import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_PROXY_TIMEOUT_SECONDS,
    DEFAULT_REWRITE_CONFIG,
    DEFAULT_USER_AGENT,
    LOCAL_HOST_MARKERS,
)

ENV_DOCUMENT_ROOT = "WAYPOST_DOCUMENT_ROOT"
ENV_SITE_URL = "WAYPOST_SITE_URL"
ENV_HTTP_TIMEOUT = "WAYPOST_HTTP_TIMEOUT"
ENV_VERIFY_TLS = "WAYPOST_VERIFY_TLS"
ENV_REWRITE_CONFIG = "WAYPOST_REWRITE_CONFIG"
ENV_FRONT_CONTROLLER = "WAYPOST_FRONT_CONTROLLER"
ENV_PROXY_TIMEOUT = "WAYPOST_PROXY_TIMEOUT"
ENV_USER_AGENT = "WAYPOST_USER_AGENT"

DEFAULT_SITE_URL = "http://localhost"
DEFAULT_FRONT_CONTROLLER = "index.php"

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


def is_local_host(url: str) -> bool:
    """Return True when ``url`` points at a local development host.

    Example:
        >>> is_local_host("https://mysite.local/llms.txt")
        True
        >>> is_local_host("https://example.com")
        False
    """
    host = (urlparse(url).hostname or "").lower()
    for marker in LOCAL_HOST_MARKERS:
        if marker.startswith("."):
            if host.endswith(marker):
                return True
        elif host == marker:
            return True
    return False


class WaypostSettings(WaypostBaseModel):
    """Deployment settings.

    Attributes:
        document_root: Directory served as the site root
        site_url: Public base URL, without trailing slash
        http_timeout: Timeout for probe round-trips, in seconds
        verify_tls: None for automatic (off for local hosts), else forced
        rewrite_config: Rewrite config file name relative to document_root
        front_controller: Target of rewrite rules for dynamic routes
        proxy_timeout: Timeout for upstream requests made by proxy routes
        user_agent: User-Agent header for outbound requests
    """

    document_root: Path
    site_url: str = DEFAULT_SITE_URL
    http_timeout: float = Field(default=DEFAULT_HTTP_TIMEOUT_SECONDS, gt=0)
    verify_tls: bool | None = None
    rewrite_config: str = DEFAULT_REWRITE_CONFIG
    front_controller: str = DEFAULT_FRONT_CONTROLLER
    proxy_timeout: float = Field(default=DEFAULT_PROXY_TIMEOUT_SECONDS, gt=0)
    user_agent: str = DEFAULT_USER_AGENT

    @field_validator("site_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def rewrite_config_path(self) -> Path:
        return self.document_root / self.rewrite_config

    def url_for(self, path: str) -> str:
        """Absolute URL of a public path on this site."""
        return f"{self.site_url}/{path.lstrip('/')}"

    def should_verify_tls(self, url: str | None = None) -> bool:
        """Resolve the TLS verification flag for a request to ``url``."""
        if self.verify_tls is not None:
            return self.verify_tls
        return not is_local_host(url or self.site_url)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> WaypostSettings:
        """Build settings from ``WAYPOST_*`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.

        Raises:
            ValueError: If WAYPOST_VERIFY_TLS holds an unrecognised value.
        """
        env = os.environ if environ is None else environ
        verify_raw = env.get(ENV_VERIFY_TLS, "auto").strip().lower()
        if verify_raw in _TRUTHY:
            verify: bool | None = True
        elif verify_raw in _FALSY:
            verify = False
        elif verify_raw == "auto":
            verify = None
        else:
            raise ValueError(f"{ENV_VERIFY_TLS} must be auto, true or false, got {verify_raw!r}")

        return cls(
            document_root=Path(env.get(ENV_DOCUMENT_ROOT, os.getcwd())),
            site_url=env.get(ENV_SITE_URL, DEFAULT_SITE_URL),
            http_timeout=float(env.get(ENV_HTTP_TIMEOUT, DEFAULT_HTTP_TIMEOUT_SECONDS)),
            verify_tls=verify,
            rewrite_config=env.get(ENV_REWRITE_CONFIG, DEFAULT_REWRITE_CONFIG),
            front_controller=env.get(ENV_FRONT_CONTROLLER, DEFAULT_FRONT_CONTROLLER),
            proxy_timeout=float(env.get(ENV_PROXY_TIMEOUT, DEFAULT_PROXY_TIMEOUT_SECONDS)),
            user_agent=env.get(ENV_USER_AGENT, DEFAULT_USER_AGENT),
        )
