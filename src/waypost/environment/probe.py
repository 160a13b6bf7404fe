"""Environment Probe: what the hosting environment can do, right now.

Every signal is advisory. Server identity comes from the SERVER_SOFTWARE
variable, the headers of a real GET against the site root, and the presence of
per-directory server config files. Capabilities come from empirical checks
(create and delete a directory, a file and a rewrite fragment under the
document root). A check that cannot run downgrades to ``no`` or ``unknown``;
``detect()`` never raises.

Example:
    >>> probe = EnvironmentProbe(settings, HttpxClient())
    >>> profile = probe.detect()
    >>> profile.platform_type, profile.filesystem_writable
"""

from __future__ import annotations

import os
import re
import secrets
import shutil
import time
from collections.abc import Mapping
from pathlib import Path

from waypost.errors import HttpRequestError
from waypost.models.entities import ServerProfile
from waypost.models.enums import Capability, HostingTier, PlatformType
from waypost.observability import get_logger
from waypost.settings import WaypostSettings
from waypost.transport.http import HttpClient

logger = get_logger(__name__)

SHARED_HOSTING_INDICATORS = (
    "cpanel",
    "plesk",
    "directadmin",
    "ispconfig",
    "shared",
    "hostgator",
    "godaddy",
    "bluehost",
)
MANAGED_HOSTING_INDICATORS = (
    "wpengine",
    "kinsta",
    "siteground",
    "wp.com",
    "pressable",
    "pagely",
    "pantheon",
)
CLOUD_HOSTING_INDICATORS = (
    "aws",
    "google",
    "azure",
    "digitalocean",
    "linode",
    "vultr",
    "cloudflare",
)

# Checked in order; "litespeed" must precede the generic "apache" token that
# LiteSpeed builds sometimes also report.
_PLATFORM_TOKENS: tuple[tuple[str, PlatformType], ...] = (
    ("litespeed", PlatformType.LITESPEED),
    ("nginx", PlatformType.NGINX),
    ("microsoft-iis", PlatformType.IIS),
    ("iis", PlatformType.IIS),
    ("apache", PlatformType.APACHE),
)

_VERSION_PATTERN = r"{name}/([0-9][0-9.]*)"

PROBE_DIR_PREFIX = ".waypost-probe-"
WEB_CONFIG_NAME = "web.config"


def classify_platform(server_software: str) -> tuple[PlatformType, str | None]:
    """Classify a server identity string and extract its version.

    Example:
        >>> classify_platform("Apache/2.4.57 (Debian)")
        (<PlatformType.APACHE: 'apache'>, '2.4.57')
        >>> classify_platform("")
        (<PlatformType.UNKNOWN: 'unknown'>, None)
    """
    lowered = server_software.lower()
    for token, platform in _PLATFORM_TOKENS:
        if token in lowered:
            match = re.search(_VERSION_PATTERN.format(name=re.escape(token)), lowered)
            return platform, match.group(1) if match else None
    return PlatformType.UNKNOWN, None


def classify_hosting_tier(server_software: str, parent_writable: bool | None = None) -> HostingTier:
    """Infer the hosting tier from server identity indicators.

    A non-writable document-root parent is itself a shared-hosting signal.

    Example:
        >>> classify_hosting_tier("Apache/2.4 (cPanel)")
        <HostingTier.SHARED: 'shared'>
        >>> classify_hosting_tier("nginx", parent_writable=True)
        <HostingTier.DEDICATED: 'dedicated'>
    """
    lowered = server_software.lower()
    if any(indicator in lowered for indicator in SHARED_HOSTING_INDICATORS):
        return HostingTier.SHARED
    if parent_writable is False:
        return HostingTier.SHARED
    if any(indicator in lowered for indicator in MANAGED_HOSTING_INDICATORS):
        return HostingTier.MANAGED
    if any(indicator in lowered for indicator in CLOUD_HOSTING_INDICATORS):
        return HostingTier.CLOUD
    return HostingTier.DEDICATED


def _probe_suffix() -> str:
    return f"{int(time.time())}-{secrets.token_hex(4)}"


class EnvironmentProbe:
    """Builds a fresh ServerProfile on every ``detect()`` call.

    Args:
        settings: Deployment settings (document root, site URL, timeouts)
        client: HTTP client port used for the site-root GET
        environ: Process environment to read SERVER_SOFTWARE from
    """

    def __init__(
        self,
        settings: WaypostSettings,
        client: HttpClient,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.environ = os.environ if environ is None else environ

    def detect(self) -> ServerProfile:
        """Probe the environment. Never raises."""
        signals: list[str] = []
        try:
            return self._detect(signals)
        except Exception as exc:
            logger.exception("waypost.probe.unexpected_error", error=str(exc))
            signals.append(f"probe aborted: {type(exc).__name__}")
            return ServerProfile(signals=tuple(signals))

    def _detect(self, signals: list[str]) -> ServerProfile:
        software = self._server_software(signals)
        platform, version = classify_platform(software)

        directories = self._check_directory_creation(signals)
        writable = self._check_file_write(signals)
        rewrite = self._check_rewrite_config(platform, signals)
        tier = classify_hosting_tier(software, self._parent_writable())

        profile = ServerProfile(
            platform_type=platform,
            server_software=software,
            server_version=version,
            config_rewrite_supported=rewrite,
            filesystem_writable=writable,
            directories_creatable=directories,
            hosting_tier=tier,
            signals=tuple(signals),
        )
        logger.info(
            "waypost.probe.completed",
            platform=platform.value,
            server_version=version,
            filesystem_writable=writable.value,
            directories_creatable=directories.value,
            config_rewrite_supported=rewrite.value,
            hosting_tier=tier.value,
        )
        return profile

    def _server_software(self, signals: list[str]) -> str:
        value = self.environ.get("SERVER_SOFTWARE", "").strip()
        if value:
            signals.append(f"SERVER_SOFTWARE={value}")
            return value

        value = self._software_from_site_root(signals)
        if value:
            return value

        root = self.settings.document_root
        htaccess = root / ".htaccess"
        try:
            if htaccess.is_file():
                text = htaccess.read_text(encoding="utf-8", errors="replace")
                if "RewriteEngine" in text or "RewriteRule" in text:
                    signals.append(".htaccess with rewrite directives present")
                    return "Apache (inferred from .htaccess)"
            if (root / WEB_CONFIG_NAME).is_file():
                signals.append("web.config present")
                return "Microsoft-IIS (inferred from web.config)"
        except OSError as exc:
            signals.append(f"config file inspection failed: {exc}")
        return ""

    def _software_from_site_root(self, signals: list[str]) -> str:
        url = self.settings.url_for("/")
        try:
            response = self.client.get(
                url,
                timeout=self.settings.http_timeout,
                verify=self.settings.should_verify_tls(url),
            )
        except HttpRequestError as exc:
            signals.append(f"site root unreachable: {exc.message}")
            return ""
        for header in ("server", "x-powered-by", "x-server"):
            value = response.header(header)
            if value:
                signals.append(f"{header} header={value}")
                return value
        return ""

    def _check_directory_creation(self, signals: list[str]) -> Capability:
        probe_dir = self.settings.document_root / f"{PROBE_DIR_PREFIX}{_probe_suffix()}"
        try:
            probe_dir.mkdir()
        except OSError as exc:
            signals.append(f"directory creation failed: {exc.strerror or exc}")
            return Capability.NO
        try:
            probe_dir.rmdir()
        except OSError:
            shutil.rmtree(probe_dir, ignore_errors=True)
        return Capability.YES

    def _write_and_delete(self, target: Path, content: str) -> None:
        target.write_text(content, encoding="utf-8")
        target.unlink()

    def _check_file_write(self, signals: list[str]) -> Capability:
        target = self.settings.document_root / f"{PROBE_DIR_PREFIX}{_probe_suffix()}.txt"
        try:
            self._write_and_delete(target, "waypost write probe\n")
        except OSError as exc:
            signals.append(f"file write failed: {exc.strerror or exc}")
            return Capability.NO
        return Capability.YES

    def _check_rewrite_config(self, platform: PlatformType, signals: list[str]) -> Capability:
        if platform is PlatformType.NGINX:
            signals.append("nginx ignores per-directory config")
            return Capability.NO
        if platform is PlatformType.IIS:
            return self._check_web_config(signals)

        config = self.settings.rewrite_config_path
        try:
            if config.exists():
                # Opening for append proves writability without changing bytes.
                with config.open("ab"):
                    pass
            else:
                fragment = config.with_name(f"{config.name}{PROBE_DIR_PREFIX}{_probe_suffix()}")
                self._write_and_delete(fragment, "# waypost probe\nRewriteEngine On\n")
        except OSError as exc:
            signals.append(f"rewrite config not writable: {exc.strerror or exc}")
            return Capability.NO
        return Capability.YES

    def _check_web_config(self, signals: list[str]) -> Capability:
        # Fragments are Apache syntax; IIS gets suggestions instead.
        web_config = self.settings.document_root / WEB_CONFIG_NAME
        signals.append(
            "web.config present" if web_config.exists() else "web.config absent"
        )
        return Capability.NO

    def _parent_writable(self) -> bool | None:
        parent = self.settings.document_root.resolve().parent
        try:
            return os.access(parent, os.W_OK)
        except OSError:
            return None
