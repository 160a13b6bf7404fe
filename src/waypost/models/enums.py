"""Enumerations for waypost.

This module defines all enum types used across the deployment engine to
ensure type safety and prevent magic strings.
"""

from enum import Enum


class PlatformType(str, Enum):
    """Web server software fronting the site."""

    APACHE = "apache"
    NGINX = "nginx"
    LITESPEED = "litespeed"
    IIS = "iis"
    UNKNOWN = "unknown"

    def reads_directory_config(self) -> bool:
        """Whether this server honours per-directory rewrite files (.htaccess).

        UNKNOWN is treated optimistically; the empirical write check decides.
        """
        return self in (PlatformType.APACHE, PlatformType.LITESPEED, PlatformType.UNKNOWN)


class HostingTier(str, Enum):
    """Hosting environment class inferred from server identity signals."""

    SHARED = "shared"
    MANAGED = "managed"
    CLOUD = "cloud"
    DEDICATED = "dedicated"
    UNKNOWN = "unknown"


class Capability(str, Enum):
    """Tri-state capability flag.

    UNKNOWN means the check could not be performed; it is never upgraded to
    YES without an empirical test.

    Example:
        >>> Capability.YES.is_available()
        True
        >>> Capability.UNKNOWN.is_available()
        False
    """

    YES = "yes"
    NO = "no"
    UNKNOWN = "unknown"

    def is_available(self) -> bool:
        return self is Capability.YES


class Approach(str, Enum):
    """The two fundamentally different delivery mechanisms."""

    STATIC_FILE = "static_file"
    DYNAMIC_ROUTE = "dynamic_route"

    def alternate(self) -> "Approach":
        """Return the other approach."""
        if self is Approach.STATIC_FILE:
            return Approach.DYNAMIC_ROUTE
        return Approach.STATIC_FILE


class Recommendation(str, Enum):
    """Route Tester verdict for one endpoint."""

    STATIC_FILE = "static_file"
    DYNAMIC_ROUTE = "dynamic_route"
    MANUAL_INTERVENTION_REQUIRED = "manual_intervention_required"


class BlockId(str, Enum):
    """Closed set of building blocks a strategy can be composed from."""

    WRITE_STATIC_FILE = "write-static-file"
    ADD_REWRITE_RULE = "add-rewrite-rule"
    REGISTER_DYNAMIC_ROUTE = "register-dynamic-route"
    APPEND_TO_SHARED_FILE = "append-to-shared-file"
    SUGGEST_ALTERNATE_CONFIG = "suggest-alternate-config"
    REGISTER_PROXY_ROUTE = "register-proxy-route"


class BlockAction(str, Enum):
    """What a building block actually did on a given call."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    REMOVED = "removed"
    NOOP = "noop"
    FAILED = "failed"


class EndpointKind(str, Enum):
    """Endpoint family; selects the ordered strategy candidates.

    STATIC: a whole resource (manifest JSON, policy text).
    SHARED_FILE: a section inside a file that may hold unrelated content.
    PROXY: an API endpoint forwarding requests upstream.
    """

    STATIC = "static"
    SHARED_FILE = "shared_file"
    PROXY = "proxy"


class EndpointStatus(str, Enum):
    """Per-endpoint lifecycle states.

    Example:
        >>> EndpointStatus.STATIC_DEPLOYED.is_deployed()
        True
        >>> EndpointStatus.FAILED.is_deployed()
        False
    """

    UNREGISTERED = "unregistered"
    PROBING = "probing"
    EXECUTING = "executing"
    STATIC_DEPLOYED = "static_deployed"
    DYNAMIC_DEPLOYED = "dynamic_deployed"
    FAILED = "failed"
    REMOVED = "removed"

    @classmethod
    def deployed_states(cls) -> frozenset["EndpointStatus"]:
        return frozenset({cls.STATIC_DEPLOYED, cls.DYNAMIC_DEPLOYED})

    def is_deployed(self) -> bool:
        return self in self.deployed_states()

    @classmethod
    def for_approach(cls, approach: Approach) -> "EndpointStatus":
        """Deployed status reached by a strategy of the given approach."""
        if approach is Approach.STATIC_FILE:
            return cls.STATIC_DEPLOYED
        return cls.DYNAMIC_DEPLOYED


class ErrorKind(str, Enum):
    """Tag carried by ErrorInfo on every failed result."""

    PROBE = "probe"
    BLOCK_EXECUTION = "block_execution"
    UNKNOWN_STRATEGY = "unknown_strategy"
    CLEANUP = "cleanup"
    CONTENT_GENERATOR = "content_generator"
