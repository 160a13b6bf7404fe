"""Core entity models for waypost.

- Endpoint: a public path plus the live content generator behind it
- ServerProfile: what the Environment Probe learned about the host
- Strategy: a named, ordered composition of building blocks
- StrategyState: the persisted deployment decision for one endpoint
"""

from __future__ import annotations

import mimetypes
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any

from pydantic import ConfigDict, Field, field_validator, model_validator

from waypost.models.base import WaypostBaseModel
from waypost.models.constants import DEFAULT_CACHE_CONTROL, DEFAULT_CONTENT_TYPES
from waypost.models.enums import (
    Approach,
    BlockId,
    Capability,
    EndpointKind,
    EndpointStatus,
    HostingTier,
    PlatformType,
)

ContentGenerator = Callable[[], tuple[bytes, str]]
"""Zero-argument callable returning ``(content, content_type)``."""

MANUAL_INTERVENTION_STRATEGY = "manual_intervention_required"
"""Recorded as current_strategy when no approach round-trips."""

_PROXY_METHODS = ("GET", "POST", "OPTIONS")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def guess_content_type(path: str) -> str:
    """Best-effort content type for a public path, by suffix.

    Example:
        >>> guess_content_type("/.well-known/ai-plugin.json")
        'application/json'
        >>> guess_content_type("/llms.txt")
        'text/plain; charset=utf-8'
    """
    suffix = PurePosixPath(path).suffix.lower()
    if suffix in DEFAULT_CONTENT_TYPES:
        return DEFAULT_CONTENT_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(path)
    return guessed or DEFAULT_CONTENT_TYPES[".txt"]


class Endpoint(WaypostBaseModel):
    """A public path whose content the engine must make reachable.

    Attributes:
        path: Absolute public path, e.g. ``/.well-known/ai-plugin.json``
        content_generator: Called at probe time and, for dynamic routes, per request
        kind: Endpoint family; selects the ordered strategy candidates
        supported_methods: HTTP methods the dynamic route answers
        registered_at: When the endpoint definition was created
        content_type: Fallback content type when the generator returns none
        cors: Whether responses carry permissive CORS headers
        cache_control: Cache-Control value for deployed responses
        proxy_target: Upstream URL for PROXY endpoints
        display_name: Human label used by the status read model

    Example:
        >>> endpoint = Endpoint(
        ...     path="/llms.txt",
        ...     content_generator=lambda: (b"# Site", "text/plain"),
        ... )
        >>> endpoint.generate()
        (b'# Site', 'text/plain')
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    path: str
    content_generator: ContentGenerator = Field(exclude=True)
    kind: EndpointKind = EndpointKind.STATIC
    supported_methods: tuple[str, ...] = ("GET",)
    registered_at: datetime = Field(default_factory=_utcnow)
    content_type: str | None = None
    cors: bool = True
    cache_control: str | None = DEFAULT_CACHE_CONTROL
    proxy_target: str | None = None
    display_name: str | None = None

    @field_validator("path")
    @classmethod
    def _validate_path(cls, value: str) -> str:
        if not value.startswith("/") or value == "/":
            raise ValueError("endpoint path must be absolute and name a resource")
        if ".." in PurePosixPath(value).parts or "\x00" in value:
            raise ValueError("endpoint path must not contain '..' segments")
        return value

    @field_validator("supported_methods")
    @classmethod
    def _upper_methods(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(method.upper() for method in value))

    @model_validator(mode="before")
    @classmethod
    def _default_proxy_methods(cls, data: Any) -> Any:
        if isinstance(data, dict) and "supported_methods" not in data:
            if EndpointKind(data.get("kind", EndpointKind.STATIC)) is EndpointKind.PROXY:
                return {**data, "supported_methods": _PROXY_METHODS}
        return data

    @model_validator(mode="after")
    def _validate_proxy(self) -> Endpoint:
        if self.kind is EndpointKind.PROXY and not self.proxy_target:
            raise ValueError("proxy endpoints require proxy_target")
        return self

    @property
    def effective_content_type(self) -> str:
        return self.content_type or guess_content_type(self.path)

    @property
    def label(self) -> str:
        return self.display_name or self.path

    def generate(self) -> tuple[bytes, str]:
        """Invoke the content generator and normalise its output to bytes."""
        content, content_type = self.content_generator()
        if isinstance(content, str):
            content = content.encode("utf-8")
        return content, content_type or self.effective_content_type


class ServerProfile(WaypostBaseModel):
    """Capabilities of the hosting environment, as observed right now.

    Every capability is tri-state; UNKNOWN means the check could not run.
    Profiles are recomputed on every probe and never cached.
    """

    platform_type: PlatformType = PlatformType.UNKNOWN
    server_software: str = ""
    server_version: str | None = None
    config_rewrite_supported: Capability = Capability.UNKNOWN
    filesystem_writable: Capability = Capability.UNKNOWN
    directories_creatable: Capability = Capability.UNKNOWN
    hosting_tier: HostingTier = HostingTier.UNKNOWN
    signals: tuple[str, ...] = ()
    probed_at: datetime = Field(default_factory=_utcnow)


class Strategy(WaypostBaseModel):
    """Named composition of building blocks.

    Attributes:
        name: Registry key, e.g. ``static-with-fallback-rule``
        blocks: Blocks executed in order (cleaned up in reverse on failure)
        approach: Delivery approach the strategy realises
        applicability_hint: When this strategy is a good fit
        display_name: Human label for status screens
    """

    name: str
    blocks: tuple[BlockId, ...] = Field(min_length=1)
    approach: Approach
    applicability_hint: str = ""
    display_name: str = ""


class StrategyState(WaypostBaseModel):
    """Persisted deployment decision for one endpoint.

    Attributes:
        endpoint_path: Public path of the endpoint
        current_strategy: Strategy name, or ``manual_intervention_required``
        current_strategy_rank: Position in the endpoint kind's candidate list
        approach: Approach of the current strategy, if any
        last_tested_at: When the route test behind this decision ran
        alternates_also_work: Whether the other approach also round-tripped
        status: Lifecycle status reached by the last operation
        error: Human-readable failure reason when status is FAILED
        candidate_strategies: The ordered candidate list used for ranking
    """

    endpoint_path: str
    current_strategy: str
    current_strategy_rank: int | None = Field(default=None, ge=0)
    approach: Approach | None = None
    last_tested_at: datetime = Field(default_factory=_utcnow)
    alternates_also_work: bool = False
    status: EndpointStatus
    error: str | None = None
    candidate_strategies: tuple[str, ...] = ()

    @property
    def needs_manual_intervention(self) -> bool:
        return self.current_strategy == MANUAL_INTERVENTION_STRATEGY
