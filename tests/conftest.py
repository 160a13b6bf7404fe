"""Shared pytest fixtures for waypost tests.

Most fixtures come from ``waypost.testing.fixtures``: a temporary document
root, a dispatcher, a SimulatedHost answering HTTP through an
``httpx.MockTransport``, and an EndpointManager wired to all of them.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

import pytest

from waypost.blocks.base import BlockContext
from waypost.dispatch.dispatcher import RouteDispatcher
from waypost.models.entities import Endpoint, ServerProfile, StrategyState
from waypost.models.enums import (
    Approach,
    Capability,
    EndpointStatus,
    HostingTier,
    PlatformType,
)
from waypost.settings import WaypostSettings
from waypost.transport.http import HttpxClient

pytest_plugins = ["waypost.testing.fixtures"]


@pytest.fixture
def apache_profile() -> ServerProfile:
    """Apache host with a writable document root and rewrite config."""
    return ServerProfile(
        platform_type=PlatformType.APACHE,
        server_software="Apache/2.4.57 (Unix)",
        server_version="2.4.57",
        config_rewrite_supported=Capability.YES,
        filesystem_writable=Capability.YES,
        directories_creatable=Capability.YES,
        hosting_tier=HostingTier.DEDICATED,
    )


@pytest.fixture
def nginx_profile() -> ServerProfile:
    """nginx host: writable files, per-directory config ignored."""
    return ServerProfile(
        platform_type=PlatformType.NGINX,
        server_software="nginx/1.25.3",
        server_version="1.25.3",
        config_rewrite_supported=Capability.NO,
        filesystem_writable=Capability.YES,
        directories_creatable=Capability.YES,
        hosting_tier=HostingTier.DEDICATED,
    )


@pytest.fixture
def deployed_state() -> StrategyState:
    """A static deployment of /llms.txt at rank 0."""
    return StrategyState(
        endpoint_path="/llms.txt",
        current_strategy="static-with-fallback-rule",
        current_strategy_rank=0,
        approach=Approach.STATIC_FILE,
        last_tested_at=datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc),
        alternates_also_work=True,
        status=EndpointStatus.STATIC_DEPLOYED,
        candidate_strategies=(
            "static-with-fallback-rule",
            "dynamic-route-with-backup-rule",
            "static-file-only",
            "dynamic-route-only",
        ),
    )


@pytest.fixture
def block_context(
    waypost_settings: WaypostSettings,
    apache_profile: ServerProfile,
    dispatcher: RouteDispatcher,
    host_client: HttpxClient,
) -> Callable[..., BlockContext]:
    """Build a BlockContext for an endpoint; profile and approach are overridable."""

    def factory(
        endpoint: Endpoint,
        profile: ServerProfile | None = None,
        approach: Approach | None = None,
    ) -> BlockContext:
        return BlockContext(
            settings=waypost_settings,
            profile=profile or apache_profile,
            dispatcher=dispatcher,
            endpoint=endpoint,
            client=host_client,
            approach=approach,
        )

    return factory
