"""Pytest fixtures for waypost tests.

Load with ``pytest_plugins = ["waypost.testing.fixtures"]``.

Fixtures:
    document_root: Empty temporary document root.
    dispatcher: Fresh RouteDispatcher.
    waypost_settings: Settings pointing at document_root and the simulated site.
    simulated_host: SimulatedHost serving document_root and dispatcher.
    host_client: HttpxClient answered by simulated_host.
    memory_persistence: Empty InMemoryPersistence.
    endpoint_manager: EndpointManager wired to all of the above.
    make_endpoint: Factory for Endpoints with fixed content.
"""

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from waypost.dispatch.dispatcher import RouteDispatcher
from waypost.environment.probe import EnvironmentProbe
from waypost.manager import EndpointManager
from waypost.models.entities import Endpoint
from waypost.models.enums import EndpointKind
from waypost.observability import reset_metrics
from waypost.settings import WaypostSettings
from waypost.state.persistence import InMemoryPersistence
from waypost.testing.host import DEFAULT_SITE_URL, SimulatedHost
from waypost.transport.http import HttpxClient

EndpointFactory = Callable[..., Endpoint]


@pytest.fixture
def document_root(tmp_path: Path) -> Path:
    """Empty document root inside the test's temporary directory."""
    root = tmp_path / "public"
    root.mkdir()
    return root


@pytest.fixture
def dispatcher() -> RouteDispatcher:
    return RouteDispatcher()


@pytest.fixture
def waypost_settings(document_root: Path) -> WaypostSettings:
    """Settings for the simulated site, with a short timeout."""
    return WaypostSettings(document_root=document_root, site_url=DEFAULT_SITE_URL, http_timeout=1.0)


@pytest.fixture
def simulated_host(document_root: Path, dispatcher: RouteDispatcher) -> SimulatedHost:
    """Host serving both static files and dynamic routes; flip its switches per test."""
    return SimulatedHost(document_root, dispatcher)


@pytest.fixture
def host_client(simulated_host: SimulatedHost) -> Iterator[HttpxClient]:
    client = simulated_host.client()
    try:
        yield client
    finally:
        client.close()


@pytest.fixture
def memory_persistence() -> InMemoryPersistence:
    return InMemoryPersistence()


@pytest.fixture
def endpoint_manager(
    waypost_settings: WaypostSettings,
    memory_persistence: InMemoryPersistence,
    host_client: HttpxClient,
    dispatcher: RouteDispatcher,
) -> EndpointManager:
    """EndpointManager whose HTTP traffic is answered by simulated_host.

    The probe ignores the process environment so SERVER_SOFTWARE comes from
    the simulated host.
    """
    return EndpointManager(
        waypost_settings,
        memory_persistence,
        host_client,
        probe=EnvironmentProbe(waypost_settings, host_client, environ={}),
        dispatcher=dispatcher,
    )


@pytest.fixture
def make_endpoint() -> EndpointFactory:
    """Build an Endpoint serving fixed content.

    Example:
        >>> endpoint = make_endpoint("/llms.txt", b"# Site")
    """

    def factory(
        path: str = "/llms.txt",
        content: bytes = b"# Example site\n",
        content_type: str = "",
        kind: EndpointKind = EndpointKind.STATIC,
        **kwargs: object,
    ) -> Endpoint:
        return Endpoint(
            path=path,
            content_generator=lambda: (content, content_type),
            kind=kind,
            **kwargs,
        )

    return factory


@pytest.fixture(autouse=True)
def _fresh_metrics() -> Iterator[None]:
    """Give every test an empty metrics collector."""
    reset_metrics()
    yield
    reset_metrics()


__all__ = [
    "EndpointFactory",
    "document_root",
    "dispatcher",
    "endpoint_manager",
    "host_client",
    "make_endpoint",
    "memory_persistence",
    "simulated_host",
    "waypost_settings",
]
