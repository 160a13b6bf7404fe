"""waypost testing utilities.

Modules:
    host: SimulatedHost, an httpx.MockTransport-backed web server that serves
          a document root and falls through to a RouteDispatcher.
    fixtures: Pytest fixtures (document_root, simulated_host, endpoint_manager,
              make_endpoint, ...). Load with
              ``pytest_plugins = ["waypost.testing.fixtures"]``.

Example:
    >>> from waypost.testing import SimulatedHost
"""

from waypost.testing.host import SimulatedHost

__all__ = ["SimulatedHost"]
