"""waypost: environment-adaptive deployment of well-known endpoints.

Probes the hosting environment, tests both delivery mechanisms (a static file
on disk and a runtime-dispatched route) with real HTTP round-trips, and deploys
the best working strategy with rollback on partial failure.

Example:
    >>> from waypost import EndpointManager, WaypostSettings
    >>> from waypost.state.persistence import InMemoryPersistence
    >>> from waypost.transport.http import HttpxClient
    >>> settings = WaypostSettings.from_env()
    >>> manager = EndpointManager(settings, InMemoryPersistence(), HttpxClient())
"""

__version__ = "0.3.0"

from waypost.manager import EndpointManager, RegistrationOutcome
from waypost.models.entities import Endpoint
from waypost.settings import WaypostSettings

__all__ = [
    "__version__",
    "Endpoint",
    "EndpointManager",
    "RegistrationOutcome",
    "WaypostSettings",
]
