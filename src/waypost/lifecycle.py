"""Activation and deactivation hooks for the host platform.

``activate`` brings every endpoint to a deployed (or explicitly failed)
state: endpoints with a persisted deployment are restored without a new
route test, the rest are registered from scratch. ``deactivate`` removes
everything the engine put in place.
"""

from __future__ import annotations

from collections.abc import Iterable

from waypost.errors import EndpointNotRegisteredError
from waypost.manager import EndpointManager, RegistrationOutcome
from waypost.models.entities import Endpoint
from waypost.observability import get_logger

logger = get_logger(__name__)


def activate(manager: EndpointManager, endpoints: Iterable[Endpoint]) -> list[RegistrationOutcome]:
    """Restore or register each endpoint; one outcome per endpoint, in order."""
    outcomes = [manager.restore(endpoint) for endpoint in endpoints]
    logger.info(
        "waypost.lifecycle.activated",
        endpoints=len(outcomes),
        deployed=sum(1 for o in outcomes if o.success),
        failed=[o.path for o in outcomes if not o.success],
    )
    return outcomes


def deactivate(
    manager: EndpointManager, endpoints: Iterable[Endpoint | str] | None = None
) -> list[RegistrationOutcome]:
    """Unregister the given endpoints (default: every endpoint with state).

    Paths the manager does not know are skipped.
    """
    if endpoints is None:
        paths = sorted(
            {state.endpoint_path for state in manager.states()}
            | {endpoint.path for endpoint in manager.endpoints()}
        )
    else:
        paths = [e if isinstance(e, str) else e.path for e in endpoints]

    outcomes: list[RegistrationOutcome] = []
    for path in paths:
        try:
            outcomes.append(manager.unregister(path))
        except EndpointNotRegisteredError:
            logger.debug("waypost.lifecycle.skip_unknown", path=path)
    logger.info(
        "waypost.lifecycle.deactivated",
        endpoints=len(outcomes),
        incomplete=[o.path for o in outcomes if not o.success],
    )
    return outcomes


__all__ = ["activate", "deactivate"]
