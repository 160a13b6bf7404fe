"""Endpoint lifecycle state machine.

Registration walks ``UNREGISTERED -> PROBING -> EXECUTING`` and ends in one of
the deployed states or FAILED. A switch re-enters PROBING from a deployed or
failed state; REMOVED is reachable from any registered state and a removed
endpoint may be registered again.

Example:
    >>> can_transition(EndpointStatus.UNREGISTERED, EndpointStatus.PROBING)
    True
    >>> can_transition(EndpointStatus.UNREGISTERED, EndpointStatus.STATIC_DEPLOYED)
    False
"""

from waypost.errors import InvalidTransitionError
from waypost.models.enums import EndpointStatus
from waypost.observability import get_metrics

__all__ = ["EndpointStatus", "VALID_TRANSITIONS", "can_transition", "transition"]

VALID_TRANSITIONS: dict[EndpointStatus, set[EndpointStatus]] = {
    EndpointStatus.UNREGISTERED: {EndpointStatus.PROBING},
    EndpointStatus.PROBING: {
        EndpointStatus.EXECUTING,
        EndpointStatus.FAILED,
        EndpointStatus.REMOVED,
    },
    EndpointStatus.EXECUTING: {
        EndpointStatus.STATIC_DEPLOYED,
        EndpointStatus.DYNAMIC_DEPLOYED,
        EndpointStatus.FAILED,
        EndpointStatus.REMOVED,
    },
    EndpointStatus.STATIC_DEPLOYED: {EndpointStatus.PROBING, EndpointStatus.REMOVED},
    EndpointStatus.DYNAMIC_DEPLOYED: {EndpointStatus.PROBING, EndpointStatus.REMOVED},
    EndpointStatus.FAILED: {EndpointStatus.PROBING, EndpointStatus.REMOVED},
    EndpointStatus.REMOVED: {EndpointStatus.PROBING},
}


def can_transition(from_status: EndpointStatus, to_status: EndpointStatus) -> bool:
    """Check if a transition from one status to another is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, set())


def transition(
    from_status: EndpointStatus, to_status: EndpointStatus, path: str | None = None
) -> EndpointStatus:
    """Validate a transition and return the new status.

    Args:
        from_status: Current endpoint status
        to_status: Target endpoint status
        path: Endpoint path, reported in the error details

    Returns:
        ``to_status``

    Raises:
        InvalidTransitionError: If the transition is not valid
    """
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(
            from_state=from_status.value,
            to_state=to_status.value,
            details={"endpoint_path": path} if path else None,
        )
    get_metrics().increment_counter(
        "waypost_state_transitions_total",
        {"from_status": from_status.value, "to_status": to_status.value},
    )
    return to_status
