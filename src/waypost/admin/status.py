"""Administrative read model: one status row per endpoint.

The rows carry everything a settings screen shows: the endpoint label, a
status label (including "Manual intervention required"), the active
strategy, and which strategy the "switch to next strategy" action would try.
The actions delegate to the EndpointManager.

Example:
    >>> report = build_status_report(manager)
    >>> [(row.path, row.status_label) for row in report.rows]
    [('/.well-known/ai-plugin.json', 'Working (static file)'), ...]
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import Field

from waypost.endpoints import KNOWN_ENDPOINTS
from waypost.errors import WaypostError
from waypost.manager import EndpointManager, RegistrationOutcome
from waypost.models.base import WaypostBaseModel
from waypost.models.entities import StrategyState
from waypost.models.enums import EndpointStatus
from waypost.observability import get_logger
from waypost.strategies.ranking import next_rank

logger = get_logger(__name__)

MANUAL_INTERVENTION_LABEL = "Manual intervention required"

STATUS_LABELS: dict[EndpointStatus, str] = {
    EndpointStatus.UNREGISTERED: "Not registered",
    EndpointStatus.PROBING: "Testing",
    EndpointStatus.EXECUTING: "Deploying",
    EndpointStatus.STATIC_DEPLOYED: "Working (static file)",
    EndpointStatus.DYNAMIC_DEPLOYED: "Working (dynamic route)",
    EndpointStatus.FAILED: "Failed",
    EndpointStatus.REMOVED: "Removed",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def status_label(state: StrategyState | None) -> str:
    """Label shown for an endpoint's state."""
    if state is None:
        return STATUS_LABELS[EndpointStatus.UNREGISTERED]
    if state.needs_manual_intervention:
        return MANUAL_INTERVENTION_LABEL
    return STATUS_LABELS[state.status]


class StatusRow(WaypostBaseModel):
    """Status of one endpoint."""

    path: str
    name: str
    description: str = ""
    status: EndpointStatus = EndpointStatus.UNREGISTERED
    status_label: str
    is_working: bool = False
    strategy: str | None = None
    strategy_label: str | None = None
    rank: int | None = None
    alternates_also_work: bool = False
    error: str | None = None
    last_tested_at: datetime | None = None
    next_strategy: str | None = None
    next_strategy_label: str | None = None
    live: bool | None = None

    @property
    def can_switch(self) -> bool:
        return self.next_strategy is not None


class StatusReport(WaypostBaseModel):
    """Rows for every known or registered endpoint."""

    rows: tuple[StatusRow, ...] = ()
    generated_at: datetime = Field(default_factory=_utcnow)

    def row(self, path: str) -> StatusRow | None:
        return next((r for r in self.rows if r.path == path), None)

    @property
    def working(self) -> int:
        return sum(1 for r in self.rows if r.is_working)

    @property
    def needs_attention(self) -> list[StatusRow]:
        return [r for r in self.rows if r.status is EndpointStatus.FAILED]


def _next_strategy(state: StrategyState | None) -> str | None:
    if state is None or not state.candidate_strategies:
        return None
    candidates = state.candidate_strategies
    current = (
        candidates.index(state.current_strategy)
        if state.current_strategy in candidates
        else state.current_strategy_rank
    )
    return candidates[next_rank(current, len(candidates))]


def _build_row(
    manager: EndpointManager, path: str, state: StrategyState | None, check_live: bool
) -> StatusRow:
    known = KNOWN_ENDPOINTS.get(path)
    endpoint = manager.endpoint(path)
    if known is not None:
        name, description = known.name, known.description
    else:
        name, description = (endpoint.label if endpoint else path), ""

    next_strategy = _next_strategy(state) if endpoint is not None else None
    return StatusRow(
        path=path,
        name=name,
        description=description,
        status=state.status if state else EndpointStatus.UNREGISTERED,
        status_label=status_label(state),
        is_working=state is not None and state.status.is_deployed(),
        strategy=state.current_strategy if state else None,
        strategy_label=manager.registry.display_name(state.current_strategy) if state else None,
        rank=state.current_strategy_rank if state else None,
        alternates_also_work=state.alternates_also_work if state else False,
        error=state.error if state else None,
        last_tested_at=state.last_tested_at if state else None,
        next_strategy=next_strategy,
        next_strategy_label=manager.registry.display_name(next_strategy)
        if next_strategy
        else None,
        live=manager.is_route_active(path) if check_live and state is not None else None,
    )


def build_status_report(manager: EndpointManager, *, check_live: bool = False) -> StatusReport:
    """Build the status read model.

    Args:
        manager: Manager whose persisted states are reported
        check_live: Also GET each deployed path to confirm it answers

    Returns:
        Rows for the known endpoint catalog, in catalog order, followed by any
        other endpoint with state or a definition, sorted by path.
    """
    states = {state.endpoint_path: state for state in manager.states()}
    extra = sorted(
        (set(states) | {e.path for e in manager.endpoints()}) - set(KNOWN_ENDPOINTS)
    )
    rows = [
        _build_row(manager, path, states.get(path), check_live)
        for path in [*KNOWN_ENDPOINTS, *extra]
    ]
    return StatusReport(rows=tuple(rows))


def switch_to_next_strategy(
    manager: EndpointManager, path: str, strategy: str | None = None
) -> tuple[RegistrationOutcome | None, str]:
    """Run the "switch to next strategy" action.

    Returns:
        The switch outcome (None when the switch was refused) and a message
        suitable for an admin notice.
    """
    try:
        outcome = manager.switch(path, strategy)
    except WaypostError as exc:
        logger.warning("waypost.admin.switch_refused", path=path, error=exc.message)
        return None, f"Strategy switch failed: {exc.message}"

    state = outcome.state
    label = manager.registry.display_name(state.current_strategy) if state else "unknown"
    name = KNOWN_ENDPOINTS[path].name if path in KNOWN_ENDPOINTS else path
    if outcome.success:
        return outcome, f"Switched {name} to {label}."
    return outcome, f"Strategy switch failed: {outcome.message}"


def reset_strategies(manager: EndpointManager) -> list[RegistrationOutcome]:
    """Forget every strategy decision and register each endpoint from scratch."""
    outcomes: list[RegistrationOutcome] = []
    for endpoint in manager.endpoints():
        manager.unregister(endpoint.path)
        outcomes.append(manager.register(endpoint))
    logger.info(
        "waypost.admin.reset",
        endpoints=len(outcomes),
        failed=[o.path for o in outcomes if not o.success],
    )
    return outcomes


__all__ = [
    "MANUAL_INTERVENTION_LABEL",
    "STATUS_LABELS",
    "StatusReport",
    "StatusRow",
    "build_status_report",
    "reset_strategies",
    "status_label",
    "switch_to_next_strategy",
]
