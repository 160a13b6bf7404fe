"""Endpoint Manager: registration, switching and removal of endpoints.

The manager is the only component that decides. For each endpoint it probes
the host, round-trips both delivery approaches, ranks the candidate
strategies for the endpoint kind, runs the chosen one through the executor
and persists the resulting StrategyState. Failures are recorded, never
cascaded: falling back to another strategy is an explicit ``switch``.

Operations on the same path are serialised by a per-path lock; different
paths proceed concurrently.

Example:
    >>> manager = EndpointManager(settings, InMemoryPersistence(), HttpxClient())
    >>> outcome = manager.register(Endpoint(path="/llms.txt", content_generator=build))
    >>> outcome.state.current_strategy
    'static-file-only'
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from waypost.blocks.base import BlockContext
from waypost.dispatch.dispatcher import RouteDispatcher
from waypost.environment.probe import EnvironmentProbe
from waypost.errors import EndpointNotRegisteredError
from waypost.models.base import WaypostBaseModel
from waypost.models.entities import (
    MANUAL_INTERVENTION_STRATEGY,
    Endpoint,
    ServerProfile,
    StrategyState,
)
from waypost.models.enums import BlockId, EndpointStatus
from waypost.models.results import CleanupSummary, ExecutionResult, RouteTestReport
from waypost.observability import get_logger
from waypost.routing.tester import RouteTester
from waypost.settings import WaypostSettings
from waypost.state.machine import transition
from waypost.state.persistence import PersistencePort
from waypost.state.store import StrategyStateStore
from waypost.strategies.executor import StrategyExecutor
from waypost.strategies.ranking import (
    alternates_work,
    candidate_strategies,
    next_rank,
    rank_strategies,
)
from waypost.strategies.registry import StrategyRegistry
from waypost.transport.http import HttpClient

logger = get_logger(__name__)


class RegistrationOutcome(WaypostBaseModel):
    """What a register, switch, restore or unregister call did.

    Attributes:
        path: Endpoint path the operation targeted
        success: True when the endpoint ended deployed (or cleanly removed)
        state: StrategyState after the operation
        profile: Server profile used for the decision, when one was probed
        report: Route test behind the decision, when one ran
        execution: Executor result of the strategy run, when one ran
        cleanup: Teardown report of the strategy that was removed, if any
        message: One-line human-readable summary
    """

    path: str
    success: bool
    state: StrategyState | None = None
    profile: ServerProfile | None = None
    report: RouteTestReport | None = None
    execution: ExecutionResult | None = None
    cleanup: CleanupSummary | None = None
    message: str = ""


def _placeholder_endpoint(path: str) -> Endpoint:
    # Teardown after a restart only needs the path; the generator is never called.
    return Endpoint(path=path, content_generator=lambda: (b"", ""))


class EndpointManager:
    """Owns endpoint definitions and their persisted strategy states.

    Args:
        settings: Deployment settings
        persistence: Key/value store for StrategyState records
        client: HTTP client port shared by probe, tester and proxy routes
        probe: Environment probe (default built from settings and client)
        tester: Route tester (default built from settings, client, dispatcher)
        registry: Strategy catalog
        executor: Strategy executor (default uses ``registry``)
        dispatcher: Runtime dispatcher receiving dynamic routes
    """

    def __init__(
        self,
        settings: WaypostSettings,
        persistence: PersistencePort,
        client: HttpClient,
        probe: EnvironmentProbe | None = None,
        tester: RouteTester | None = None,
        registry: StrategyRegistry | None = None,
        executor: StrategyExecutor | None = None,
        dispatcher: RouteDispatcher | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.dispatcher = dispatcher or RouteDispatcher()
        self.registry = registry or StrategyRegistry()
        self.executor = executor or StrategyExecutor(self.registry)
        self.probe = probe or EnvironmentProbe(settings, client)
        self.tester = tester or RouteTester(settings, client, self.dispatcher)
        self.store = StrategyStateStore(persistence)
        self._endpoints: dict[str, Endpoint] = {}
        self._journals: dict[str, dict[BlockId, dict[str, Any]]] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # -- queries ---------------------------------------------------------

    def status(self, path: str) -> StrategyState | None:
        """Persisted state for ``path``, if any."""
        return self.store.load(path)

    def states(self) -> list[StrategyState]:
        return self.store.list()

    def endpoints(self) -> list[Endpoint]:
        return sorted(self._endpoints.values(), key=lambda e: e.path)

    def endpoint(self, path: str) -> Endpoint | None:
        return self._endpoints.get(path)

    def is_route_active(self, path: str) -> bool:
        return self.tester.is_route_active(path)

    # -- commands --------------------------------------------------------

    def attach(self, endpoint: Endpoint) -> None:
        """Make ``endpoint`` known without probing or deploying it.

        For processes that act on state persisted by another process, such as
        a command-line ``switch`` or ``unregister``.
        """
        with self._lock_for(endpoint.path):
            self._endpoints[endpoint.path] = endpoint

    def register(self, endpoint: Endpoint) -> RegistrationOutcome:
        """Probe, rank and deploy ``endpoint``; persist the decision.

        Never raises for probe or deployment failures: those end in a FAILED
        state carried by the returned outcome.
        """
        with self._lock_for(endpoint.path):
            self._endpoints[endpoint.path] = endpoint
            return self._register(endpoint)

    def switch(self, path: str, next_strategy: str | None = None) -> RegistrationOutcome:
        """Move ``path`` to ``next_strategy`` or to the next candidate in rank order.

        The current strategy is torn down and the target strategy is run even
        if its approach did not round-trip in the fresh route test; the
        outcome reports the test so callers can see the risk.

        Raises:
            EndpointNotRegisteredError: If ``path`` was never registered here.
            UnknownStrategyError: If ``next_strategy`` is not in the registry;
                raised before anything is torn down.
        """
        with self._lock_for(path):
            endpoint = self._endpoints.get(path)
            if endpoint is None:
                raise EndpointNotRegisteredError(path)
            if next_strategy is not None:
                self.registry.get(next_strategy)
            return self._switch(endpoint, next_strategy)

    def unregister(self, path: str) -> RegistrationOutcome:
        """Tear down the active strategy, unbind routes and delete state.

        Raises:
            EndpointNotRegisteredError: If there is neither an endpoint nor a
                persisted state for ``path``.
        """
        with self._lock_for(path):
            state = self.store.load(path)
            endpoint = self._endpoints.get(path)
            if state is None and endpoint is None:
                raise EndpointNotRegisteredError(path)

            cleanup: CleanupSummary | None = None
            removed_state: StrategyState | None = None
            if state is not None:
                self._advance(path, state.status, EndpointStatus.REMOVED)
                if state.status.is_deployed():
                    cleanup = self._teardown(endpoint or _placeholder_endpoint(path), state)
                removed_state = state.model_copy(update={"status": EndpointStatus.REMOVED})

            self.dispatcher.unbind(path)
            self.store.delete(path)
            self._endpoints.pop(path, None)
            self._journals.pop(path, None)

            success = cleanup is None or cleanup.all_successful
            logger.info("waypost.endpoint.unregistered", path=path, clean=success)
            return RegistrationOutcome(
                path=path,
                success=success,
                state=removed_state,
                cleanup=cleanup,
                message=f"Removed {path}"
                if success
                else f"Removed {path}; some artifacts could not be cleaned up",
            )

    def restore(self, endpoint: Endpoint) -> RegistrationOutcome:
        """Re-apply the persisted strategy for ``endpoint`` without a route test.

        Used when a process starts with state from an earlier run: dynamic
        routes live in memory and must be bound again. Endpoints without a
        deployed state, or whose persisted strategy no longer applies, go
        through a full ``register``.
        """
        with self._lock_for(endpoint.path):
            self._endpoints[endpoint.path] = endpoint
            state = self.store.load(endpoint.path)
            if state is None or not state.status.is_deployed():
                return self._register(endpoint)
            if state.current_strategy not in self.registry:
                logger.warning(
                    "waypost.endpoint.restore_unknown_strategy",
                    path=endpoint.path,
                    strategy=state.current_strategy,
                )
                return self._register(endpoint)

            profile = self.probe.detect()
            ctx = self._context(endpoint, profile)
            execution = self.executor.run(state.current_strategy, endpoint, ctx)
            if not execution.success:
                logger.warning(
                    "waypost.endpoint.restore_failed",
                    path=endpoint.path,
                    strategy=state.current_strategy,
                    error=str(execution.error) if execution.error else None,
                )
                return self._register(endpoint)

            self._remember_journal(endpoint.path, ctx)
            logger.info(
                "waypost.endpoint.restored",
                path=endpoint.path,
                strategy=state.current_strategy,
            )
            return RegistrationOutcome(
                path=endpoint.path,
                success=True,
                state=state,
                profile=profile,
                execution=execution,
                message=(
                    f"Restored {endpoint.label} with "
                    f"{self.registry.display_name(state.current_strategy)}"
                ),
            )

    # -- internals -------------------------------------------------------

    @contextmanager
    def _lock_for(self, path: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(path, threading.Lock())
        with lock:
            yield

    def _current_status(self, path: str) -> EndpointStatus:
        state = self.store.load(path)
        return state.status if state is not None else EndpointStatus.UNREGISTERED

    def _advance(
        self, path: str, from_status: EndpointStatus, to_status: EndpointStatus
    ) -> EndpointStatus:
        status = transition(from_status, to_status, path)
        logger.debug(
            "waypost.endpoint.transition",
            path=path,
            from_status=from_status.value,
            to_status=to_status.value,
        )
        return status

    def _context(self, endpoint: Endpoint, profile: ServerProfile) -> BlockContext:
        return BlockContext(
            settings=self.settings,
            profile=profile,
            dispatcher=self.dispatcher,
            endpoint=endpoint,
            client=self.client,
        )

    def _remember_journal(self, path: str, ctx: BlockContext) -> None:
        # A skipped block changed nothing, so the undo record of the run that
        # did apply it stays valid. Without one, teardown falls back to marker
        # removal and unbinding.
        previous = self._journals.get(path, {})
        journal: dict[BlockId, dict[str, Any]] = {}
        for block_id, entry in ctx.journal.items():
            if not entry.get("skipped"):
                journal[block_id] = entry
            elif block_id in previous:
                journal[block_id] = previous[block_id]
        self._journals[path] = journal

    def _teardown(self, endpoint: Endpoint, state: StrategyState) -> CleanupSummary | None:
        if state.current_strategy not in self.registry:
            return None
        ctx = self._context(endpoint, ServerProfile())
        ctx.journal = self._journals.pop(endpoint.path, {})
        summary = self.executor.teardown(state.current_strategy, endpoint, ctx)
        if not summary.all_successful:
            logger.warning(
                "waypost.endpoint.teardown_incomplete",
                path=endpoint.path,
                strategy=state.current_strategy,
            )
        return summary

    def _fail(
        self,
        endpoint: Endpoint,
        message: str,
        *,
        strategy: str = MANUAL_INTERVENTION_STRATEGY,
        rank: int | None = None,
        candidates: tuple[str, ...] = (),
        alternates: bool = False,
        profile: ServerProfile | None = None,
        report: RouteTestReport | None = None,
        execution: ExecutionResult | None = None,
        cleanup: CleanupSummary | None = None,
    ) -> RegistrationOutcome:
        state = StrategyState(
            endpoint_path=endpoint.path,
            current_strategy=strategy,
            current_strategy_rank=rank,
            approach=self.registry.get(strategy).approach if strategy in self.registry else None,
            last_tested_at=report.tested_at if report is not None else datetime.now(timezone.utc),
            alternates_also_work=alternates,
            status=EndpointStatus.FAILED,
            error=message,
            candidate_strategies=candidates,
        )
        self.store.save(state)
        self._journals.pop(endpoint.path, None)
        logger.warning(
            "waypost.endpoint.failed",
            path=endpoint.path,
            strategy=strategy,
            error=message,
        )
        return RegistrationOutcome(
            path=endpoint.path,
            success=False,
            state=state,
            profile=profile,
            report=report,
            execution=execution,
            cleanup=cleanup,
            message=message,
        )

    def _register(self, endpoint: Endpoint) -> RegistrationOutcome:
        path = endpoint.path
        previous = self.store.load(path)
        self._advance(path, self._current_status(path), EndpointStatus.PROBING)

        try:
            content, content_type = endpoint.generate()
        except Exception as exc:
            cleanup = self._teardown(endpoint, previous) if self._deployed(previous) else None
            self._advance(path, EndpointStatus.PROBING, EndpointStatus.FAILED)
            return self._fail(
                endpoint,
                f"Content generator failed: {type(exc).__name__}: {exc}",
                cleanup=cleanup,
            )

        profile = self.probe.detect()
        report = self.tester.test(path, content, content_type)
        ranking = rank_strategies(endpoint.kind, profile, report, self.registry)

        cleanup = None
        replacing: StrategyState | None = None
        if previous is not None and previous.status.is_deployed():
            if previous.current_strategy != ranking.chosen:
                cleanup = self._teardown(endpoint, previous)
            else:
                replacing = previous

        if ranking.chosen is None:
            self._advance(path, EndpointStatus.PROBING, EndpointStatus.FAILED)
            return self._fail(
                endpoint,
                "Neither a static file nor a dynamic route round-tripped; "
                "manual intervention required",
                candidates=ranking.candidates,
                profile=profile,
                report=report,
                cleanup=cleanup,
            )

        self._advance(path, EndpointStatus.PROBING, EndpointStatus.EXECUTING)
        return self._deploy(
            endpoint,
            ranking.chosen,
            ranking.chosen_rank,
            candidates=ranking.candidates,
            alternates=ranking.alternates_also_work,
            profile=profile,
            report=report,
            cleanup=cleanup,
            replacing=replacing,
        )

    def _switch(self, endpoint: Endpoint, next_strategy: str | None) -> RegistrationOutcome:
        path = endpoint.path
        state = self.store.load(path)
        self._advance(path, self._current_status(path), EndpointStatus.PROBING)

        try:
            content, content_type = endpoint.generate()
        except Exception as exc:
            cleanup = self._teardown(endpoint, state) if self._deployed(state) else None
            self._advance(path, EndpointStatus.PROBING, EndpointStatus.FAILED)
            return self._fail(
                endpoint,
                f"Content generator failed: {type(exc).__name__}: {exc}",
                cleanup=cleanup,
            )

        profile = self.probe.detect()
        report = self.tester.test(path, content, content_type)
        candidates = candidate_strategies(endpoint.kind, profile)

        if next_strategy is None:
            current_rank: int | None = None
            if state is not None:
                if state.current_strategy in candidates:
                    current_rank = candidates.index(state.current_strategy)
                else:
                    current_rank = state.current_strategy_rank
            next_index = next_rank(current_rank, len(candidates))
            target = candidates[next_index]
            rank: int | None = next_index
        else:
            target = next_strategy
            rank = candidates.index(target) if target in candidates else None

        cleanup = self._teardown(endpoint, state) if self._deployed(state) else None
        approach = self.registry.get(target).approach
        if not report.works(approach):
            logger.warning(
                "waypost.endpoint.switch_untested",
                path=path,
                strategy=target,
                approach=approach.value,
            )

        self._advance(path, EndpointStatus.PROBING, EndpointStatus.EXECUTING)
        outcome = self._deploy(
            endpoint,
            target,
            rank,
            candidates=candidates,
            alternates=alternates_work(candidates, approach, report, self.registry),
            profile=profile,
            report=report,
            cleanup=cleanup,
        )
        logger.info(
            "waypost.endpoint.switched",
            path=path,
            from_strategy=state.current_strategy if state else None,
            to_strategy=target,
            success=outcome.success,
        )
        return outcome

    @staticmethod
    def _deployed(state: StrategyState | None) -> bool:
        return state is not None and state.status.is_deployed()

    def _deploy(
        self,
        endpoint: Endpoint,
        strategy_name: str,
        rank: int | None,
        *,
        candidates: tuple[str, ...],
        alternates: bool,
        profile: ServerProfile,
        report: RouteTestReport,
        cleanup: CleanupSummary | None,
        replacing: StrategyState | None = None,
    ) -> RegistrationOutcome:
        """Run ``strategy_name`` and persist the resulting state.

        ``replacing`` is a deployed state of the same strategy that was left
        in place for the re-run. The executor rolls back only what the failed
        run changed, so on failure the earlier deployment is torn down from
        its retained journal before FAILED is persisted.
        """
        path = endpoint.path
        ctx = self._context(endpoint, profile)
        execution = self.executor.run(strategy_name, endpoint, ctx)

        if not execution.success:
            if replacing is not None:
                cleanup = self._teardown(endpoint, replacing)
            self._advance(path, EndpointStatus.EXECUTING, EndpointStatus.FAILED)
            reason = execution.error.message if execution.error else "unknown error"
            return self._fail(
                endpoint,
                f"Strategy {strategy_name} failed: {reason}",
                strategy=strategy_name,
                rank=rank,
                candidates=candidates,
                alternates=alternates,
                profile=profile,
                report=report,
                execution=execution,
                cleanup=cleanup,
            )

        approach = self.registry.get(strategy_name).approach
        status = self._advance(
            path, EndpointStatus.EXECUTING, EndpointStatus.for_approach(approach)
        )
        state = StrategyState(
            endpoint_path=path,
            current_strategy=strategy_name,
            current_strategy_rank=rank,
            approach=approach,
            last_tested_at=report.tested_at,
            alternates_also_work=alternates,
            status=status,
            candidate_strategies=candidates,
        )
        self.store.save(state)
        self._remember_journal(path, ctx)
        logger.info(
            "waypost.endpoint.registered",
            path=path,
            strategy=strategy_name,
            rank=rank,
            status=status.value,
            alternates_also_work=alternates,
        )
        return RegistrationOutcome(
            path=path,
            success=True,
            state=state,
            profile=profile,
            report=report,
            execution=execution,
            cleanup=cleanup,
            message=f"Deployed {endpoint.label} with {self.registry.display_name(strategy_name)}",
        )


__all__ = ["EndpointManager", "RegistrationOutcome"]
