"""Strategy Executor: all-or-nothing runs of building blocks.

Blocks run strictly in order. The first failure stops the run and every block
that already succeeded is cleaned up in reverse order. Cleanup is best-effort:
a cleanup failure is recorded in the CleanupSummary and logged, and the
original error is what the ExecutionResult reports.

Example:
    >>> executor = StrategyExecutor()
    >>> result = executor.run("static-file-only", endpoint, ctx)
    >>> result.success, result.blocks_executed
"""

from __future__ import annotations

import time
from collections.abc import Mapping

from waypost.blocks.base import BlockContext, BuildingBlock
from waypost.blocks.registry import BLOCK_REGISTRY
from waypost.errors import UnknownStrategyError
from waypost.models.entities import Endpoint
from waypost.models.enums import BlockId, ErrorKind
from waypost.models.results import BlockResult, CleanupSummary, ErrorInfo, ExecutionResult
from waypost.observability import get_logger, get_metrics
from waypost.strategies.registry import StrategyRegistry

logger = get_logger(__name__)


class StrategyExecutor:
    """Runs and tears down strategies.

    Args:
        registry: Strategy catalog to resolve names against
        blocks: Block implementations by id
    """

    def __init__(
        self,
        registry: StrategyRegistry | None = None,
        blocks: Mapping[BlockId, BuildingBlock] = BLOCK_REGISTRY,
    ) -> None:
        self.registry = registry or StrategyRegistry()
        self.blocks = blocks

    def run(self, strategy_name: str, endpoint: Endpoint, ctx: BlockContext) -> ExecutionResult:
        """Execute ``strategy_name`` for ``endpoint``.

        Raises:
            UnknownStrategyError: If the name is not registered; raised before
                any block runs.
        """
        strategy = self.registry.get(strategy_name)
        ctx.approach = strategy.approach
        start_time = time.perf_counter()
        log = logger.bind(strategy=strategy.name, path=endpoint.path)

        try:
            content, _ = endpoint.generate()
        except Exception as exc:
            log.warning("waypost.strategy.content_failed", error=str(exc))
            self._record_run(strategy.name, "failure")
            return ExecutionResult(
                strategy=strategy.name,
                endpoint_path=endpoint.path,
                success=False,
                error=ErrorInfo(
                    kind=ErrorKind.CONTENT_GENERATOR,
                    message=f"content generator failed: {type(exc).__name__}: {exc}",
                ),
            )

        executed: list[BlockId] = []
        results: list[BlockResult] = []
        for block_id in strategy.blocks:
            result = self.blocks[block_id].execute(endpoint.path, content, ctx)
            results.append(result)
            if result.success:
                executed.append(block_id)
                continue

            reason = result.error.message if result.error else "unknown error"
            log.warning(
                "waypost.strategy.block_failed",
                block_id=block_id.value,
                error=reason,
                rolling_back=[b.value for b in reversed(executed)],
            )
            summary = self._rollback(executed, endpoint, ctx)
            self._record_run(strategy.name, "rolled_back")
            get_metrics().increment_counter(
                "waypost_rollbacks_total", {"strategy": strategy.name}
            )
            return ExecutionResult(
                strategy=strategy.name,
                endpoint_path=endpoint.path,
                success=False,
                blocks_executed=tuple(executed),
                blocks_failed=(block_id,),
                block_results=tuple(results),
                cleanup_summary=summary,
                error=ErrorInfo(
                    kind=ErrorKind.BLOCK_EXECUTION,
                    message=f"{block_id.value} failed: {reason}",
                ),
            )

        duration_ms = (time.perf_counter() - start_time) * 1000
        log.info(
            "waypost.strategy.completed",
            blocks=[b.value for b in executed],
            duration_ms=round(duration_ms, 2),
        )
        self._record_run(strategy.name, "success")
        return ExecutionResult(
            strategy=strategy.name,
            endpoint_path=endpoint.path,
            success=True,
            blocks_executed=tuple(executed),
            block_results=tuple(results),
        )

    def run_safe(
        self, strategy_name: str, endpoint: Endpoint, ctx: BlockContext
    ) -> ExecutionResult:
        """Like ``run`` but reports an unknown strategy as a failed result."""
        try:
            return self.run(strategy_name, endpoint, ctx)
        except UnknownStrategyError as exc:
            logger.warning("waypost.strategy.unknown", strategy=strategy_name, path=endpoint.path)
            self._record_run(strategy_name, "unknown")
            return ExecutionResult(
                strategy=strategy_name,
                endpoint_path=endpoint.path,
                success=False,
                error=ErrorInfo(kind=ErrorKind.UNKNOWN_STRATEGY, message=exc.message),
            )

    def teardown(self, strategy_name: str, endpoint: Endpoint, ctx: BlockContext) -> CleanupSummary:
        """Clean up every block of a deployed strategy, in reverse order.

        Raises:
            UnknownStrategyError: If the name is not registered.
        """
        strategy = self.registry.get(strategy_name)
        ctx.approach = strategy.approach
        summary = self._cleanup(list(strategy.blocks), endpoint, ctx)
        logger.info(
            "waypost.strategy.torn_down",
            strategy=strategy.name,
            path=endpoint.path,
            all_successful=summary.all_successful,
        )
        return summary

    def _cleanup(
        self, block_ids: list[BlockId], endpoint: Endpoint, ctx: BlockContext
    ) -> CleanupSummary:
        return CleanupSummary.from_results(
            [self.blocks[b].cleanup(endpoint.path, ctx) for b in reversed(block_ids)]
        )

    def _rollback(
        self, executed: list[BlockId], endpoint: Endpoint, ctx: BlockContext
    ) -> CleanupSummary:
        summary = self._cleanup(executed, endpoint, ctx)
        if not summary.all_successful:
            logger.error(
                "waypost.strategy.rollback_incomplete",
                path=endpoint.path,
                failures=[
                    r.error.message for r in summary.results if not r.success and r.error
                ],
            )
        return summary

    @staticmethod
    def _record_run(strategy: str, outcome: str) -> None:
        get_metrics().increment_counter(
            "waypost_strategy_runs_total", {"strategy": strategy, "outcome": outcome}
        )
