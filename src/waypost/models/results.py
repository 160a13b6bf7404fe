"""Result models returned by probes, building blocks and the executor.

Every layer below the Endpoint Manager reports failure through these models
instead of raising; a failed result always carries an ``ErrorInfo``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import Field

from waypost.models.base import WaypostBaseModel
from waypost.models.enums import Approach, BlockAction, BlockId, ErrorKind, Recommendation


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorInfo(WaypostBaseModel):
    """Tagged error carried by failed results."""

    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class ProbeResult(WaypostBaseModel):
    """Outcome of one real HTTP round-trip for one approach.

    Attributes:
        approach: Which delivery approach was exercised
        success: HTTP 200, content verified and served by the expected origin
        http_status: Status code received, None when no response arrived
        content_verified: Response body matched the probe content
        served_by_handler: Response carried the dispatcher origin header
        response_time_ms: Round-trip time, None when no response arrived
        test_path: Unique public path used for the probe
        error: Why the approach is unavailable, when it is
    """

    approach: Approach
    success: bool
    http_status: int | None = None
    content_verified: bool = False
    served_by_handler: bool = False
    response_time_ms: float | None = None
    test_path: str
    error: ErrorInfo | None = None


class RouteTestReport(WaypostBaseModel):
    """Both probe results for one endpoint plus the resulting recommendation."""

    path: str
    static_file: ProbeResult
    dynamic_route: ProbeResult
    recommendation: Recommendation
    tested_at: datetime = Field(default_factory=_utcnow)

    def result_for(self, approach: Approach) -> ProbeResult:
        if approach is Approach.STATIC_FILE:
            return self.static_file
        return self.dynamic_route

    def works(self, approach: Approach) -> bool:
        return self.result_for(approach).success


class BlockResult(WaypostBaseModel):
    """Outcome of one building block execute or cleanup call.

    Attributes:
        block_id: The block that ran
        success: Whether the call achieved its effect
        action: What actually happened (applied, skipped, removed, noop, failed)
        error: Failure detail when success is False
        artifact_refs: Files or routes the call touched
        detail: Block-specific extra data (e.g. a config suggestion)
    """

    block_id: BlockId
    success: bool
    action: BlockAction
    error: ErrorInfo | None = None
    artifact_refs: tuple[str, ...] = ()
    detail: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        block_id: BlockId,
        action: BlockAction,
        artifact_refs: tuple[str, ...] = (),
        **detail: Any,
    ) -> BlockResult:
        return cls(
            block_id=block_id,
            success=True,
            action=action,
            artifact_refs=artifact_refs,
            detail=detail,
        )

    @classmethod
    def failed(
        cls,
        block_id: BlockId,
        message: str,
        kind: ErrorKind = ErrorKind.BLOCK_EXECUTION,
        artifact_refs: tuple[str, ...] = (),
    ) -> BlockResult:
        return cls(
            block_id=block_id,
            success=False,
            action=BlockAction.FAILED,
            error=ErrorInfo(kind=kind, message=message),
            artifact_refs=artifact_refs,
        )


class CleanupSummary(WaypostBaseModel):
    """Rollback report: which blocks were cleaned and how it went."""

    blocks_cleaned: tuple[BlockId, ...] = ()
    results: tuple[BlockResult, ...] = ()
    all_successful: bool = True

    @classmethod
    def from_results(cls, results: list[BlockResult]) -> CleanupSummary:
        return cls(
            blocks_cleaned=tuple(r.block_id for r in results if r.success),
            results=tuple(results),
            all_successful=all(r.success for r in results),
        )


class ExecutionResult(WaypostBaseModel):
    """Outcome of running one strategy for one endpoint.

    Attributes:
        strategy: Strategy name that was run
        endpoint_path: Endpoint it was run for
        success: True only when every block succeeded
        blocks_executed: Blocks that completed successfully, in order
        blocks_failed: The block that stopped the run (at most one)
        block_results: Per-block execute results, in execution order
        cleanup_summary: Rollback report when the run failed
        error: Failure detail naming the failing block
    """

    strategy: str
    endpoint_path: str
    success: bool
    blocks_executed: tuple[BlockId, ...] = ()
    blocks_failed: tuple[BlockId, ...] = ()
    block_results: tuple[BlockResult, ...] = ()
    cleanup_summary: CleanupSummary | None = None
    error: ErrorInfo | None = None

    @property
    def failed_block(self) -> BlockId | None:
        return self.blocks_failed[0] if self.blocks_failed else None

    @property
    def suggestions(self) -> list[str]:
        """Config snippets produced by suggest-alternate-config blocks."""
        return [
            str(r.detail["snippet"])
            for r in self.block_results
            if r.success and "snippet" in r.detail
        ]
