"""Building block contract and shared execution guard.

A building block is one reversible side effect (write a file, append a
config fragment, bind a route). Blocks never raise: ``BaseBlock`` turns any
exception from a concrete block into a failed ``BlockResult`` tagged
``block_execution`` (execute) or ``cleanup`` (cleanup), and records metrics
and logs for every call.

Blocks that need to undo precisely what they did (restore an overwritten
file, put back a replaced route) record it in ``BlockContext.journal`` during
execute. A cleanup with no journal entry (teardown in a later process) falls
back to removing the block's artifact outright.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol, runtime_checkable

from waypost.dispatch.dispatcher import RouteDispatcher
from waypost.errors import CleanupError, WaypostError
from waypost.models.entities import Endpoint, ServerProfile
from waypost.models.enums import Approach, BlockId, ErrorKind
from waypost.models.results import BlockResult
from waypost.observability import get_logger, get_metrics
from waypost.settings import WaypostSettings
from waypost.transport.http import HttpClient

logger = get_logger(__name__)


@dataclass
class BlockContext:
    """Everything a block may touch during one strategy run.

    Attributes:
        settings: Deployment settings
        profile: Server profile from the most recent probe
        dispatcher: Runtime dispatcher for route-binding blocks
        endpoint: Endpoint being deployed
        client: HTTP client port (used by proxy routes)
        approach: Approach of the strategy being run, if known
        journal: Per-run undo records keyed by block id
    """

    settings: WaypostSettings
    profile: ServerProfile
    dispatcher: RouteDispatcher
    endpoint: Endpoint
    client: HttpClient | None = None
    approach: Approach | None = None
    journal: dict[BlockId, dict[str, Any]] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        return self.endpoint.effective_content_type


@runtime_checkable
class BuildingBlock(Protocol):
    """Reversible unit of deployment work."""

    block_id: BlockId

    def execute(self, path: str, content: bytes, ctx: BlockContext) -> BlockResult: ...

    def cleanup(self, path: str, ctx: BlockContext) -> BlockResult: ...


def _describe(exc: Exception) -> str:
    if isinstance(exc, WaypostError):
        return exc.message
    if isinstance(exc, OSError):
        reason = exc.strerror or str(exc)
        return f"{reason}: {exc.filename}" if exc.filename else reason
    return f"{type(exc).__name__}: {exc}"


class BaseBlock(ABC):
    """Template for concrete blocks: implement ``_execute`` and ``_cleanup``."""

    block_id: ClassVar[BlockId]

    @abstractmethod
    def _execute(self, path: str, content: bytes, ctx: BlockContext) -> BlockResult: ...

    @abstractmethod
    def _cleanup(self, path: str, ctx: BlockContext) -> BlockResult: ...

    def execute(self, path: str, content: bytes, ctx: BlockContext) -> BlockResult:
        try:
            result = self._execute(path, content, ctx)
        except Exception as exc:
            result = BlockResult.failed(self.block_id, _describe(exc))
            logger.warning(
                "waypost.block.failed",
                block_id=self.block_id.value,
                path=path,
                error=result.error.message if result.error else None,
                error_type=type(exc).__name__,
            )
        else:
            logger.info(
                "waypost.block.executed",
                block_id=self.block_id.value,
                path=path,
                action=result.action.value,
                success=result.success,
            )
        get_metrics().increment_counter(
            "waypost_block_executions_total",
            {
                "block_id": self.block_id.value,
                "phase": "execute",
                "outcome": "success" if result.success else "failure",
            },
        )
        return result

    def cleanup(self, path: str, ctx: BlockContext) -> BlockResult:
        try:
            result = self._cleanup(path, ctx)
        except Exception as exc:
            error = CleanupError(self.block_id.value, _describe(exc))
            result = BlockResult.failed(self.block_id, error.message, kind=ErrorKind.CLEANUP)
            logger.warning(
                "waypost.block.cleanup_failed",
                block_id=self.block_id.value,
                path=path,
                error=error.message,
                error_type=type(exc).__name__,
            )
        else:
            logger.info(
                "waypost.block.cleaned",
                block_id=self.block_id.value,
                path=path,
                action=result.action.value,
            )
        get_metrics().increment_counter(
            "waypost_block_executions_total",
            {
                "block_id": self.block_id.value,
                "phase": "cleanup",
                "outcome": "success" if result.success else "failure",
            },
        )
        return result
