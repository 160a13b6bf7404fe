"""waypost Error Taxonomy.

This module defines the error hierarchy for waypost, providing structured
error handling with specific error codes and context information.

Layering:
    - Route Tester and building blocks never raise; they return results
      carrying an ``ErrorInfo`` tagged with an ``ErrorKind``.
    - The Strategy Executor is the first layer that turns a block failure
      into a terminal run failure (and initiates rollback).
    - The Endpoint Manager is the first layer that persists ``failed``.
"""

from __future__ import annotations

from typing import Any


class WaypostError(Exception):
    """Base exception for all waypost errors.

    Attributes:
        code: Error code following the waypost:<area>/<reason> pattern
        message: Human-readable error message
        details: Optional additional error context
    """

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to ``{code, message, details}`` dict."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ProbeError(WaypostError):
    """Raised internally when a network or filesystem step of a probe fails.

    Never propagates out of the Route Tester; it is converted into a failed
    ProbeResult (the approach is unavailable).

    Attributes:
        approach: The delivery approach being tested, if any
    """

    def __init__(
        self,
        message: str,
        approach: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="waypost:probe/failed",
            message=message,
            details={"approach": approach, **(details or {})},
        )
        self.approach = approach


class BlockExecutionError(WaypostError):
    """Raised inside a building block when its execute step cannot complete.

    Blocks catch this themselves and return a failed BlockResult; the
    executor then rolls back the blocks that already succeeded.

    Attributes:
        block_id: The building block that failed
    """

    def __init__(
        self,
        block_id: str,
        reason: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        message = f"Building block '{block_id}' failed: {reason}"
        super().__init__(
            code="waypost:block/execution_failed",
            message=message,
            details={"block_id": block_id, "reason": reason, **(details or {})},
        )
        self.block_id = block_id
        self.reason = reason


class CleanupError(WaypostError):
    """Raised inside a building block when its cleanup step fails.

    Cleanup is best-effort: the failure is recorded in the CleanupSummary
    and logged, but never replaces the error that triggered the rollback.
    """

    def __init__(
        self,
        block_id: str,
        reason: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        message = f"Cleanup of '{block_id}' failed: {reason}"
        super().__init__(
            code="waypost:block/cleanup_failed",
            message=message,
            details={"block_id": block_id, "reason": reason, **(details or {})},
        )
        self.block_id = block_id
        self.reason = reason


class UnknownStrategyError(WaypostError):
    """Raised when a strategy name is not in the registry.

    Nothing is executed: the lookup happens before the first block runs.

    Attributes:
        strategy: The unrecognised strategy name
        available: Names the registry does know
    """

    def __init__(
        self,
        strategy: str,
        available: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        message = f"Unknown strategy: {strategy}"
        super().__init__(
            code="waypost:strategy/unknown",
            message=message,
            details={"strategy": strategy, "available": available or [], **(details or {})},
        )
        self.strategy = strategy
        self.available = available or []


class InvalidTransitionError(WaypostError):
    """Raised when an endpoint lifecycle transition is not allowed.

    Attributes:
        from_state: The current endpoint status
        to_state: The attempted target status
    """

    def __init__(
        self, from_state: str, to_state: str, details: dict[str, Any] | None = None
    ) -> None:
        message = f"Invalid transition from '{from_state}' to '{to_state}'"
        super().__init__(
            code="waypost:state/invalid_transition",
            message=message,
            details={"from_state": from_state, "to_state": to_state, **(details or {})},
        )
        self.from_state = from_state
        self.to_state = to_state


class EndpointNotRegisteredError(WaypostError):
    """Raised when switching or inspecting a path the manager does not know."""

    def __init__(self, path: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="waypost:endpoint/not_registered",
            message=f"Endpoint not registered: {path}",
            details={"path": path, **(details or {})},
        )
        self.path = path


class PathOutsideRootError(WaypostError):
    """Raised when an endpoint path resolves outside the document root.

    Attributes:
        path: The public path that was rejected
        root: The document root it escaped
    """

    def __init__(self, path: str, root: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="waypost:block/path_outside_root",
            message=f"Path {path!r} resolves outside document root {root!r}",
            details={"path": path, "root": root, **(details or {})},
        )
        self.path = path
        self.root = root


class HttpRequestError(WaypostError):
    """Raised by the HTTP client port when a request gets no response.

    Timeouts and connection failures both land here; callers treat them as
    "approach unavailable" rather than as crashes.

    Attributes:
        url: The requested URL (credentials masked)
        timed_out: True when the request hit its timeout
    """

    def __init__(
        self,
        url: str,
        reason: str,
        timed_out: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="waypost:transport/request_failed",
            message=f"Request to {url} failed: {reason}",
            details={"url": url, "reason": reason, "timed_out": timed_out, **(details or {})},
        )
        self.url = url
        self.timed_out = timed_out
