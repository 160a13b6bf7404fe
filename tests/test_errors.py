"""Tests for the waypost error taxonomy."""

import pytest

from waypost.errors import (
    BlockExecutionError,
    CleanupError,
    EndpointNotRegisteredError,
    HttpRequestError,
    InvalidTransitionError,
    PathOutsideRootError,
    ProbeError,
    UnknownStrategyError,
    WaypostError,
)


class TestWaypostError:
    """Tests for the base error."""

    def test_to_dict(self) -> None:
        """to_dict exposes code, message and details."""
        error = WaypostError("waypost:test/x", "boom", {"k": 1})

        assert error.to_dict() == {"code": "waypost:test/x", "message": "boom", "details": {"k": 1}}
        assert str(error) == "boom"

    def test_details_default_to_empty(self) -> None:
        """details is never None."""
        assert WaypostError("waypost:test/x", "boom").details == {}


class TestSpecificErrors:
    """Tests for each concrete error."""

    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (ProbeError("no response", approach="static_file"), "waypost:probe/failed"),
            (BlockExecutionError("write-static-file", "denied"), "waypost:block/execution_failed"),
            (CleanupError("add-rewrite-rule", "busy"), "waypost:block/cleanup_failed"),
            (UnknownStrategyError("nope"), "waypost:strategy/unknown"),
            (InvalidTransitionError("removed", "failed"), "waypost:state/invalid_transition"),
            (EndpointNotRegisteredError("/llms.txt"), "waypost:endpoint/not_registered"),
            (PathOutsideRootError("/../x", "/srv"), "waypost:block/path_outside_root"),
            (HttpRequestError("http://site.test/", "refused"), "waypost:transport/request_failed"),
        ],
    )
    def test_codes_and_hierarchy(self, error: WaypostError, code: str) -> None:
        """Every error is a WaypostError with a waypost:<area>/<reason> code."""
        assert isinstance(error, WaypostError)
        assert error.code == code

    def test_block_execution_error_message(self) -> None:
        """The message names the failing block and the reason."""
        error = BlockExecutionError("write-static-file", "permission denied")

        assert error.message == "Building block 'write-static-file' failed: permission denied"
        assert error.details["block_id"] == "write-static-file"

    def test_unknown_strategy_lists_available(self) -> None:
        """The registry's names travel with the error."""
        error = UnknownStrategyError("nope", available=["static-file-only"])

        assert error.available == ["static-file-only"]
        assert error.details["available"] == ["static-file-only"]

    def test_invalid_transition_details(self) -> None:
        """Extra details merge with the from/to pair."""
        error = InvalidTransitionError("removed", "failed", details={"endpoint_path": "/ask"})

        assert error.details == {
            "from_state": "removed",
            "to_state": "failed",
            "endpoint_path": "/ask",
        }

    def test_http_request_error_timeout_flag(self) -> None:
        """timed_out distinguishes timeouts from refused connections."""
        assert HttpRequestError("http://x/", "slow", timed_out=True).timed_out
        assert not HttpRequestError("http://x/", "refused").timed_out
