"""Tests for the Route Tester."""

import json
from pathlib import Path

import httpx
import pytest

from waypost.dispatch.dispatcher import RouteDispatcher
from waypost.models.constants import TEST_PATH_INFIX
from waypost.models.enums import Approach, ErrorKind, Recommendation
from waypost.observability import get_metrics
from waypost.routing.tester import RouteTester, content_matches, generate_test_path
from waypost.settings import WaypostSettings
from waypost.testing.host import SimulatedHost
from waypost.transport.http import HttpxClient

CONTENT = b"# Example site\n\nAllow: all\n"


class TestGenerateTestPath:
    """Tests for unique probe path generation."""

    def test_keeps_directory_and_suffix(self) -> None:
        """The probe path sits next to the endpoint with the same extension."""
        test_path = generate_test_path("/.well-known/ai-plugin.json")

        assert test_path.startswith("/.well-known/ai-plugin" + TEST_PATH_INFIX)
        assert test_path.endswith(".json")

    def test_paths_are_unique(self) -> None:
        """Two probes of the same endpoint never share a path."""
        assert generate_test_path("/llms.txt") != generate_test_path("/llms.txt")

    def test_suffixless_path(self) -> None:
        """Paths without an extension still get a marker."""
        assert TEST_PATH_INFIX in generate_test_path("/ask")


class TestContentMatches:
    """Tests for probe content comparison."""

    def test_exact_bytes(self) -> None:
        """Identical bytes always match."""
        assert content_matches(b"\x00\x01", b"\x00\x01", "application/octet-stream", "/x")

    def test_json_compared_semantically(self) -> None:
        """Whitespace and key order do not matter for JSON."""
        expected = json.dumps({"a": 1, "b": [1, 2]}).encode()
        actual = b'{"b":[1,2],"a":1}'
        assert content_matches(expected, actual, "application/json", "/x.json")

    def test_json_detected_by_suffix(self) -> None:
        """A .json path is compared as JSON even with a generic content type."""
        assert content_matches(b'{"a": 1}', b'{"a":1}', "text/plain", "/servers.json")

    def test_invalid_json_does_not_match(self) -> None:
        """Unparseable bodies fall back to no match."""
        assert not content_matches(b'{"a": 1}', b"<html>", "application/json", "/x.json")

    def test_text_line_endings_normalised(self) -> None:
        """CRLF and trailing whitespace differences are tolerated."""
        assert content_matches(b"a\nb\n", b"a  \r\nb\r\n\r\n", "text/plain", "/llms.txt")

    def test_text_difference_detected(self) -> None:
        """Different text does not match."""
        assert not content_matches(b"allow", b"deny", "text/plain", "/llms.txt")


class TestRouteTester:
    """Tests for RouteTester.test against the simulated host."""

    def test_both_approaches_work(
        self,
        waypost_settings: WaypostSettings,
        simulated_host: SimulatedHost,
        dispatcher: RouteDispatcher,
        host_client: HttpxClient,
    ) -> None:
        """On a permissive host the static file is recommended."""
        tester = RouteTester(waypost_settings, host_client, dispatcher)

        report = tester.test("/llms.txt", CONTENT, "text/plain")

        assert report.static_file.success
        assert report.static_file.content_verified
        assert not report.static_file.served_by_handler
        assert report.dynamic_route.success
        assert report.dynamic_route.served_by_handler
        assert report.recommendation is Recommendation.STATIC_FILE

    def test_real_path_never_requested(
        self,
        waypost_settings: WaypostSettings,
        simulated_host: SimulatedHost,
        dispatcher: RouteDispatcher,
        host_client: HttpxClient,
    ) -> None:
        """Probes use their own paths, one per approach."""
        report = RouteTester(waypost_settings, host_client, dispatcher).test(
            "/llms.txt", CONTENT, "text/plain"
        )

        requested = simulated_host.paths_requested()
        assert "/llms.txt" not in requested
        assert report.static_file.test_path in requested
        assert report.dynamic_route.test_path in requested
        assert report.static_file.test_path != report.dynamic_route.test_path

    def test_probe_artifacts_removed(
        self,
        waypost_settings: WaypostSettings,
        dispatcher: RouteDispatcher,
        host_client: HttpxClient,
        document_root: Path,
    ) -> None:
        """Test files, their new directories and transient routes are gone afterwards."""
        RouteTester(waypost_settings, host_client, dispatcher).test(
            "/.well-known/mcp/servers.json", b'{"servers": []}', "application/json"
        )

        assert list(document_root.iterdir()) == []
        assert dispatcher.paths == frozenset()

    def test_existing_directories_survive_cleanup(
        self,
        waypost_settings: WaypostSettings,
        dispatcher: RouteDispatcher,
        host_client: HttpxClient,
        document_root: Path,
    ) -> None:
        """Only directories the probe created are pruned."""
        well_known = document_root / ".well-known"
        well_known.mkdir()

        RouteTester(waypost_settings, host_client, dispatcher).test(
            "/.well-known/ai-plugin.json", b"{}", "application/json"
        )

        assert well_known.is_dir()
        assert list(well_known.iterdir()) == []

    def test_static_disabled_recommends_dynamic(
        self,
        waypost_settings: WaypostSettings,
        simulated_host: SimulatedHost,
        dispatcher: RouteDispatcher,
        host_client: HttpxClient,
    ) -> None:
        """When files are not served the dynamic route is recommended."""
        simulated_host.static_enabled = False

        report = RouteTester(waypost_settings, host_client, dispatcher).test(
            "/llms.txt", CONTENT, "text/plain"
        )

        assert not report.static_file.success
        assert report.static_file.http_status == 404
        assert report.static_file.error is not None
        assert report.static_file.error.message == "HTTP 404"
        assert report.recommendation is Recommendation.DYNAMIC_ROUTE

    def test_nothing_works(
        self,
        waypost_settings: WaypostSettings,
        simulated_host: SimulatedHost,
        dispatcher: RouteDispatcher,
        host_client: HttpxClient,
    ) -> None:
        """With both approaches blocked, manual intervention is required."""
        simulated_host.static_enabled = False
        simulated_host.dynamic_enabled = False

        report = RouteTester(waypost_settings, host_client, dispatcher).test(
            "/llms.txt", CONTENT, "text/plain"
        )

        assert report.recommendation is Recommendation.MANUAL_INTERVENTION_REQUIRED
        assert not report.works(Approach.STATIC_FILE)
        assert not report.works(Approach.DYNAMIC_ROUTE)

    def test_wrong_body_fails_verification(
        self, waypost_settings: WaypostSettings, document_root: Path
    ) -> None:
        """A 200 with different content is not proof of delivery."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>catch-all page</html>")

        dispatcher = RouteDispatcher()
        with HttpxClient(transport=httpx.MockTransport(handler)) as client:
            report = RouteTester(waypost_settings, client, dispatcher).test(
                "/llms.txt", CONTENT, "text/plain"
            )

        assert not report.static_file.success
        assert not report.static_file.content_verified
        assert report.static_file.error is not None
        assert "did not match" in report.static_file.error.message
        assert list(document_root.iterdir()) == []

    def test_dynamic_probe_requires_handler_header(
        self, waypost_settings: WaypostSettings
    ) -> None:
        """Matching content without the dispatcher header is not a dynamic success."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=CONTENT)

        with HttpxClient(transport=httpx.MockTransport(handler)) as client:
            report = RouteTester(waypost_settings, client, RouteDispatcher()).test(
                "/llms.txt", CONTENT, "text/plain"
            )

        assert report.static_file.success
        assert not report.dynamic_route.success
        assert report.dynamic_route.error is not None
        assert report.dynamic_route.error.message == (
            "response did not come from the dynamic handler"
        )

    def test_timeouts_mark_approaches_unavailable(
        self, waypost_settings: WaypostSettings, document_root: Path
    ) -> None:
        """A timed-out request is a failed probe, not an exception."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        dispatcher = RouteDispatcher()
        with HttpxClient(transport=httpx.MockTransport(handler)) as client:
            report = RouteTester(waypost_settings, client, dispatcher).test(
                "/llms.txt", CONTENT, "text/plain"
            )

        for result in (report.static_file, report.dynamic_route):
            assert not result.success
            assert result.http_status is None
            assert result.error is not None
            assert result.error.message.startswith("request timed out")
        assert dispatcher.paths == frozenset()
        assert list(document_root.iterdir()) == []

    def test_path_outside_root_fails_static_probe(
        self,
        waypost_settings: WaypostSettings,
        dispatcher: RouteDispatcher,
        host_client: HttpxClient,
    ) -> None:
        """A path escaping the document root is never written."""
        result = RouteTester(waypost_settings, host_client, dispatcher).test(
            "/../outside.txt", CONTENT, "text/plain"
        )

        assert not result.static_file.success
        assert result.static_file.http_status is None

    def test_unwritable_root_fails_static_approach(
        self,
        tmp_path: Path,
        dispatcher: RouteDispatcher,
        host_client: HttpxClient,
    ) -> None:
        """A test file that cannot be written marks the static approach unavailable."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        settings = WaypostSettings(document_root=blocker / "public")

        result = RouteTester(settings, host_client, dispatcher).test(
            "/llms.txt", CONTENT, "text/plain"
        )

        assert not result.static_file.success
        assert result.static_file.error is not None
        assert result.static_file.error.kind is ErrorKind.PROBE
        assert result.static_file.error.message.startswith("write failed: ")
        assert blocker.read_text() == "not a directory"

    def test_records_metrics(
        self,
        waypost_settings: WaypostSettings,
        simulated_host: SimulatedHost,
        dispatcher: RouteDispatcher,
        host_client: HttpxClient,
    ) -> None:
        """Each probe increments the route test counter by outcome."""
        simulated_host.static_enabled = False

        RouteTester(waypost_settings, host_client, dispatcher).test(
            "/llms.txt", CONTENT, "text/plain"
        )

        metrics = get_metrics()
        assert (
            metrics.get_counter(
                "waypost_route_tests_total", {"approach": "static_file", "outcome": "failure"}
            )
            == 1.0
        )
        assert (
            metrics.get_counter(
                "waypost_route_tests_total", {"approach": "dynamic_route", "outcome": "success"}
            )
            == 1.0
        )
        assert (
            metrics.get_histogram_count(
                "waypost_route_test_duration_seconds", {"approach": "static_file"}
            )
            == 1.0
        )


class TestIsRouteActive:
    """Tests for the live-route check."""

    def test_existing_file_is_active(
        self,
        waypost_settings: WaypostSettings,
        dispatcher: RouteDispatcher,
        host_client: HttpxClient,
        document_root: Path,
    ) -> None:
        """A served file answers 200."""
        (document_root / "llms.txt").write_bytes(CONTENT)
        tester = RouteTester(waypost_settings, host_client, dispatcher)

        assert tester.is_route_active("/llms.txt")
        assert not tester.is_route_active("/missing.txt")

    @pytest.mark.parametrize("exc", [httpx.ConnectError, httpx.ReadTimeout])
    def test_unreachable_is_inactive(
        self, waypost_settings: WaypostSettings, exc: type[httpx.TransportError]
    ) -> None:
        """No response means not active."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise exc("unreachable", request=request)

        with HttpxClient(transport=httpx.MockTransport(handler)) as client:
            tester = RouteTester(waypost_settings, client, RouteDispatcher())
            assert not tester.is_route_active("/llms.txt")
