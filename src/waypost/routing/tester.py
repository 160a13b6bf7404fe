"""Route Tester: empirical proof that an approach can serve a path.

Each approach is exercised through a real HTTP round-trip against a unique
test path derived from the endpoint path, so the real endpoint is never
touched. Everything created for a probe (test file, directories created for
it, transient dispatcher binding) is removed whatever the outcome.

Example:
    >>> tester = RouteTester(settings, client, dispatcher)
    >>> report = tester.test("/llms.txt", b"# Site", "text/plain")
    >>> report.recommendation
    <Recommendation.STATIC_FILE: 'static_file'>
"""

from __future__ import annotations

import json
import secrets
import time
from pathlib import Path, PurePosixPath

from waypost.dispatch.dispatcher import ContentRouteHandler, RouteDispatcher
from waypost.errors import HttpRequestError, PathOutsideRootError, ProbeError
from waypost.models.constants import HANDLER_HEADER, HANDLER_HEADER_VALUE, TEST_PATH_INFIX
from waypost.models.enums import Approach, ErrorKind, Recommendation
from waypost.models.results import ErrorInfo, ProbeResult, RouteTestReport
from waypost.observability import get_logger, get_metrics
from waypost.settings import WaypostSettings
from waypost.transport.http import HttpClient, HttpResponse
from waypost.utils.paths import create_parents, prune_empty_dirs, resolve_public_path
from waypost.utils.sanitization import truncate_for_logging

logger = get_logger(__name__)


def generate_test_path(path: str) -> str:
    """Derive a unique probe path next to ``path``.

    Example:
        >>> generate_test_path("/.well-known/ai-plugin.json")  # doctest: +SKIP
        '/.well-known/ai-plugin-waypost-test-1718000000-9f1c2ab3.json'
    """
    pure = PurePosixPath(path)
    marker = f"{TEST_PATH_INFIX}{int(time.time())}-{secrets.token_hex(4)}"
    return str(pure.with_name(f"{pure.stem}{marker}{pure.suffix}"))


def _normalise_text(data: bytes) -> str:
    text = data.decode("utf-8", errors="replace").replace("\r\n", "\n").replace("\r", "\n")
    return "\n".join(line.rstrip() for line in text.split("\n")).rstrip()


def content_matches(expected: bytes, actual: bytes, content_type: str, path: str) -> bool:
    """Compare probe content with a response body.

    Bytes equality always wins. JSON resources are compared semantically;
    text resources after normalising line endings and trailing whitespace.

    Example:
        >>> content_matches(b'{"a": 1}', b'{"a":1}', "application/json", "/x.json")
        True
        >>> content_matches(b"hello\\n", b"hello\\r\\n", "text/plain", "/llms.txt")
        True
    """
    if expected == actual:
        return True
    if "json" in content_type.lower() or path.lower().endswith(".json"):
        try:
            return json.loads(expected) == json.loads(actual)
        except (ValueError, UnicodeDecodeError):
            return False
    return _normalise_text(expected) == _normalise_text(actual)


def served_by_dispatcher(response: HttpResponse) -> bool:
    return response.header(HANDLER_HEADER) == HANDLER_HEADER_VALUE


class RouteTester:
    """Probes both delivery approaches for a path.

    Args:
        settings: Document root, site URL and timeout configuration
        client: HTTP client port used for every round-trip
        dispatcher: Dispatcher receiving transient bindings for dynamic probes
    """

    def __init__(
        self,
        settings: WaypostSettings,
        client: HttpClient,
        dispatcher: RouteDispatcher,
    ) -> None:
        self.settings = settings
        self.client = client
        self.dispatcher = dispatcher

    def test(self, path: str, content: bytes, content_type: str) -> RouteTestReport:
        """Probe static file and dynamic route delivery for ``path``. Never raises."""
        static_result = self._timed(Approach.STATIC_FILE, path, content, content_type)
        dynamic_result = self._timed(Approach.DYNAMIC_ROUTE, path, content, content_type)

        if static_result.success:
            recommendation = Recommendation.STATIC_FILE
        elif dynamic_result.success:
            recommendation = Recommendation.DYNAMIC_ROUTE
        else:
            recommendation = Recommendation.MANUAL_INTERVENTION_REQUIRED

        logger.info(
            "waypost.route_test.completed",
            path=path,
            static_success=static_result.success,
            dynamic_success=dynamic_result.success,
            recommendation=recommendation.value,
        )
        return RouteTestReport(
            path=path,
            static_file=static_result,
            dynamic_route=dynamic_result,
            recommendation=recommendation,
        )

    def is_route_active(self, path: str) -> bool:
        """Single GET against the live path; True on HTTP 200."""
        url = self.settings.url_for(path)
        try:
            response = self.client.get(
                url,
                timeout=self.settings.http_timeout,
                verify=self.settings.should_verify_tls(url),
            )
        except HttpRequestError:
            return False
        return response.status_code == 200

    def _timed(
        self, approach: Approach, path: str, content: bytes, content_type: str
    ) -> ProbeResult:
        test_path = generate_test_path(path)
        start = time.perf_counter()
        try:
            if approach is Approach.STATIC_FILE:
                result = self._probe_static(test_path, content, content_type)
            else:
                result = self._probe_dynamic(test_path, content, content_type)
        except ProbeError as exc:
            result = self._failure(approach, test_path, exc.message)
        except Exception as exc:
            logger.exception(
                "waypost.route_test.unexpected_error",
                approach=approach.value,
                test_path=test_path,
                error=str(exc),
            )
            result = self._failure(approach, test_path, f"unexpected error: {exc}")

        metrics = get_metrics()
        metrics.increment_counter(
            "waypost_route_tests_total",
            {"approach": approach.value, "outcome": "success" if result.success else "failure"},
        )
        metrics.observe_histogram(
            "waypost_route_test_duration_seconds",
            time.perf_counter() - start,
            {"approach": approach.value},
        )
        return result

    @staticmethod
    def _failure(
        approach: Approach,
        test_path: str,
        message: str,
        http_status: int | None = None,
        response_time_ms: float | None = None,
        served_by_handler: bool = False,
    ) -> ProbeResult:
        return ProbeResult(
            approach=approach,
            success=False,
            http_status=http_status,
            served_by_handler=served_by_handler,
            response_time_ms=response_time_ms,
            test_path=test_path,
            error=ErrorInfo(kind=ErrorKind.PROBE, message=message),
        )

    def _round_trip(
        self,
        approach: Approach,
        test_path: str,
        content: bytes,
        content_type: str,
    ) -> ProbeResult:
        url = self.settings.url_for(test_path)
        try:
            response = self.client.get(
                url,
                timeout=self.settings.http_timeout,
                verify=self.settings.should_verify_tls(url),
            )
        except HttpRequestError as exc:
            reason = "timed out" if exc.timed_out else "connection failed"
            raise ProbeError(
                f"request {reason}: {exc.message}", approach=approach.value
            ) from exc

        verified = response.status_code == 200 and content_matches(
            content, response.body, content_type, test_path
        )
        by_handler = served_by_dispatcher(response)
        if approach is Approach.STATIC_FILE:
            success = verified and not by_handler
        else:
            success = verified and by_handler

        logger.debug(
            "waypost.route_test.response",
            approach=approach.value,
            test_path=test_path,
            status_code=response.status_code,
            content_verified=verified,
            served_by_handler=by_handler,
            response_time_ms=response.elapsed_ms,
        )
        if not success:
            if response.status_code != 200:
                message = f"HTTP {response.status_code}"
            elif not verified:
                message = "response body did not match probe content"
                logger.debug(
                    "waypost.route_test.content_mismatch",
                    test_path=test_path,
                    expected=truncate_for_logging(content),
                    received=truncate_for_logging(response.body),
                )
            elif by_handler:
                message = "response came from the dynamic handler, not the web server"
            else:
                message = "response did not come from the dynamic handler"
            return self._failure(
                approach,
                test_path,
                message,
                http_status=response.status_code,
                response_time_ms=response.elapsed_ms,
                served_by_handler=by_handler,
            ).model_copy(update={"content_verified": verified})

        return ProbeResult(
            approach=approach,
            success=True,
            http_status=response.status_code,
            content_verified=True,
            served_by_handler=by_handler,
            response_time_ms=response.elapsed_ms,
            test_path=test_path,
        )

    def _probe_static(self, test_path: str, content: bytes, content_type: str) -> ProbeResult:
        approach = Approach.STATIC_FILE
        try:
            target = resolve_public_path(self.settings.document_root, test_path)
        except PathOutsideRootError as exc:
            raise ProbeError(exc.message, approach=approach.value) from exc

        created_dirs: list[Path] = []
        wrote_file = False
        try:
            try:
                created_dirs = create_parents(target)
                # "x" refuses to clobber a file that already exists.
                with target.open("xb") as handle:
                    wrote_file = True
                    handle.write(content)
            except FileExistsError as exc:
                raise ProbeError("test path already exists", approach=approach.value) from exc
            except OSError as exc:
                raise ProbeError(
                    f"write failed: {exc.strerror or exc}", approach=approach.value
                ) from exc
            return self._round_trip(approach, test_path, content, content_type)
        finally:
            self._cleanup_static(target if wrote_file else None, created_dirs, test_path)

    def _cleanup_static(
        self, target: Path | None, created_dirs: list[Path], test_path: str
    ) -> None:
        try:
            if target is not None:
                target.unlink(missing_ok=True)
            prune_empty_dirs(created_dirs)
        except OSError as exc:
            logger.warning(
                "waypost.route_test.cleanup_failed", test_path=test_path, error=str(exc)
            )

    def _probe_dynamic(self, test_path: str, content: bytes, content_type: str) -> ProbeResult:
        handler = ContentRouteHandler(lambda: (content, content_type), content_type=content_type)
        self.dispatcher.bind(test_path, handler, transient=True, owner="route-tester")
        try:
            return self._round_trip(Approach.DYNAMIC_ROUTE, test_path, content, content_type)
        finally:
            self.dispatcher.unbind(test_path)
