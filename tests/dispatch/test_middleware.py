"""Tests for DispatchMiddleware in a FastAPI app."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from waypost.dispatch.dispatcher import ContentRouteHandler, RouteDispatcher
from waypost.dispatch.middleware import DispatchMiddleware


def _app(dispatcher: RouteDispatcher) -> FastAPI:
    app = FastAPI()

    @app.get("/{path:path}")
    def fallback(path: str) -> dict[str, str]:
        return {"served_by": "application", "path": path}

    app.add_middleware(DispatchMiddleware, dispatcher=dispatcher)
    return app


class TestDispatchMiddleware:
    """Tests for routing requests through the dispatcher."""

    def test_unbound_paths_reach_application(self) -> None:
        """Misses pass through untouched."""
        client = TestClient(_app(RouteDispatcher()))

        response = client.get("/llms.txt")

        assert response.json() == {"served_by": "application", "path": "llms.txt"}
        assert "x-waypost-handler" not in response.headers

    def test_bound_paths_answered_by_dispatcher(self) -> None:
        """Bound paths never reach the application."""
        dispatcher = RouteDispatcher()
        dispatcher.bind(
            "/llms.txt",
            ContentRouteHandler(lambda: (b"# Site\n", "text/plain; charset=utf-8")),
        )
        client = TestClient(_app(dispatcher))

        response = client.get("/llms.txt")

        assert response.status_code == 200
        assert response.content == b"# Site\n"
        assert response.headers["x-waypost-handler"] == "dispatcher"
        assert response.headers["content-type"] == "text/plain; charset=utf-8"

    def test_head_response(self) -> None:
        """HEAD keeps the handler's status and omits the body."""
        dispatcher = RouteDispatcher()
        dispatcher.bind("/llms.txt", ContentRouteHandler(lambda: (b"12345", "text/plain")))
        client = TestClient(_app(dispatcher))

        response = client.head("/llms.txt")

        assert response.status_code == 200
        assert response.content == b""

    def test_binding_changes_take_effect_immediately(self) -> None:
        """Unbinding returns the path to the application."""
        dispatcher = RouteDispatcher()
        dispatcher.bind("/llms.txt", ContentRouteHandler(lambda: (b"x", "text/plain")))
        client = TestClient(_app(dispatcher))
        assert client.get("/llms.txt").content == b"x"

        dispatcher.unbind("/llms.txt")

        assert client.get("/llms.txt").json()["served_by"] == "application"
