"""FastAPI application exposing the dispatcher and the admin read model.

``create_app`` returns an app whose DispatchMiddleware answers every bound
endpoint path, plus a small JSON admin surface:

- GET /waypost/health: liveness
- GET /waypost/status: the status report (``?live=true`` also GETs each path)
- POST /waypost/switch: the "switch to next strategy" action
- GET /waypost/metrics: Prometheus text metrics

Example:
    >>> app = create_app(manager)
    >>> # uvicorn.run(app)
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse

from waypost import __version__
from waypost.admin.status import build_status_report, switch_to_next_strategy
from waypost.dispatch.middleware import DispatchMiddleware
from waypost.manager import EndpointManager
from waypost.models.base import WaypostBaseModel
from waypost.observability import get_logger, get_metrics

logger = get_logger(__name__)

ADMIN_PREFIX = "/waypost"


class SwitchRequest(WaypostBaseModel):
    """Body of POST /waypost/switch."""

    path: str
    strategy: str | None = None


def create_app(manager: EndpointManager, title: str = "waypost") -> FastAPI:
    """Create the FastAPI app serving ``manager``'s endpoints and admin routes.

    Args:
        manager: Manager whose dispatcher and state are exposed
        title: OpenAPI title

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(title=title, version=__version__)
    app.add_middleware(DispatchMiddleware, dispatcher=manager.dispatcher)
    app.state.manager = manager

    @app.get(f"{ADMIN_PREFIX}/health")
    async def health() -> JSONResponse:
        """Liveness probe: always OK if the process is running."""
        return JSONResponse(status_code=200, content={"status": "ok"})

    @app.get(f"{ADMIN_PREFIX}/status")
    async def status(live: bool = False) -> JSONResponse:
        """Status report for every known or registered endpoint."""
        report = await run_in_threadpool(build_status_report, manager, check_live=live)
        return JSONResponse(status_code=200, content=report.model_dump(mode="json"))

    @app.post(f"{ADMIN_PREFIX}/switch")
    async def switch(body: SwitchRequest) -> JSONResponse:
        """Switch an endpoint to the requested or next-ranked strategy.

        Returns 200 when the endpoint ends deployed, 409 when the switch ran
        but failed, and 400 when it was refused (unknown endpoint or strategy).
        """
        outcome, message = await run_in_threadpool(
            switch_to_next_strategy, manager, body.path, body.strategy
        )
        if outcome is None:
            return JSONResponse(status_code=400, content={"message": message})
        logger.info("waypost.admin.switched", path=body.path, success=outcome.success)
        return JSONResponse(
            status_code=200 if outcome.success else 409,
            content={
                "message": message,
                "state": outcome.state.model_dump(mode="json") if outcome.state else None,
            },
        )

    @app.get(f"{ADMIN_PREFIX}/metrics")
    async def metrics() -> PlainTextResponse:
        """Prometheus-compatible metrics."""
        return PlainTextResponse(
            content=get_metrics().export_prometheus(),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    return app


__all__ = ["ADMIN_PREFIX", "SwitchRequest", "create_app"]
