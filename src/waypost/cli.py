"""Command-line interface for waypost.

Settings come from ``WAYPOST_*`` environment variables (see
``WaypostSettings.from_env``); state persists through the backend selected by
``WAYPOST_STORAGE_BACKEND``. Use the sqlite backend so ``status``, ``switch``
and ``unregister`` see what an earlier ``register`` decided.

Dynamic routes live in the dispatcher of the running process, so from the
command line only static deployments outlive the command.

Example:
    >>> # From terminal:
    >>> # waypost --version
    >>> # waypost probe
    >>> # waypost test-route /llms.txt --content-file llms.txt
    >>> # waypost register /llms.txt --content-file llms.txt
    >>> # waypost switch /llms.txt --content-file llms.txt --strategy dynamic-route-only
    >>> # waypost status
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Optional

import typer

from waypost import __version__
from waypost.admin.status import build_status_report
from waypost.dispatch.dispatcher import RouteDispatcher
from waypost.environment.probe import EnvironmentProbe
from waypost.errors import WaypostError
from waypost.manager import EndpointManager, RegistrationOutcome
from waypost.models.entities import ContentGenerator, Endpoint, guess_content_type
from waypost.models.enums import EndpointKind
from waypost.observability import bind_context, configure_logging
from waypost.routing.tester import RouteTester
from waypost.settings import WaypostSettings
from waypost.state.persistence import PersistencePort, create_persistence
from waypost.strategies.registry import StrategyRegistry
from waypost.transport.http import HttpClient, HttpxClient

app = typer.Typer(help="Deploy well-known endpoints the way this host can serve them.")

_verbose: bool = False


def _version_callback(value: bool) -> None:
    """Print the version and exit when requested."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


VERSION_OPTION = typer.Option(
    False,
    "--version",
    help="Show waypost version and exit.",
    callback=_version_callback,
    is_eager=True,
)

CONTENT_FILE_OPTION = typer.Option(
    ..., "--content-file", "-f", help="File whose bytes the endpoint serves."
)
CONTENT_TYPE_OPTION = typer.Option(
    None, "--content-type", "-t", help="Content type (default: guessed from the path)."
)
KIND_OPTION = typer.Option(EndpointKind.STATIC, "--kind", "-k", help="Endpoint kind.")
PROXY_TARGET_OPTION = typer.Option(
    None, "--proxy-target", help="Upstream URL for proxy endpoints."
)


@app.callback()
def cli(
    ctx: typer.Context,
    version: bool = VERSION_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """waypost CLI entrypoint."""
    global _verbose
    _verbose = verbose
    configure_logging(log_level="DEBUG" if verbose else None)
    if ctx.invoked_subcommand:
        bind_context(command=ctx.invoked_subcommand)


def _make_settings() -> WaypostSettings:
    return WaypostSettings.from_env()


def _make_client(settings: WaypostSettings) -> HttpClient:
    return HttpxClient(timeout=settings.http_timeout, user_agent=settings.user_agent)


def _make_persistence() -> PersistencePort:
    return create_persistence()


@contextmanager
def _runtime() -> Iterator[tuple[WaypostSettings, HttpClient]]:
    try:
        settings = _make_settings()
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid configuration: {exc}") from exc
    client = _make_client(settings)
    try:
        yield settings, client
    finally:
        close = getattr(client, "close", None)
        if close is not None:
            close()


def _manager(settings: WaypostSettings, client: HttpClient) -> EndpointManager:
    return EndpointManager(settings, _make_persistence(), client)


def _file_generator(content_file: Path, content_type: str) -> ContentGenerator:
    def generate() -> tuple[bytes, str]:
        return content_file.read_bytes(), content_type

    return generate


def _endpoint(
    path: str,
    content_file: Path,
    content_type: str | None,
    kind: EndpointKind,
    proxy_target: str | None,
) -> Endpoint:
    if not content_file.is_file():
        raise typer.BadParameter(f"Content file not found: {content_file}")
    try:
        return Endpoint(
            path=path,
            content_generator=_file_generator(
                content_file, content_type or guess_content_type(path)
            ),
            kind=kind,
            content_type=content_type,
            proxy_target=proxy_target,
        )
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid endpoint: {exc}") from exc


def _echo_outcome(outcome: RegistrationOutcome) -> None:
    typer.echo(outcome.message)
    if outcome.state is not None:
        typer.echo(outcome.state.model_dump_json(indent=2))
    if outcome.execution is not None:
        for snippet in outcome.execution.suggestions:
            typer.echo("\nSuggested server configuration:\n")
            typer.echo(snippet)
    if not outcome.success:
        raise typer.Exit(code=1)


@app.command("probe")
def probe() -> None:
    """Detect the server platform and capabilities; print the profile as JSON."""
    with _runtime() as (settings, client):
        profile = EnvironmentProbe(settings, client).detect()
    typer.echo(profile.model_dump_json(indent=2))


@app.command("test-route")
def test_route(
    path: Annotated[str, typer.Argument(help="Public path, e.g. /llms.txt.")],
    content_file: Path = CONTENT_FILE_OPTION,
    content_type: Optional[str] = CONTENT_TYPE_OPTION,
) -> None:
    """Round-trip both delivery approaches for PATH without deploying anything."""
    if not content_file.is_file():
        raise typer.BadParameter(f"Content file not found: {content_file}")
    with _runtime() as (settings, client):
        tester = RouteTester(settings, client, RouteDispatcher())
        report = tester.test(
            path, content_file.read_bytes(), content_type or guess_content_type(path)
        )
    typer.echo(report.model_dump_json(indent=2))
    if not (report.static_file.success or report.dynamic_route.success):
        raise typer.Exit(code=1)


@app.command("strategies")
def strategies() -> None:
    """List the strategy catalog."""
    for strategy in StrategyRegistry():
        blocks = ", ".join(block.value for block in strategy.blocks)
        typer.echo(f"{strategy.name}\t{strategy.approach.value}\t{blocks}")
        if _verbose:
            typer.echo(f"  {strategy.display_name}: {strategy.applicability_hint}")


@app.command("status")
def status(
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
    live: bool = typer.Option(False, "--live", help="Also GET each deployed path."),
) -> None:
    """Show the persisted state of every endpoint."""
    with _runtime() as (settings, client):
        report = build_status_report(_manager(settings, client), check_live=live)
    if as_json:
        typer.echo(report.model_dump_json(indent=2))
        return
    for row in report.rows:
        strategy = row.strategy_label or "-"
        line = f"{row.path}\t{row.status_label}\t{strategy}"
        if row.live is not None:
            line += "\tlive" if row.live else "\tnot answering"
        typer.echo(line)
        if row.error and _verbose:
            typer.echo(f"  {row.error}")


@app.command("register")
def register(
    path: Annotated[str, typer.Argument(help="Public path, e.g. /llms.txt.")],
    content_file: Path = CONTENT_FILE_OPTION,
    content_type: Optional[str] = CONTENT_TYPE_OPTION,
    kind: EndpointKind = KIND_OPTION,
    proxy_target: Optional[str] = PROXY_TARGET_OPTION,
) -> None:
    """Probe, choose and deploy a strategy for PATH."""
    endpoint = _endpoint(path, content_file, content_type, kind, proxy_target)
    with _runtime() as (settings, client):
        outcome = _manager(settings, client).register(endpoint)
    _echo_outcome(outcome)


@app.command("switch")
def switch(
    path: Annotated[str, typer.Argument(help="Public path of a registered endpoint.")],
    content_file: Path = CONTENT_FILE_OPTION,
    content_type: Optional[str] = CONTENT_TYPE_OPTION,
    kind: EndpointKind = KIND_OPTION,
    proxy_target: Optional[str] = PROXY_TARGET_OPTION,
    strategy: Optional[str] = typer.Option(
        None, "--strategy", "-s", help="Strategy to switch to (default: next in rank order)."
    ),
) -> None:
    """Tear down the active strategy for PATH and deploy another one."""
    endpoint = _endpoint(path, content_file, content_type, kind, proxy_target)
    with _runtime() as (settings, client):
        manager = _manager(settings, client)
        manager.attach(endpoint)
        try:
            outcome = manager.switch(path, strategy)
        except WaypostError as exc:
            raise typer.BadParameter(exc.message) from exc
    _echo_outcome(outcome)


@app.command("unregister")
def unregister(
    path: Annotated[str, typer.Argument(help="Public path of a registered endpoint.")],
) -> None:
    """Remove everything deployed for PATH and forget its state."""
    with _runtime() as (settings, client):
        try:
            outcome = _manager(settings, client).unregister(path)
        except WaypostError as exc:
            raise typer.BadParameter(exc.message) from exc
    typer.echo(outcome.message)
    if _verbose and outcome.cleanup is not None:
        typer.echo(json.dumps(outcome.cleanup.model_dump(mode="json"), indent=2))
    if not outcome.success:
        raise typer.Exit(code=1)


def main() -> None:
    """Run the waypost CLI."""
    app()


if __name__ == "__main__":
    main()
