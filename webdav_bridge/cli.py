import os

import anyio
import click
import uvicorn

from webdav_bridge.config import Settings, get_settings
from webdav_bridge.models import WebDAVConfig
from webdav_bridge.observability import (
    get_uvicorn_logging_config,
    setup_logging,
    setup_metrics,
    setup_tracing,
)
from webdav_bridge.service import WebDAVService

from .app import get_app


@click.group()
def cli():
    """WebDAV gateway, dev proxy and client tooling."""
    pass


@cli.command()
@click.option(
    "--host", "-h", default="127.0.0.1", show_default=True, help="Server host"
)
@click.option(
    "--port", "-p", type=int, default=8000, show_default=True, help="Server port"
)
@click.option(
    "--log-level",
    "-l",
    default="info",
    show_default=True,
    type=click.Choice(["critical", "error", "warning", "info", "debug", "trace"]),
    help="Logging level",
)
@click.option(
    "--upstream-url",
    envvar="WEBDAV_UPSTREAM_URL",
    help="Upstream WebDAV root URL (can also use WEBDAV_UPSTREAM_URL env var)",
)
@click.option(
    "--gateway-prefix",
    envvar="WEBDAV_GATEWAY_PREFIX",
    help="Public path prefix of the gateway (can also use WEBDAV_GATEWAY_PREFIX env var)",
)
@click.option(
    "--dev/--no-dev",
    "dev_mode",
    default=None,
    help="Also serve the dev proxy at WEBDAV_DEV_PROXY_PREFIX (default: WEBDAV_DEV_MODE)",
)
def run(
    host: str,
    port: int,
    log_level: str,
    upstream_url: str | None,
    gateway_prefix: str | None,
    dev_mode: bool | None,
):
    """
    Run the WebDAV gateway.

    \b
    Examples:
      # Gateway in front of the default upstream
      $ webdav-bridge run --host 0.0.0.0 --port 8000

      # Local development: gateway plus dev proxy
      $ webdav-bridge run --dev

      # Different upstream
      $ webdav-bridge run --upstream-url=https://dav.example.com/remote.php/webdav
    """
    # Set env vars from CLI options if provided
    if upstream_url:
        os.environ["WEBDAV_UPSTREAM_URL"] = upstream_url
    if gateway_prefix:
        os.environ["WEBDAV_GATEWAY_PREFIX"] = gateway_prefix
    if dev_mode is not None:
        os.environ["WEBDAV_DEV_MODE"] = "true" if dev_mode else "false"

    try:
        settings = get_settings()
    except ValueError as e:
        raise click.ClickException(str(e))

    if settings.metrics_enabled:
        setup_metrics(port=settings.metrics_port)
    if settings.otel_exporter_otlp_endpoint:
        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
            otlp_verify_ssl=settings.otel_exporter_verify_ssl,
        )

    app = get_app(settings)

    uvicorn_log_config = get_uvicorn_logging_config(
        log_format=settings.log_format,
        log_level=settings.log_level,
        include_trace_context=settings.log_include_trace_context,
    )

    uvicorn.run(
        app=app,
        host=host,
        port=port,
        log_level=log_level,
        log_config=uvicorn_log_config,
    )


def create_service(settings: Settings) -> WebDAVService:
    return WebDAVService(settings)


async def _probe(
    settings: Settings, config: WebDAVConfig, path: str | None, deep: bool
) -> list[str]:
    lines = []
    async with create_service(settings) as service:
        result = await service.initialize(config)
        if not result.success:
            raise click.ClickException(f"Connection failed: {result.error}")

        route = service.route
        assert route is not None
        lines.append(f"Connected via {route.strategy.value} ({route.base_url})")

        if path is not None:
            listing = await service.list(path, deep=deep)
            if not listing.success:
                raise click.ClickException(f"Listing failed: {listing.error}")
            for entry in listing.data or []:
                marker = "d" if entry.is_directory else "-"
                lines.append(f"{marker} {entry.size:>10} {entry.filename}")
    return lines


@cli.command()
@click.option(
    "--server-url",
    envvar="WEBDAV_SERVER_URL",
    required=True,
    help="WebDAV server URL (can also use WEBDAV_SERVER_URL env var)",
)
@click.option(
    "--username",
    envvar="WEBDAV_USERNAME",
    required=True,
    help="WebDAV username (can also use WEBDAV_USERNAME env var)",
)
@click.option(
    "--password",
    envvar="WEBDAV_PASSWORD",
    required=True,
    help="WebDAV password (can also use WEBDAV_PASSWORD env var)",
)
@click.option(
    "--proxy/--no-proxy",
    default=False,
    show_default=True,
    help="Route through the dev proxy instead of connecting directly",
)
@click.option("--list", "list_path", help="Also list this directory")
@click.option("--deep", is_flag=True, help="List recursively")
def probe(
    server_url: str,
    username: str,
    password: str,
    proxy: bool,
    list_path: str | None,
    deep: bool,
):
    """
    Check that a WebDAV account is reachable, optionally listing a directory.

    \b
    Examples:
      $ export WEBDAV_SERVER_URL=https://dav.jianguoyun.com/dav
      $ export WEBDAV_USERNAME=me@example.com
      $ export WEBDAV_PASSWORD=app-password
      $ webdav-bridge probe --list /
    """
    settings = get_settings()
    setup_logging(
        log_format=settings.log_format,
        log_level=settings.log_level,
        include_trace_context=False,
    )

    config = WebDAVConfig(
        enabled=True,
        server_url=server_url,
        username=username,
        password=password,
        sync_path=settings.webdav_sync_path,
        use_proxy=proxy,
    )

    for line in anyio.run(_probe, settings, config, list_path, deep):
        click.echo(line)


if __name__ == "__main__":
    cli()
