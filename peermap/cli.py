"""CLI entry point for the peermap tool."""

import asyncio
import logging
import sys
from dataclasses import replace

import click

from peermap.config import ConfigError, PeermapConfig, load_config
from peermap.models import Snapshot
from peermap.output import render
from peermap.service import build_service

logger = logging.getLogger(__name__)

FORMATS = ("table", "json")

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore")


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(exists=False),
    help="Path to YAML config file (default: ~/.peermap/config.yaml).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """Map the peers of a cryptocurrency node by geolocation."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not verbose:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    try:
        cfg = load_config(config_path)
    except (ConfigError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    logger.debug("Config loaded: %s", _redacted(cfg))
    ctx.obj = cfg


def _require_complete(cfg: PeermapConfig) -> None:
    """Exit with status 1 if settings needed to reach the daemon are missing."""
    try:
        cfg.validate()
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@main.command()
@click.option("--host", default=None, help="Bind address (overrides config).")
@click.option("--port", "-p", default=None, type=int, help="Listen port (overrides config).")
@click.pass_obj
def serve(cfg: PeermapConfig, host: str | None, port: int | None) -> None:
    """Serve GET /peer-locations and refresh the snapshot on a timer."""
    import uvicorn

    from peermap.api import create_app

    _require_complete(cfg)
    service, aclose = build_service(cfg)
    app = create_app(service, on_shutdown=aclose)

    bind_host = host or cfg.listen_host
    bind_port = port or cfg.port
    logger.info(
        "Serving on http://%s:%d (refresh every %.0f minutes)",
        bind_host,
        bind_port,
        cfg.cache_refresh_interval / 60,
    )
    uvicorn.run(app, host=bind_host, port=bind_port, log_level="info")


@main.command()
@click.option(
    "--format",
    "-f",
    "output_format",
    default="table",
    type=click.Choice(FORMATS, case_sensitive=False),
    show_default=True,
    help="Output format.",
)
@click.pass_obj
def snapshot(cfg: PeermapConfig, output_format: str) -> None:
    """Run one aggregation pass and print the result."""
    _require_complete(cfg)
    result = asyncio.run(_collect_once(cfg))
    if result is None:
        click.echo("Error: no peer locations could be collected", err=True)
        sys.exit(1)
    render(result, output_format.lower())


async def _collect_once(cfg: PeermapConfig) -> Snapshot | None:
    """Build the service stack, run a single cycle and close the clients."""
    service, aclose = build_service(cfg)
    try:
        return await service.update_peer_locations()
    finally:
        await aclose()


def _redacted(cfg: PeermapConfig) -> PeermapConfig:
    """Copy of *cfg* with secrets masked, for debug logging."""
    return replace(
        cfg,
        daemon_rpc_password="***" if cfg.daemon_rpc_password else None,
        ipinfo_token="***" if cfg.ipinfo_token else None,
    )
