"""
svid-helper command line

Fetches the X.509-SVID allocated to a Pod from the SPIRE agent and writes it
to a directory, either once (``--mode init``) or on every rotation
(``--mode refresh``). Every option can also be set through an environment
variable named ``HELPER_<OPTION>``, e.g. ``HELPER_POD_SPIFFE_ID``.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console

from svidhelper import __version__
from svidhelper.config import LOG_LEVELS, HelperConfig, Mode
from svidhelper.exceptions import ConfigurationError, SVIDHelperError
from svidhelper.helper import SVIDHelper
from svidhelper.observability.metrics import HelperMetrics, start_metrics_server
from svidhelper.transport.base import DEFAULT_SOCKET_PATH, DEFAULT_TIMEOUT_SECONDS

error_console = Console(stderr=True)

ENV_PREFIX = "HELPER"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def _configure_logging(level: int) -> None:
    """Send log records at *level* and above to stderr."""
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)


def _fail(message: str) -> None:
    error_console.print(f"Error: {message}", style="red", markup=False, highlight=False, soft_wrap=True)
    sys.exit(1)


@click.command(
    context_settings={"auto_envvar_prefix": ENV_PREFIX, "show_default": True},
)
@click.version_option(__version__, prog_name="svid-helper")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="debug",
    show_envvar=True,
    help="Set the minimum level for logging.",
)
@click.option(
    "--mode",
    default="init",
    show_envvar=True,
    help="Behavior of the helper, 'init' or 'refresh'.",
)
@click.option(
    "--svid-path",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("/tmp"),
    show_envvar=True,
    help="Path to the directory where the SVIDs are written.",
)
@click.option(
    "--workload-api-socket",
    default=DEFAULT_SOCKET_PATH,
    show_envvar=True,
    help="Path to the Workload API socket served by the SPIRE agent.",
)
@click.option(
    "--pod-spiffe-id",
    default="",
    show_envvar=True,
    help="The SPIFFE ID allocated to the Pod. Only the SVID for this ID is written.",
)
@click.option(
    "--fetch-timeout",
    type=float,
    default=DEFAULT_TIMEOUT_SECONDS,
    show_envvar=True,
    help="Seconds to wait for the SVIDs in init mode.",
)
@click.option(
    "--metrics-port",
    type=click.IntRange(1, 65535),
    default=None,
    show_envvar=True,
    help="Expose Prometheus metrics on this port in refresh mode.",
)
def cli(
    log_level: str,
    mode: str,
    svid_path: Path,
    workload_api_socket: str,
    pod_spiffe_id: str,
    fetch_timeout: float,
    metrics_port: Optional[int],
):
    """Write the X.509-SVID of a Pod to the filesystem.

    \b
    Examples:
        # Write the SVIDs once before the workload starts
        svid-helper --mode init --svid-path /run/svids \\
            --pod-spiffe-id spiffe://example.org/ns/default/sa/web

        # Keep them up to date alongside the workload
        HELPER_MODE=refresh HELPER_SVID_PATH=/run/svids svid-helper
    """
    try:
        config = HelperConfig(
            log_level=log_level,
            mode=mode,
            svid_path=svid_path,
            workload_api_socket=workload_api_socket,
            pod_spiffe_id=pod_spiffe_id,
            fetch_timeout=fetch_timeout,
            metrics_port=metrics_port,
        )
    except ConfigurationError as exc:
        raise click.UsageError(str(exc))
    except ValidationError as exc:
        raise click.UsageError(f"invalid configuration: {exc.errors()[0]['msg']}")

    _configure_logging(config.logging_level)

    metrics = None
    if config.mode is Mode.REFRESH and config.metrics_port:
        metrics = HelperMetrics()
        start_metrics_server(metrics, config.metrics_port)

    helper = SVIDHelper(config, metrics=metrics)
    try:
        asyncio.run(helper.run())
    except SVIDHelperError as exc:
        _fail(str(exc))


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
