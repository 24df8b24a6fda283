"""
snesdev CLI - Provision a PVSnesLib development environment.

Commands:
    snesdev bootstrap   Provision SDK, toolchain, IDE/CI integration and a starter project
    snesdev status      Show the recorded progress of an unfinished bootstrap
    snesdev reset       Discard the recorded progress of a bootstrap
    snesdev steps       List the bootstrap steps
"""

import click

from snesdev.config import get_config
from snesdev.logger import configure_logging

from .bootstrap import bootstrap
from .state import reset, status, steps


@click.group()
@click.version_option(package_name="snesdev-bootstrap")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default=None,
    help="Logging level (default: SNESDEV_LOG_LEVEL or info)",
)
@click.option(
    "--log-format",
    type=click.Choice(["text", "json"]),
    default=None,
    help="Event log format (default: SNESDEV_LOG_FORMAT or text)",
)
def main(log_level, log_format):
    """snesdev - zero-to-development PVSnesLib setup."""
    config = get_config()
    configure_logging(level=log_level or config.log_level, fmt=log_format or config.log_format)


main.add_command(bootstrap)
main.add_command(status)
main.add_command(reset)
main.add_command(steps)


__all__ = ["main"]
