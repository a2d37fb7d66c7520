"""
chartsync.cli — CLI entry point.

Commands:
  chartsync diff PREVIOUS NEXT        — Reconciliation plan between two series files
  chartsync render TEMPLATE [flags]   — Render a formatter template
  chartsync backends                  — List chart backends
"""

import logging

import click

from chartsync.cli.backends_cmd import backends_cmd
from chartsync.cli.diff_cmd import diff_cmd
from chartsync.cli.render_cmd import render_cmd
from chartsync.config import get_settings
from chartsync.errors import ConfigurationError


@click.group()
@click.version_option(package_name="chartsync")
@click.option("--log-level", default=None,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              help="Log level (default: settings log_level)")
def main(log_level):
    """chartsync — Keep live charts in sync with reactive data."""
    if log_level is None:
        try:
            log_level = get_settings().log_level
        except ConfigurationError as e:
            raise click.ClickException(str(e))
    logging.basicConfig(
        level=getattr(logging, str(log_level).upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


main.add_command(diff_cmd, "diff")
main.add_command(render_cmd, "render")
main.add_command(backends_cmd, "backends")
