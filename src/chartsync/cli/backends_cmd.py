"""chartsync.cli.backends_cmd — chartsync backends command."""

import click

from chartsync.chart.registry import list_backends


@click.command("backends")
def backends_cmd():
    """List registered chart backends."""
    backends = list_backends()
    if not backends:
        click.echo("No chart backends registered.")
        return

    click.echo(f"{'NAME':<16} DESCRIPTION")
    for name, cls in sorted(backends.items()):
        click.echo(f"{name:<16} {cls.description}")
