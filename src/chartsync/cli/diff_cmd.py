"""
chartsync.cli.diff_cmd — chartsync diff command.

Dry-runs a reconciliation between two YAML series files against a
recording backend:

    $ chartsync diff before.yaml after.yaml
    - usd
    + gbp
    ~ eur
    = chf
    1 redraw
"""

import sys

import click

from chartsync.chart.backend import RecordingBackend
from chartsync.chart.handle import ChartHandle
from chartsync.errors import ChartsyncError
from chartsync.series.descriptor import SeriesSet
from chartsync.series.reconciler import SeriesReconciler
from chartsync.values import load_yaml


@click.command("diff")
@click.argument("previous", type=click.Path())
@click.argument("next_file", metavar="NEXT", type=click.Path())
def diff_cmd(previous, next_file):
    """Show how the chart would go from PREVIOUS to NEXT."""
    try:
        before = SeriesSet.build(load_yaml(previous))
        after = SeriesSet.build(load_yaml(next_file))
    except (FileNotFoundError, TypeError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for error in before.errors:
        click.echo(f"Warning: {previous}: {error}", err=True)

    chart = ChartHandle(RecordingBackend())
    for descriptor in before.values():
        chart.add_series(descriptor, redraw=False)
    chart.backend.calls.clear()

    try:
        result = SeriesReconciler().reconcile(before, after, chart)
    except ChartsyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for sid in result.removed:
        click.echo(f"- {sid}")
    for sid in result.added:
        click.echo(f"+ {sid}")
    for sid in result.updated:
        click.echo(f"~ {sid}")
    # Equal sets short-circuit; every series stays as it is
    unchanged = result.unchanged if before != after else list(after.ids)
    for sid in unchanged:
        click.echo(f"= {sid}")
    for error in result.errors:
        click.echo(f"! {error}", err=True)

    redraws = chart.backend.count("redraw")
    click.echo(f"{redraws} redraw" + ("" if redraws == 1 else "s"))
