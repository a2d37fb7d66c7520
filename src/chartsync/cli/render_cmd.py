"""
chartsync.cli.render_cmd — chartsync render command.

Renders a formatter template the way a chart callback would:

    $ chartsync render tooltip.html --set point.y=42
    <b>42</b>

    $ chartsync render tooltip.html -f point.yaml -t ./templates
"""

import logging
import sys
from pathlib import Path

import click

from chartsync.config import get_settings
from chartsync.errors import ChartsyncError
from chartsync.formatter.bridge import FormatterBridge
from chartsync.template.compiler import TemplateCompiler
from chartsync.template.loaders import FileTemplateLoader
from chartsync.values import deep_merge, load_yaml, parse_set_values

logger = logging.getLogger(__name__)


@click.command("render")
@click.argument("template_name")
@click.option("-f", "--values", "value_files", multiple=True,
              help="Context file (YAML mapping, multiple allowed)")
@click.option("--set", "set_args", multiple=True,
              help="Context override (path=value)")
@click.option("-t", "--template-dir", "template_dirs", multiple=True,
              help="Template directory (default: settings template_dirs, then pwd)")
def render_cmd(template_name, value_files, set_args, template_dirs):
    """Render TEMPLATE with a callback context."""
    try:
        settings = get_settings()
        context = _build_context(value_files, set_args)
    except (FileNotFoundError, ValueError, ChartsyncError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    search_path = list(template_dirs) or list(settings.template_dirs) or ["."]
    # A direct path to a file also works
    template_path = Path(template_name)
    if template_path.is_file():
        search_path.insert(0, str(template_path.parent))
        template_name = template_path.name

    compiler = TemplateCompiler(loader=FileTemplateLoader(search_path))
    option = {settings.markup_flag: True}
    try:
        formatter = FormatterBridge(
            {"templateUrl": template_name},
            option=option,
            compiler=compiler,
            settings=settings,
        )
        # Surface compile errors instead of the fallback fragment
        compiler.compile(formatter.descriptor.source)
    except ChartsyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    try:
        click.echo(formatter(context))
    finally:
        formatter.dispose()


def _build_context(value_files, set_args) -> dict:
    context: dict = {}
    for path in value_files:
        data = load_yaml(path) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Context file must be a YAML mapping: {path}")
        context = deep_merge(context, data)
    if set_args:
        context = deep_merge(context, parse_set_values(list(set_args)))
    logger.debug("Render context: %s", context)
    return context
