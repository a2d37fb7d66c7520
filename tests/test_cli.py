"""
tests/test_cli.py — CLI tests.

Tests commands using Click CliRunner.
"""

import os
import sys

import pytest
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from click.testing import CliRunner

from chartsync.chart.registry import reset_registry
from chartsync.cli import main
from chartsync.config import Settings, configure, reset_settings


@pytest.fixture(autouse=True)
def clean():
    configure(Settings())
    reset_registry()
    yield
    reset_settings()
    reset_registry()


runner = CliRunner()


def write_yaml(path, data):
    path.write_text(yaml.dump(data))
    return str(path)


# ─────────────────────────────────────────────
# DIFF
# ─────────────────────────────────────────────
class TestDiff:
    def test_plan(self, tmp_path):
        before = write_yaml(tmp_path / "before.yaml", [
            {"id": "usd", "data": [1]},
            {"id": "eur", "data": [1]},
            {"id": "chf", "data": [1]},
        ])
        after = write_yaml(tmp_path / "after.yaml", [
            {"id": "eur", "data": [2]},
            {"id": "chf", "data": [1]},
            {"id": "gbp", "data": [1]},
        ])
        result = runner.invoke(main, ["diff", before, after])
        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines == ["- usd", "+ gbp", "~ eur", "= chf", "1 redraw"]

    def test_no_changes(self, tmp_path):
        data = [{"id": "eur", "data": [1]}]
        before = write_yaml(tmp_path / "before.yaml", data)
        after = write_yaml(tmp_path / "after.yaml", data)
        result = runner.invoke(main, ["diff", before, after])
        assert result.exit_code == 0
        assert result.output.splitlines() == ["= eur", "0 redraws"]

    def test_mapping_form(self, tmp_path):
        before = write_yaml(tmp_path / "before.yaml", {})
        after = write_yaml(tmp_path / "after.yaml", {"eur": {"data": [1]}})
        result = runner.invoke(main, ["diff", before, after])
        assert result.exit_code == 0
        assert "+ eur" in result.output

    def test_malformed_series_reported(self, tmp_path):
        before = write_yaml(tmp_path / "before.yaml", [])
        after = write_yaml(tmp_path / "after.yaml", [{"id": "eur"}, {"data": [1]}])
        result = runner.invoke(main, ["diff", before, after])
        assert result.exit_code == 0
        assert "+ eur" in result.output
        assert "id is required" in result.output

    def test_missing_file(self, tmp_path):
        after = write_yaml(tmp_path / "after.yaml", [])
        result = runner.invoke(main, ["diff", str(tmp_path / "nope.yaml"), after])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_not_a_series_list(self, tmp_path):
        before = write_yaml(tmp_path / "before.yaml", 42)
        after = write_yaml(tmp_path / "after.yaml", [])
        result = runner.invoke(main, ["diff", before, after])
        assert result.exit_code == 1


# ─────────────────────────────────────────────
# RENDER
# ─────────────────────────────────────────────
class TestRender:
    def test_render_with_set(self, tmp_path):
        template = tmp_path / "tooltip.html"
        template.write_text("<b>{{ point.y }}</b>")
        result = runner.invoke(main, ["render", str(template), "--set", "point.y=42"])
        assert result.exit_code == 0
        assert result.output.strip() == "<b>42</b>"

    def test_render_with_values_file(self, tmp_path):
        (tmp_path / "tooltip.html").write_text("{{ point.name }}: {{ point.y }}")
        ctx = write_yaml(tmp_path / "ctx.yaml", {"point": {"name": "EUR", "y": 1}})
        result = runner.invoke(main, [
            "render", "tooltip.html", "-t", str(tmp_path), "-f", ctx, "--set", "point.y=2",
        ])
        assert result.exit_code == 0
        assert result.output.strip() == "EUR: 2"

    def test_template_dirs_from_settings(self, tmp_path):
        (tmp_path / "label.html").write_text("[{{ y }}]")
        configure(Settings(template_dirs=[str(tmp_path)]))
        result = runner.invoke(main, ["render", "label.html", "--set", "y=3"])
        assert result.exit_code == 0
        assert result.output.strip() == "[3]"

    def test_escapes_context(self, tmp_path):
        template = tmp_path / "t.html"
        template.write_text("{{ name }}")
        result = runner.invoke(main, ["render", str(template), "--set", "name=<i>"])
        assert result.output.strip() == "&lt;i&gt;"

    def test_missing_template(self, tmp_path):
        result = runner.invoke(main, ["render", "missing.html", "-t", str(tmp_path)])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_compile_error(self, tmp_path):
        template = tmp_path / "bad.html"
        template.write_text("{% if %}")
        result = runner.invoke(main, ["render", str(template)])
        assert result.exit_code == 1
        assert "Could not compile" in result.output

    def test_invalid_set(self, tmp_path):
        template = tmp_path / "t.html"
        template.write_text("x")
        result = runner.invoke(main, ["render", str(template), "--set", "novalue"])
        assert result.exit_code == 1
        assert "expected path=value" in result.output


# ─────────────────────────────────────────────
# BACKENDS
# ─────────────────────────────────────────────
class TestBackends:
    def test_list(self):
        result = runner.invoke(main, ["backends"])
        assert result.exit_code == 0
        assert "options" in result.output
        assert "recording" in result.output


class TestMain:
    def test_help(self):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "diff" in result.output
        assert "render" in result.output

    def test_log_level_option(self):
        result = runner.invoke(main, ["--log-level", "debug", "backends"])
        assert result.exit_code == 0
