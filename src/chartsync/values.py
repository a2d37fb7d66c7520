"""
chartsync.values — Option tree helpers.

Chart options are plain nested dicts/lists (ECharts and
Highcharts style). Precedence when building a chart:

  global defaults → component config

Mappings merge key by key; lists and scalars from the
override replace the base value.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml


def deep_merge(base: dict, override: dict) -> dict:
    """Merge override into a copy of base.

    >>> deep_merge({"tooltip": {"shared": True, "useHTML": False}}, {"tooltip": {"useHTML": True}})
    {'tooltip': {'shared': True, 'useHTML': True}}
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        elif callable(value):
            # Formatter callables are kept by reference
            merged[key] = value
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_yaml(path: str | Path) -> Any:
    """Read a YAML document (series list, context mapping, options)."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"File not found: {p}")
    with open(p) as f:
        return yaml.safe_load(f)


def parse_set_values(set_args: list[str]) -> dict:
    """Turn dotted assignments into a nested dict.

    >>> parse_set_values(["point.y=42", "series.name=Sales"])
    {'point': {'y': 42}, 'series': {'name': 'Sales'}}
    """
    result: dict = {}
    for arg in set_args:
        key, sep, raw = arg.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid assignment: '{arg}' (expected path=value)")
        *parents, leaf = key.split(".")
        node = result
        for part in parents:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise ValueError(f"'{part}' is assigned both a value and a nested key")
            node = child
        node[leaf] = _coerce(raw)
    return result


def _coerce(raw: str) -> Any:
    """Interpret a command-line value with YAML scalar rules.

    >>> _coerce("42"), _coerce("true"), _coerce("4.5"), _coerce("Sales")
    (42, True, 4.5, 'Sales')
    """
    if raw == "":
        return ""
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw
    if isinstance(value, (dict, list)):
        return raw
    return value
