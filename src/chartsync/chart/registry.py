"""
chartsync.chart.registry — Backend discovery.

Backends come from three places:

1. Built-ins (options, recording)
2. entry_points in the "chartsync.backends" group, e.g. a package
   adapting NiceGUI's ui.echart or a Highcharts widget:

       [project.entry-points."chartsync.backends"]
       echart = "my_ui.charts:EChartBackend"

3. Runtime register (for testing)
"""

from __future__ import annotations

import logging
from importlib.metadata import entry_points
from typing import Any

from chartsync.chart.backend import ChartBackend, OptionsBackend, RecordingBackend

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "chartsync.backends"

# Runtime registry
_registry: dict[str, type[ChartBackend]] = {}
_discovered = False


def _discover_backends() -> None:
    """Register built-ins, then backends published through entry_points."""
    global _discovered
    if _discovered:
        return
    _discovered = True

    for builtin in (OptionsBackend, RecordingBackend):
        _registry.setdefault(builtin.name, builtin)

    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            backend_cls = ep.load()
        except Exception as e:
            logger.warning("Could not load chart backend '%s': %s", ep.name, e)
            continue
        _registry.setdefault(ep.name, backend_cls)


def register_backend(backend_cls: type[ChartBackend]) -> None:
    """Manually register a backend class (for testing/dev)."""
    if not backend_cls.name:
        raise ValueError(f"{backend_cls.__name__} has no name")
    _registry[backend_cls.name] = backend_cls


def get_backend(name: str, **kwargs: Any) -> ChartBackend | None:
    """Create a backend instance by name. None when unknown."""
    cls = get_backend_class(name)
    if cls is None:
        return None
    return cls(**kwargs)


def get_backend_class(name: str) -> type[ChartBackend] | None:
    _discover_backends()
    return _registry.get(name)


def list_backends() -> dict[str, type[ChartBackend]]:
    """Return all registered backends."""
    _discover_backends()
    return dict(_registry)


def reset_registry() -> None:
    """Reset the registry. For testing."""
    global _discovered
    _registry.clear()
    _discovered = False
