"""chartsync.chart — Live chart ownership and backends."""

from chartsync.chart.backend import ChartBackend, OptionsBackend, RecordingBackend
from chartsync.chart.handle import ChartHandle
from chartsync.chart.registry import register_backend, get_backend, list_backends

__all__ = [
    "ChartBackend",
    "OptionsBackend",
    "RecordingBackend",
    "ChartHandle",
    "register_backend",
    "get_backend",
    "list_backends",
]
