"""
chartsync — Keep live charts in sync with reactive data.

Series reconciliation, template-backed formatters, and a
data → transform → chart scheduler for ECharts/Highcharts style
option trees.
"""

from chartsync.chart import ChartHandle, OptionsBackend, RecordingBackend
from chartsync.component import ChartComponent
from chartsync.config import Settings, get_defaults, get_settings, init
from chartsync.core import Observable, Scope, current_scope
from chartsync.errors import (
    ChartDestroyedError,
    ChartsyncError,
    ConfigurationError,
    DigestError,
    ReconciliationError,
    TemplateError,
    TransformError,
)
from chartsync.formatter import FormatterBridge, FormatterResolver, bridge
from chartsync.scheduler import Subscription, TransformScheduler, observe
from chartsync.series import SeriesDescriptor, SeriesReconciler, SeriesSet, reconcile
from chartsync.template import TemplateCompiler, TemplateSource

__version__ = "0.1.0"

__all__ = [
    # core
    "Scope",
    "Observable",
    "current_scope",
    # config
    "init",
    "get_defaults",
    "get_settings",
    "Settings",
    # series
    "SeriesDescriptor",
    "SeriesSet",
    "SeriesReconciler",
    "reconcile",
    # templates and formatters
    "TemplateCompiler",
    "TemplateSource",
    "FormatterBridge",
    "FormatterResolver",
    "bridge",
    # charts
    "ChartHandle",
    "OptionsBackend",
    "RecordingBackend",
    "ChartComponent",
    "TransformScheduler",
    "Subscription",
    "observe",
    # errors
    "ChartsyncError",
    "ConfigurationError",
    "TemplateError",
    "ReconciliationError",
    "TransformError",
    "ChartDestroyedError",
    "DigestError",
]
