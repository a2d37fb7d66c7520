"""
chartsync.component — Chart component.

Owns one chart from setup to teardown:

    with Scope(currency="EUR") as page:
        with ChartComponent(config, data=prices) as chart:
            prices.set(fetch_quotes())     # → transform → reconcile
        # teardown: subscription closed, formatters disposed, chart destroyed

Recognised config keys on top of the chart library's own options:

    transform   callable(data, chart, scope) → series list / SeriesSet
    loading     True or a text: toggle the loading indicator on empty data
    series      initial series (reconciled from an empty set at setup)

Formatter-capable fields may hold `{template: ...}` or
`{templateUrl: ...}` instead of a function.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from chartsync.chart.backend import ChartBackend
from chartsync.chart.handle import ChartHandle
from chartsync.chart.registry import get_backend, list_backends
from chartsync.config import Settings, get_defaults, get_settings
from chartsync.core.context import current_scope
from chartsync.core.scope import Scope
from chartsync.errors import ChartsyncError, ConfigurationError
from chartsync.formatter.resolver import FormatterResolver
from chartsync.scheduler import Subscription, TransformScheduler
from chartsync.series.descriptor import SeriesSet
from chartsync.series.reconciler import SeriesReconciler, live_set
from chartsync.template.compiler import TemplateCompiler
from chartsync.template.loaders import FileTemplateLoader
from chartsync.values import deep_merge

logger = logging.getLogger(__name__)


def _default_compiler(settings: Settings) -> TemplateCompiler:
    """templateUrl values resolve against Settings.template_dirs."""
    loader = FileTemplateLoader(settings.template_dirs) if settings.template_dirs else None
    return TemplateCompiler(loader=loader)


class ChartComponent:
    """One chart bound to a data source.

    Args:
        config: Chart options plus transform/loading/series
        data: Data source with a watch() method (Observable, scope expression)
        backend: Backend name, backend class/factory, or ChartBackend instance
        backend_options: Extra keyword arguments for a named backend
        scope: Owning scope (default: the active scope, if any)
        compiler: Template compiler shared by this chart's formatters
        on_error: Called with every recovered error
    """

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        data: Any = None,
        *,
        backend: Any = "options",
        backend_options: dict[str, Any] | None = None,
        scope: Scope | None = None,
        compiler: TemplateCompiler | None = None,
        settings: Settings | None = None,
        on_error: Callable[[ChartsyncError], None] | None = None,
    ):
        self.config = dict(config or {})
        self.data = data
        self.backend = backend
        self.backend_options = dict(backend_options or {})
        self.scope = scope if scope is not None else current_scope()
        self.settings = settings or get_settings()
        self.compiler = compiler or _default_compiler(self.settings)
        self.on_error = on_error

        self.handle: ChartHandle | None = None
        self._initial = SeriesSet()
        self.options: dict[str, Any] = {}
        self.subscription: Subscription | None = None
        self._resolver: FormatterResolver | None = None
        self._torn_down = False

    @property
    def series(self) -> SeriesSet:
        """SeriesSet currently applied to the chart."""
        if self.subscription is not None:
            return self.subscription.current
        return self._initial

    @property
    def resolver(self) -> FormatterResolver | None:
        return self._resolver

    def setup(self) -> ChartHandle:
        """Build the chart.

        Raises:
            ConfigurationError: Invalid config, template formatter without
                markup enabled, unknown backend, or setup called twice
        """
        if self.handle is not None or self._torn_down:
            raise ConfigurationError("ChartComponent.setup() can only run once")

        options = deep_merge(get_defaults(), self.config)
        transform = options.pop("transform", None)
        loading = options.pop("loading", None)
        initial = options.pop("series", None) or []

        if transform is not None and not callable(transform):
            raise ConfigurationError("'transform' must be callable")

        resolver = FormatterResolver(
            host_context_factory=lambda: self.scope,
            compiler=self.compiler,
            settings=self.settings,
        )
        # Chart-level formatters: misconfiguration fails before a chart exists
        self.options = resolver.resolve(options)
        try:
            backend = self._create_backend(self.options)
        except Exception:
            resolver.release_all()
            raise
        self._resolver = resolver
        self.handle = ChartHandle(backend, resolver=resolver)

        reconciler = SeriesReconciler(on_error=self.on_error)
        requested = SeriesSet.build(initial)
        result = reconciler.reconcile(SeriesSet(), requested, self.handle)
        self._initial = requested if result.ok else live_set(requested, self.handle)

        if self.data is not None:
            scheduler = TransformScheduler(on_error=self.on_error, settings=self.settings)
            self.subscription = scheduler.observe(
                self.data,
                transform,
                reconciler,
                self.handle,
                scope=self.scope,
                loading=loading,
                initial=self._initial,
            )

        logger.debug("Chart set up with backend %s", self.handle.backend.name)
        return self.handle

    def teardown(self) -> None:
        """Close the subscription and destroy the chart. Idempotent."""
        if self._torn_down:
            return
        self._torn_down = True
        if self.subscription is not None:
            self.subscription.close()
        if self.handle is not None:
            self.handle.destroy()

    def _create_backend(self, options: dict[str, Any]):
        if isinstance(self.backend, ChartBackend):
            return self.backend
        if callable(self.backend):
            return self.backend(options=options, **self.backend_options)

        backend = get_backend(self.backend, options=options, **self.backend_options)
        if backend is None:
            available = ", ".join(sorted(list_backends())) or "none"
            raise ConfigurationError(
                f"Chart backend '{self.backend}' not found. Available: {available}"
            )
        return backend

    def __enter__(self):
        self.setup()
        return self

    def __exit__(self, *exc: Any) -> bool:
        self.teardown()
        return False
