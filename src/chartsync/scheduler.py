"""
chartsync.scheduler — Data source → transform → reconcile.

    subscription = observe(prices, to_series, reconciler, chart, loading=True)

Each change of the data source is a tick:

  empty data (None, empty container) → loading indicator on, no transform
  non-empty data → transform(data, chart, scope) → SeriesSet
                 → reconcile(last applied, new) if it differs
                 → loading indicator off once the set is non-empty

Ticks are numbered and applied strictly in order. An async
transform that finishes early waits for the ticks before it, since
every new SeriesSet is compared against the last one applied.

A transform that raises drops its tick (TransformError); the chart
keeps showing the previous series.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Sized
from typing import Any, Callable

from chartsync.config import Settings, get_settings
from chartsync.errors import ChartsyncError, ConfigurationError, TransformError
from chartsync.series.descriptor import SeriesSet
from chartsync.series.reconciler import SeriesReconciler, live_set

logger = logging.getLogger(__name__)

TransformFn = Callable[[Any, Any, Any], Any]

# Tick outcomes that carry no SeriesSet
_EMPTY = object()
_SKIP = object()


def is_empty(value: Any) -> bool:
    """None or an empty container.

    >>> is_empty(None), is_empty([]), is_empty({}), is_empty([0]), is_empty(0)
    (True, True, True, False, False)
    """
    if value is None:
        return True
    if isinstance(value, Sized):
        return len(value) == 0
    return False


def identity_transform(data: Any, chart: Any, scope: Any) -> Any:
    """Default transform: the data already is a series list."""
    return data


class Subscription:
    """One observed data source feeding one chart."""

    def __init__(
        self,
        data_source: Any,
        transform_fn: TransformFn,
        reconciler: SeriesReconciler,
        chart: Any,
        *,
        scope: Any = None,
        loading: bool | str | None = None,
        on_error: Callable[[ChartsyncError], None] | None = None,
        settings: Settings | None = None,
        initial: SeriesSet | None = None,
    ):
        if not callable(getattr(data_source, "watch", None)):
            raise ConfigurationError(
                f"Data source {type(data_source).__name__} has no watch() method"
            )
        self.data_source = data_source
        self.transform_fn = transform_fn
        self.reconciler = reconciler
        self.chart = chart
        self.scope = scope
        self.on_error = on_error
        self.loading_enabled = bool(loading)
        self.loading_text = loading if isinstance(loading, str) else (
            settings or get_settings()
        ).loading_text

        self.current = initial if initial is not None else SeriesSet()
        self.ticks = 0
        self.closed = False
        self._applied = 0
        self._outcomes: dict[int, Any] = {}
        self._draining = False
        self._tasks: set[asyncio.Future] = set()
        self._unwatch: Callable[[], None] | None = None

    def start(self) -> Subscription:
        self._unwatch = self.data_source.watch(self.push)
        return self

    @property
    def pending(self) -> int:
        """Ticks issued but not applied yet."""
        return self.ticks - self._applied

    def push(self, value: Any) -> None:
        """Start a new tick for value. Data source listener."""
        if self.closed:
            return
        self.ticks += 1
        tick = self.ticks

        if is_empty(value):
            self._settle(tick, _EMPTY)
            return

        try:
            result = self.transform_fn(value, self.chart, self.scope)
        except Exception as e:
            self._transform_failed(tick, e)
            return

        if inspect.isawaitable(result):
            self._await(tick, result)
        else:
            self._settle(tick, result)

    async def wait(self) -> None:
        """Wait for in-flight async transforms."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Stop observing. Results of in-flight transforms are discarded."""
        if self.closed:
            return
        self.closed = True
        if self._unwatch is not None:
            self._unwatch()
            self._unwatch = None
        self._outcomes.clear()

    # ── tick pipeline ──────────────────────────
    def _await(self, tick: int, awaitable: Any) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self._transform_failed(
                tick, RuntimeError("async transform needs a running event loop")
            )
            return

        future = asyncio.ensure_future(awaitable)
        self._tasks.add(future)

        def done(f: asyncio.Future) -> None:
            self._tasks.discard(f)
            if f.cancelled():
                self._settle(tick, _SKIP)
            elif f.exception() is not None:
                self._transform_failed(tick, f.exception())
            else:
                self._settle(tick, f.result())

        future.add_done_callback(done)

    def _transform_failed(self, tick: int, exc: BaseException) -> None:
        if self.closed:
            return
        error = TransformError(f"Transform failed on tick {tick}: {exc}", tick=tick)
        error.__cause__ = exc
        self._report(error)
        self._settle(tick, _SKIP)

    def _settle(self, tick: int, outcome: Any) -> None:
        if self.closed:
            logger.debug("Subscription closed; discarding tick %d", tick)
            return
        self._outcomes[tick] = outcome
        if self._draining:
            # Re-entrant settle (e.g. from a redraw): the outer loop applies it
            return
        self._draining = True
        try:
            while not self.closed and self._applied + 1 in self._outcomes:
                self._applied += 1
                self._apply(self._applied, self._outcomes.pop(self._applied))
        finally:
            self._draining = False

    def _apply(self, tick: int, outcome: Any) -> None:
        if outcome is _SKIP:
            return
        if outcome is _EMPTY:
            self._set_loading(True)
            return

        try:
            next_set = SeriesSet.build(outcome)
        except TypeError as e:
            self._report(TransformError(f"Transform result on tick {tick}: {e}", tick=tick))
            return

        try:
            result = self.reconciler.reconcile(self.current, next_set, self.chart)
        except ChartsyncError as e:
            logger.warning("Tick %d not applied: %s", tick, e)
            return
        if next_set != self.current:
            # Only what reached the chart; failed steps are retried next tick
            self.current = next_set if result.ok else live_set(next_set, self.chart)

        if len(next_set):
            self._set_loading(False)

    def _set_loading(self, loading: bool) -> None:
        if not self.loading_enabled or self.chart.destroyed:
            return
        if loading and self.chart.loading is not True:
            logger.debug("Loading indicator on")
            self.chart.show_loading(self.loading_text)
        elif not loading and self.chart.loading is not False:
            logger.debug("Loading indicator off")
            self.chart.hide_loading()

    def _report(self, error: ChartsyncError) -> None:
        logger.warning("Tick %s dropped: %s", getattr(error, "tick", None), error)
        if self.on_error is not None:
            self.on_error(error)


class TransformScheduler:
    """Creates subscriptions that keep charts in sync with data sources.

    Args:
        on_error: Called with every TransformError/ReconciliationError
        settings: Settings override
    """

    def __init__(
        self,
        on_error: Callable[[ChartsyncError], None] | None = None,
        settings: Settings | None = None,
    ):
        self.on_error = on_error
        self.settings = settings

    def observe(
        self,
        data_source: Any,
        transform_fn: TransformFn | None,
        reconciler: SeriesReconciler | None,
        chart: Any,
        *,
        scope: Any = None,
        loading: bool | str | None = None,
        initial: SeriesSet | None = None,
    ) -> Subscription:
        """Watch data_source and reconcile chart on every change.

        initial is the SeriesSet already on the chart (default: empty).
        """
        if reconciler is None:
            reconciler = SeriesReconciler(on_error=self.on_error)
        subscription = Subscription(
            data_source,
            transform_fn or identity_transform,
            reconciler,
            chart,
            scope=scope,
            loading=loading,
            on_error=self.on_error,
            settings=self.settings,
            initial=initial,
        )
        return subscription.start()


def observe(
    data_source: Any,
    transform_fn: TransformFn | None,
    reconciler: SeriesReconciler | None,
    chart: Any,
    **kwargs: Any,
) -> Subscription:
    """Observe with a default TransformScheduler."""
    return TransformScheduler().observe(data_source, transform_fn, reconciler, chart, **kwargs)
