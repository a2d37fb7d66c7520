"""
chartsync.series.reconciler — Series reconciliation.

Applies the minimal set of mutations that turns the chart's series
from `previous` into `next`:

    1. plan       remove = prev − next, add = next − prev, update = prev ∩ next
    2. remove     before anything is added (positional series arrays shift)
    3. add        in `next` order
    4. update     only series whose descriptor changed, in place
    5. redraw     once, and only if something was touched

A malformed series is reported and skipped, and a live one keeps what
it already shows; the rest of the batch still reconciles.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from chartsync.errors import ChartDestroyedError, ReconciliationError
from chartsync.series.descriptor import SeriesDescriptor, SeriesSet

if TYPE_CHECKING:
    from chartsync.chart.handle import ChartHandle

logger = logging.getLogger(__name__)


@dataclass
class ReconcilePlan:
    """Ids to remove, add and compare, in application order."""
    remove: list[str] = field(default_factory=list)
    add: list[str] = field(default_factory=list)
    update: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.remove or self.add or self.update)


@dataclass
class ReconcileResult:
    """What one reconcile() call did to the chart."""
    removed: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    errors: list[ReconciliationError] = field(default_factory=list)
    redrawn: bool = False

    @property
    def touched(self) -> bool:
        return bool(self.removed or self.added or self.updated)

    @property
    def ok(self) -> bool:
        return not self.errors


def plan(previous: Any, next: Any) -> ReconcilePlan:
    """Compute the id-level diff between two series sets.

    A live series whose new entry was rejected stays on the chart
    as it is, so its id is never planned for removal.

    >>> p = plan([{"id": "a"}, {"id": "b"}, {"id": "c"}], [{"id": "b"}, {"id": "c"}, {"id": "d"}])
    >>> p.remove, p.add, p.update
    (['a'], ['d'], ['b', 'c'])
    """
    previous = SeriesSet.build(previous)
    next = SeriesSet.build(next)
    rejected = {e.series_id for e in next.errors if e.series_id}
    return ReconcilePlan(
        remove=[sid for sid in previous.ids if sid not in next and sid not in rejected],
        add=[sid for sid in next.ids if sid not in previous],
        update=[sid for sid in next.ids if sid in previous],
    )


def live_set(next: Any, chart: ChartHandle) -> SeriesSet:
    """The series the chart shows after reconciling towards next.

    Live series listed in next come first, in next order, each with
    the descriptor actually applied. Live series next does not list
    follow (a rejected entry or a failed removal left them in place).
    """
    next = SeriesSet.build(next)
    ids = [sid for sid in next.ids if sid in chart]
    ids += [sid for sid in chart.series_ids if sid not in next]
    return SeriesSet(chart.get_series(sid) for sid in ids)


class SeriesReconciler:
    """Apply SeriesSet diffs to a ChartHandle.

    Args:
        on_error: Called with each ReconciliationError, after it is logged
    """

    def __init__(self, on_error: Callable[[ReconciliationError], None] | None = None):
        self.on_error = on_error

    def reconcile(self, previous: Any, next: Any, chart: ChartHandle) -> ReconcileResult:
        """Reconcile chart from previous to next. No-op when they are equal.

        Entries rejected while building next are reported either way.

        Raises:
            ChartDestroyedError: chart was destroyed
        """
        previous = SeriesSet.build(previous)
        next = SeriesSet.build(next)
        result = ReconcileResult()

        for error in next.errors:
            self._report(error, result)

        if previous == next:
            return result
        if chart.destroyed:
            raise ChartDestroyedError("Cannot reconcile a destroyed chart")

        steps = plan(previous, next)
        logger.debug(
            "Reconcile plan: remove=%s add=%s compare=%s",
            steps.remove, steps.add, steps.update,
        )

        # 1. Removals first: indices of the remaining series settle
        for sid in steps.remove:
            if sid not in chart:
                logger.debug("Series %s already gone from chart", sid)
                continue
            if self._apply(result, sid, "remove", chart.remove_series, sid, redraw=False):
                result.removed.append(sid)

        # 2. Additions, in the user's order
        for sid in steps.add:
            self._add_or_update(result, chart, next[sid])

        # 3. Updates, only where the live state differs
        for sid in steps.update:
            self._add_or_update(result, chart, next[sid])

        # 4. One redraw for the whole batch
        if result.touched:
            try:
                chart.redraw()
                result.redrawn = True
            except Exception as e:
                self._report(ReconciliationError(f"Chart redraw failed: {e}"), result)

        logger.debug(
            "Reconciled: removed=%s added=%s updated=%s unchanged=%s errors=%d",
            result.removed, result.added, result.updated, result.unchanged,
            len(result.errors),
        )
        return result

    def _add_or_update(
        self,
        result: ReconcileResult,
        chart: ChartHandle,
        descriptor: SeriesDescriptor,
    ) -> None:
        sid = descriptor.id
        live = chart.get_series(sid)
        if live is None:
            if self._apply(result, sid, "add", chart.add_series, descriptor, redraw=False):
                result.added.append(sid)
        elif live == descriptor:
            result.unchanged.append(sid)
        elif self._apply(result, sid, "update", chart.update_series, descriptor, redraw=False):
            result.updated.append(sid)

    def _apply(
        self,
        result: ReconcileResult,
        sid: str,
        action: str,
        op: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> bool:
        try:
            op(*args, **kwargs)
        except ReconciliationError as e:
            self._report(e, result)
            return False
        except Exception as e:
            self._report(
                ReconciliationError(f"Could not {action} series '{sid}': {e}", series_id=sid),
                result,
            )
            return False
        return True

    def _report(self, error: ReconciliationError, result: ReconcileResult) -> None:
        result.errors.append(error)
        logger.warning("Series %s skipped: %s", error.series_id, error)
        if self.on_error is not None:
            self.on_error(error)


_default = SeriesReconciler()


def reconcile(previous: Any, next: Any, chart: ChartHandle) -> ReconcileResult:
    """Reconcile with a default SeriesReconciler."""
    return _default.reconcile(previous, next, chart)
