"""
chartsync.chart.handle — Ownership of one live chart.

The handle is the only path through which series state changes.
It remembers the descriptor last applied to each live series,
which is what the reconciler compares against, and it owns every
template formatter created for the chart or its series.

Destroyed exactly once; afterwards every call raises
ChartDestroyedError.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from chartsync.chart.backend import ChartBackend
from chartsync.errors import ChartDestroyedError, ReconciliationError
from chartsync.formatter.resolver import FormatterResolver
from chartsync.series.descriptor import SeriesDescriptor

logger = logging.getLogger(__name__)


class ChartHandle:
    """One live chart.

    Args:
        backend: Chart library adapter
        resolver: Resolves series-level template formatters (optional)
    """

    def __init__(self, backend: ChartBackend, resolver: FormatterResolver | None = None):
        self.backend = backend
        self.resolver = resolver
        self.destroyed = False
        self._live: dict[str, SeriesDescriptor] = {}
        self._loading: bool | None = None

    # ── series ─────────────────────────────────
    @property
    def series_ids(self) -> list[str]:
        return list(self._live)

    def __contains__(self, series_id: object) -> bool:
        return series_id in self._live

    def get_series(self, series_id: str) -> SeriesDescriptor | None:
        """Descriptor last applied to the live series, or None."""
        return self._live.get(series_id)

    def add_series(self, descriptor: SeriesDescriptor, redraw: bool = True) -> None:
        self._check_alive()
        sid = descriptor.id
        if sid in self._live:
            raise ReconciliationError(f"Series '{sid}' is already on the chart", series_id=sid)

        self._apply(descriptor, lambda options: self.backend.add_series(options))
        if redraw:
            self.redraw()

    def update_series(self, descriptor: SeriesDescriptor, redraw: bool = True) -> None:
        self._check_alive()
        sid = descriptor.id
        if sid not in self._live:
            raise ReconciliationError(f"Series '{sid}' is not on the chart", series_id=sid)

        self._apply(descriptor, lambda options: self.backend.update_series(sid, options))
        if redraw:
            self.redraw()

    def remove_series(self, series_id: str, redraw: bool = True) -> None:
        self._check_alive()
        if series_id not in self._live:
            raise ReconciliationError(
                f"Series '{series_id}' is not on the chart", series_id=series_id
            )

        self.backend.remove_series(series_id)
        del self._live[series_id]
        if self.resolver is not None:
            self.resolver.release(series_id)
        if redraw:
            self.redraw()

    def redraw(self) -> None:
        self._check_alive()
        self.backend.redraw()

    def _apply(
        self, descriptor: SeriesDescriptor, send: Callable[[dict[str, Any]], None]
    ) -> None:
        # Formatters of the series change only once the backend accepted it
        if self.resolver is None:
            send(descriptor.to_options())
        else:
            staged = self.resolver.stage(descriptor.to_options(), owner=descriptor.id)
            try:
                send(staged.options)
            except Exception:
                staged.discard()
                raise
            staged.commit()
        self._live[descriptor.id] = descriptor

    # ── loading indicator ──────────────────────
    @property
    def loading(self) -> bool | None:
        """True/False once toggled, None before the first toggle."""
        return self._loading

    def show_loading(self, text: str | None = None) -> None:
        self._check_alive()
        self.backend.show_loading(text)
        self._loading = True

    def hide_loading(self) -> None:
        self._check_alive()
        self.backend.hide_loading()
        self._loading = False

    # ── lifecycle ──────────────────────────────
    def destroy(self) -> None:
        """Dispose every formatter instance, then the chart. Idempotent."""
        if self.destroyed:
            return
        released = self.resolver.release_all() if self.resolver is not None else 0
        self.backend.destroy()
        self._live.clear()
        self.destroyed = True
        logger.debug("Chart destroyed (%d formatter call site(s) released)", released)

    def _check_alive(self) -> None:
        if self.destroyed:
            raise ChartDestroyedError("Chart has been destroyed")

    def __repr__(self) -> str:
        state = " destroyed" if self.destroyed else ""
        return f"<ChartHandle {self.backend.name} series={self.series_ids}{state}>"
