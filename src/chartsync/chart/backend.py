"""
chartsync.chart.backend — Chart library adapters.

A backend adapts one live chart of some charting library to the
primitives chartsync needs:

    add_series / update_series / remove_series   (no implicit redraw)
    redraw                                       (one call per batch)
    show_loading / hide_loading
    destroy

OptionsBackend works on an ECharts/Highcharts style option dict and
hands it to `on_redraw` (for example a NiceGUI element's update)
whenever the chart should be redrawn.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, ClassVar

logger = logging.getLogger(__name__)


class ChartBackend:
    """Base class for chart library adapters.

    Subclasses must define:

    - ``name``: Registry key (matches the entry_points name)
    - the series, redraw and loading primitives
    """

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""

    def add_series(self, options: dict[str, Any]) -> None:
        raise NotImplementedError(f"{self.__class__.__name__}.add_series()")

    def update_series(self, series_id: str, options: dict[str, Any]) -> None:
        raise NotImplementedError(f"{self.__class__.__name__}.update_series()")

    def remove_series(self, series_id: str) -> None:
        raise NotImplementedError(f"{self.__class__.__name__}.remove_series()")

    def redraw(self) -> None:
        raise NotImplementedError(f"{self.__class__.__name__}.redraw()")

    def show_loading(self, text: str | None = None) -> None:
        raise NotImplementedError(f"{self.__class__.__name__}.show_loading()")

    def hide_loading(self) -> None:
        raise NotImplementedError(f"{self.__class__.__name__}.hide_loading()")

    def destroy(self) -> None:
        """Release the underlying chart. Default: nothing to release."""


class OptionsBackend(ChartBackend):
    """Chart held as an option dict with a positional `series` array."""

    name = "options"
    description = "Option-dict chart (ECharts/Highcharts style), redraw via callback"

    def __init__(
        self,
        options: dict[str, Any] | None = None,
        on_redraw: Callable[[dict[str, Any]], None] | None = None,
    ):
        self.options: dict[str, Any] = dict(options or {})
        self.options["series"] = list(self.options.get("series") or [])
        self.on_redraw = on_redraw
        self.loading = False
        self.loading_text: str | None = None
        self.redraws = 0
        self.destroyed = False

    @property
    def series(self) -> list[dict[str, Any]]:
        return self.options["series"]

    def index_of(self, series_id: str) -> int:
        for i, entry in enumerate(self.series):
            if entry.get("id") == series_id:
                return i
        raise KeyError(f"No series with id '{series_id}'")

    def add_series(self, options: dict[str, Any]) -> None:
        series_id = options.get("id")
        if any(entry.get("id") == series_id for entry in self.series):
            raise ValueError(f"Series '{series_id}' already exists")
        self.series.append(dict(options))

    def update_series(self, series_id: str, options: dict[str, Any]) -> None:
        entry = self.series[self.index_of(series_id)]
        # Same dict object: the series keeps its identity
        entry.clear()
        entry.update(options)

    def remove_series(self, series_id: str) -> None:
        del self.series[self.index_of(series_id)]

    def redraw(self) -> None:
        self.redraws += 1
        if self.on_redraw is not None:
            self.on_redraw(self.options)

    def show_loading(self, text: str | None = None) -> None:
        self.loading = True
        self.loading_text = text

    def hide_loading(self) -> None:
        self.loading = False
        self.loading_text = None

    def destroy(self) -> None:
        self.on_redraw = None
        self.destroyed = True


class RecordingBackend(OptionsBackend):
    """OptionsBackend that records every primitive call.

    calls: [("add", "eur"), ("remove", "usd"), ("redraw", None), ...]
    """

    name = "recording"
    description = "Option-dict chart that records primitive calls (dry runs, tests)"

    def __init__(self, options: dict[str, Any] | None = None, **kwargs: Any):
        super().__init__(options, **kwargs)
        self.calls: list[tuple[str, Any]] = []

    def count(self, action: str) -> int:
        return sum(1 for name, _ in self.calls if name == action)

    def add_series(self, options: dict[str, Any]) -> None:
        self.calls.append(("add", options.get("id")))
        super().add_series(options)

    def update_series(self, series_id: str, options: dict[str, Any]) -> None:
        self.calls.append(("update", series_id))
        super().update_series(series_id, options)

    def remove_series(self, series_id: str) -> None:
        self.calls.append(("remove", series_id))
        super().remove_series(series_id)

    def redraw(self) -> None:
        self.calls.append(("redraw", None))
        super().redraw()

    def show_loading(self, text: str | None = None) -> None:
        self.calls.append(("show_loading", text))
        super().show_loading(text)

    def hide_loading(self) -> None:
        self.calls.append(("hide_loading", None))
        super().hide_loading()

    def destroy(self) -> None:
        self.calls.append(("destroy", None))
        super().destroy()
