"""
tests/test_scheduler.py — Transform scheduler tests.

Tick pipeline, loading indicator, transform errors,
async ordering, closing.
"""

import asyncio
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from chartsync.chart.backend import RecordingBackend
from chartsync.chart.handle import ChartHandle
from chartsync.config import Settings, configure, reset_settings
from chartsync.core.context import _reset
from chartsync.core.observable import Observable
from chartsync.core.scope import Scope
from chartsync.errors import ConfigurationError, ReconciliationError, TransformError
from chartsync.scheduler import TransformScheduler, is_empty, observe
from chartsync.series.descriptor import SeriesSet


@pytest.fixture(autouse=True)
def clean():
    _reset()
    configure(Settings())
    yield
    _reset()
    reset_settings()


def new_chart():
    return ChartHandle(RecordingBackend())


def rows(*ids):
    return [{"id": sid, "data": [1, 2]} for sid in ids]


async def slow(data, chart, scope):
    await asyncio.sleep(data["delay"])
    return rows(data["id"])


# ─────────────────────────────────────────────
# EMPTINESS
# ─────────────────────────────────────────────
class TestIsEmpty:
    def test_values(self):
        assert is_empty(None)
        assert is_empty([])
        assert is_empty({})
        assert is_empty("")
        assert not is_empty([0])
        assert not is_empty(0)
        assert not is_empty(False)


# ─────────────────────────────────────────────
# SYNC PIPELINE
# ─────────────────────────────────────────────
class TestPipeline:
    def test_identity_transform(self):
        data = Observable(rows("a"))
        chart = new_chart()
        sub = observe(data, None, None, chart)
        assert chart.series_ids == ["a"]
        assert sub.current.ids == ("a",)

    def test_transform_arguments(self):
        seen = []
        page = Scope(parent=None, currency="EUR")

        def transform(data, chart, scope):
            seen.append((data, chart, scope))
            return [{"id": scope["currency"], "data": data}]

        data = Observable([1, 2, 3])
        chart = new_chart()
        observe(data, transform, None, chart, scope=page)
        assert seen == [([1, 2, 3], chart, page)]
        assert chart.series_ids == ["EUR"]

    def test_each_change_reconciles(self):
        data = Observable(rows("a", "b"))
        chart = new_chart()
        observe(data, None, None, chart)
        chart.backend.calls.clear()

        data.set(rows("b", "c"))
        assert chart.backend.calls == [("remove", "a"), ("add", "c"), ("redraw", None)]

    def test_unchanged_result_skips_reconcile(self):
        data = Observable(rows("a"))
        chart = new_chart()
        observe(data, None, None, chart)
        chart.backend.calls.clear()
        data.set(rows("a"))
        assert chart.backend.calls == []

    def test_starts_from_initial(self):
        chart = new_chart()
        initial = SeriesSet.build(rows("a"))
        for d in initial.values():
            chart.add_series(d, redraw=False)

        data = Observable(rows("b"))
        TransformScheduler().observe(data, None, None, chart, initial=initial)
        assert chart.series_ids == ["b"]

    def test_scope_expression_source(self):
        page = Scope(parent=None, quotes=rows("a"))
        chart = new_chart()
        observe(page.expression(lambda s: s["quotes"]), None, None, chart)
        assert chart.series_ids == []

        page.flush()
        assert chart.series_ids == ["a"]
        page.assign(quotes=rows("a", "b"))
        page.flush()
        assert chart.series_ids == ["a", "b"]

    def test_source_without_watch(self):
        with pytest.raises(ConfigurationError, match="watch"):
            observe([1, 2], None, None, new_chart())

    def test_malformed_series_reported(self):
        errors = []
        data = Observable([{"id": "a", "data": [1]}, {"data": [2]}])
        chart = new_chart()
        TransformScheduler(on_error=errors.append).observe(data, None, None, chart)
        assert chart.series_ids == ["a"]
        assert isinstance(errors[0], ReconciliationError)

    def test_malformed_update_keeps_series(self):
        errors = []
        data = Observable(rows("a", "b"))
        chart = new_chart()
        sub = TransformScheduler(on_error=errors.append).observe(data, None, None, chart)

        data.set([{"id": "a", "data": [1, [2, 3]]}, {"id": "b", "data": [1, 2]}])
        assert chart.series_ids == ["a", "b"]
        assert sub.current.ids == ("b", "a")
        assert errors[0].series_id == "a"

        # Still rejected on the next tick: still kept
        data.set([{"id": "a", "data": [1, [2, 3]]}, {"id": "b", "data": [1, 2]}])
        assert chart.series_ids == ["a", "b"]

        data.set(rows("b"))
        assert chart.series_ids == ["b"]

    def test_failed_removal_retried(self):
        class BusyOnce(RecordingBackend):
            busy = True

            def remove_series(self, series_id):
                if self.busy:
                    self.busy = False
                    raise RuntimeError("busy")
                super().remove_series(series_id)

        data = Observable(rows("a", "b"))
        chart = ChartHandle(BusyOnce())
        sub = observe(data, None, None, chart)

        data.set(rows("b"))
        assert chart.series_ids == ["a", "b"]
        assert "a" in sub.current

        data.set(rows("b", "c"))
        assert chart.series_ids == ["b", "c"]
        assert sub.current.ids == ("b", "c")

    def test_failed_add_retried(self):
        class RejectOnce(RecordingBackend):
            rejected = False

            def add_series(self, options):
                if options["id"] == "b" and not self.rejected:
                    self.rejected = True
                    raise RuntimeError("rejected")
                super().add_series(options)

        data = Observable(rows("a", "b"))
        chart = ChartHandle(RejectOnce())
        sub = observe(data, None, None, chart)
        assert sub.current.ids == ("a",)

        data.set(rows("a", "b"))
        assert chart.series_ids == ["a", "b"]

    def test_rejected_entries_reported_when_unchanged(self):
        errors = []
        data = Observable(rows("a"))
        chart = new_chart()
        TransformScheduler(on_error=errors.append).observe(data, None, None, chart)
        chart.backend.calls.clear()

        data.set(rows("a", "a"))
        assert len(errors) == 1
        assert "Duplicate" in str(errors[0])
        assert chart.backend.calls == []


# ─────────────────────────────────────────────
# LOADING INDICATOR
# ─────────────────────────────────────────────
class TestLoading:
    def test_toggle(self):
        data = Observable(None)
        chart = new_chart()
        observe(data, None, None, chart, loading=True)
        data.set(rows("a"))
        assert chart.backend.calls == [
            ("show_loading", "Loading..."),
            ("add", "a"),
            ("redraw", None),
            ("hide_loading", None),
        ]

    def test_toggles_once_per_transition(self):
        data = Observable(None)
        chart = new_chart()
        observe(data, None, None, chart, loading=True)
        data.set([])
        data.set({})
        data.set(rows("a"))
        data.set(rows("a", "b"))
        assert chart.backend.count("show_loading") == 1
        assert chart.backend.count("hide_loading") == 1

    def test_custom_text(self):
        data = Observable()
        chart = new_chart()
        observe(data, None, None, chart, loading="Fetching quotes")
        assert chart.backend.loading_text == "Fetching quotes"

    def test_text_from_settings(self):
        configure(Settings(loading_text="Wczytywanie..."))
        data = Observable()
        chart = new_chart()
        observe(data, None, None, chart, loading=True)
        assert chart.backend.loading_text == "Wczytywanie..."

    def test_disabled(self):
        data = Observable(None)
        chart = new_chart()
        observe(data, None, None, chart)
        data.set(rows("a"))
        assert chart.backend.count("show_loading") == 0
        assert chart.backend.count("hide_loading") == 0

    def test_empty_data_skips_transform(self):
        calls = []
        data = Observable([])
        observe(data, lambda d, c, s: calls.append(d), None, new_chart(), loading=True)
        assert calls == []


# ─────────────────────────────────────────────
# TRANSFORM ERRORS
# ─────────────────────────────────────────────
class TestTransformErrors:
    def test_failed_tick_keeps_previous(self):
        errors = []

        def transform(data, chart, scope):
            if data == "boom":
                raise ValueError("bad payload")
            return data

        data = Observable(rows("a"))
        chart = new_chart()
        sub = TransformScheduler(on_error=errors.append).observe(data, transform, None, chart)

        data.set("boom")
        assert chart.series_ids == ["a"]
        assert sub.current.ids == ("a",)
        assert isinstance(errors[0], TransformError)
        assert errors[0].tick == 2
        assert isinstance(errors[0].__cause__, ValueError)

        # Next tick reconciles from the last applied set
        data.set(rows("b"))
        assert chart.series_ids == ["b"]

    def test_non_collection_result(self):
        errors = []
        data = Observable([1])
        chart = new_chart()
        TransformScheduler(on_error=errors.append).observe(data, lambda d, c, s: 42, None, chart)
        assert isinstance(errors[0], TransformError)
        assert chart.series_ids == []

    def test_errors_logged(self, caplog):
        data = Observable([1])

        def transform(data, chart, scope):
            raise RuntimeError("transform down")

        observe(data, transform, None, new_chart())
        assert "transform down" in caplog.text


# ─────────────────────────────────────────────
# ASYNC TRANSFORMS
# ─────────────────────────────────────────────
class TestAsync:
    def test_applied_in_tick_order(self):
        async def scenario():
            data = Observable()
            chart = new_chart()
            sub = observe(data, slow, None, chart)
            data.set({"delay": 0.05, "id": "a"})
            data.set({"delay": 0, "id": "b"})
            assert sub.pending == 2
            await sub.wait()
            return chart, sub

        chart, sub = asyncio.run(scenario())
        assert chart.backend.calls == [
            ("add", "a"),
            ("redraw", None),
            ("remove", "a"),
            ("add", "b"),
            ("redraw", None),
        ]
        assert sub.pending == 0
        assert sub.current.ids == ("b",)

    def test_async_failure_drops_tick(self):
        errors = []

        async def transform(data, chart, scope):
            await asyncio.sleep(0)
            if data == "boom":
                raise ValueError("late failure")
            return data

        async def scenario():
            data = Observable()
            chart = new_chart()
            sub = TransformScheduler(on_error=errors.append).observe(data, transform, None, chart)
            data.set(rows("a"))
            data.set("boom")
            data.set(rows("a", "c"))
            await sub.wait()
            return chart

        chart = asyncio.run(scenario())
        assert chart.series_ids == ["a", "c"]
        assert [e.tick for e in errors] == [3]

    def test_no_event_loop(self):
        errors = []
        data = Observable({"delay": 0, "id": "a"})
        TransformScheduler(on_error=errors.append).observe(data, slow, None, new_chart())
        assert isinstance(errors[0], TransformError)
        assert "event loop" in str(errors[0])

    def test_close_discards_in_flight(self):
        async def scenario():
            data = Observable()
            chart = new_chart()
            sub = observe(data, slow, None, chart)
            data.set({"delay": 0.01, "id": "a"})
            sub.close()
            await sub.wait()
            return chart, data

        chart, data = asyncio.run(scenario())
        assert chart.backend.calls == []
        assert data.watcher_count == 0


# ─────────────────────────────────────────────
# CLOSE
# ─────────────────────────────────────────────
class TestClose:
    def test_stops_observing(self):
        data = Observable(rows("a"))
        chart = new_chart()
        sub = observe(data, None, None, chart)
        sub.close()
        data.set(rows("b"))
        assert chart.series_ids == ["a"]
        assert data.watcher_count == 0

    def test_close_idempotent(self):
        sub = observe(Observable(), None, None, new_chart())
        sub.close()
        sub.close()
        assert sub.closed
