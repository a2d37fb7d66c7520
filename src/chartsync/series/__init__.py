"""chartsync.series — Series model and reconciliation."""

from chartsync.series.descriptor import SeriesDescriptor, SeriesSet, check_data_shape
from chartsync.series.reconciler import (
    ReconcilePlan,
    ReconcileResult,
    SeriesReconciler,
    plan,
    reconcile,
)

__all__ = [
    "SeriesDescriptor",
    "SeriesSet",
    "check_data_shape",
    "ReconcilePlan",
    "ReconcileResult",
    "SeriesReconciler",
    "plan",
    "reconcile",
]
