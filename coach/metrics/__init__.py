"""Canonical Metrics - Behavioral KPI snapshots used as reward-shaping input

Every proposal the coach makes is judged partly by what happened to the
user's behavior afterwards. This package defines the snapshot those
judgements are made from and the providers that produce it.

Components:
    base.py: MetricSnapshot, MetricsProvider port, metrics_to_vector
    sqlite_provider.py: Snapshot computed from the local tasks/habit_logs tables

All rates are normalized to 0-1. A metric the provider cannot compute is
left as None rather than guessed, and `data_quality` reports how much of
the picture was actually available.
"""

from .base import (
    METRIC_FIELDS,
    MetricSnapshot,
    MetricsProvider,
    StaticMetricsProvider,
    metrics_to_vector,
)
from .sqlite_provider import SQLiteMetricsProvider


__all__ = [
    "METRIC_FIELDS",
    "MetricSnapshot",
    "MetricsProvider",
    "SQLiteMetricsProvider",
    "StaticMetricsProvider",
    "metrics_to_vector",
]
