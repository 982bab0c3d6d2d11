"""
Metric Snapshot and Provider Port

The snapshot is a named, all-optional record rather than an open dict so
that callers can tell "not measured" (None) apart from "measured as zero".
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping


# Order matters: this is the layout of the context vector fed to policies.
METRIC_FIELDS = (
    "habits_rate_7d",
    "habits_rate_30d",
    "task_completion_rate",
    "task_overdue_ratio",
    "momentum_index",
    "consistency_score",
    "data_quality",
)


def coerce_metric(value: Any) -> float | None:
    """Return value as a finite float, or None when it is not a usable number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    if not math.isfinite(value):
        return None
    return value


@dataclass(frozen=True)
class MetricSnapshot:
    """Canonical behavioral KPIs for one user at one point in time."""

    habits_rate_7d: float | None = None
    habits_rate_30d: float | None = None
    task_completion_rate: float | None = None
    task_overdue_ratio: float | None = None
    momentum_index: float | None = None
    consistency_score: float | None = None
    data_quality: float | None = None

    def get(self, name: str) -> float | None:
        return getattr(self, name, None)

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary, dropping metrics that were not measured."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def with_values(self, **values: float | None) -> MetricSnapshot:
        return replace(self, **values)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> MetricSnapshot:
        """Create from a stored mapping. Unknown keys and non-numeric values are ignored."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: coerce_metric(v) for k, v in data.items() if k in known})


def metrics_to_vector(snapshot: MetricSnapshot) -> list[float]:
    """
    Flatten a snapshot into the ordered context vector.

    Missing metrics become 0.0 so every vector has the same length.
    """
    return [snapshot.get(name) or 0.0 for name in METRIC_FIELDS]


class MetricsProvider(ABC):
    """Source of canonical metric snapshots."""

    @abstractmethod
    async def get_canonical_metrics(self, user_id: str) -> MetricSnapshot:
        """Return the current snapshot for user_id."""
        pass


class StaticMetricsProvider(MetricsProvider):
    """
    Provider that serves pre-set snapshots.

    Useful for local runs and tests where no behavioral data exists yet.
    Snapshots can be replaced between calls to simulate behavior changing.
    """

    def __init__(
        self,
        default: MetricSnapshot | None = None,
        per_user: dict[str, MetricSnapshot] | None = None,
    ):
        self._default = default or MetricSnapshot(data_quality=1.0)
        self._per_user = dict(per_user or {})

    def set(self, user_id: str, snapshot: MetricSnapshot) -> None:
        self._per_user[user_id] = snapshot

    async def get_canonical_metrics(self, user_id: str) -> MetricSnapshot:
        return self._per_user.get(user_id, self._default)
