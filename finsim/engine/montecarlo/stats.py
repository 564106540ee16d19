"""Cross-trial statistics: nearest-rank percentiles and success measures.

Percentiles use the nearest-rank rule on the sorted sample,
``index = ceil(p * n) - 1`` clamped to ``[0, n - 1]``. No interpolation is
performed, so every reported percentile is an actual simulated balance and
``p10 <= median <= p90`` holds by construction.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from finsim.engine.montecarlo.errors import EmptyDistribution

__all__ = [
    "PERCENTILES",
    "DistributionSummary",
    "MonthlySnapshot",
    "PercentileBands",
    "nearest_rank_index",
    "nearest_rank",
    "summarize_distribution",
    "aggregate_months",
    "calculate_success_rate",
    "calculate_expected_shortfall",
    "sustainability_rate",
    "sustained_months",
]

PERCENTILES: tuple[float, float, float] = (0.10, 0.50, 0.90)


@dataclass(frozen=True)
class DistributionSummary:
    """p10/median/p90/mean of one distribution."""

    p10: float
    median: float
    p90: float
    mean: float


@dataclass(frozen=True)
class MonthlySnapshot:
    """Cross-trial statistics of the balances at the end of ``month``."""

    month: int
    median: float
    p10: float
    p90: float
    mean: float


@dataclass(frozen=True)
class PercentileBands:
    """Month-indexed percentile arrays, each of shape ``(months,)``."""

    p10: np.ndarray
    median: np.ndarray
    p90: np.ndarray
    mean: np.ndarray

    @property
    def months(self) -> int:
        return int(self.median.size)

    def snapshots(self) -> tuple[MonthlySnapshot, ...]:
        """Return one :class:`MonthlySnapshot` per month (months are 1-based)."""

        return tuple(
            MonthlySnapshot(
                month=idx + 1,
                median=float(self.median[idx]),
                p10=float(self.p10[idx]),
                p90=float(self.p90[idx]),
                mean=float(self.mean[idx]),
            )
            for idx in range(self.months)
        )


def nearest_rank_index(percentile: float, size: int) -> int:
    """Index of ``percentile`` in a sorted sample of ``size`` values."""

    if size <= 0:
        raise EmptyDistribution("cannot take a percentile of an empty distribution")
    if not 0.0 <= percentile <= 1.0:
        raise ValueError(f"percentile must lie in [0, 1], got {percentile!r}")
    index = math.ceil(percentile * size) - 1
    return min(max(index, 0), size - 1)


def nearest_rank(values: Sequence[float] | np.ndarray, percentile: float) -> float:
    """Nearest-rank percentile of an unsorted sample."""

    data = np.sort(np.asarray(values, dtype="float64"))
    return float(data[nearest_rank_index(percentile, data.size)])


def summarize_distribution(values: Sequence[float] | np.ndarray) -> DistributionSummary:
    """Return p10/median/p90/mean of ``values``.

    Raises:
      EmptyDistribution: If ``values`` is empty.
    """

    data = np.sort(np.asarray(values, dtype="float64"))
    if data.size == 0:
        raise EmptyDistribution("cannot summarise an empty distribution")
    p10, p50, p90 = (data[nearest_rank_index(p, data.size)] for p in PERCENTILES)
    return DistributionSummary(
        p10=float(p10),
        median=float(p50),
        p90=float(p90),
        mean=float(np.mean(data)),
    )


def aggregate_months(paths: np.ndarray) -> PercentileBands:
    """Compute percentile bands from a month-major ``(months, trials)`` buffer.

    Each month is treated on its own: the statistics are not cumulative
    across months.
    """

    if paths.ndim != 2 or paths.shape[1] == 0:
        raise EmptyDistribution("month buffer must contain at least one trial")
    ordered = np.sort(paths, axis=1)
    trials = ordered.shape[1]
    p10, p50, p90 = (ordered[:, nearest_rank_index(p, trials)] for p in PERCENTILES)
    return PercentileBands(
        p10=p10.copy(),
        median=p50.copy(),
        p90=p90.copy(),
        mean=paths.mean(axis=1),
    )


def calculate_success_rate(values: Sequence[float] | np.ndarray, target: float) -> float:
    """Fraction of ``values`` greater than or equal to ``target``.

    Raises:
      EmptyDistribution: If ``values`` is empty.
    """

    data = np.asarray(values, dtype="float64")
    if data.size == 0:
        raise EmptyDistribution("cannot compute a success rate on an empty distribution")
    return float(np.count_nonzero(data >= target) / data.size)


def calculate_expected_shortfall(values: Sequence[float] | np.ndarray, target: float) -> float:
    """Average amount by which failing trials miss ``target`` (0 if none fail)."""

    data = np.asarray(values, dtype="float64")
    if data.size == 0:
        raise EmptyDistribution("cannot compute a shortfall on an empty distribution")
    shortfalls = target - data[data < target]
    if shortfalls.size == 0:
        return 0.0
    return float(np.mean(shortfalls))


def sustainability_rate(depletion_months: Sequence[int] | np.ndarray) -> float:
    """Fraction of trials whose balance never went below zero."""

    data = np.asarray(depletion_months)
    if data.size == 0:
        raise EmptyDistribution("cannot compute sustainability on an empty distribution")
    return float(np.count_nonzero(data == 0) / data.size)


def sustained_months(depletion_months: Sequence[int] | np.ndarray, horizon: int) -> np.ndarray:
    """Months each trial lasted, ``horizon`` for trials never depleted."""

    data = np.asarray(depletion_months, dtype="int64")
    return np.where(data == 0, horizon, data)
