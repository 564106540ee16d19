"""Monte Carlo simulation engine.

The engine validates a :class:`~finsim.engine.montecarlo.config.SimulationConfig`,
splits the requested trials into fixed-size batches and compounds every batch
with its own generator. Generators are spawned from a single
:class:`numpy.random.SeedSequence`, so a run is fully determined by its seed,
its iteration count and its batch size. The number of worker threads only
affects wall-clock time: each batch writes a disjoint column slice of a
pre-allocated month-major buffer and the aggregation sorts the values, so the
merge is order independent.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass

import numpy as np
import pandas as pd

from finsim.engine.montecarlo.config import SimulationConfig
from finsim.engine.montecarlo.errors import InvalidConfiguration, SimulationCancelled
from finsim.engine.montecarlo.sampler import ReturnSampler
from finsim.engine.montecarlo.stats import (
    MonthlySnapshot,
    PercentileBands,
    aggregate_months,
    summarize_distribution,
)
from finsim.engine.montecarlo.trials import MonthlyPlan, build_monthly_plan, run_batch
from finsim.engine.utils.rand import SeedLike, root_sequence, sequence_entropy

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "HIGH_ITERATION_WARNING",
    "ProgressCallback",
    "CancelCheck",
    "SimulationResult",
    "simulate",
]

LOG = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1_000
HIGH_ITERATION_WARNING = 50_000

ProgressCallback = Callable[[int, int], None]
CancelCheck = Callable[[], bool]


@dataclass(frozen=True)
class SimulationResult:
    """Outcome of :func:`simulate`.

    Attributes:
      config: Configuration that produced the result.
      final_values: Terminal balance of each trial (``iterations`` values).
      bands: Per-month p10/median/p90/mean arrays.
      p10: 10th percentile of the terminal distribution.
      median: Median of the terminal distribution.
      p90: 90th percentile of the terminal distribution.
      mean: Arithmetic mean of the terminal distribution.
      depletion_months: First month each trial went below zero, ``0`` if never.
      seed_entropy: Entropy of the root seed sequence, to replay the run.
      elapsed_ms: Wall-clock duration of the run.
    """

    config: SimulationConfig
    final_values: np.ndarray
    bands: PercentileBands
    p10: float
    median: float
    p90: float
    mean: float
    depletion_months: np.ndarray
    seed_entropy: int | tuple[int, ...]
    elapsed_ms: float

    @property
    def time_series(self) -> tuple[MonthlySnapshot, ...]:
        """One snapshot per simulated month, ordered from month 1."""

        return self.bands.snapshots()

    def to_frame(self) -> pd.DataFrame:
        """Return the time series as a DataFrame indexed by month."""

        return pd.DataFrame(
            {
                "p10": self.bands.p10,
                "median": self.bands.median,
                "p90": self.bands.p90,
                "mean": self.bands.mean,
            },
            index=pd.RangeIndex(1, self.bands.months + 1, name="month"),
        )

    def summary(self) -> dict[str, object]:
        """Serialisable headline figures."""

        return {
            "iterations": int(self.final_values.size),
            "months": int(self.bands.months),
            "p10": self.p10,
            "median": self.median,
            "p90": self.p90,
            "mean": self.mean,
            "seed_entropy": (
                self.seed_entropy
                if isinstance(self.seed_entropy, int)
                else list(self.seed_entropy)
            ),
            "elapsed_ms": round(self.elapsed_ms, 3),
        }


def _batch_bounds(iterations: int, batch_size: int) -> list[tuple[int, int]]:
    return [
        (start, min(start + batch_size, iterations)) for start in range(0, iterations, batch_size)
    ]


def _run_one_batch(
    config: SimulationConfig,
    plan: MonthlyPlan,
    child: np.random.SeedSequence,
    paths: np.ndarray,
    depletion: np.ndarray,
    bounds: tuple[int, int],
    should_cancel: CancelCheck | None,
) -> int:
    if should_cancel is not None and should_cancel():
        raise SimulationCancelled("simulation cancelled before batch start")
    start, stop = bounds
    sampler = ReturnSampler.from_annual(
        config.expected_return,
        config.volatility,
        np.random.default_rng(child),
    )
    run_batch(
        plan,
        sampler,
        config.initial_balance,
        paths[:, start:stop],
        depletion[start:stop],
        floor_at_zero=config.floor_at_zero,
    )
    return stop - start


def simulate(
    config: SimulationConfig,
    *,
    seed: SeedLike = None,
    workers: int = 1,
    batch_size: int = DEFAULT_BATCH_SIZE,
    progress: ProgressCallback | None = None,
    should_cancel: CancelCheck | None = None,
) -> SimulationResult:
    """Run ``config.iterations`` independent trials and aggregate them.

    Args:
      config: Simulation inputs; validated before any trial runs.
      seed: Integer seed or :class:`numpy.random.SeedSequence`. ``None``
        draws fresh OS entropy.
      workers: Number of threads compounding batches concurrently.
      batch_size: Trials per batch; also the granularity of cancellation
        checks and progress notifications.
      progress: Optional ``progress(completed_trials, total_trials)`` callback,
        invoked from the calling thread.
      should_cancel: Optional callable polled before each batch starts.

    Returns:
      A :class:`SimulationResult` with terminal values and monthly bands.

    Raises:
      InvalidConfiguration: If ``config`` or the execution options are invalid.
      SimulationCancelled: If ``should_cancel`` returned ``True``.
    """

    config.validate()
    if workers < 1:
        raise InvalidConfiguration(f"workers must be >= 1, got {workers!r}")
    if batch_size < 1:
        raise InvalidConfiguration(f"batch_size must be >= 1, got {batch_size!r}")
    if config.iterations > HIGH_ITERATION_WARNING:
        LOG.warning(
            "High iteration count (%s); consider reducing it for interactive use",
            config.iterations,
        )
    LOG.info(
        "Starting Monte Carlo simulation: %s iterations, %s months",
        config.iterations,
        config.months,
    )
    started = time.perf_counter()

    months = int(config.months)
    iterations = int(config.iterations)
    plan = build_monthly_plan(config)
    paths = np.empty((months, iterations), dtype="float64")
    depletion = np.zeros(iterations, dtype="int64")

    root = root_sequence(seed)
    bounds = _batch_bounds(iterations, batch_size)
    children = root.spawn(len(bounds))

    completed = 0
    if workers == 1 or len(bounds) == 1:
        for child, batch in zip(children, bounds, strict=True):
            completed += _run_one_batch(
                config, plan, child, paths, depletion, batch, should_cancel
            )
            if progress is not None:
                progress(completed, iterations)
    else:
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="finsim-mc")
        try:
            pending = {
                executor.submit(
                    _run_one_batch, config, plan, child, paths, depletion, batch, should_cancel
                )
                for child, batch in zip(children, bounds, strict=True)
            }
            while pending:
                done, pending = wait(pending, return_when=FIRST_EXCEPTION)
                for future in done:
                    # Re-raises SimulationCancelled (or any worker failure).
                    completed += future.result()
                    if progress is not None:
                        progress(completed, iterations)
        except BaseException:
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

    bands = aggregate_months(paths)
    final_values = paths[-1].copy()
    terminal = summarize_distribution(final_values)
    elapsed_ms = (time.perf_counter() - started) * 1_000.0
    LOG.info("Simulation completed in %.1f ms", elapsed_ms)

    return SimulationResult(
        config=config,
        final_values=final_values,
        bands=bands,
        p10=terminal.p10,
        median=terminal.median,
        p90=terminal.p90,
        mean=terminal.mean,
        depletion_months=depletion,
        seed_entropy=sequence_entropy(root),
        elapsed_ms=elapsed_ms,
    )
