"""Bisection solvers on simulated success rates.

Every probe of a solve re-runs a full simulation with the *same* seed
sequence. With identical draws a trial's terminal balance is non-decreasing in
the monthly contribution, so the success rate is monotone in the searched
amount and plain bisection is valid. The probe budget bounds the total cost,
since each probe costs ``iterations`` trials.

Solvers return a :class:`SolverOutcome` that distinguishes a solved value from
an unreachable target; :func:`find_required_contribution` is the raising
variant for callers that prefer exceptions.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from finsim.engine.montecarlo.config import SimulationConfig
from finsim.engine.montecarlo.engine import ProgressCallback, simulate
from finsim.engine.montecarlo.errors import InvalidConfiguration, TargetUnreachable
from finsim.engine.montecarlo.stats import calculate_success_rate
from finsim.engine.montecarlo.trials import build_monthly_plan
from finsim.engine.utils.rand import SeedLike, root_sequence

__all__ = [
    "DEFAULT_MAX_PROBES",
    "DEFAULT_TOLERANCE",
    "SolverOutcome",
    "bisect_monotone",
    "is_degenerate",
    "success_probability",
    "default_upper_bound",
    "solve_required_contribution",
    "find_required_contribution",
]

LOG = logging.getLogger(__name__)

DEFAULT_MAX_PROBES = 25
DEFAULT_TOLERANCE = 1.0


@dataclass(frozen=True)
class SolverOutcome:
    """Result of a bracket search.

    Attributes:
      value: Solved amount, ``None`` when the target rate is unreachable.
      success_rate: Rate achieved at ``value``, or the best rate observed
        inside the bracket when unreachable.
      reachable: Whether the target rate was reached.
      probes: Number of rate evaluations performed.
      bracket: Final ``(low, high)`` bracket.
    """

    value: float | None
    success_rate: float
    reachable: bool
    probes: int
    bracket: tuple[float, float]

    def value_or(self, fallback: float) -> float:
        """Return the solved value or ``fallback`` when unreachable."""

        return self.value if self.value is not None else fallback


def bisect_monotone(
    evaluate: Callable[[float], float],
    low: float,
    high: float,
    target_rate: float,
    *,
    increasing: bool = True,
    tolerance: float = DEFAULT_TOLERANCE,
    max_probes: int = DEFAULT_MAX_PROBES,
    rate_tolerance: float = 0.0,
) -> SolverOutcome:
    """Search ``[low, high]`` for the boundary where ``evaluate`` meets ``target_rate``.

    Args:
      evaluate: Monotone rate function of the searched amount.
      low: Lower end of the bracket.
      high: Upper end of the bracket.
      target_rate: Rate to reach (``evaluate(x) >= target_rate``).
      increasing: ``True`` when the rate grows with the amount (find the
        smallest feasible amount), ``False`` when it shrinks (find the largest).
      tolerance: Stop once the bracket is narrower than this amount.
      max_probes: Hard cap on the number of evaluations, endpoints included.
      rate_tolerance: Stop early when a feasible probe exceeds the target by
        at most this much.

    Returns:
      A :class:`SolverOutcome`; the returned value always satisfies the target
      when reachable.
    """

    if high < low:
        raise InvalidConfiguration(f"empty bracket [{low}, {high}]")
    if max_probes < 2:
        raise InvalidConfiguration("max_probes must be >= 2")

    best_end, worst_end = (high, low) if increasing else (low, high)
    best_rate = evaluate(best_end)
    probes = 1
    if best_rate < target_rate:
        return SolverOutcome(
            value=None,
            success_rate=best_rate,
            reachable=False,
            probes=probes,
            bracket=(low, high),
        )

    worst_rate = evaluate(worst_end)
    probes += 1
    if worst_rate >= target_rate:
        return SolverOutcome(
            value=worst_end,
            success_rate=worst_rate,
            reachable=True,
            probes=probes,
            bracket=(low, high),
        )

    # ``feasible`` always meets the target, ``infeasible`` never does.
    feasible, feasible_rate, infeasible = best_end, best_rate, worst_end
    while probes < max_probes and abs(feasible - infeasible) > tolerance:
        mid = (feasible + infeasible) / 2.0
        rate = evaluate(mid)
        probes += 1
        if rate >= target_rate:
            feasible, feasible_rate = mid, rate
            if rate - target_rate <= rate_tolerance:
                break
        else:
            infeasible = mid

    bracket = (min(feasible, infeasible), max(feasible, infeasible))
    return SolverOutcome(
        value=feasible,
        success_rate=feasible_rate,
        reachable=True,
        probes=probes,
        bracket=bracket,
    )


def is_degenerate(config: SimulationConfig, target: float) -> bool:
    """Return ``True`` when no trial can ever reach a positive ``target``.

    With no starting balance and no positive inflow the balance can never
    leave zero, so the success rate is known to be zero without simulating.
    """

    if target <= 0 or config.initial_balance > 0:
        return False
    plan = build_monthly_plan(config)
    return bool(np.all(plan.inflow <= 0.0))


def success_probability(
    config: SimulationConfig,
    target: float,
    *,
    seed: SeedLike = None,
    workers: int = 1,
) -> float:
    """Simulate ``config`` and return the fraction of trials reaching ``target``.

    Degenerate configurations report ``0.0`` directly.
    """

    config.validate()
    if is_degenerate(config, target):
        LOG.debug("Degenerate configuration for target %.2f; reporting 0%% success", target)
        return 0.0
    result = simulate(config, seed=seed, workers=workers)
    return calculate_success_rate(result.final_values, target)


def default_upper_bound(config: SimulationConfig, target_amount: float) -> float:
    """Conservative contribution ceiling used when the caller gives none."""

    return max(
        10.0 * abs(config.monthly_contribution),
        2.0 * max(target_amount, 0.0) / max(config.months, 1),
        1.0,
    )


def solve_required_contribution(
    config: SimulationConfig,
    target_amount: float,
    target_success_rate: float,
    *,
    upper_bound: float | None = None,
    tolerance: float = DEFAULT_TOLERANCE,
    max_probes: int = DEFAULT_MAX_PROBES,
    rate_tolerance: float = 0.0,
    seed: SeedLike = None,
    workers: int = 1,
    progress: ProgressCallback | None = None,
) -> SolverOutcome:
    """Find the smallest monthly contribution reaching ``target_success_rate``.

    Args:
      config: Base configuration; its contribution is replaced at each probe.
      target_amount: Terminal balance defining success.
      target_success_rate: Required fraction of successful trials.
      upper_bound: Contribution ceiling; defaults to
        :func:`default_upper_bound`.
      tolerance: Currency width at which the bracket is considered converged.
      max_probes: Maximum number of simulations.
      rate_tolerance: Accept a probe whose rate exceeds the target by at most
        this much.
      seed: Seed shared by every probe.
      workers: Worker threads per simulation.
      progress: Optional ``progress(probes_done, max_probes)`` callback
        invoked after each probe.

    Returns:
      A :class:`SolverOutcome` whose ``value`` is the contribution.
    """

    config.validate()
    if not 0.0 < target_success_rate <= 1.0:
        raise InvalidConfiguration("target_success_rate must lie in (0, 1]")
    ceiling = default_upper_bound(config, target_amount) if upper_bound is None else upper_bound
    if ceiling < 0:
        raise InvalidConfiguration("upper_bound cannot be negative")

    # Pin the entropy once so every probe replays the same draws.
    shared_seed = root_sequence(seed)

    probes_done = 0

    def evaluate(contribution: float) -> float:
        nonlocal probes_done
        probe = config.with_overrides(monthly_contribution=contribution)
        rate = success_probability(probe, target_amount, seed=shared_seed, workers=workers)
        probes_done += 1
        if progress is not None:
            progress(probes_done, max_probes)
        return rate

    LOG.info(
        "Finding required contribution for %.1f%% success on target %.2f (ceiling %.2f)",
        target_success_rate * 100.0,
        target_amount,
        ceiling,
    )
    outcome = bisect_monotone(
        evaluate,
        0.0,
        float(ceiling),
        target_success_rate,
        increasing=True,
        tolerance=tolerance,
        max_probes=max_probes,
        rate_tolerance=rate_tolerance,
    )
    if not outcome.reachable:
        LOG.info(
            "Target rate unreachable: %.1f%% at ceiling %.2f",
            outcome.success_rate * 100.0,
            ceiling,
        )
    return outcome


def find_required_contribution(
    config: SimulationConfig,
    target_amount: float,
    target_success_rate: float,
    **kwargs: object,
) -> float:
    """Raising variant of :func:`solve_required_contribution`.

    Raises:
      TargetUnreachable: If even the ceiling misses the target rate. The
        exception carries the :class:`SolverOutcome` for fallbacks.
    """

    outcome = solve_required_contribution(
        config,
        target_amount,
        target_success_rate,
        **kwargs,  # type: ignore[arg-type]
    )
    if outcome.value is None:
        raise TargetUnreachable(
            f"success rate {target_success_rate:.2%} unreachable for target "
            f"{target_amount:,.2f}; best rate {outcome.success_rate:.2%}",
            outcome,
        )
    return outcome.value
