"""Trajectory compounding for single trials and contiguous batches of trials.

The deterministic part of a run (monthly means and deviations, forced returns,
contributions and lump cash flows) is resolved once into a :class:`MonthlyPlan`.
Trials then only differ by their random draws: each month the balance is
grown by the sampled return and the month's net inflow is added,
``balance = balance * (1 + r) + contribution + cash_flow``.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from finsim.engine.montecarlo.config import Shock, SimulationConfig
from finsim.engine.montecarlo.sampler import (
    MONTHS_PER_YEAR,
    ReturnSampler,
    monthly_mean,
    monthly_volatility,
)

__all__ = [
    "MonthlyPlan",
    "TrialPath",
    "build_monthly_plan",
    "build_contribution_schedule",
    "run_batch",
    "run_trial",
]

# Annual returns are floored here before the geometric conversion so that
# stacked negative shifts never produce a complex monthly mean.
_MIN_ANNUAL_RETURN = -0.99


@dataclass(frozen=True)
class MonthlyPlan:
    """Per-month deterministic inputs of a run.

    Attributes:
      mean: Monthly mean return, shape ``(months,)``.
      stdev: Monthly standard deviation, shape ``(months,)``.
      forced_return: Return replacing the sampled one, ``NaN`` where none.
      contribution: Contribution (negative for withdrawals) per month.
      cash_flow: One-off inflows/outflows per month.
    """

    mean: np.ndarray
    stdev: np.ndarray
    forced_return: np.ndarray
    contribution: np.ndarray
    cash_flow: np.ndarray

    @property
    def months(self) -> int:
        return int(self.mean.size)

    @property
    def inflow(self) -> np.ndarray:
        """Net amount added after growth each month."""

        return self.contribution + self.cash_flow


@dataclass(frozen=True)
class TrialPath:
    """Outcome of one simulated trajectory.

    Attributes:
      balances: Balance at the end of each month, shape ``(months,)``.
      final_value: Balance at the horizon.
      depletion_month: First month the balance went below zero, ``0`` if never.
    """

    balances: np.ndarray
    final_value: float
    depletion_month: int


def build_contribution_schedule(
    months: int,
    monthly_contribution: float,
    inflation_rate: float | None = None,
    indexed: bool = False,
) -> np.ndarray:
    """Return the contribution schedule over ``months`` months.

    Args:
      months: Number of months to generate.
      monthly_contribution: Baseline amount; negative for withdrawals.
      inflation_rate: Annual indexation rate.
      indexed: When ``True`` the amount grows once per simulated year, the
        first twelve months being paid at the baseline amount.

    Returns:
      Array with one contribution per month.
    """

    if months <= 0:
        return np.zeros(0, dtype="float64")
    schedule = np.full(months, float(monthly_contribution), dtype="float64")
    if indexed and inflation_rate:
        years_elapsed = np.arange(months) // MONTHS_PER_YEAR
        schedule *= (1.0 + inflation_rate) ** years_elapsed
    return schedule


def _window(months: int, start_month: int, duration_months: int) -> slice:
    start = min(months, max(0, start_month - 1))
    stop = min(months, start + max(0, duration_months))
    return slice(start, stop)


def _apply_market_shock(forced: np.ndarray, shock: Shock) -> None:
    """Force the returns of a crash (or boom) and its recovery tail.

    The total ``magnitude`` is spread evenly over ``duration_months``. The
    following ``recovery_months`` give back ``-magnitude / recovery_months``
    scaled by a weight that decays linearly from one towards zero.
    """

    months = forced.size
    forced[_window(months, shock.start_month, shock.duration_months)] = (
        shock.magnitude / shock.duration_months
    )
    if shock.recovery_months <= 0:
        return
    recovery = _window(months, shock.end_month + 1, shock.recovery_months)
    steps = np.arange(recovery.stop - recovery.start, dtype="float64")
    weight = 1.0 - steps / shock.recovery_months
    forced[recovery] = -shock.magnitude / shock.recovery_months * weight


def build_monthly_plan(config: SimulationConfig) -> MonthlyPlan:
    """Resolve the base assumptions and shocks of ``config`` into month arrays.

    Shocks are applied in declaration order; windows extending past the
    horizon are truncated.
    """

    months = int(config.months)
    annual_mu = np.full(months, float(config.expected_return), dtype="float64")
    annual_sigma = np.full(months, float(config.volatility), dtype="float64")
    forced = np.full(months, np.nan, dtype="float64")
    contribution = build_contribution_schedule(
        months,
        config.monthly_contribution,
        config.inflation_rate,
        config.inflation_adjusted_contributions,
    )
    cash_flow = np.zeros(months, dtype="float64")

    for shock in config.shocks:
        window = _window(months, shock.start_month, shock.duration_months)
        if shock.kind == "return_shift":
            annual_mu[window] += shock.magnitude
        elif shock.kind == "volatility_scale":
            annual_sigma[window] *= shock.magnitude
        elif shock.kind == "contribution_scale":
            contribution[window] *= shock.magnitude
        elif shock.kind == "cash_flow":
            cash_flow[window] += shock.magnitude
        elif shock.kind == "return_override":
            forced[window] = shock.magnitude
        elif shock.kind == "market_shock":
            _apply_market_shock(forced, shock)
        else:  # pragma: no cover - guarded by Shock.validate
            raise ValueError(f"Unsupported shock kind: {shock.kind}")

    np.clip(annual_mu, _MIN_ANNUAL_RETURN, None, out=annual_mu)
    return MonthlyPlan(
        mean=np.asarray(monthly_mean(annual_mu), dtype="float64"),
        stdev=np.asarray(monthly_volatility(annual_sigma), dtype="float64"),
        forced_return=forced,
        contribution=contribution,
        cash_flow=cash_flow,
    )


def run_batch(
    plan: MonthlyPlan,
    sampler: ReturnSampler,
    initial_balance: float,
    out: np.ndarray,
    depletion: np.ndarray,
    *,
    floor_at_zero: bool = False,
) -> None:
    """Compound ``out.shape[1]`` trials in place.

    Args:
      plan: Deterministic monthly inputs.
      sampler: Return sampler owning this batch's generator.
      initial_balance: Starting balance shared by every trial.
      out: Month-major buffer ``(months, trials)`` receiving the balances.
      depletion: Integer buffer ``(trials,)`` receiving the first month each
        trial went below zero (left at ``0`` otherwise).
      floor_at_zero: Clamp the balance at zero after recording depletion.
    """

    months, trials = out.shape
    returns = sampler.returns_from(sampler.standard_draws(months, trials), plan.mean, plan.stdev)
    forced_mask = ~np.isnan(plan.forced_return)
    if forced_mask.any():
        returns[forced_mask] = plan.forced_return[forced_mask][:, None]
    np.add(returns, 1.0, out=returns)
    # A month cannot lose more than the whole balance.
    np.maximum(returns, 0.0, out=returns)
    inflow = plan.inflow

    depletion[:] = 0
    balance = np.full(trials, float(initial_balance), dtype="float64")
    for idx in range(months):
        balance *= returns[idx]
        balance += inflow[idx]
        newly_depleted = (balance < 0.0) & (depletion == 0)
        if newly_depleted.any():
            depletion[newly_depleted] = idx + 1
        if floor_at_zero:
            np.maximum(balance, 0.0, out=balance)
        out[idx] = balance


def run_trial(config: SimulationConfig, sampler: ReturnSampler) -> TrialPath:
    """Simulate a single trajectory of ``config.months`` balances."""

    plan = build_monthly_plan(config)
    buffer = np.empty((plan.months, 1), dtype="float64")
    depletion = np.zeros(1, dtype="int64")
    run_batch(
        plan,
        sampler,
        config.initial_balance,
        buffer,
        depletion,
        floor_at_zero=config.floor_at_zero,
    )
    balances = buffer[:, 0].copy()
    return TrialPath(
        balances=balances,
        final_value=float(balances[-1]) if balances.size else float(config.initial_balance),
        depletion_month=int(depletion[0]),
    )
