"""Two-phase retirement planning on top of the simulation engine.

The accumulation phase simulates the savings period with the planned
contribution. Its *median* terminal balance becomes the starting capital of
the withdrawal phase, which pays the net monthly need until life expectancy.
Carrying the median rather than the whole terminal distribution keeps the
withdrawal phase a single :func:`~finsim.engine.montecarlo.engine.simulate`
call; the resulting sustainability figure is conditional on an average
accumulation outcome.

Recommendations are derived with the bisection solvers:

* ``safe_withdrawal_rate`` is the largest annual withdrawal, as a fraction of
  the starting capital, that keeps the sustainability probability above the
  target;
* ``target_nest_egg`` is the smallest starting capital that funds the net need
  with the target probability;
* ``increase_contribution_by`` is the extra monthly saving needed to reach the
  nest egg with the target probability;
* ``can_retire_earlier_by`` counts the whole years between the month the
  median accumulation path reaches the nest egg and the planned retirement.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

import numpy as np

from finsim.engine.montecarlo.config import RetirementConfig, SimulationConfig
from finsim.engine.montecarlo.engine import ProgressCallback, SimulationResult, simulate
from finsim.engine.montecarlo.sampler import MONTHS_PER_YEAR
from finsim.engine.montecarlo.solver import (
    DEFAULT_MAX_PROBES,
    bisect_monotone,
    solve_required_contribution,
)
from finsim.engine.montecarlo.stats import nearest_rank, sustainability_rate, sustained_months
from finsim.engine.montecarlo.trials import build_contribution_schedule
from finsim.engine.utils.rand import SeedLike, child_seeds

__all__ = [
    "MAX_MONTHLY_WITHDRAWAL_FRACTION",
    "RETIREMENT_STAGES",
    "AccumulationPhase",
    "WithdrawalPhase",
    "RetirementRecommendations",
    "RetirementResult",
    "accumulation_config",
    "withdrawal_config",
    "simulate_retirement",
]

LOG = logging.getLogger(__name__)

# Upper end of the safe-withdrawal search, as a monthly fraction of capital.
MAX_MONTHLY_WITHDRAWAL_FRACTION = 0.10
_RATE_TOLERANCE = 1e-5
# Units reported to a progress callback, in execution order.
RETIREMENT_STAGES: tuple[str, ...] = (
    "accumulation",
    "withdrawal",
    "safe_withdrawal",
    "nest_egg",
    "contribution",
)


@dataclass(frozen=True)
class AccumulationPhase:
    final_balance_median: float
    final_balance_p10: float
    final_balance_p90: float
    total_contributions: float
    years_to_retirement: int


@dataclass(frozen=True)
class WithdrawalPhase:
    """Withdrawal-phase figures.

    Attributes:
      starting_balance: Capital at retirement (accumulation median).
      probability_of_not_running_out: Fraction of trials never below zero.
      median_years_of_sustainability: Median number of years the capital
        lasted, the full horizon for trials never depleted.
      safe_withdrawal_rate: Annual withdrawal as a fraction of the starting
        balance that meets the target probability.
      safe_monthly_withdrawal: The same withdrawal in currency per month.
      years_in_retirement: Withdrawal horizon in years.
      net_monthly_need: Expenses net of other income.
    """

    starting_balance: float
    probability_of_not_running_out: float
    median_years_of_sustainability: float
    safe_withdrawal_rate: float
    safe_monthly_withdrawal: float
    years_in_retirement: int
    net_monthly_need: float


@dataclass(frozen=True)
class RetirementRecommendations:
    increase_contribution_by: float | None
    can_retire_earlier_by: int | None
    target_nest_egg: float


@dataclass(frozen=True)
class RetirementResult:
    accumulation_phase: AccumulationPhase
    withdrawal_phase: WithdrawalPhase
    recommendations: RetirementRecommendations

    def to_dict(self) -> dict[str, dict[str, object]]:
        return {
            "accumulation_phase": asdict(self.accumulation_phase),
            "withdrawal_phase": asdict(self.withdrawal_phase),
            "recommendations": asdict(self.recommendations),
        }


def accumulation_config(config: RetirementConfig) -> SimulationConfig:
    """Simulation inputs of the savings period."""

    return SimulationConfig(
        initial_balance=config.current_savings,
        monthly_contribution=config.monthly_contribution,
        months=config.months_to_retirement,
        iterations=config.iterations,
        expected_return=config.expected_return,
        volatility=config.volatility,
        inflation_rate=config.inflation_rate,
        inflation_adjusted_contributions=config.inflation_rate is not None,
    )


def withdrawal_config(
    config: RetirementConfig,
    starting_balance: float,
    monthly_withdrawal: float | None = None,
) -> SimulationConfig:
    """Simulation inputs of the withdrawal period.

    Args:
      config: Retirement inputs.
      starting_balance: Capital available at retirement.
      monthly_withdrawal: Amount withdrawn each month; defaults to the net
        monthly need.
    """

    withdrawal = config.net_monthly_need if monthly_withdrawal is None else monthly_withdrawal
    return SimulationConfig(
        initial_balance=max(starting_balance, 0.0),
        monthly_contribution=-withdrawal,
        months=config.months_in_retirement,
        iterations=config.iterations,
        expected_return=config.withdrawal_return,
        volatility=config.volatility,
    )


def _sustainability(config: SimulationConfig, seed: np.random.SeedSequence) -> float:
    return sustainability_rate(simulate(config, seed=seed).depletion_months)


def _safe_withdrawal_fraction(
    config: RetirementConfig,
    starting_balance: float,
    seed: np.random.SeedSequence,
    max_probes: int,
) -> float:
    if starting_balance <= 0:
        return 0.0

    def evaluate(fraction: float) -> float:
        probe = withdrawal_config(config, starting_balance, starting_balance * fraction)
        return _sustainability(probe, seed)

    outcome = bisect_monotone(
        evaluate,
        0.0,
        MAX_MONTHLY_WITHDRAWAL_FRACTION,
        config.target_success_rate,
        increasing=False,
        tolerance=_RATE_TOLERANCE,
        max_probes=max_probes,
    )
    return outcome.value_or(0.0)


def _target_nest_egg(
    config: RetirementConfig,
    seed: np.random.SeedSequence,
    max_probes: int,
) -> float:
    need = config.net_monthly_need
    if need <= 0:
        return 0.0
    ceiling = 2.0 * need * config.months_in_retirement + 1.0

    def evaluate(balance: float) -> float:
        return _sustainability(withdrawal_config(config, balance), seed)

    outcome = bisect_monotone(
        evaluate,
        0.0,
        ceiling,
        config.target_success_rate,
        increasing=True,
        tolerance=1.0,
        max_probes=max_probes,
    )
    if not outcome.reachable:
        LOG.warning(
            "No nest egg up to %.2f reaches %.0f%% sustainability; using the ceiling",
            ceiling,
            config.target_success_rate * 100.0,
        )
    return outcome.value_or(ceiling)


def _increase_contribution_by(
    config: RetirementConfig,
    accumulation: SimulationConfig,
    accumulated: SimulationResult,
    nest_egg: float,
    seed: np.random.SeedSequence,
    max_probes: int,
) -> float | None:
    current_rate = float(np.count_nonzero(accumulated.final_values >= nest_egg))
    current_rate /= accumulated.final_values.size
    if current_rate >= config.target_success_rate:
        return None
    outcome = solve_required_contribution(
        accumulation,
        nest_egg,
        config.target_success_rate,
        seed=seed,
        max_probes=max_probes,
    )
    if outcome.value is None:
        LOG.warning(
            "Nest egg %.2f unreachable before retirement; no contribution increase suggested",
            nest_egg,
        )
        return None
    return max(outcome.value - config.monthly_contribution, 0.0)


def _can_retire_earlier_by(
    config: RetirementConfig,
    accumulated: SimulationResult,
    nest_egg: float,
) -> int | None:
    reached = np.flatnonzero(accumulated.bands.median >= nest_egg)
    if reached.size == 0:
        return None
    first_month = int(reached[0]) + 1
    years = (config.months_to_retirement - first_month) // MONTHS_PER_YEAR
    return years if years >= 1 else None


def simulate_retirement(
    config: RetirementConfig,
    *,
    seed: SeedLike = None,
    workers: int = 1,
    max_probes: int = DEFAULT_MAX_PROBES,
    progress: ProgressCallback | None = None,
) -> RetirementResult:
    """Chain the accumulation and withdrawal phases and derive recommendations.

    Args:
      config: Retirement inputs; validated first.
      seed: Root seed; each phase draws from its own child sequence and every
        solver probe of a phase replays that phase's draws.
      workers: Worker threads for the two headline simulations.
      max_probes: Probe budget of each solver.
      progress: Optional ``progress(stages_done, total_stages)`` callback
        invoked as each of :data:`RETIREMENT_STAGES` completes.

    Returns:
      A :class:`RetirementResult`.

    Raises:
      InvalidConfiguration: If ``config`` is invalid.
    """

    config.validate()
    accumulation_seed, withdrawal_seed = child_seeds(seed, 2)

    def advance(stage: str) -> None:
        if progress is not None:
            progress(RETIREMENT_STAGES.index(stage) + 1, len(RETIREMENT_STAGES))

    accumulation = accumulation_config(config)
    months_to_retirement = config.months_to_retirement

    accumulated: SimulationResult | None = None
    if months_to_retirement > 0:
        accumulated = simulate(accumulation, seed=accumulation_seed, workers=workers)
        median, p10, p90 = accumulated.median, accumulated.p10, accumulated.p90
    else:
        median = p10 = p90 = float(config.current_savings)
    advance("accumulation")
    contributions = build_contribution_schedule(
        months_to_retirement,
        config.monthly_contribution,
        config.inflation_rate,
        config.inflation_rate is not None,
    )
    accumulation_phase = AccumulationPhase(
        final_balance_median=median,
        final_balance_p10=p10,
        final_balance_p90=p90,
        total_contributions=float(contributions.sum()),
        years_to_retirement=config.retirement_age - config.current_age,
    )

    starting_balance = max(median, 0.0)
    withdrawn = simulate(
        withdrawal_config(config, starting_balance),
        seed=withdrawal_seed,
        workers=workers,
    )
    horizon = config.months_in_retirement
    lasted = sustained_months(withdrawn.depletion_months, horizon)
    advance("withdrawal")
    fraction = _safe_withdrawal_fraction(config, starting_balance, withdrawal_seed, max_probes)
    advance("safe_withdrawal")
    withdrawal_phase = WithdrawalPhase(
        starting_balance=starting_balance,
        probability_of_not_running_out=sustainability_rate(withdrawn.depletion_months),
        median_years_of_sustainability=nearest_rank(lasted, 0.5) / MONTHS_PER_YEAR,
        safe_withdrawal_rate=fraction * MONTHS_PER_YEAR,
        safe_monthly_withdrawal=starting_balance * fraction,
        years_in_retirement=config.life_expectancy - config.retirement_age,
        net_monthly_need=config.net_monthly_need,
    )

    nest_egg = _target_nest_egg(config, withdrawal_seed, max_probes)
    advance("nest_egg")
    increase = earlier = None
    if accumulated is not None:
        increase = _increase_contribution_by(
            config, accumulation, accumulated, nest_egg, accumulation_seed, max_probes
        )
        earlier = _can_retire_earlier_by(config, accumulated, nest_egg)
    advance("contribution")
    LOG.info(
        "Retirement plan: %.1f%% sustainability, target nest egg %.2f",
        withdrawal_phase.probability_of_not_running_out * 100.0,
        nest_egg,
    )
    return RetirementResult(
        accumulation_phase=accumulation_phase,
        withdrawal_phase=withdrawal_phase,
        recommendations=RetirementRecommendations(
            increase_contribution_by=increase,
            can_retire_earlier_by=earlier,
            target_nest_egg=nest_egg,
        ),
    )
