"""Goal-achievement evaluation built on the simulation engine.

A goal is a target balance at the end of the simulated horizon. The evaluator
reports the probability of reaching it, the p10/p90 confidence band, the month
at which the median path first crosses the target and, for poorly funded
goals, a recommended contribution. The contribution solver may report the
recommended rate as unreachable; the evaluator then keeps the current
contribution and logs a warning instead of failing.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

import numpy as np
import pandas as pd

from finsim.engine.montecarlo.config import SimulationConfig
from finsim.engine.montecarlo.engine import ProgressCallback, SimulationResult, simulate
from finsim.engine.montecarlo.trials import build_monthly_plan
from finsim.engine.montecarlo.errors import InvalidConfiguration
from finsim.engine.montecarlo.solver import is_degenerate, solve_required_contribution
from finsim.engine.montecarlo.stats import calculate_expected_shortfall, calculate_success_rate
from finsim.engine.utils.rand import SeedLike, root_sequence

__all__ = [
    "WHAT_IF_FIELDS",
    "GoalProbability",
    "evaluate_goal",
    "run_what_if",
]

LOG = logging.getLogger(__name__)

# Configuration fields a what-if run may override, plus the target itself.
WHAT_IF_FIELDS: tuple[str, ...] = (
    "monthly_contribution",
    "expected_return",
    "volatility",
    "months",
    "target_amount",
)


@dataclass(frozen=True)
class GoalProbability:
    """Evaluation of one goal.

    Attributes:
      probability: Fraction of trials ending at or above the target.
      confidence_low: p10 of the terminal balance.
      confidence_high: p90 of the terminal balance.
      median_outcome: Median terminal balance.
      expected_shortfall: Mean gap to the target among failing trials.
      current_progress: Current balance as a percentage of the target,
        capped at 100.
      projected_completion_month: First month whose median reaches the
        target, ``None`` if it never does within the horizon.
      recommended_contribution: Monthly contribution to keep or adopt.
      timeline: Median/p10/p90 per month.
    """

    probability: float
    confidence_low: float
    confidence_high: float
    median_outcome: float
    expected_shortfall: float
    current_progress: float
    projected_completion_month: int | None
    recommended_contribution: float
    timeline: pd.DataFrame

    def summary(self) -> dict[str, object]:
        return {
            "probability": self.probability,
            "confidence_low": self.confidence_low,
            "confidence_high": self.confidence_high,
            "median_outcome": self.median_outcome,
            "expected_shortfall": self.expected_shortfall,
            "current_progress": self.current_progress,
            "projected_completion_month": self.projected_completion_month,
            "recommended_contribution": self.recommended_contribution,
        }


def _progress(balance: float, target: float) -> float:
    if target <= 0:
        return 100.0
    return min(100.0, balance / target * 100.0)


def _completion_month(result: SimulationResult, target: float) -> int | None:
    reached = np.flatnonzero(result.bands.median >= target)
    return int(reached[0]) + 1 if reached.size else None


def _evaluate(
    config: SimulationConfig,
    target_amount: float,
    result: SimulationResult,
    recommended_contribution: float,
) -> GoalProbability:
    return GoalProbability(
        probability=calculate_success_rate(result.final_values, target_amount),
        confidence_low=result.p10,
        confidence_high=result.p90,
        median_outcome=result.median,
        expected_shortfall=calculate_expected_shortfall(result.final_values, target_amount),
        current_progress=_progress(config.initial_balance, target_amount),
        projected_completion_month=_completion_month(result, target_amount),
        recommended_contribution=recommended_contribution,
        timeline=result.to_frame()[["median", "p10", "p90"]],
    )


def _unfunded(
    config: SimulationConfig,
    target_amount: float,
    recommended_contribution: float,
) -> GoalProbability:
    # Returns are ignored: the balance never holds a positive amount to grow.
    path = np.cumsum(build_monthly_plan(config).inflow)
    if config.floor_at_zero:
        np.maximum(path, 0.0, out=path)
    final = float(path[-1])
    return GoalProbability(
        probability=0.0,
        confidence_low=final,
        confidence_high=final,
        median_outcome=final,
        expected_shortfall=target_amount - final,
        current_progress=_progress(config.initial_balance, target_amount),
        projected_completion_month=None,
        recommended_contribution=recommended_contribution,
        timeline=pd.DataFrame(
            {"median": path, "p10": path, "p90": path},
            index=pd.RangeIndex(1, path.size + 1, name="month"),
        ),
    )


def evaluate_goal(
    config: SimulationConfig,
    target_amount: float,
    *,
    seed: SeedLike = None,
    workers: int = 1,
    recommend_below: float = 0.5,
    recommended_rate: float = 0.75,
    progress: ProgressCallback | None = None,
) -> GoalProbability:
    """Evaluate the probability of reaching ``target_amount``.

    Args:
      config: Goal configuration (current balance, contribution, horizon).
      target_amount: Balance to reach at the horizon.
      seed: Seed shared by the evaluation and the recommendation solver.
      workers: Worker threads per simulation.
      recommend_below: Probability under which a contribution is recommended.
      recommended_rate: Success rate the recommended contribution aims for.
      progress: Optional ``progress(completed, total)`` callback reporting the
        trials of the evaluation run; solver probes are not reported.

    Returns:
      A :class:`GoalProbability`. When the recommended rate is unreachable the
      current contribution is returned as recommendation.
    """

    config.validate()
    shared_seed = root_sequence(seed)
    result: SimulationResult | None = None
    if is_degenerate(config, target_amount):
        LOG.info("Goal %.2f has no savings and no inflow; reporting 0%% probability", target_amount)
        probability = 0.0
    else:
        result = simulate(config, seed=shared_seed, workers=workers, progress=progress)
        probability = calculate_success_rate(result.final_values, target_amount)
    recommended = config.monthly_contribution
    if probability < recommend_below:
        outcome = solve_required_contribution(
            config,
            target_amount,
            recommended_rate,
            seed=shared_seed,
            workers=workers,
        )
        if outcome.value is None:
            LOG.warning(
                "Could not find required contribution for target %.2f (best rate %.1f%%); "
                "keeping %.2f",
                target_amount,
                outcome.success_rate * 100.0,
                recommended,
            )
        recommended = outcome.value_or(recommended)
    if result is None:
        return _unfunded(config, target_amount, recommended)
    return _evaluate(config, target_amount, result, recommended)


def run_what_if(
    config: SimulationConfig,
    target_amount: float,
    overrides: Mapping[str, object],
    *,
    seed: SeedLike = None,
    workers: int = 1,
) -> GoalProbability:
    """Re-evaluate a goal with some inputs changed.

    Args:
      config: Baseline goal configuration, left untouched.
      target_amount: Baseline target.
      overrides: Values for any of :data:`WHAT_IF_FIELDS`.
      seed: Seed of the simulation.
      workers: Worker threads.

    Returns:
      A :class:`GoalProbability` whose recommendation is the (possibly
      overridden) contribution itself.

    Raises:
      InvalidConfiguration: If ``overrides`` names an unsupported field or
        the resulting configuration is invalid.
    """

    unknown = sorted(set(overrides) - set(WHAT_IF_FIELDS))
    if unknown:
        raise InvalidConfiguration(f"unsupported what-if fields: {', '.join(unknown)}")
    changes = {key: value for key, value in overrides.items() if key != "target_amount"}
    target = float(overrides.get("target_amount", target_amount))  # type: ignore[arg-type]
    scenario = config.with_overrides(**changes)
    LOG.info("Running what-if evaluation with %s", sorted(overrides))
    result = simulate(scenario, seed=seed, workers=workers)
    return _evaluate(scenario, target, result, scenario.monthly_contribution)
