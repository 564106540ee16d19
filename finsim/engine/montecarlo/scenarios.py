"""Named adverse scenarios and baseline-versus-stressed comparisons.

Each scenario is a fixed list of :class:`~finsim.engine.montecarlo.config.Shock`
objects appended to the caller's configuration. A comparison runs the baseline
and the stressed configuration with the same seed: because draws are laid out
per month and per trial independently of the shocks, every stressed trial sees
exactly the random path of its baseline twin and the difference between the two
runs measures the scenario alone.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd

from finsim.engine.montecarlo.config import Shock, SimulationConfig
from finsim.engine.montecarlo.engine import ProgressCallback, SimulationResult, simulate
from finsim.engine.montecarlo.errors import UnknownScenario
from finsim.engine.montecarlo.stats import MonthlySnapshot
from finsim.engine.utils.rand import SeedLike, root_sequence

__all__ = [
    "SEVERITIES",
    "IMPACT_LEVELS",
    "RECOVERY_RATIO",
    "Scenario",
    "SCENARIOS",
    "ScenarioSummary",
    "ScenarioComparison",
    "ScenarioComparisonResult",
    "list_scenarios",
    "get_scenario",
    "classify_impact",
    "find_recovery_month",
    "compare_scenario",
    "compare_scenarios",
    "comparison_table",
]

LOG = logging.getLogger(__name__)

SEVERITIES: tuple[str, ...] = ("mild", "moderate", "severe")
IMPACT_LEVELS: tuple[str, ...] = ("minimal", "moderate", "significant", "critical")
# Upper bounds (exclusive) on |median difference %| for each impact level
# but the last.
_IMPACT_THRESHOLDS: tuple[float, float, float] = (5.0, 15.0, 30.0)
RECOVERY_RATIO = 0.9


@dataclass(frozen=True)
class Scenario:
    """Deterministic event applied on top of a configuration.

    Household events (job loss, medical bills) act on the cash flows; the
    historical market episodes force monthly returns through ``market_shock``
    windows. ``severity`` is descriptive metadata; it does not drive any
    computation.
    """

    name: str
    title: str
    description: str
    severity: str
    shocks: tuple[Shock, ...]

    @property
    def first_shock_month(self) -> int:
        return min((shock.start_month for shock in self.shocks), default=1)

    def apply(self, config: SimulationConfig) -> SimulationConfig:
        """Return a copy of ``config`` with the scenario shocks appended."""

        return config.with_shocks(self.shocks)

    def describe(self) -> dict[str, str]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
        }


def _scenario(
    name: str,
    title: str,
    description: str,
    severity: str,
    *shocks: Shock,
) -> Scenario:
    return Scenario(
        name=name,
        title=title,
        description=description,
        severity=severity,
        shocks=tuple(shocks),
    )


SCENARIOS: dict[str, Scenario] = {
    scenario.name: scenario
    for scenario in (
        _scenario(
            "market_crash",
            "Market crash",
            "Sudden 30% market decline at the start of the horizon.",
            "severe",
            Shock("return_override", 1, 1, -0.30),
        ),
        _scenario(
            "market_correction",
            "Market correction",
            "10% market pullback at the start of the horizon.",
            "mild",
            Shock("return_override", 1, 1, -0.10),
        ),
        _scenario(
            "recession",
            "Recession",
            "Expected return lowered by 8 points for 18 months.",
            "moderate",
            Shock("return_shift", 1, 18, -0.08),
        ),
        _scenario(
            "job_loss",
            "Job loss",
            "No contributions for 6 months while searching for a new job.",
            "severe",
            Shock("contribution_scale", 1, 6, 0.0),
        ),
        _scenario(
            "disability",
            "Disability",
            "No contributions for 24 months because of long-term disability.",
            "severe",
            Shock("contribution_scale", 1, 24, 0.0),
        ),
        _scenario(
            "medical_emergency",
            "Medical emergency",
            "One-off 50,000 withdrawal for unexpected medical expenses.",
            "moderate",
            Shock("cash_flow", 1, 1, -50_000.0),
        ),
        _scenario(
            "inflation_spike",
            "Inflation spike",
            "Real return lowered by 4 points and volatility up 50% for 5 years.",
            "moderate",
            Shock("return_shift", 1, 60, -0.04),
            Shock("volatility_scale", 1, 60, 1.5),
        ),
        _scenario(
            "bear_market",
            "Bear market",
            "30% decline over 6 months from month 12, recovered over 12 months.",
            "moderate",
            Shock("market_shock", 12, 6, -0.30, recovery_months=12),
        ),
        _scenario(
            "great_recession",
            "Great Recession (2008-style)",
            "50% decline over 12 months from month 24, recovered over 24 months.",
            "severe",
            Shock("market_shock", 24, 12, -0.50, recovery_months=24),
        ),
        _scenario(
            "dot_com_bust",
            "Dot-com bust (2000-style)",
            "45% decline over 18 months from month 6, recovered over 36 months.",
            "severe",
            Shock("market_shock", 6, 18, -0.45, recovery_months=36),
        ),
        _scenario(
            "mild_recession",
            "Mild recession",
            "15% decline over 3 months from month 18, recovered over 6 months.",
            "mild",
            Shock("market_shock", 18, 3, -0.15, recovery_months=6),
        ),
        _scenario(
            "quick_correction",
            "Quick correction",
            "10% decline in month 36, recovered over 3 months.",
            "mild",
            Shock("market_shock", 36, 1, -0.10, recovery_months=3),
        ),
        _scenario(
            "stagflation",
            "Stagflation (1970s-style)",
            "Persistent 20% decline over 24 months from month 12, slow 36 month recovery.",
            "severe",
            Shock("market_shock", 12, 24, -0.20, recovery_months=36),
        ),
        _scenario(
            "double_dip_recession",
            "Double-dip recession",
            "Two recessions in months 12 and 36 with a brief recovery in between.",
            "severe",
            Shock("market_shock", 12, 8, -0.25, recovery_months=12),
            Shock("market_shock", 36, 6, -0.20, recovery_months=12),
        ),
        _scenario(
            "lost_decade",
            "Lost decade (Japan 1990s-style)",
            "30% decline over 18 months from month 6 and a 60 month recovery.",
            "severe",
            Shock("market_shock", 6, 18, -0.30, recovery_months=60),
        ),
        _scenario(
            "flash_crash",
            "Flash crash",
            "Sudden 25% drop in month 24 with a 2 month recovery.",
            "moderate",
            Shock("market_shock", 24, 1, -0.25, recovery_months=2),
        ),
        _scenario(
            "boom_cycle",
            "Boom cycle",
            "40% gain spread over 24 months from month 12.",
            "mild",
            Shock("market_shock", 12, 24, 0.40),
        ),
        _scenario(
            "tech_bubble",
            "Tech bubble",
            "60% run-up over 18 months followed by a 50% crash from month 30.",
            "severe",
            Shock("market_shock", 6, 18, 0.60),
            Shock("market_shock", 30, 12, -0.50, recovery_months=24),
        ),
        _scenario(
            "covid_shock",
            "COVID-19 style shock",
            "35% crash over 2 months from month 24 with a V-shaped 6 month recovery.",
            "severe",
            Shock("market_shock", 24, 2, -0.35, recovery_months=6),
        ),
    )
}


def list_scenarios() -> list[dict[str, str]]:
    """Return name, title, description and severity of every scenario."""

    return [scenario.describe() for scenario in SCENARIOS.values()]


def get_scenario(name: str) -> Scenario:
    """Look up a scenario by name.

    Raises:
      UnknownScenario: If ``name`` is not in the catalogue.
    """

    try:
        return SCENARIOS[name]
    except KeyError:
        raise UnknownScenario(
            f"unknown scenario {name!r}; available: {', '.join(sorted(SCENARIOS))}"
        ) from None


@dataclass(frozen=True)
class ScenarioSummary:
    """Headline figures of one run inside a comparison."""

    median: float
    p10: float
    p90: float
    mean: float
    time_series: tuple[MonthlySnapshot, ...]

    @classmethod
    def from_result(cls, result: SimulationResult) -> ScenarioSummary:
        return cls(
            median=result.median,
            p10=result.p10,
            p90=result.p90,
            mean=result.mean,
            time_series=result.time_series,
        )


@dataclass(frozen=True)
class ScenarioComparison:
    """Derived impact metrics of a stressed run against its baseline."""

    median_difference: float
    median_difference_percent: float
    p10_difference: float
    p10_difference_percent: float
    recovery_months: int | None
    impact_severity: str
    worth_stress_testing: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "medianDifference": self.median_difference,
            "medianDifferencePercent": self.median_difference_percent,
            "p10Difference": self.p10_difference,
            "p10DifferencePercent": self.p10_difference_percent,
            "recoveryMonths": self.recovery_months,
            "impactSeverity": self.impact_severity,
            "worthStressTesting": self.worth_stress_testing,
        }


@dataclass(frozen=True)
class ScenarioComparisonResult:
    scenario: Scenario
    baseline: ScenarioSummary
    stressed: ScenarioSummary
    comparison: ScenarioComparison


def _percent_of(difference: float, reference: float) -> float:
    if reference == 0:
        return 0.0
    return difference / abs(reference) * 100.0


def classify_impact(median_difference_percent: float) -> str:
    """Map ``|median difference %|`` to one of :data:`IMPACT_LEVELS`."""

    magnitude = abs(median_difference_percent)
    for level, bound in zip(IMPACT_LEVELS, _IMPACT_THRESHOLDS, strict=False):
        if magnitude < bound:
            return level
    return IMPACT_LEVELS[-1]


def find_recovery_month(
    baseline_median: np.ndarray,
    stressed_median: np.ndarray,
    start_month: int = 1,
    *,
    ratio: float = RECOVERY_RATIO,
) -> int | None:
    """First month, from ``start_month`` on, where stressed reaches ``ratio`` of baseline.

    Args:
      baseline_median: Baseline median per month.
      stressed_median: Stressed median per month.
      start_month: 1-based month at which the scan starts.
      ratio: Fraction of the baseline median considered recovered.

    Returns:
      The 1-based month index, or ``None`` if the stressed median never
      recovers within the horizon.
    """

    baseline = np.asarray(baseline_median, dtype="float64")
    stressed = np.asarray(stressed_median, dtype="float64")
    offset = max(start_month, 1) - 1
    recovered = np.flatnonzero(stressed[offset:] >= ratio * baseline[offset:])
    if recovered.size == 0:
        return None
    return int(recovered[0]) + offset + 1


def _compare(
    scenario: Scenario,
    baseline: SimulationResult,
    stressed: SimulationResult,
) -> ScenarioComparisonResult:
    median_difference = baseline.median - stressed.median
    p10_difference = baseline.p10 - stressed.p10
    median_difference_percent = _percent_of(median_difference, baseline.median)
    severity = classify_impact(median_difference_percent)
    comparison = ScenarioComparison(
        median_difference=median_difference,
        median_difference_percent=median_difference_percent,
        p10_difference=p10_difference,
        p10_difference_percent=_percent_of(p10_difference, baseline.p10),
        recovery_months=find_recovery_month(
            baseline.bands.median,
            stressed.bands.median,
            scenario.first_shock_month,
        ),
        impact_severity=severity,
        worth_stress_testing=severity != "minimal",
    )
    return ScenarioComparisonResult(
        scenario=scenario,
        baseline=ScenarioSummary.from_result(baseline),
        stressed=ScenarioSummary.from_result(stressed),
        comparison=comparison,
    )


def compare_scenario(
    config: SimulationConfig,
    scenario_name: str,
    *,
    seed: SeedLike = None,
    workers: int = 1,
) -> ScenarioComparisonResult:
    """Run ``config`` with and without the named scenario and compare them.

    Both runs share the same seed and iteration count.

    Raises:
      UnknownScenario: If ``scenario_name`` is not in the catalogue.
      InvalidConfiguration: If ``config`` is invalid.
    """

    scenario = get_scenario(scenario_name)
    shared_seed = root_sequence(seed)
    baseline = simulate(config, seed=shared_seed, workers=workers)
    return _compare(
        scenario,
        baseline,
        simulate(scenario.apply(config), seed=shared_seed, workers=workers),
    )


def compare_scenarios(
    config: SimulationConfig,
    scenario_names: Iterable[str] | None = None,
    *,
    seed: SeedLike = None,
    workers: int = 1,
    progress: ProgressCallback | None = None,
) -> list[ScenarioComparisonResult]:
    """Compare several scenarios against a single shared baseline run.

    Args:
      config: Baseline configuration.
      scenario_names: Names to run; ``None`` runs the whole catalogue.
      seed: Seed shared by the baseline and every stressed run.
      workers: Worker threads per simulation.
      progress: Optional ``progress(runs_done, total_runs)`` callback; the
        baseline counts as one run.

    Returns:
      One :class:`ScenarioComparisonResult` per scenario, in request order.
    """

    names = list(SCENARIOS) if scenario_names is None else list(scenario_names)
    scenarios = [get_scenario(name) for name in names]
    shared_seed = root_sequence(seed)
    total_runs = len(scenarios) + 1
    baseline = simulate(config, seed=shared_seed, workers=workers)
    if progress is not None:
        progress(1, total_runs)
    results = []
    for done, scenario in enumerate(scenarios, start=2):
        LOG.info("Running scenario %s", scenario.name)
        stressed = simulate(scenario.apply(config), seed=shared_seed, workers=workers)
        results.append(_compare(scenario, baseline, stressed))
        if progress is not None:
            progress(done, total_runs)
    return results


def comparison_table(results: Sequence[ScenarioComparisonResult]) -> pd.DataFrame:
    """Tabulate comparisons, most damaging scenario first."""

    records = [
        {
            "scenario": result.scenario.name,
            "severity": result.scenario.severity,
            "baseline_median": result.baseline.median,
            "stressed_median": result.stressed.median,
            "median_difference": result.comparison.median_difference,
            "median_difference_percent": result.comparison.median_difference_percent,
            "p10_difference": result.comparison.p10_difference,
            "recovery_months": result.comparison.recovery_months,
            "impact_severity": result.comparison.impact_severity,
        }
        for result in results
    ]
    frame = pd.DataFrame.from_records(records)
    if frame.empty:
        return frame
    return frame.sort_values("median_difference_percent", ascending=False).reset_index(drop=True)
