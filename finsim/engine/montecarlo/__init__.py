"""Monte Carlo simulation engine for savings goals, stress tests and retirement."""

from .allocation import RISK_TOLERANCES, RecommendedAllocation, recommended_allocation
from .config import SHOCK_KINDS, RetirementConfig, Shock, SimulationConfig
from .engine import SimulationResult, simulate
from .errors import (
    EmptyDistribution,
    InvalidConfiguration,
    SimulationCancelled,
    SimulationError,
    TargetUnreachable,
    UnknownScenario,
)
from .goals import GoalProbability, evaluate_goal, run_what_if
from .retirement import RetirementResult, simulate_retirement
from .scenarios import (
    SCENARIOS,
    Scenario,
    ScenarioComparisonResult,
    compare_scenario,
    compare_scenarios,
    comparison_table,
    get_scenario,
    list_scenarios,
)
from .solver import (
    SolverOutcome,
    find_required_contribution,
    solve_required_contribution,
    success_probability,
)
from .stats import (
    MonthlySnapshot,
    calculate_expected_shortfall,
    calculate_success_rate,
    sustainability_rate,
)

__all__ = [
    "RISK_TOLERANCES",
    "RecommendedAllocation",
    "recommended_allocation",
    "SHOCK_KINDS",
    "RetirementConfig",
    "Shock",
    "SimulationConfig",
    "SimulationResult",
    "simulate",
    "EmptyDistribution",
    "InvalidConfiguration",
    "SimulationCancelled",
    "SimulationError",
    "TargetUnreachable",
    "UnknownScenario",
    "GoalProbability",
    "evaluate_goal",
    "run_what_if",
    "RetirementResult",
    "simulate_retirement",
    "SCENARIOS",
    "Scenario",
    "ScenarioComparisonResult",
    "compare_scenario",
    "compare_scenarios",
    "comparison_table",
    "get_scenario",
    "list_scenarios",
    "SolverOutcome",
    "find_required_contribution",
    "solve_required_contribution",
    "success_probability",
    "MonthlySnapshot",
    "calculate_expected_shortfall",
    "calculate_success_rate",
    "sustainability_rate",
]
