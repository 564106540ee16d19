from __future__ import annotations

import pytest

from finsim.engine.montecarlo import (
    InvalidConfiguration,
    RetirementConfig,
    simulate_retirement,
)
from finsim.engine.montecarlo.retirement import accumulation_config, withdrawal_config

MAX_PROBES = 12


def _config(**overrides: object) -> RetirementConfig:
    payload: dict[str, object] = {
        "current_age": 60,
        "retirement_age": 62,
        "life_expectancy": 70,
        "current_savings": 1_000_000.0,
        "monthly_contribution": 0.0,
        "monthly_expenses": 1_000.0,
        "iterations": 300,
        "volatility": 0.12,
    }
    payload.update(overrides)
    return RetirementConfig(**payload)  # type: ignore[arg-type]


def test_phase_configs() -> None:
    config = _config(monthly_contribution=250.0, other_income=400.0, post_retirement_return=0.03)
    accumulation = accumulation_config(config)
    assert accumulation.months == 24
    assert accumulation.monthly_contribution == 250.0
    withdrawal = withdrawal_config(config, 50_000.0)
    assert withdrawal.months == 96
    assert withdrawal.monthly_contribution == -600.0
    assert withdrawal.expected_return == 0.03
    assert withdrawal_config(config, -10.0).initial_balance == 0.0


def test_well_funded_retirement() -> None:
    result = simulate_retirement(_config(), seed=3, max_probes=MAX_PROBES)
    accumulation = result.accumulation_phase
    withdrawal = result.withdrawal_phase
    recommendations = result.recommendations

    assert accumulation.years_to_retirement == 2
    assert accumulation.total_contributions == 0.0
    assert accumulation.final_balance_p10 <= accumulation.final_balance_median
    assert accumulation.final_balance_median <= accumulation.final_balance_p90
    assert withdrawal.starting_balance == accumulation.final_balance_median
    assert withdrawal.probability_of_not_running_out == 1.0
    assert withdrawal.median_years_of_sustainability == 8.0
    assert withdrawal.years_in_retirement == 8
    assert withdrawal.net_monthly_need == 1_000.0
    assert 0.0 < withdrawal.safe_withdrawal_rate <= 1.2
    assert withdrawal.safe_monthly_withdrawal == pytest.approx(
        withdrawal.starting_balance * withdrawal.safe_withdrawal_rate / 12
    )
    assert 0.0 < recommendations.target_nest_egg <= 2 * 1_000 * 96 + 1
    assert recommendations.increase_contribution_by is None
    assert recommendations.can_retire_earlier_by == 1


def test_underfunded_retirement_recommends_more_savings() -> None:
    config = _config(current_savings=0.0, monthly_contribution=100.0, monthly_expenses=3_000.0)
    result = simulate_retirement(config, seed=5, max_probes=MAX_PROBES)
    assert result.accumulation_phase.total_contributions == 2_400.0
    assert result.withdrawal_phase.probability_of_not_running_out == 0.0
    assert result.withdrawal_phase.median_years_of_sustainability == pytest.approx(1 / 12)
    increase = result.recommendations.increase_contribution_by
    assert increase is not None and increase > 0
    assert result.recommendations.can_retire_earlier_by is None
    assert result.recommendations.target_nest_egg > 100_000


def test_income_covering_expenses_needs_no_nest_egg() -> None:
    config = _config(current_savings=0.0, monthly_expenses=1_500.0, other_income=2_000.0)
    result = simulate_retirement(config, seed=1, max_probes=MAX_PROBES)
    assert result.recommendations.target_nest_egg == 0.0
    assert result.withdrawal_phase.probability_of_not_running_out == 1.0
    assert result.withdrawal_phase.net_monthly_need == -500.0


def test_already_retired_skips_accumulation() -> None:
    config = _config(current_age=65, retirement_age=65, current_savings=400_000.0)
    result = simulate_retirement(config, seed=2, max_probes=MAX_PROBES)
    accumulation = result.accumulation_phase
    assert accumulation.final_balance_median == 400_000.0
    assert accumulation.final_balance_p10 == 400_000.0
    assert accumulation.final_balance_p90 == 400_000.0
    assert accumulation.total_contributions == 0.0
    assert accumulation.years_to_retirement == 0
    assert result.recommendations.increase_contribution_by is None
    assert result.recommendations.can_retire_earlier_by is None


def test_indexed_contributions_are_totalled() -> None:
    config = _config(monthly_contribution=100.0, inflation_rate=0.1)
    result = simulate_retirement(config, seed=2, max_probes=MAX_PROBES)
    assert result.accumulation_phase.total_contributions == pytest.approx(1_200.0 + 1_320.0)


def test_retirement_is_reproducible() -> None:
    config = _config(current_savings=200_000.0, monthly_contribution=500.0)
    first = simulate_retirement(config, seed=9, max_probes=MAX_PROBES)
    second = simulate_retirement(config, seed=9, max_probes=MAX_PROBES)
    assert first.to_dict() == second.to_dict()
    assert set(first.to_dict()) == {"accumulation_phase", "withdrawal_phase", "recommendations"}


def test_invalid_ages_raise() -> None:
    with pytest.raises(InvalidConfiguration):
        simulate_retirement(_config(life_expectancy=60), seed=1)
