"""Unit tests for simulation and retirement configurations."""

from __future__ import annotations

import math

import pytest

from finsim.engine.montecarlo import (
    InvalidConfiguration,
    RetirementConfig,
    Shock,
    SimulationConfig,
)


def _config(**overrides: object) -> SimulationConfig:
    payload: dict[str, object] = {
        "initial_balance": 1_000.0,
        "monthly_contribution": 100.0,
        "months": 12,
        "iterations": 50,
        "expected_return": 0.05,
        "volatility": 0.1,
    }
    payload.update(overrides)
    return SimulationConfig(**payload)  # type: ignore[arg-type]


def test_from_mapping_accepts_camel_case_keys() -> None:
    config = SimulationConfig.from_mapping(
        {
            "initialBalance": 2_500,
            "monthlyContribution": -50,
            "months": 18,
            "iterations": 200,
            "expectedReturn": 0.04,
            "returnVolatility": 0.08,
            "inflationRate": 0.02,
            "shocks": [{"type": "cash_flow", "startMonth": 3, "magnitude": -500}],
        }
    )
    assert config.initial_balance == 2_500.0
    assert config.monthly_contribution == -50.0
    assert config.months == 18
    assert config.volatility == 0.08
    assert config.inflation_rate == 0.02
    assert config.shocks == (Shock("cash_flow", 3, 1, -500.0),)


def test_from_mapping_reads_recovery_window() -> None:
    config = SimulationConfig.from_mapping(
        {
            "months": 48,
            "shocks": [
                {
                    "type": "market_shock",
                    "magnitude": -0.3,
                    "startMonth": 12,
                    "durationMonths": 6,
                    "recoveryMonths": 12,
                }
            ],
        }
    )
    assert config.shocks == (Shock("market_shock", 12, 6, -0.3, recovery_months=12),)
    assert config.validate() is config


def test_from_mapping_defaults() -> None:
    config = SimulationConfig.from_mapping({"months": 6})
    assert config.iterations == 10_000
    assert config.expected_return == 0.07
    assert config.volatility == 0.15
    assert config.inflation_rate is None
    assert config.shocks == ()


def test_validate_returns_self() -> None:
    config = _config()
    assert config.validate() is config


@pytest.mark.parametrize(
    "overrides",
    [
        {"months": 0},
        {"months": -3},
        {"iterations": 0},
        {"volatility": -0.01},
        {"initial_balance": -1.0},
        {"expected_return": -1.0},
        {"expected_return": math.nan},
        {"monthly_contribution": math.inf},
        {"inflation_rate": -1.5},
    ],
)
def test_validate_rejects_invalid_fields(overrides: dict[str, object]) -> None:
    with pytest.raises(InvalidConfiguration):
        _config(**overrides).validate()


@pytest.mark.parametrize(
    "shock",
    [
        Shock("teleport", 1, 1, 0.0),
        Shock("cash_flow", 0, 1, -10.0),
        Shock("cash_flow", 1, 0, -10.0),
        Shock("return_override", 1, 1, -1.0),
        Shock("volatility_scale", 1, 3, -2.0),
        Shock("market_shock", 1, 1, -1.0),
        Shock("market_shock", 1, 2, -0.3, recovery_months=-1),
    ],
)
def test_validate_rejects_malformed_shocks(shock: Shock) -> None:
    with pytest.raises(InvalidConfiguration):
        _config(shocks=(shock,)).validate()


def test_invalid_configuration_is_value_error() -> None:
    with pytest.raises(ValueError, match="months"):
        _config(months=0).validate()


def test_with_overrides_leaves_original_untouched() -> None:
    config = _config()
    changed = config.with_overrides(monthly_contribution=300.0)
    assert changed.monthly_contribution == 300.0
    assert config.monthly_contribution == 100.0


def test_with_shocks_appends() -> None:
    first = Shock("cash_flow", 1, 1, -10.0)
    second = Shock("contribution_scale", 2, 3, 0.0)
    config = _config(shocks=(first,)).with_shocks([second])
    assert config.shocks == (first, second)
    assert second.end_month == 4


def test_retirement_properties() -> None:
    config = RetirementConfig(
        current_age=30,
        retirement_age=65,
        life_expectancy=90,
        current_savings=50_000.0,
        monthly_contribution=800.0,
        monthly_expenses=4_000.0,
        other_income=1_500.0,
    )
    assert config.months_to_retirement == 420
    assert config.months_in_retirement == 300
    assert config.net_monthly_need == 2_500.0
    assert config.withdrawal_return == config.expected_return
    assert config.validate() is config


def test_retirement_from_mapping_aliases() -> None:
    config = RetirementConfig.from_mapping(
        {
            "currentAge": 50,
            "retirementAge": 60,
            "lifeExpectancy": 85,
            "initialBalance": 10_000,
            "monthlyContribution": 500,
            "monthlyExpenses": 3_000,
            "socialSecurityIncome": 1_000,
            "postRetirementReturn": 0.04,
        }
    )
    assert config.current_savings == 10_000.0
    assert config.other_income == 1_000.0
    assert config.withdrawal_return == 0.04
    assert config.target_success_rate == 0.75


@pytest.mark.parametrize(
    "overrides",
    [
        {"retirement_age": 25},
        {"life_expectancy": 65},
        {"current_savings": -1.0},
        {"monthly_expenses": -10.0},
        {"target_success_rate": 1.0},
        {"iterations": 0},
    ],
)
def test_retirement_validate_rejects(overrides: dict[str, object]) -> None:
    payload: dict[str, object] = {
        "current_age": 30,
        "retirement_age": 65,
        "life_expectancy": 90,
        "current_savings": 0.0,
        "monthly_contribution": 0.0,
        "monthly_expenses": 1_000.0,
    }
    payload.update(overrides)
    with pytest.raises(InvalidConfiguration):
        RetirementConfig(**payload).validate()  # type: ignore[arg-type]
