"""Risk-profile assumptions and horizon-tilted allocations."""

from __future__ import annotations

import pytest

from finsim.engine.montecarlo import (
    RISK_TOLERANCES,
    InvalidConfiguration,
    SimulationConfig,
    recommended_allocation,
)


@pytest.mark.parametrize(
    ("tolerance", "years", "expected"),
    [
        ("conservative", 5, (40.0, 55.0, 5.0)),
        ("conservative", 10, (40.0, 55.0, 5.0)),
        ("conservative", 15, (50.0, 45.0, 5.0)),
        ("moderate", 20, (80.0, 15.0, 5.0)),
        ("moderate", 40, (80.0, 15.0, 5.0)),
        ("aggressive", 12, (84.0, 11.0, 5.0)),
        ("aggressive", 30, (95.0, 5.0, 0.0)),
    ],
)
def test_allocation_tilts_with_horizon(
    tolerance: str, years: float, expected: tuple[float, float, float]
) -> None:
    allocation = recommended_allocation(tolerance, years).allocation
    assert (allocation.stocks, allocation.bonds, allocation.cash) == pytest.approx(expected)
    assert allocation.stocks + allocation.bonds + allocation.cash == pytest.approx(100.0)


def test_profiles_carry_return_and_volatility() -> None:
    profiles = [recommended_allocation(name, 20) for name in RISK_TOLERANCES]
    returns = [profile.expected_return for profile in profiles]
    vols = [profile.volatility for profile in profiles]
    assert returns == sorted(returns)
    assert vols == sorted(vols)
    assert profiles[1].to_dict()["allocation"] == {"stocks": 80.0, "bonds": 15.0, "cash": 5.0}


def test_apply_overrides_simulation_assumptions(small_config: SimulationConfig) -> None:
    applied = recommended_allocation("aggressive", 25).apply(small_config)
    assert applied.expected_return == 0.09
    assert applied.volatility == 0.20
    assert applied.monthly_contribution == small_config.monthly_contribution
    assert small_config.expected_return == 0.06


def test_rejects_unknown_tolerance_and_negative_horizon() -> None:
    with pytest.raises(InvalidConfiguration, match="risk tolerance"):
        recommended_allocation("reckless", 10)
    with pytest.raises(InvalidConfiguration, match="years_to_retirement"):
        recommended_allocation("moderate", -1)
