"""Tests for return sampling, monthly plans and trajectory compounding."""

from __future__ import annotations

import math

import numpy as np

from finsim.engine.montecarlo import Shock, SimulationConfig
from finsim.engine.montecarlo.sampler import ReturnSampler, monthly_mean, monthly_volatility
from finsim.engine.montecarlo.trials import (
    build_contribution_schedule,
    build_monthly_plan,
    run_batch,
    run_trial,
)


def _config(**overrides: object) -> SimulationConfig:
    payload: dict[str, object] = {
        "initial_balance": 100.0,
        "monthly_contribution": -30.0,
        "months": 5,
        "iterations": 1,
        "expected_return": 0.0,
        "volatility": 0.0,
    }
    payload.update(overrides)
    return SimulationConfig(**payload)  # type: ignore[arg-type]


def test_monthly_mean_compounds_to_annual() -> None:
    monthly = float(monthly_mean(0.07))
    assert math.isclose((1.0 + monthly) ** 12, 1.07, rel_tol=1e-12)


def test_monthly_volatility_scales_by_sqrt_twelve() -> None:
    assert math.isclose(float(monthly_volatility(0.12)), 0.12 / math.sqrt(12.0))


def test_sampler_draws_are_reproducible() -> None:
    first = ReturnSampler.from_annual(0.07, 0.15, np.random.default_rng(3))
    second = ReturnSampler.from_annual(0.07, 0.15, np.random.default_rng(3))
    np.testing.assert_array_equal(first.standard_draws(4, 6), second.standard_draws(4, 6))
    assert first.standard_draws(4, 6).shape == (4, 6)


def test_sampler_without_volatility_returns_mean() -> None:
    sampler = ReturnSampler.from_annual(0.05, 0.0, np.random.default_rng(0))
    assert sampler.sample_month() == sampler.mean


def test_returns_from_broadcasts_monthly_parameters() -> None:
    sampler = ReturnSampler.from_annual(0.05, 0.1, np.random.default_rng(0))
    draws = np.zeros((3, 4))
    means = np.array([0.01, 0.02, 0.03])
    returns = sampler.returns_from(draws, means, np.ones(3))
    np.testing.assert_allclose(returns, np.repeat(means[:, None], 4, axis=1))


def test_contribution_schedule_indexes_once_per_year() -> None:
    schedule = build_contribution_schedule(30, 100.0, 0.1, indexed=True)
    np.testing.assert_allclose(schedule[:12], 100.0)
    np.testing.assert_allclose(schedule[12:24], 110.0)
    np.testing.assert_allclose(schedule[24:], 121.0)


def test_contribution_schedule_flat_without_indexation() -> None:
    schedule = build_contribution_schedule(30, 100.0, 0.1, indexed=False)
    np.testing.assert_allclose(schedule, 100.0)


def test_monthly_plan_applies_shocks_in_windows() -> None:
    config = _config(
        monthly_contribution=50.0,
        months=12,
        expected_return=0.06,
        volatility=0.2,
        shocks=(
            Shock("contribution_scale", 2, 2, 0.0),
            Shock("cash_flow", 4, 1, -1_000.0),
            Shock("return_override", 5, 1, -0.3),
            Shock("return_shift", 6, 2, -0.06),
            Shock("volatility_scale", 11, 5, 2.0),
        ),
    )
    plan = build_monthly_plan(config)
    np.testing.assert_allclose(plan.contribution, [50, 0, 0] + [50] * 9)
    assert plan.cash_flow[3] == -1_000.0
    assert np.count_nonzero(plan.cash_flow) == 1
    assert plan.forced_return[4] == -0.3
    assert np.isnan(np.delete(plan.forced_return, 4)).all()
    np.testing.assert_allclose(plan.mean[5:7], 0.0, atol=1e-15)
    assert plan.mean[0] > 0
    base_sigma = float(monthly_volatility(0.2))
    np.testing.assert_allclose(plan.stdev[10:], 2 * base_sigma)
    np.testing.assert_allclose(plan.stdev[:10], base_sigma)


def test_run_trial_matches_closed_form_without_volatility() -> None:
    config = _config(initial_balance=1_000.0, monthly_contribution=10.0, months=24,
                     expected_return=0.05)
    sampler = ReturnSampler.from_annual(0.05, 0.0, np.random.default_rng(0))
    path = run_trial(config, sampler)
    rate = float(monthly_mean(0.05))
    balance = 1_000.0
    for _ in range(24):
        balance = balance * (1 + rate) + 10.0
    assert math.isclose(path.final_value, balance, rel_tol=1e-12)
    assert path.balances.shape == (24,)
    assert path.depletion_month == 0


def test_run_batch_records_depletion_without_clamping() -> None:
    config = _config()
    plan = build_monthly_plan(config)
    sampler = ReturnSampler.from_annual(0.0, 0.0, np.random.default_rng(0))
    out = np.empty((5, 2))
    depletion = np.zeros(2, dtype="int64")
    run_batch(plan, sampler, 100.0, out, depletion)
    np.testing.assert_allclose(out[:, 0], [70.0, 40.0, 10.0, -20.0, -50.0])
    np.testing.assert_array_equal(depletion, [4, 4])


def test_run_batch_floor_at_zero_keeps_depletion_month() -> None:
    config = _config(floor_at_zero=True)
    plan = build_monthly_plan(config)
    sampler = ReturnSampler.from_annual(0.0, 0.0, np.random.default_rng(0))
    out = np.empty((5, 1))
    depletion = np.zeros(1, dtype="int64")
    run_batch(plan, sampler, 100.0, out, depletion, floor_at_zero=True)
    np.testing.assert_allclose(out[:, 0], [70.0, 40.0, 10.0, 0.0, 0.0])
    assert depletion[0] == 4


def test_forced_return_replaces_sampled_return() -> None:
    config = _config(
        initial_balance=1_000.0,
        monthly_contribution=0.0,
        months=2,
        volatility=0.3,
        shocks=(Shock("return_override", 1, 1, -0.5),),
    )
    plan = build_monthly_plan(config)
    sampler = ReturnSampler.from_annual(0.0, 0.3, np.random.default_rng(1))
    out = np.empty((2, 8))
    run_batch(plan, sampler, 1_000.0, out, np.zeros(8, dtype="int64"))
    np.testing.assert_allclose(out[0], 500.0)


def test_market_shock_spreads_decline_then_recovers() -> None:
    config = _config(
        months=36,
        shocks=(Shock("market_shock", 12, 6, -0.30, recovery_months=12),),
    )
    forced = build_monthly_plan(config).forced_return
    assert np.isnan(forced[:11]).all()
    np.testing.assert_allclose(forced[11:17], -0.05)
    expected_recovery = 0.30 / 12 * (1.0 - np.arange(12) / 12)
    np.testing.assert_allclose(forced[17:29], expected_recovery)
    assert np.isnan(forced[29:]).all()


def test_market_shock_recovery_is_truncated_at_horizon() -> None:
    config = _config(
        months=8,
        shocks=(Shock("market_shock", 5, 2, 0.40, recovery_months=10),),
    )
    forced = build_monthly_plan(config).forced_return
    np.testing.assert_allclose(forced[4:6], 0.20)
    np.testing.assert_allclose(forced[6:], [-0.04, -0.036])


def test_market_shock_without_recovery_only_touches_its_window() -> None:
    config = _config(months=6, shocks=(Shock("market_shock", 2, 2, 0.10),))
    forced = build_monthly_plan(config).forced_return
    np.testing.assert_allclose(forced[1:3], 0.05)
    assert np.isnan(np.delete(forced, [1, 2])).all()


def test_growth_factor_never_turns_negative() -> None:
    config = _config(initial_balance=1_000.0, monthly_contribution=0.0, months=60,
                     expected_return=0.05, volatility=2.0)
    plan = build_monthly_plan(config)
    out = np.empty((60, 400))
    run_batch(plan, ReturnSampler.from_annual(0.05, 2.0, np.random.default_rng(1)),
              1_000.0, out, np.zeros(400, dtype="int64"))
    assert (out >= 0.0).all()


def test_higher_contribution_never_ends_lower_at_extreme_volatility() -> None:
    finals = []
    for contribution in (0.0, 100.0, 200.0, 800.0):
        config = _config(initial_balance=1_000.0, monthly_contribution=contribution, months=60,
                         expected_return=0.05, volatility=2.0)
        out = np.empty((60, 400))
        sampler = ReturnSampler.from_annual(0.05, 2.0, np.random.default_rng(5))
        run_batch(build_monthly_plan(config), sampler, 1_000.0, out,
                  np.zeros(400, dtype="int64"))
        finals.append(out[-1].copy())
    for lower, higher in zip(finals, finals[1:]):
        assert (higher >= lower).all()
