"""Validation of simulation and retirement configuration files."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from finsim.engine.montecarlo import RetirementConfig, SimulationConfig
from finsim.engine.validate import ValidationSummary, validate_config_file


def _write_yaml(path: Path, payload: object) -> Path:
    """Serialize ``payload`` to ``path`` using UTF-8 encoding."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(payload, sort_keys=True), encoding="utf-8")
    return path


def _simulation(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "initial_balance": 100_000,
        "monthly_contribution": 1_000,
        "months": 120,
        "iterations": 10_000,
        "expected_return": 0.07,
        "volatility": 0.15,
    }
    payload.update(overrides)
    return payload


def _retirement(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "current_age": 40,
        "retirement_age": 65,
        "life_expectancy": 90,
        "current_savings": 150_000,
        "monthly_contribution": 1_500,
        "monthly_expenses": 5_000,
        "other_income": 2_000,
    }
    payload.update(overrides)
    return payload


def test_valid_simulation_file(tmp_path: Path) -> None:
    path = _write_yaml(
        tmp_path / "simulation.yml",
        _simulation(
            inflation_rate=0.02,
            shocks=[{"kind": "cash_flow", "start_month": 3, "magnitude": -5_000}],
        ),
    )
    summary = validate_config_file(path)
    assert isinstance(summary, ValidationSummary)
    assert summary.ok, summary.errors
    assert summary.warnings == []
    config = summary.configs["simulation"]
    assert config["months"] == 120
    assert config["shocks"] == [
        {"kind": "cash_flow", "start_month": 3, "duration_months": 1, "magnitude": -5_000.0}
    ]
    parsed = SimulationConfig.from_mapping(config).validate()
    assert parsed.inflation_rate == 0.02


def test_simulation_defaults_are_filled(tmp_path: Path) -> None:
    summary = validate_config_file(_write_yaml(tmp_path / "sim.yml", {"months": 6}))
    config = summary.configs["simulation"]
    assert config["iterations"] == 10_000
    assert config["expected_return"] == 0.07
    assert config["volatility"] == 0.15
    assert config["shocks"] == []


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"months": 0}, "simulation.months must be >= 1"),
        ({"months": None}, "simulation.months must be an integer"),
        ({"iterations": 2.5}, "simulation.iterations must be an integer"),
        ({"volatility": -0.1}, "simulation.volatility must be >= 0.0"),
        ({"expected_return": "high"}, "simulation.expected_return must be a finite number"),
        ({"initial_balance": -5}, "simulation.initial_balance must be >= 0.0"),
        ({"target_success_rate": 1.5}, "simulation.target_success_rate must be <= 1.0"),
        ({"floor_at_zero": "yes"}, "simulation.floor_at_zero must be true or false"),
        ({"shocks": {"kind": "cash_flow"}}, "simulation.shocks must be a list"),
        ({"shocks": [{"kind": "meteor"}]}, "simulation.shocks[0].kind must be one of"),
        (
            {"shocks": [{"kind": "return_override", "magnitude": -1.0}]},
            "simulation.shocks[0].magnitude must be > -1.0",
        ),
        (
            {"shocks": [{"kind": "market_shock", "magnitude": -1.2}]},
            "simulation.shocks[0].magnitude must be > -1.0",
        ),
        (
            {"shocks": [{"kind": "market_shock", "magnitude": -0.3, "recovery_months": -2}]},
            "simulation.shocks[0].recovery_months must be >= 0",
        ),
    ],
)
def test_invalid_simulation_values(
    tmp_path: Path, overrides: dict[str, object], message: str
) -> None:
    summary = validate_config_file(_write_yaml(tmp_path / "sim.yml", _simulation(**overrides)))
    assert not summary.ok
    assert any(error.startswith(message) for error in summary.errors), summary.errors
    assert "simulation" not in summary.configs


def test_simulation_warnings(tmp_path: Path) -> None:
    payload = _simulation(
        iterations=60_000,
        expected_return=0.4,
        volatility=0.9,
        inflation_adjusted_contributions=True,
        colour="blue",
    )
    summary = validate_config_file(_write_yaml(tmp_path / "sim.yml", payload))
    assert summary.ok
    joined = "\n".join(summary.warnings)
    assert "simulation.colour: unknown key ignored" in joined
    assert "simulation.iterations" in joined
    assert "simulation.expected_return" in joined
    assert "simulation.volatility" in joined
    assert "without inflation_rate" in joined


def test_valid_retirement_file(tmp_path: Path) -> None:
    path = _write_yaml(tmp_path / "retirement.yml", _retirement(post_retirement_return=0.05))
    summary = validate_config_file(path, kind="retirement")
    assert summary.ok, summary.errors
    config = RetirementConfig.from_mapping(summary.configs["retirement"]).validate()
    assert config.months_to_retirement == 300
    assert config.withdrawal_return == 0.05


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"retirement_age": 30}, "retirement.retirement_age must be >= current_age"),
        ({"life_expectancy": 65}, "retirement.life_expectancy must be greater"),
        ({"target_success_rate": 1.0}, "retirement.target_success_rate must be < 1"),
        ({"current_age": None}, "retirement.current_age must be an integer"),
        ({"monthly_expenses": -1}, "retirement.monthly_expenses must be >= 0.0"),
    ],
)
def test_invalid_retirement_values(
    tmp_path: Path, overrides: dict[str, object], message: str
) -> None:
    path = _write_yaml(tmp_path / "retirement.yml", _retirement(**overrides))
    summary = validate_config_file(path, kind="retirement")
    assert not summary.ok
    assert any(error.startswith(message) for error in summary.errors), summary.errors


def test_retirement_income_warning(tmp_path: Path) -> None:
    path = _write_yaml(tmp_path / "retirement.yml", _retirement(other_income=6_000))
    summary = validate_config_file(path, kind="retirement")
    assert summary.ok
    assert any("other_income covers monthly_expenses" in w for w in summary.warnings)


def test_missing_empty_and_non_mapping_files(tmp_path: Path) -> None:
    missing = validate_config_file(tmp_path / "absent.yml")
    assert missing.errors == [f"missing file at {tmp_path / 'absent.yml'}"]

    empty = tmp_path / "empty.yml"
    empty.write_text("", encoding="utf-8")
    assert "is empty" in validate_config_file(empty).errors[0]

    listing = _write_yaml(tmp_path / "list.yml", [1, 2, 3])
    assert validate_config_file(listing).errors == [f"expected a mapping at {listing}"]


def test_unknown_kind_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="kind must be one of"):
        validate_config_file(tmp_path / "x.yml", kind="portfolio")


def test_market_shock_keeps_recovery_window(tmp_path: Path) -> None:
    shock = {
        "kind": "market_shock",
        "start_month": 24,
        "duration_months": 12,
        "recovery_months": 24,
        "magnitude": -0.5,
    }
    summary = validate_config_file(_write_yaml(tmp_path / "sim.yml", _simulation(shocks=[shock])))
    assert summary.ok, summary.errors
    assert summary.configs["simulation"]["shocks"] == [{**shock, "magnitude": -0.5}]
    parsed = SimulationConfig.from_mapping(summary.configs["simulation"]).validate()
    assert parsed.shocks[0].recovery_months == 24
