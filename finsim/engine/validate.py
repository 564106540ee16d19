"""Validation utilities for finsim configuration files.

The validator reads the YAML documents consumed by the CLI and records human
readable diagnostics instead of stopping at the first problem. Hard errors
prevent a run; warnings flag values that are legal but probably unintended
(very large iteration counts, implausible return assumptions). The payloads
that pass are returned normalised, ready for
:meth:`~finsim.engine.montecarlo.config.SimulationConfig.from_mapping`.
"""

from __future__ import annotations

# ruff: noqa: ANN401
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from finsim.engine.montecarlo.config import SHOCK_KINDS
from finsim.engine.montecarlo.engine import HIGH_ITERATION_WARNING
from finsim.engine.utils.io import read_yaml

__all__ = [
    "CONFIG_KINDS",
    "ValidationSummary",
    "validate_simulation_payload",
    "validate_retirement_payload",
    "validate_config_file",
]

CONFIG_KINDS: tuple[str, ...] = ("simulation", "retirement")

_SIMULATION_KEYS = frozenset(
    {
        "initial_balance",
        "monthly_contribution",
        "months",
        "iterations",
        "expected_return",
        "volatility",
        "inflation_rate",
        "inflation_adjusted_contributions",
        "floor_at_zero",
        "shocks",
        "target_amount",
        "target_success_rate",
    }
)
_RETIREMENT_KEYS = frozenset(
    {
        "current_age",
        "retirement_age",
        "life_expectancy",
        "current_savings",
        "monthly_contribution",
        "monthly_expenses",
        "other_income",
        "expected_return",
        "volatility",
        "post_retirement_return",
        "iterations",
        "inflation_rate",
        "target_success_rate",
    }
)


@dataclass(slots=True)
class ValidationSummary:
    """Diagnostics and normalised payloads produced by the validator.

    Attributes:
      errors: Problems that make the configuration unusable.
      warnings: Soft diagnostics about suspicious values.
      configs: Mapping between config kind and its normalised payload.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    configs: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _as_float(
    value: Any,
    *,
    path: str,
    errors: list[str],
    minimum: float | None = None,
    maximum: float | None = None,
    exclusive_minimum: bool = False,
) -> float | None:
    """Validate ``value`` as a finite float returning it when valid."""

    if not _is_number(value) or not math.isfinite(float(value)):
        errors.append(f"{path} must be a finite number")
        return None
    number = float(value)
    if minimum is not None:
        if exclusive_minimum and number <= minimum:
            errors.append(f"{path} must be > {minimum}")
            return None
        if not exclusive_minimum and number < minimum:
            errors.append(f"{path} must be >= {minimum}")
            return None
    if maximum is not None and number > maximum:
        errors.append(f"{path} must be <= {maximum}")
        return None
    return number


def _as_int(
    value: Any,
    *,
    path: str,
    errors: list[str],
    minimum: int | None = None,
) -> int | None:
    if not isinstance(value, int) or isinstance(value, bool):
        errors.append(f"{path} must be an integer")
        return None
    if minimum is not None and value < minimum:
        errors.append(f"{path} must be >= {minimum}")
        return None
    return value


def _as_bool(value: Any, *, path: str, errors: list[str]) -> bool | None:
    if not isinstance(value, bool):
        errors.append(f"{path} must be true or false")
        return None
    return value


def _warn_unknown(
    payload: dict[str, Any],
    known: frozenset[str],
    *,
    label: str,
    warnings: list[str],
) -> None:
    for key in sorted(set(payload) - known):
        warnings.append(f"{label}.{key}: unknown key ignored")


def _validate_shocks(value: Any, *, errors: list[str]) -> list[dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        errors.append("simulation.shocks must be a list")
        return []
    shocks: list[dict[str, Any]] = []
    for idx, entry in enumerate(value):
        path = f"simulation.shocks[{idx}]"
        if not isinstance(entry, dict):
            errors.append(f"{path} must be a mapping")
            continue
        kind = entry.get("kind")
        if kind not in SHOCK_KINDS:
            errors.append(f"{path}.kind must be one of {', '.join(SHOCK_KINDS)}")
            continue
        start = _as_int(
            entry.get("start_month", 1),
            path=f"{path}.start_month",
            errors=errors,
            minimum=1,
        )
        duration = _as_int(
            entry.get("duration_months", 1),
            path=f"{path}.duration_months",
            errors=errors,
            minimum=1,
        )
        minimum = 0.0 if kind in {"volatility_scale", "contribution_scale"} else None
        if kind in {"return_override", "market_shock"}:
            magnitude = _as_float(
                entry.get("magnitude"),
                path=f"{path}.magnitude",
                errors=errors,
                minimum=-1.0,
                exclusive_minimum=True,
            )
        else:
            magnitude = _as_float(
                entry.get("magnitude"), path=f"{path}.magnitude", errors=errors, minimum=minimum
            )
        if None in (start, duration, magnitude):
            continue
        shock = {
            "kind": kind,
            "start_month": start,
            "duration_months": duration,
            "magnitude": magnitude,
        }
        if kind == "market_shock":
            recovery = _as_int(
                entry.get("recovery_months", 0),
                path=f"{path}.recovery_months",
                errors=errors,
                minimum=0,
            )
            if recovery is None:
                continue
            shock["recovery_months"] = recovery
        shocks.append(shock)
    return shocks


def _common_warnings(payload: dict[str, Any], *, label: str, warnings: list[str]) -> None:
    iterations = payload.get("iterations")
    if iterations is not None and iterations > HIGH_ITERATION_WARNING:
        warnings.append(
            f"{label}.iterations: {iterations} trials per run is slow for interactive use"
        )
    expected_return = payload.get("expected_return")
    if expected_return is not None and abs(expected_return) > 0.25:
        warnings.append(f"{label}.expected_return: {expected_return:.2%} is an unusual assumption")
    volatility = payload.get("volatility")
    if volatility is not None and volatility > 0.6:
        warnings.append(f"{label}.volatility: {volatility:.2%} is an unusual assumption")


def validate_simulation_payload(
    payload: Any,
    *,
    summary: ValidationSummary,
) -> dict[str, Any] | None:
    """Validate a simulation mapping, recording diagnostics on ``summary``."""

    errors = summary.errors
    if not isinstance(payload, dict):
        errors.append("simulation must be a mapping")
        return None
    _warn_unknown(payload, _SIMULATION_KEYS, label="simulation", warnings=summary.warnings)
    error_count = len(errors)
    config: dict[str, Any] = {
        "initial_balance": _as_float(
            payload.get("initial_balance", 0.0),
            path="simulation.initial_balance",
            errors=errors,
            minimum=0.0,
        ),
        "monthly_contribution": _as_float(
            payload.get("monthly_contribution", 0.0),
            path="simulation.monthly_contribution",
            errors=errors,
        ),
        "months": _as_int(payload.get("months"), path="simulation.months", errors=errors, minimum=1),
        "iterations": _as_int(
            payload.get("iterations", 10_000),
            path="simulation.iterations",
            errors=errors,
            minimum=1,
        ),
        "expected_return": _as_float(
            payload.get("expected_return", 0.07),
            path="simulation.expected_return",
            errors=errors,
            minimum=-1.0,
            exclusive_minimum=True,
        ),
        "volatility": _as_float(
            payload.get("volatility", 0.15),
            path="simulation.volatility",
            errors=errors,
            minimum=0.0,
        ),
        "inflation_adjusted_contributions": _as_bool(
            payload.get("inflation_adjusted_contributions", False),
            path="simulation.inflation_adjusted_contributions",
            errors=errors,
        ),
        "floor_at_zero": _as_bool(
            payload.get("floor_at_zero", False),
            path="simulation.floor_at_zero",
            errors=errors,
        ),
        "shocks": _validate_shocks(payload.get("shocks"), errors=errors),
    }
    if payload.get("inflation_rate") is not None:
        config["inflation_rate"] = _as_float(
            payload["inflation_rate"],
            path="simulation.inflation_rate",
            errors=errors,
            minimum=-1.0,
            exclusive_minimum=True,
        )
    if payload.get("target_amount") is not None:
        config["target_amount"] = _as_float(
            payload["target_amount"], path="simulation.target_amount", errors=errors
        )
    if payload.get("target_success_rate") is not None:
        config["target_success_rate"] = _as_float(
            payload["target_success_rate"],
            path="simulation.target_success_rate",
            errors=errors,
            minimum=0.0,
            maximum=1.0,
            exclusive_minimum=True,
        )
    if len(errors) != error_count:
        return None
    if config["inflation_adjusted_contributions"] and "inflation_rate" not in config:
        summary.warnings.append(
            "simulation.inflation_adjusted_contributions has no effect without inflation_rate"
        )
    _common_warnings(config, label="simulation", warnings=summary.warnings)
    return config


def validate_retirement_payload(
    payload: Any,
    *,
    summary: ValidationSummary,
) -> dict[str, Any] | None:
    """Validate a retirement mapping, recording diagnostics on ``summary``."""

    errors = summary.errors
    if not isinstance(payload, dict):
        errors.append("retirement must be a mapping")
        return None
    _warn_unknown(payload, _RETIREMENT_KEYS, label="retirement", warnings=summary.warnings)
    error_count = len(errors)
    config: dict[str, Any] = {
        "current_age": _as_int(
            payload.get("current_age"), path="retirement.current_age", errors=errors, minimum=0
        ),
        "retirement_age": _as_int(
            payload.get("retirement_age"),
            path="retirement.retirement_age",
            errors=errors,
            minimum=0,
        ),
        "life_expectancy": _as_int(
            payload.get("life_expectancy"),
            path="retirement.life_expectancy",
            errors=errors,
            minimum=1,
        ),
        "iterations": _as_int(
            payload.get("iterations", 10_000),
            path="retirement.iterations",
            errors=errors,
            minimum=1,
        ),
    }
    for key, minimum in (
        ("current_savings", 0.0),
        ("monthly_contribution", None),
        ("monthly_expenses", 0.0),
        ("other_income", 0.0),
        ("volatility", 0.0),
    ):
        default = 0.15 if key == "volatility" else 0.0
        config[key] = _as_float(
            payload.get(key, default), path=f"retirement.{key}", errors=errors, minimum=minimum
        )
    config["expected_return"] = _as_float(
        payload.get("expected_return", 0.07),
        path="retirement.expected_return",
        errors=errors,
        minimum=-1.0,
        exclusive_minimum=True,
    )
    config["target_success_rate"] = _as_float(
        payload.get("target_success_rate", 0.75),
        path="retirement.target_success_rate",
        errors=errors,
        minimum=0.0,
        maximum=1.0,
        exclusive_minimum=True,
    )
    for key in ("post_retirement_return", "inflation_rate"):
        if payload.get(key) is not None:
            config[key] = _as_float(
                payload[key],
                path=f"retirement.{key}",
                errors=errors,
                minimum=-1.0,
                exclusive_minimum=True,
            )
    if len(errors) != error_count:
        return None

    if config["retirement_age"] < config["current_age"]:
        errors.append("retirement.retirement_age must be >= current_age")
        return None
    if config["life_expectancy"] <= config["retirement_age"]:
        errors.append("retirement.life_expectancy must be greater than retirement_age")
        return None
    if config["target_success_rate"] >= 1.0:
        errors.append("retirement.target_success_rate must be < 1")
        return None
    if config["monthly_expenses"] <= config["other_income"]:
        summary.warnings.append(
            "retirement: other_income covers monthly_expenses; withdrawals will be zero"
        )
    _common_warnings(config, label="retirement", warnings=summary.warnings)
    return config


def _load_payload(path: Path, *, summary: ValidationSummary) -> dict[str, Any] | None:
    if not path.exists():
        summary.errors.append(f"missing file at {path}")
        return None
    payload = read_yaml(path)
    if payload is None:
        summary.errors.append(f"file at {path} is empty")
        return None
    if not isinstance(payload, dict):
        summary.errors.append(f"expected a mapping at {path}")
        return None
    return payload


def validate_config_file(path: Path | str, *, kind: str = "simulation") -> ValidationSummary:
    """Validate the YAML document at ``path`` as a ``kind`` configuration.

    Args:
      path: YAML file to read.
      kind: One of :data:`CONFIG_KINDS`.

    Returns:
      A :class:`ValidationSummary`; ``configs[kind]`` holds the normalised
      payload when no error was found.
    """

    if kind not in CONFIG_KINDS:
        raise ValueError(f"kind must be one of {CONFIG_KINDS}, got {kind!r}")
    summary = ValidationSummary()
    payload = _load_payload(Path(path), summary=summary)
    if payload is None:
        return summary
    validator = validate_simulation_payload if kind == "simulation" else validate_retirement_payload
    config = validator(payload, summary=summary)
    if config is not None and not summary.errors:
        summary.configs[kind] = config
    return summary
