"""Immutable configuration objects consumed by the simulation engine.

Configurations are plain frozen dataclasses. They can be created directly or
from mappings loaded out of YAML/JSON documents, in which case both the
snake_case field names and the camelCase names used by the HTTP layer are
accepted. Validation happens in :meth:`SimulationConfig.validate` and
:meth:`RetirementConfig.validate`, which raise
:class:`~finsim.engine.montecarlo.errors.InvalidConfiguration`.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from finsim.engine.montecarlo.errors import InvalidConfiguration

__all__ = [
    "SHOCK_KINDS",
    "Shock",
    "SimulationConfig",
    "RetirementConfig",
]

# Supported month-level transforms. ``return_shift`` is expressed as an
# annual delta on ``expected_return``; ``return_override`` replaces the
# sampled monthly return outright. ``market_shock`` spreads a total decline
# (or gain) over its window and gives it back over ``recovery_months``.
SHOCK_KINDS: tuple[str, ...] = (
    "return_override",
    "return_shift",
    "volatility_scale",
    "contribution_scale",
    "cash_flow",
    "market_shock",
)


def _pick(payload: Mapping[str, object], *keys: str, default: object = None) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return default


def _require_finite(name: str, value: float) -> None:
    if not math.isfinite(value):
        raise InvalidConfiguration(f"{name} must be a finite number, got {value!r}")


@dataclass(frozen=True)
class Shock:
    """Deterministic adjustment applied to a window of simulated months.

    Attributes:
      kind: One of :data:`SHOCK_KINDS`.
      start_month: First affected month (1-based, inclusive).
      duration_months: Number of consecutive affected months.
      magnitude: Forced monthly return, annual return delta, volatility or
        contribution multiplier, lump cash flow, or total market move
        depending on ``kind``.
      recovery_months: Months after the window over which a ``market_shock``
        is recovered; ignored by the other kinds.
    """

    kind: str
    start_month: int
    duration_months: int
    magnitude: float
    recovery_months: int = 0

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> Shock:
        """Build a shock from a YAML mapping."""

        return cls(
            kind=str(_pick(payload, "kind", "type", default="")),
            start_month=int(_pick(payload, "start_month", "startMonth", default=1)),
            duration_months=int(_pick(payload, "duration_months", "durationMonths", default=1)),
            magnitude=float(_pick(payload, "magnitude", default=0.0)),
            recovery_months=int(_pick(payload, "recovery_months", "recoveryMonths", default=0)),
        )

    @property
    def end_month(self) -> int:
        """Last affected month (inclusive)."""

        return self.start_month + self.duration_months - 1

    def validate(self) -> None:
        if self.kind not in SHOCK_KINDS:
            raise InvalidConfiguration(
                f"unsupported shock kind {self.kind!r}; expected one of {list(SHOCK_KINDS)}"
            )
        if self.start_month < 1:
            raise InvalidConfiguration("shock start_month must be >= 1")
        if self.duration_months < 1:
            raise InvalidConfiguration("shock duration_months must be >= 1")
        _require_finite("shock magnitude", self.magnitude)
        if self.kind == "return_override" and self.magnitude <= -1.0:
            raise InvalidConfiguration("return_override magnitude must be > -1")
        if self.kind == "market_shock" and self.magnitude <= -1.0:
            raise InvalidConfiguration("market_shock magnitude must be > -1")
        if self.recovery_months < 0:
            raise InvalidConfiguration("shock recovery_months must be >= 0")
        if self.kind in {"volatility_scale", "contribution_scale"} and self.magnitude < 0:
            raise InvalidConfiguration(f"{self.kind} magnitude must be >= 0")


@dataclass(frozen=True)
class SimulationConfig:
    """Inputs of a single Monte Carlo run.

    Attributes:
      initial_balance: Starting balance in currency units.
      monthly_contribution: Amount added each month; negative values
        represent withdrawals.
      months: Horizon in months.
      iterations: Number of independent trials.
      expected_return: Annualised expected return (decimal).
      volatility: Annualised standard deviation of returns (decimal).
      inflation_rate: Optional annual inflation used to index contributions.
      inflation_adjusted_contributions: Index the contribution once per
        simulated year when ``inflation_rate`` is set.
      floor_at_zero: Clamp balances at zero after each month.
      shocks: Month-level adjustments applied on top of the base parameters.
    """

    initial_balance: float
    monthly_contribution: float
    months: int
    iterations: int
    expected_return: float
    volatility: float
    inflation_rate: float | None = None
    inflation_adjusted_contributions: bool = False
    floor_at_zero: bool = False
    shocks: tuple[Shock, ...] = field(default_factory=tuple)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> SimulationConfig:
        """Create a :class:`SimulationConfig` from a mapping.

        Args:
          payload: Mapping extracted from YAML/JSON, using either snake_case
            or camelCase keys.

        Returns:
          A populated (not yet validated) :class:`SimulationConfig`.
        """

        raw_shocks = _pick(payload, "shocks", default=[])
        shocks: Sequence[object] = raw_shocks if isinstance(raw_shocks, Sequence) else []
        inflation = _pick(payload, "inflation_rate", "inflationRate")
        return cls(
            initial_balance=float(_pick(payload, "initial_balance", "initialBalance", default=0.0)),
            monthly_contribution=float(
                _pick(payload, "monthly_contribution", "monthlyContribution", default=0.0)
            ),
            months=int(_pick(payload, "months", default=0)),
            iterations=int(_pick(payload, "iterations", default=10_000)),
            expected_return=float(_pick(payload, "expected_return", "expectedReturn", default=0.07)),
            volatility=float(_pick(payload, "volatility", "returnVolatility", default=0.15)),
            inflation_rate=float(inflation) if inflation is not None else None,
            inflation_adjusted_contributions=bool(
                _pick(
                    payload,
                    "inflation_adjusted_contributions",
                    "inflationAdjustedContributions",
                    default=False,
                )
            ),
            floor_at_zero=bool(_pick(payload, "floor_at_zero", "floorAtZero", default=False)),
            shocks=tuple(Shock.from_mapping(item) for item in shocks if isinstance(item, Mapping)),
        )

    def validate(self) -> SimulationConfig:
        """Check the invariants of the configuration.

        Returns:
          ``self`` so the call can be chained.

        Raises:
          InvalidConfiguration: If any field is out of range.
        """

        if isinstance(self.months, bool) or int(self.months) != self.months or self.months <= 0:
            raise InvalidConfiguration(f"months must be a positive integer, got {self.months!r}")
        if (
            isinstance(self.iterations, bool)
            or int(self.iterations) != self.iterations
            or self.iterations <= 0
        ):
            raise InvalidConfiguration(
                f"iterations must be a positive integer, got {self.iterations!r}"
            )
        for name in ("initial_balance", "monthly_contribution", "expected_return", "volatility"):
            _require_finite(name, float(getattr(self, name)))
        if self.volatility < 0:
            raise InvalidConfiguration(f"volatility cannot be negative, got {self.volatility!r}")
        if self.initial_balance < 0:
            raise InvalidConfiguration(
                f"initial_balance cannot be negative, got {self.initial_balance!r}"
            )
        if self.expected_return <= -1.0:
            raise InvalidConfiguration("expected_return must be greater than -100%")
        if self.inflation_rate is not None:
            _require_finite("inflation_rate", self.inflation_rate)
            if self.inflation_rate <= -1.0:
                raise InvalidConfiguration("inflation_rate must be greater than -100%")
        for shock in self.shocks:
            shock.validate()
        return self

    def with_overrides(self, **changes: Any) -> SimulationConfig:
        """Return a copy with ``changes`` applied; ``self`` is left untouched."""

        return replace(self, **changes)

    def with_shocks(self, shocks: Sequence[Shock]) -> SimulationConfig:
        """Return a copy with ``shocks`` appended to the existing ones."""

        return replace(self, shocks=self.shocks + tuple(shocks))


@dataclass(frozen=True)
class RetirementConfig:
    """Inputs of the two-phase retirement simulation.

    Attributes:
      current_age: Age today, in whole years.
      retirement_age: Age at which contributions stop and withdrawals start.
      life_expectancy: Age at which the withdrawal horizon ends.
      current_savings: Balance available today.
      monthly_contribution: Monthly saving until retirement.
      monthly_expenses: Monthly spending in retirement.
      other_income: Monthly income in retirement (pension, social security).
      expected_return: Annual expected return during accumulation.
      volatility: Annual volatility used in both phases.
      post_retirement_return: Annual expected return during withdrawal;
        defaults to ``expected_return``.
      iterations: Trials per simulated phase.
      inflation_rate: Optional inflation applied to contributions.
      target_success_rate: Sustainability probability used by the solvers.
    """

    current_age: int
    retirement_age: int
    life_expectancy: int
    current_savings: float
    monthly_contribution: float
    monthly_expenses: float
    other_income: float = 0.0
    expected_return: float = 0.07
    volatility: float = 0.15
    post_retirement_return: float | None = None
    iterations: int = 10_000
    inflation_rate: float | None = None
    target_success_rate: float = 0.75

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> RetirementConfig:
        """Create a :class:`RetirementConfig` from a mapping."""

        post = _pick(payload, "post_retirement_return", "postRetirementReturn")
        inflation = _pick(payload, "inflation_rate", "inflationRate")
        return cls(
            current_age=int(_pick(payload, "current_age", "currentAge", default=0)),
            retirement_age=int(_pick(payload, "retirement_age", "retirementAge", default=0)),
            life_expectancy=int(_pick(payload, "life_expectancy", "lifeExpectancy", default=0)),
            current_savings=float(
                _pick(payload, "current_savings", "currentSavings", "initialBalance", default=0.0)
            ),
            monthly_contribution=float(
                _pick(payload, "monthly_contribution", "monthlyContribution", default=0.0)
            ),
            monthly_expenses=float(
                _pick(payload, "monthly_expenses", "monthlyExpenses", default=0.0)
            ),
            other_income=float(
                _pick(payload, "other_income", "otherIncome", "socialSecurityIncome", default=0.0)
            ),
            expected_return=float(_pick(payload, "expected_return", "expectedReturn", default=0.07)),
            volatility=float(_pick(payload, "volatility", "returnVolatility", default=0.15)),
            post_retirement_return=float(post) if post is not None else None,
            iterations=int(_pick(payload, "iterations", default=10_000)),
            inflation_rate=float(inflation) if inflation is not None else None,
            target_success_rate=float(
                _pick(payload, "target_success_rate", "targetSuccessRate", default=0.75)
            ),
        )

    @property
    def months_to_retirement(self) -> int:
        return (self.retirement_age - self.current_age) * 12

    @property
    def months_in_retirement(self) -> int:
        return (self.life_expectancy - self.retirement_age) * 12

    @property
    def net_monthly_need(self) -> float:
        """Monthly amount the portfolio has to fund after retirement."""

        return self.monthly_expenses - self.other_income

    @property
    def withdrawal_return(self) -> float:
        if self.post_retirement_return is None:
            return self.expected_return
        return self.post_retirement_return

    def validate(self) -> RetirementConfig:
        """Check ages, amounts and rates.

        Raises:
          InvalidConfiguration: If the phases cannot be built.
        """

        if self.current_age < 0:
            raise InvalidConfiguration("current_age cannot be negative")
        if self.retirement_age < self.current_age:
            raise InvalidConfiguration("retirement_age must be >= current_age")
        if self.life_expectancy <= self.retirement_age:
            raise InvalidConfiguration("life_expectancy must be greater than retirement_age")
        if self.iterations <= 0:
            raise InvalidConfiguration("iterations must be a positive integer")
        for name in (
            "current_savings",
            "monthly_contribution",
            "monthly_expenses",
            "other_income",
            "expected_return",
            "volatility",
            "withdrawal_return",
        ):
            _require_finite(name, float(getattr(self, name)))
        if self.current_savings < 0:
            raise InvalidConfiguration("current_savings cannot be negative")
        if self.monthly_expenses < 0 or self.other_income < 0:
            raise InvalidConfiguration("monthly_expenses and other_income cannot be negative")
        if self.volatility < 0:
            raise InvalidConfiguration("volatility cannot be negative")
        if not 0.0 < self.target_success_rate < 1.0:
            raise InvalidConfiguration("target_success_rate must lie strictly between 0 and 1")
        return self
