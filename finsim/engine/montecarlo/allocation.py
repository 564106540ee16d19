"""Risk-profile driven portfolio assumptions.

Each risk tolerance carries a baseline stock weight together with the annual
expected return and volatility used to parameterise a simulation. The stock
weight is tilted up for long horizons (two points per year beyond ten years,
at most twenty points) and capped at 95%; bonds take the remainder minus a 5%
cash sleeve, with at least 5% in bonds.
"""

from __future__ import annotations

from dataclasses import dataclass

from finsim.engine.montecarlo.config import SimulationConfig
from finsim.engine.montecarlo.errors import InvalidConfiguration

__all__ = [
    "RISK_TOLERANCES",
    "RiskProfile",
    "RISK_PROFILES",
    "Allocation",
    "RecommendedAllocation",
    "recommended_allocation",
]

RISK_TOLERANCES: tuple[str, ...] = ("conservative", "moderate", "aggressive")

_MAX_STOCKS = 95.0
_MIN_BONDS = 5.0
_CASH_SLEEVE = 5.0
_MAX_HORIZON_TILT = 20.0


@dataclass(frozen=True)
class RiskProfile:
    base_stocks: float
    expected_return: float
    volatility: float


RISK_PROFILES: dict[str, RiskProfile] = {
    "conservative": RiskProfile(base_stocks=40.0, expected_return=0.05, volatility=0.10),
    "moderate": RiskProfile(base_stocks=60.0, expected_return=0.07, volatility=0.15),
    "aggressive": RiskProfile(base_stocks=80.0, expected_return=0.09, volatility=0.20),
}


@dataclass(frozen=True)
class Allocation:
    """Portfolio weights in percent; they always sum to 100."""

    stocks: float
    bonds: float
    cash: float


@dataclass(frozen=True)
class RecommendedAllocation:
    """Assumptions derived from a risk tolerance and a horizon.

    Attributes:
      risk_tolerance: One of :data:`RISK_TOLERANCES`.
      expected_return: Annual expected return of the profile.
      volatility: Annual volatility of the profile.
      allocation: Stock/bond/cash split in percent.
    """

    risk_tolerance: str
    expected_return: float
    volatility: float
    allocation: Allocation

    def apply(self, config: SimulationConfig) -> SimulationConfig:
        """Return ``config`` with the profile's return and volatility."""

        return config.with_overrides(
            expected_return=self.expected_return,
            volatility=self.volatility,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "riskTolerance": self.risk_tolerance,
            "expectedReturn": self.expected_return,
            "volatility": self.volatility,
            "allocation": {
                "stocks": self.allocation.stocks,
                "bonds": self.allocation.bonds,
                "cash": self.allocation.cash,
            },
        }


def recommended_allocation(
    risk_tolerance: str,
    years_to_retirement: float,
) -> RecommendedAllocation:
    """Map a risk tolerance and horizon to simulation assumptions.

    Args:
      risk_tolerance: ``conservative``, ``moderate`` or ``aggressive``.
      years_to_retirement: Remaining years of accumulation.

    Returns:
      A :class:`RecommendedAllocation`.

    Raises:
      InvalidConfiguration: For an unknown tolerance or a negative horizon.
    """

    profile = RISK_PROFILES.get(risk_tolerance)
    if profile is None:
        raise InvalidConfiguration(
            f"unknown risk tolerance {risk_tolerance!r}; expected one of {list(RISK_TOLERANCES)}"
        )
    if years_to_retirement < 0:
        raise InvalidConfiguration("years_to_retirement cannot be negative")

    tilt = min(_MAX_HORIZON_TILT, max(0.0, (years_to_retirement - 10.0) * 2.0))
    stocks = min(_MAX_STOCKS, profile.base_stocks + tilt)
    bonds = max(_MIN_BONDS, 100.0 - stocks - _CASH_SLEEVE)
    return RecommendedAllocation(
        risk_tolerance=risk_tolerance,
        expected_return=profile.expected_return,
        volatility=profile.volatility,
        allocation=Allocation(stocks=stocks, bonds=bonds, cash=100.0 - stocks - bonds),
    )
