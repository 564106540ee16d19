"""Monthly return sampling.

Annual assumptions are converted geometrically, ``(1 + r) ** (1 / 12) - 1``,
so that compounding twelve monthly means reproduces the annual figure and long
horizons do not drift. Monthly returns are independent normal variates; there
is no autocorrelation between months.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

__all__ = [
    "MONTHS_PER_YEAR",
    "monthly_mean",
    "monthly_volatility",
    "ReturnSampler",
]

MONTHS_PER_YEAR = 12


def monthly_mean(expected_return: float | np.ndarray) -> float | np.ndarray:
    """Convert an annual expected return into the equivalent monthly mean."""

    return (1.0 + expected_return) ** (1.0 / MONTHS_PER_YEAR) - 1.0


def monthly_volatility(volatility: float | np.ndarray) -> float | np.ndarray:
    """Scale an annual standard deviation to a monthly one."""

    return volatility / math.sqrt(MONTHS_PER_YEAR)


@dataclass(frozen=True)
class ReturnSampler:
    """Normal monthly return generator bound to an injected RNG.

    Attributes:
      mean: Monthly mean return.
      stdev: Monthly standard deviation.
      rng: Generator owned by the caller; never shared between threads.
    """

    mean: float
    stdev: float
    rng: np.random.Generator

    @classmethod
    def from_annual(
        cls,
        expected_return: float,
        volatility: float,
        rng: np.random.Generator,
    ) -> ReturnSampler:
        """Build a sampler from annualised assumptions."""

        return cls(
            mean=float(monthly_mean(expected_return)),
            stdev=float(monthly_volatility(volatility)),
            rng=rng,
        )

    def sample_month(self) -> float:
        """Draw the return of one month."""

        return self.mean + self.stdev * float(self.rng.standard_normal())

    def standard_draws(self, months: int, trials: int) -> np.ndarray:
        """Draw a ``(months, trials)`` block of standard normal variates.

        The whole block is drawn at once so that trial ``j`` always receives
        the same shocks for a given generator state, whatever monthly means
        and deviations are applied afterwards.
        """

        return self.rng.standard_normal((months, trials))

    def returns_from(
        self,
        draws: np.ndarray,
        mean: np.ndarray | float | None = None,
        stdev: np.ndarray | float | None = None,
    ) -> np.ndarray:
        """Map standard draws to returns using per-month parameters.

        Args:
          draws: Array shaped ``(months, trials)``.
          mean: Optional per-month means (``(months,)``); defaults to
            :attr:`mean`.
          stdev: Optional per-month deviations; defaults to :attr:`stdev`.

        Returns:
          Array of monthly returns with the same shape as ``draws``.
        """

        mu = self.mean if mean is None else np.asarray(mean, dtype="float64")
        sigma = self.stdev if stdev is None else np.asarray(stdev, dtype="float64")
        if np.ndim(mu):
            mu = mu[:, None]
        if np.ndim(sigma):
            sigma = sigma[:, None]
        return mu + sigma * draws
