"""Exception hierarchy raised by the Monte Carlo engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from finsim.engine.montecarlo.solver import SolverOutcome

__all__ = [
    "SimulationError",
    "InvalidConfiguration",
    "EmptyDistribution",
    "TargetUnreachable",
    "UnknownScenario",
    "SimulationCancelled",
]


class SimulationError(RuntimeError):
    """Base class for every error raised by :mod:`finsim.engine.montecarlo`."""


class InvalidConfiguration(SimulationError, ValueError):
    """Configuration rejected before any trial is run."""


class EmptyDistribution(SimulationError, ValueError):
    """A statistic was requested on a zero-length distribution."""


class TargetUnreachable(SimulationError):
    """The solver could not reach the requested success rate.

    Callers are expected to treat this as non-fatal and fall back to the
    best-effort figures carried by :attr:`outcome`.
    """

    def __init__(self, message: str, outcome: SolverOutcome) -> None:
        super().__init__(message)
        self.outcome = outcome


class UnknownScenario(SimulationError, KeyError):
    """Requested scenario name is not part of the catalogue."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message instead.
        return str(self.args[0]) if self.args else ""


class SimulationCancelled(SimulationError):
    """The cooperative cancellation check asked the engine to stop."""
