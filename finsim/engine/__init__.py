"""Main namespace of the finsim engine."""

from __future__ import annotations

from . import montecarlo, utils

__all__ = ["montecarlo", "utils"]
