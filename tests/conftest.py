"""Shared pytest configuration for finsim."""

from __future__ import annotations

import os
import sys
from collections.abc import Iterable
from pathlib import Path

import pytest


def _insert_repo_root() -> None:
    """Make sure the repository root is importable without installation."""

    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))


_insert_repo_root()


def pytest_report_header(config: pytest.Config) -> Iterable[str]:  # pragma: no cover - pytest hook
    root = Path.cwd()
    log_level = os.environ.get("FINSIM_LOG_LEVEL", "INFO")
    return [f"finsim repo: {root}", f"FINSIM_LOG_LEVEL={log_level}"]


@pytest.fixture(autouse=True)
def _set_verbose_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    """Default the log level to INFO so captured logs are readable."""

    monkeypatch.setenv("FINSIM_LOG_LEVEL", "INFO")
    monkeypatch.delenv("FINSIM_JSON_LOGS", raising=False)


@pytest.fixture
def small_config():  # noqa: ANN201
    """A cheap configuration for tests that only need a plausible run."""

    from finsim.engine.montecarlo import SimulationConfig

    return SimulationConfig(
        initial_balance=10_000.0,
        monthly_contribution=200.0,
        months=24,
        iterations=500,
        expected_return=0.06,
        volatility=0.12,
    )
