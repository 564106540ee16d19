"""Structured logging and run metrics for finsim.

Library modules only create loggers with ``logging.getLogger(__name__)``;
handlers are installed by the command line through
:func:`configure_cli_logging`. The console handler prints plain lines, the
optional JSON handler appends one audit record per line under
``artifacts/logs``. :func:`record_metrics` appends numeric observations
(simulation timings, solver probes) to a JSONL file next to it.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from finsim.engine.utils.io import DEFAULT_LOG_ROOT

ROOT_LOGGER: Final[str] = "finsim"
CONSOLE_FORMAT: Final[str] = "[%(levelname)s] %(name)s: %(message)s"
DEFAULT_LEVEL: Final[str] = "INFO"
LOG_PATH: Final[Path] = DEFAULT_LOG_ROOT / "finsim.log"
METRICS_PATH: Final[Path] = DEFAULT_LOG_ROOT / "metrics.jsonl"
JSON_ENV_FLAG: Final[str] = "FINSIM_JSON_LOGS"
LEVEL_ENV_FLAG: Final[str] = "FINSIM_LOG_LEVEL"

# Numeric ``extra=`` fields copied into JSON audit records.
AUDIT_FIELDS: Final[tuple[str, ...]] = ("process_time_ms", "iterations", "months", "probes")


class JsonAuditFormatter(logging.Formatter):
    """Render log records as single-line JSON payloads."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "source": record.name,
            "message": record.getMessage(),
        }
        for field in AUDIT_FIELDS:
            payload[field] = _coerce_number(getattr(record, field, None))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _coerce_number(value: object) -> float | None:
    if value is None:
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _resolve_level(level: str | int | None) -> int:
    """Pick the level from the environment, then the argument, then INFO."""

    env_level = os.environ.get(LEVEL_ENV_FLAG)
    if env_level:
        candidate = env_level.strip().upper()
    elif isinstance(level, str):
        candidate = level.strip().upper()
    elif isinstance(level, int):
        return int(level)
    else:
        candidate = DEFAULT_LEVEL
    resolved = logging.getLevelName(candidate)
    return int(resolved) if isinstance(resolved, int) else logging.INFO


def _json_logging_enabled(explicit: bool) -> bool:
    if explicit:
        return True
    value = os.environ.get(JSON_ENV_FLAG)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _ensure_console_handler(logger: logging.Logger, level: int) -> None:
    for handler in logger.handlers:
        if getattr(handler, "_finsim_console", False):
            handler.setLevel(level)
            return
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    stream_handler._finsim_console = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)


def _ensure_json_handler(logger: logging.Logger, level: int) -> None:
    for handler in logger.handlers:
        if getattr(handler, "_finsim_json", False):
            handler.setLevel(level)
            return
    LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
    json_handler = logging.FileHandler(LOG_PATH, encoding="utf-8")
    json_handler.setLevel(level)
    json_handler.setFormatter(JsonAuditFormatter())
    json_handler._finsim_json = True  # type: ignore[attr-defined]
    logger.addHandler(json_handler)


def setup_logger(
    name: str = ROOT_LOGGER,
    json_format: bool = False,
    level: str | int | None = None,
) -> logging.Logger:
    """Configure ``name`` with a console handler and, optionally, JSON output.

    The logger keeps propagating so that capture handlers installed on the
    root logger (``pytest``'s ``caplog`` for instance) still see the records.
    """

    resolved_level = _resolve_level(level)
    logger = logging.getLogger(name)
    logger.setLevel(resolved_level)
    logger.propagate = True
    _ensure_console_handler(logger, resolved_level)
    if _json_logging_enabled(json_format):
        _ensure_json_handler(logger, resolved_level)
    return logger


def record_metrics(metric_name: str, value: float, tags: Mapping[str, str] | None = None) -> None:
    """Append one metric observation to :data:`METRICS_PATH`."""

    METRICS_PATH.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "timestamp": datetime.now(tz=UTC).isoformat(),
        "metric": metric_name,
        "value": float(value),
        "tags": {str(key): str(val) for key, val in (tags or {}).items()},
    }
    with METRICS_PATH.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(payload, ensure_ascii=False) + "\n")


def configure_cli_logging(json_logs: bool, level: str | int | None = None) -> logging.Logger:
    """Install the CLI handlers on the ``finsim`` logger.

    Child loggers created by the engine modules only get their level aligned:
    their records reach the handlers through propagation.
    """

    if json_logs:
        os.environ[JSON_ENV_FLAG] = "1"
    else:
        os.environ.pop(JSON_ENV_FLAG, None)
    resolved_level = _resolve_level(level)
    for name, logger in logging.Logger.manager.loggerDict.items():
        if isinstance(logger, logging.Logger) and name.startswith(f"{ROOT_LOGGER}."):
            logger.setLevel(resolved_level)
    return setup_logger(ROOT_LOGGER, json_format=json_logs, level=level)


__all__ = [
    "AUDIT_FIELDS",
    "JsonAuditFormatter",
    "setup_logger",
    "record_metrics",
    "configure_cli_logging",
]
