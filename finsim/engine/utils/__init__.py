"""Utility helpers for finsim."""

from .io import (
    ARTIFACTS_ROOT,
    DEFAULT_LOG_ROOT,
    DEFAULT_RUN_ROOT,
    ensure_dir,
    read_yaml,
    run_dir,
    safe_path_segment,
    write_json,
    write_yaml,
)
from .rand import (
    DEFAULT_SEED,
    DEFAULT_SEED_PATH,
    DEFAULT_STREAM,
    SeedLike,
    child_seeds,
    load_seeds,
    root_sequence,
    save_seeds,
    seed_for_stream,
    sequence_entropy,
)

__all__ = [
    "ARTIFACTS_ROOT",
    "DEFAULT_LOG_ROOT",
    "DEFAULT_RUN_ROOT",
    "ensure_dir",
    "read_yaml",
    "run_dir",
    "safe_path_segment",
    "write_json",
    "write_yaml",
    "DEFAULT_SEED",
    "DEFAULT_SEED_PATH",
    "DEFAULT_STREAM",
    "SeedLike",
    "child_seeds",
    "load_seeds",
    "root_sequence",
    "save_seeds",
    "seed_for_stream",
    "sequence_entropy",
]
