"""Seed management for reproducible simulations.

Seeds are organised in named streams stored in ``audit/seeds.yml`` so that the
CLI can replay any run. Library code never touches NumPy's legacy global RNG:
every simulation derives its own :class:`numpy.random.SeedSequence` and spawns
independent children from it.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import TypeAlias

import numpy as np
import yaml

DEFAULT_STREAM = "global"
DEFAULT_SEED = 42
DEFAULT_SEED_PATH = Path("audit") / "seeds.yml"

SeedLike: TypeAlias = int | np.random.SeedSequence | None

__all__ = [
    "DEFAULT_SEED",
    "DEFAULT_SEED_PATH",
    "DEFAULT_STREAM",
    "SeedLike",
    "load_seeds",
    "save_seeds",
    "seed_for_stream",
    "root_sequence",
    "sequence_entropy",
    "child_seeds",
]


def load_seeds(seed_path: Path | str = DEFAULT_SEED_PATH) -> dict[str, int]:
    """Load the ``stream -> seed`` mapping stored at ``seed_path``.

    A missing file yields the ``global`` stream with :data:`DEFAULT_SEED`, so
    that a fresh checkout is deterministic from the first run.
    """

    path = Path(seed_path)
    if not path.exists():
        return {DEFAULT_STREAM: DEFAULT_SEED}

    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if isinstance(data, dict) and isinstance(data.get("seeds"), dict):
        section = data["seeds"]
    elif isinstance(data, dict):
        section = data
    else:
        raise TypeError("Seed file must contain a mapping of stream -> seed")

    seeds = {str(key): int(value) for key, value in section.items() if value is not None}
    seeds.setdefault(DEFAULT_STREAM, DEFAULT_SEED)
    return seeds


def save_seeds(
    seeds: Mapping[str, int],
    seed_path: Path | str = DEFAULT_SEED_PATH,
) -> Path:
    """Persist a normalised ``stream -> seed`` mapping."""

    path = Path(seed_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"seeds": {str(k): int(v) for k, v in seeds.items()}}
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=True)
    return path


def seed_for_stream(
    stream: str = DEFAULT_STREAM,
    *,
    seeds: Mapping[str, int] | None = None,
    seed_path: Path | str = DEFAULT_SEED_PATH,
) -> int:
    """Return the seed of ``stream``, falling back to the ``global`` one."""

    seeds_dict = dict(seeds) if seeds is not None else load_seeds(seed_path)
    seeds_dict.setdefault(DEFAULT_STREAM, DEFAULT_SEED)
    return int(seeds_dict.get(stream, seeds_dict[DEFAULT_STREAM]))


def root_sequence(seed: SeedLike = None) -> np.random.SeedSequence:
    """Return a fresh :class:`~numpy.random.SeedSequence` for ``seed``.

    A sequence passed in is copied rather than reused: ``spawn`` advances the
    sequence's internal child counter, which would make a second run with the
    same object diverge from the first.
    """

    if isinstance(seed, np.random.SeedSequence):
        return np.random.SeedSequence(
            entropy=seed.entropy,
            spawn_key=seed.spawn_key,
            pool_size=seed.pool_size,
        )
    return np.random.SeedSequence(seed)


def sequence_entropy(sequence: np.random.SeedSequence) -> int | tuple[int, ...]:
    """Entropy of ``sequence`` in a hashable, serialisable form."""

    entropy = sequence.entropy
    if isinstance(entropy, int | np.integer):
        return int(entropy)
    return tuple(int(value) for value in entropy)


def child_seeds(seed: SeedLike, count: int) -> list[np.random.SeedSequence]:
    """Spawn ``count`` independent child sequences from ``seed``."""

    if count < 1:
        raise ValueError("count must be >= 1")
    return root_sequence(seed).spawn(count)
