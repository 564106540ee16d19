from __future__ import annotations

import json
from pathlib import Path

from finsim.engine.utils import (
    ensure_dir,
    read_yaml,
    run_dir,
    safe_path_segment,
    write_json,
    write_yaml,
)


def test_safe_path_segment_replaces_invalid_characters() -> None:
    assert safe_path_segment("crash/2024:q1 ") == "crash-2024-q1"
    assert safe_path_segment("baseline.") == "baseline"


def test_ensure_dir_creates_parents(tmp_path: Path) -> None:
    target = ensure_dir(tmp_path / "a" / "b")
    assert target.is_dir()


def test_run_dir_is_labelled(tmp_path: Path) -> None:
    target = run_dir(tmp_path, label="what/if")
    assert target.parent == tmp_path
    assert target.name.endswith("_what-if")
    assert target.is_dir()


def test_yaml_round_trip(tmp_path: Path) -> None:
    path = write_yaml({"months": 12, "shocks": []}, tmp_path / "nested" / "config.yml")
    assert read_yaml(path) == {"months": 12, "shocks": []}


def test_write_json_sorts_keys(tmp_path: Path) -> None:
    path = write_json({"b": 1, "a": 2}, tmp_path / "summary.json")
    text = path.read_text(encoding="utf-8")
    assert text.endswith("\n")
    assert text.index('"a"') < text.index('"b"')
    assert json.loads(text) == {"a": 2, "b": 1}
