"""Tests for engine configuration loading."""

from pathlib import Path

import pytest

from floatline.config import EngineConfig, load_config
from floatline.exceptions import ConfigError
from floatline.models import ObjectiveKind


def test_defaults() -> None:
    config = EngineConfig()

    assert config.max_iterations == 200
    assert config.default_risk_threshold == 2
    assert config.severity.major_ratio == 1.2
    assert config.severity.critical_ratio == 1.5
    assert {o.kind for o in config.default_objectives} == {
        ObjectiveKind.MINIMIZE_TOTAL_DELAY,
        ObjectiveKind.MAXIMIZE_PRIORITY_ADHERENCE,
        ObjectiveKind.MINIMIZE_RESOURCE_CONFLICTS,
    }


def test_load_settings_at_root(tmp_path: Path) -> None:
    path = tmp_path / "floatline.yaml"
    path.write_text("max_iterations: 10\nseverity:\n  critical_ratio: 2.0\n")

    config = load_config(path)

    assert config.max_iterations == 10
    assert config.severity.critical_ratio == 2.0
    assert config.severity.major_ratio == 1.2


def test_load_settings_under_engine_key(tmp_path: Path) -> None:
    path = tmp_path / "floatline.yaml"
    path.write_text(
        """
engine:
  max_workers: 2
  default_objectives:
    - kind: minimize_duration
      weight: 2
"""
    )

    config = load_config(path)

    assert config.max_workers == 2
    assert [o.kind for o in config.default_objectives] == [ObjectiveKind.MINIMIZE_DURATION]
    assert config.default_objectives[0].weight == 2.0


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    path = tmp_path / "floatline.yaml"
    path.write_text("")

    assert load_config(path) == EngineConfig()


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.yaml")


def test_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "floatline.yaml"
    path.write_text("engine: {max_iterations: [\n")

    with pytest.raises(ConfigError, match="Failed to parse"):
        load_config(path)


def test_root_must_be_mapping(tmp_path: Path) -> None:
    path = tmp_path / "floatline.yaml"
    path.write_text("- 1\n- 2\n")

    with pytest.raises(ConfigError, match="mapping"):
        load_config(path)


@pytest.mark.parametrize(
    "content",
    [
        "max_iterations: -1\n",
        "max_workers: 0\n",
        "default_objectives:\n  - kind: go_fast\n",
    ],
)
def test_invalid_values(tmp_path: Path, content: str) -> None:
    path = tmp_path / "floatline.yaml"
    path.write_text(content)

    with pytest.raises(ConfigError, match="Invalid config"):
        load_config(path)
