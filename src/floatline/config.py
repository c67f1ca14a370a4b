"""Engine configuration and its YAML loader."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigError
from .models import ObjectiveKind, OptimizationObjective

DEFAULT_CONFIG_FILENAME = "floatline.yaml"


def _default_objectives() -> list[OptimizationObjective]:
    return [
        OptimizationObjective(kind=ObjectiveKind.MINIMIZE_TOTAL_DELAY, weight=1.0),
        OptimizationObjective(kind=ObjectiveKind.MAXIMIZE_PRIORITY_ADHERENCE, weight=1.0),
        OptimizationObjective(kind=ObjectiveKind.MINIMIZE_RESOURCE_CONFLICTS, weight=1.0),
    ]


class SeverityConfig(BaseModel):
    """Load-to-capacity ratios above which a conflict is escalated."""

    major_ratio: float = 1.2
    critical_ratio: float = 1.5


class EngineConfig(BaseModel):
    """Tunables for the scheduling engine."""

    # Local search bounds
    max_iterations: int = Field(default=200, ge=0)
    max_conflicts_per_iteration: int = Field(default=5, ge=1)
    # Portfolio mode: how far a task may be pushed past its dependency-driven start
    max_delay_days: int = Field(default=365, ge=0)

    # Critical path reporting
    max_critical_chains: int = Field(default=64, ge=1)
    default_risk_threshold: int = Field(default=2, ge=0)

    # Resource analysis
    capacity_tolerance_hours: float = Field(default=1e-6, ge=0.0)
    severity: SeverityConfig = SeverityConfig()

    # Portfolio scheduling
    max_workers: int = Field(default=4, ge=1)
    default_objectives: list[OptimizationObjective] = Field(default_factory=_default_objectives)


def load_config(config_path: Path | str) -> EngineConfig:
    """Load engine configuration from a YAML file.

    The file may hold the settings at its root or under an ``engine:`` key.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            raw: Any = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    if raw is None:
        return EngineConfig()
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the root level")

    data: dict[str, Any] = raw.get("engine", raw)  # type: ignore[assignment]
    try:
        return EngineConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e
