"""Validated request models for the service entry points.

Field names accept both snake_case and the camelCase used by API callers
(``projectId``, ``optimizationGoals``). Goal and objective values are closed
enums: an unknown string fails validation instead of being ignored.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from floatline.models import OptimizationGoal, OptimizationObjective, TimeRange


class _RequestModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class TimeRangeSpec(_RequestModel):
    """Inclusive date window in a request."""

    start: date
    end: date

    @model_validator(mode="after")
    def check_order(self) -> TimeRangeSpec:
        if self.end < self.start:
            raise ValueError(f"time range end {self.end} is before start {self.start}")
        return self

    def to_range(self) -> TimeRange:
        return TimeRange(self.start, self.end)


def _coerce_time_range(value: Any) -> Any:
    if isinstance(value, TimeRange):
        return {"start": value.start, "end": value.end}
    return value


class TimelineOptimizationRequest(_RequestModel):
    """Parameters of optimize_project_timeline."""

    project_id: str = Field(min_length=1)
    time_range: TimeRangeSpec | None = None
    optimization_goals: list[OptimizationGoal] = Field(
        default_factory=lambda: [OptimizationGoal.MINIMIZE_DURATION]
    )

    @field_validator("time_range", mode="before")
    @classmethod
    def accept_time_range(cls, v: Any) -> Any:
        return _coerce_time_range(v)

    @property
    def window(self) -> TimeRange | None:
        return self.time_range.to_range() if self.time_range else None


class CriticalPathRequest(_RequestModel):
    """Parameters of analyze_critical_path."""

    project_id: str = Field(min_length=1)
    include_float_analysis: bool = False
    risk_threshold: int | None = Field(default=None, ge=0)  # Days; None uses config
    deadline: date | None = None
    include_resource_analysis: bool = False
    respect_planned_starts: bool = False  # Treat Task.planned_start as start-no-earlier-than


class DeliveryScheduleRequest(_RequestModel):
    """Parameters of optimize_delivery_schedule."""

    project_ids: list[str] = Field(min_length=1)
    time_range: TimeRangeSpec | None = None
    optimization_objectives: list[OptimizationObjective] = Field(default_factory=list)

    @field_validator("time_range", mode="before")
    @classmethod
    def accept_time_range(cls, v: Any) -> Any:
        return _coerce_time_range(v)

    @field_validator("project_ids")
    @classmethod
    def check_ids(cls, v: list[str]) -> list[str]:
        if any(not pid for pid in v):
            raise ValueError("project ids must be non-empty strings")
        return v

    @property
    def window(self) -> TimeRange | None:
        return self.time_range.to_range() if self.time_range else None
