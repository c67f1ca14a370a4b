"""Data models for floatline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class TimeRange:
    """An inclusive range of calendar days."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Time range end {self.end} is before start {self.start}")

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def overlaps(self, start: date, finish: date) -> bool:
        """Check whether the half-open window [start, finish) touches this range."""
        if finish <= start:
            return self.contains(start)
        return start <= self.end and finish > self.start

    def days(self) -> list[date]:
        return [self.start + timedelta(days=i) for i in range((self.end - self.start).days + 1)]


@dataclass(frozen=True)
class Task:
    """A unit of work inside a project.

    ``dependencies`` lists predecessor task ids (finish-to-start). ``planned_start``
    is the persisted as-planned start; when set the baseline schedule will not start
    the task earlier.
    """

    id: str
    name: str
    duration_days: int
    dependencies: tuple[str, ...] = ()
    effort_hours: float = 0.0
    resource_ids: tuple[str, ...] = ()
    planned_start: date | None = None


@dataclass(frozen=True)
class Edge:
    """A finish-to-start dependency between two tasks of the same project."""

    predecessor_id: str
    successor_id: str


@dataclass(frozen=True)
class Project:
    """A project: a time window, a priority and an ordered collection of tasks.

    Higher ``priority`` values are more important. ``end_date`` and ``target_date``
    are exclusive finish boundaries, like ``Schedule.project_finish`` and an analysis
    deadline: a project whose last task ends the day before its due date finishes
    exactly on that date and is on time.
    """

    id: str
    name: str
    start_date: date
    end_date: date
    priority: int = 0
    target_date: date | None = None
    tasks: tuple[Task, ...] = field(default=())

    @property
    def due_date(self) -> date:
        """Exclusive finish boundary the project is measured against for on-time delivery.

        Falls back to ``end_date`` when no target is set. Any finish after it is late
        by the difference in days.
        """
        return self.target_date or self.end_date


@dataclass(frozen=True)
class ResourceAssignment:
    """Hours of a resource allocated to a task within its scheduled window."""

    resource_id: str
    task_id: str
    allocated_hours: float


class OptimizationGoal(str, Enum):
    """Goals accepted by the single-project timeline optimizer."""

    MINIMIZE_DURATION = "minimize_duration"
    MAXIMIZE_RESOURCE_UTILIZATION = "maximize_resource_utilization"


class ObjectiveKind(str, Enum):
    """Objectives accepted by the portfolio scheduler."""

    MINIMIZE_TOTAL_DELAY = "minimize_total_delay"
    MAXIMIZE_PRIORITY_ADHERENCE = "maximize_priority_adherence"
    MINIMIZE_RESOURCE_CONFLICTS = "minimize_resource_conflicts"
    MINIMIZE_DURATION = "minimize_duration"
    MAXIMIZE_RESOURCE_UTILIZATION = "maximize_resource_utilization"


class OptimizationObjective(BaseModel):
    """A weighted portfolio objective. Weights need not sum to 1."""

    kind: ObjectiveKind
    weight: float = Field(default=1.0, ge=0.0)


def normalize_objectives(
    objectives: list[OptimizationObjective],
    defaults: list[OptimizationObjective] | None = None,
) -> dict[ObjectiveKind, float]:
    """Merge duplicate kinds and scale weights to sum to 1.

    Falls back to ``defaults`` when no objective carries positive weight.
    """
    merged: dict[ObjectiveKind, float] = {}
    for objective in objectives:
        merged[objective.kind] = merged.get(objective.kind, 0.0) + objective.weight

    total = sum(merged.values())
    if total <= 0:
        if defaults is None:
            return {}
        return normalize_objectives(defaults)

    return {kind: weight / total for kind, weight in merged.items() if weight > 0}
