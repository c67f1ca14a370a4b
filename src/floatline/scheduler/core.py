"""Core dataclasses for the scheduling engine."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date
from functools import cached_property

from floatline.exceptions import InfeasibleDeadlineError, OptimizationCancelledError


@dataclass(frozen=True)
class ScheduledTask:
    """CPM timings for one task.

    Dates follow an exclusive-finish convention: a task occupies the days
    ``[earliest_start, earliest_finish)``. The scheduled window is the early window.
    """

    task_id: str
    name: str
    duration_days: int
    earliest_start: date
    earliest_finish: date
    latest_start: date
    latest_finish: date
    float_days: int
    is_critical: bool
    resource_ids: tuple[str, ...] = ()

    @property
    def start(self) -> date:
        return self.earliest_start

    @property
    def finish(self) -> date:
        return self.earliest_finish


@dataclass(frozen=True)
class ScheduleMetadata:
    """Summary counters reported alongside a schedule."""

    total_tasks: int
    critical_tasks_count: int
    average_float: float


@dataclass(frozen=True)
class FloatAnalysis:
    """Float distribution of a schedule, with near-critical tasks flagged."""

    min_float: int
    max_float: int
    total_float: int
    risk_threshold: int
    near_critical_tasks: tuple[str, ...]


@dataclass(frozen=True)
class Schedule:
    """Materialized CPM result for a project. Never mutated after creation."""

    project_id: str
    origin: date  # Project start date all offsets are measured from
    project_start: date
    project_finish: date
    duration_days: int
    tasks: tuple[ScheduledTask, ...]  # Topological order
    critical_path: tuple[str, ...]  # Critical tasks in topological order
    critical_chains: tuple[tuple[str, ...], ...]
    deadline: date | None = None
    deadline_error: InfeasibleDeadlineError | None = None

    @cached_property
    def by_id(self) -> dict[str, ScheduledTask]:
        return {t.task_id: t for t in self.tasks}

    def task(self, task_id: str) -> ScheduledTask:
        return self.by_id[task_id]

    @property
    def is_feasible(self) -> bool:
        return self.deadline_error is None

    @property
    def metadata(self) -> ScheduleMetadata:
        total = len(self.tasks)
        average = sum(t.float_days for t in self.tasks) / total if total else 0.0
        return ScheduleMetadata(
            total_tasks=total,
            critical_tasks_count=len(self.critical_path),
            average_float=average,
        )

    def float_analysis(self, risk_threshold: int) -> FloatAnalysis:
        floats = [t.float_days for t in self.tasks]
        near_critical = tuple(
            t.task_id for t in self.tasks if not t.is_critical and t.float_days <= risk_threshold
        )
        return FloatAnalysis(
            min_float=min(floats, default=0),
            max_float=max(floats, default=0),
            total_float=sum(floats),
            risk_threshold=risk_threshold,
            near_critical_tasks=near_critical,
        )


@dataclass(frozen=True)
class TimelineSummary:
    """Headline numbers of a schedule, used to compare original vs optimized."""

    start: date
    finish: date
    duration_days: int
    critical_path: tuple[str, ...]
    conflict_count: int = 0
    over_allocation_hours: float = 0.0
    average_utilization: float = 0.0


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and a running request."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str, project_id: str | None = None) -> None:
        """Raise OptimizationCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise OptimizationCancelledError(stage, project_id=project_id)


def check_cancelled(
    token: CancellationToken | None, stage: str, project_id: str | None = None
) -> None:
    if token is not None:
        token.raise_if_cancelled(stage, project_id)
