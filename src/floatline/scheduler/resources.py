"""Resource timelines and capacity conflict detection."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum

from floatline.config import EngineConfig
from floatline.exceptions import ResourceDataUnavailableError
from floatline.logger import get_logger
from floatline.models import ResourceAssignment, TimeRange

from .core import Schedule
from .graph import TaskGraph

logger = get_logger()

# resource id -> day -> hours
ResourceLoad = dict[str, dict[date, float]]


class ConflictSeverity(str, Enum):
    """How far a day's load exceeds capacity."""

    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ResourceConflict:
    """A day on which a resource is booked beyond its capacity."""

    resource_id: str
    day: date
    capacity_hours: float
    allocated_hours: float  # Including hours reserved by other projects
    over_hours: float
    task_ids: tuple[str, ...]
    reserved_hours: float
    severity: ConflictSeverity


@dataclass(frozen=True)
class Bottleneck:
    """A resource that alone staffs overlapping critical tasks."""

    resource_id: str
    task_ids: tuple[str, ...]
    overlap_days: int
    suggestions: tuple[str, ...]


@dataclass(frozen=True)
class ResourceUtilization:
    """Allocated hours against capacity over the analyzed window."""

    resource_id: str
    capacity_hours: float
    allocated_hours: float
    utilization_rate: float
    peak_daily_hours: float


class ResourceTimeline:
    """Hours booked per day for one resource.

    Own allocations are tracked per task; hours claimed by other projects are kept
    separately in ``reserved`` so conflicts can tell the two apart.
    """

    def __init__(
        self,
        resource_id: str,
        capacity_hours: float,
        reserved: Mapping[date, float] | None = None,
    ) -> None:
        self.resource_id = resource_id
        self.capacity_hours = capacity_hours
        self.hours: dict[date, float] = {}
        self.tasks: dict[date, list[str]] = {}
        self.reserved: dict[date, float] = dict(reserved or {})

    def add_allocation(
        self, task_id: str, start: date, duration_days: int, hours_per_day: float
    ) -> None:
        """Book ``hours_per_day`` on each day of [start, start + duration)."""
        for offset in range(duration_days):
            day = start + timedelta(days=offset)
            self.hours[day] = self.hours.get(day, 0.0) + hours_per_day
            self.tasks.setdefault(day, []).append(task_id)

    def own_hours(self, day: date) -> float:
        return self.hours.get(day, 0.0)

    def load_on(self, day: date) -> float:
        return self.reserved.get(day, 0.0) + self.hours.get(day, 0.0)

    def booked_days(self) -> list[date]:
        return sorted(self.hours)

    def over_allocated_days(self, tolerance: float = 0.0) -> list[date]:
        """Days with own work whose total load exceeds capacity."""
        return [
            day
            for day in self.booked_days()
            if self.hours[day] > 0 and self.load_on(day) > self.capacity_hours + tolerance
        ]


@dataclass(frozen=True)
class ResourceAnalysis:
    """Output of the resolver: conflicts, bottlenecks and utilization."""

    conflicts: tuple[ResourceConflict, ...]
    bottlenecks: tuple[Bottleneck, ...]
    utilization: tuple[ResourceUtilization, ...]
    timelines: dict[str, ResourceTimeline] = field(
        default_factory=dict, compare=False, metadata={"serialize": False}
    )

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)

    @property
    def total_over_allocation_hours(self) -> float:
        return sum(c.over_hours for c in self.conflicts)

    @property
    def total_allocated_hours(self) -> float:
        return sum(sum(t.hours.values()) for t in self.timelines.values())

    @property
    def average_utilization(self) -> float:
        if not self.utilization:
            return 0.0
        return sum(u.utilization_rate for u in self.utilization) / len(self.utilization)

    def own_load(self) -> ResourceLoad:
        """Hours booked by the analyzed tasks only (reserved hours excluded)."""
        return {rid: dict(t.hours) for rid, t in self.timelines.items()}


def effective_assignments(
    graph: TaskGraph, assignments: Sequence[ResourceAssignment]
) -> list[ResourceAssignment]:
    """Combine explicit assignments with ones derived from task resource lists.

    A task that names resources without an explicit assignment record gets its
    effort split evenly among those resources. Assignments for tasks outside the
    graph are dropped.
    """
    result: list[ResourceAssignment] = []
    covered: set[tuple[str, str]] = set()
    for assignment in assignments:
        if assignment.task_id not in graph.tasks:
            logger.debug(
                f"Ignoring assignment of {assignment.resource_id} to unknown task "
                f"{assignment.task_id} in project {graph.project_id}"
            )
            continue
        result.append(assignment)
        covered.add((assignment.resource_id, assignment.task_id))

    for task in graph.tasks.values():
        if not task.resource_ids:
            continue
        share = task.effort_hours / len(task.resource_ids)
        for resource_id in task.resource_ids:
            if (resource_id, task.id) not in covered:
                result.append(ResourceAssignment(resource_id, task.id, share))
                covered.add((resource_id, task.id))

    return result


def daily_requirements(
    graph: TaskGraph, assignments: Sequence[ResourceAssignment]
) -> dict[str, list[tuple[str, float]]]:
    """Hours per working day each task needs from each of its resources."""
    needs: dict[str, list[tuple[str, float]]] = {tid: [] for tid in graph.tasks}
    for assignment in assignments:
        duration = graph.tasks[assignment.task_id].duration_days
        if duration <= 0:
            continue
        needs[assignment.task_id].append(
            (assignment.resource_id, assignment.allocated_hours / duration)
        )
    return needs


def merge_load(target: ResourceLoad, extra: Mapping[str, Mapping[date, float]]) -> None:
    """Add ``extra`` hours into ``target`` in place."""
    for resource_id, days in extra.items():
        bucket = target.setdefault(resource_id, {})
        for day, hours in days.items():
            bucket[day] = bucket.get(day, 0.0) + hours


def resolve_capacities(
    resource_ids: Iterable[str],
    capacity_loader: Mapping[str, float],
    project_id: str | None = None,
) -> dict[str, float]:
    """Look up capacity for each resource, failing on the first gap."""
    capacities: dict[str, float] = {}
    for resource_id in resource_ids:
        capacity = capacity_loader.get(resource_id)
        if capacity is None:
            raise ResourceDataUnavailableError(
                f"No capacity available for resource '{resource_id}'",
                project_id=project_id,
                resource_id=resource_id,
            )
        capacities[resource_id] = capacity
    return capacities


class ResourceConstraintResolver:
    """Overlays resource assignments on a schedule and reports capacity problems.

    Purely analytical: conflicts and bottlenecks are reported, never fixed.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()

    def analyze(
        self,
        schedule: Schedule,
        graph: TaskGraph,
        assignments: Sequence[ResourceAssignment],
        capacities: Mapping[str, float],
        *,
        window: TimeRange | None = None,
        reserved_load: Mapping[str, Mapping[date, float]] | None = None,
    ) -> ResourceAnalysis:
        """Analyze one project's schedule.

        Args:
            schedule: CPM schedule whose early windows are the scheduled windows
            graph: Graph the schedule was computed from
            assignments: Effective assignments (see effective_assignments)
            capacities: Hours per day for every assigned resource
            window: Only days inside this range are checked
            reserved_load: Hours already claimed by other projects

        Raises:
            ResourceDataUnavailableError: An assigned resource has no capacity
        """
        resource_ids = list(dict.fromkeys(a.resource_id for a in assignments))
        caps = resolve_capacities(resource_ids, capacities, graph.project_id)
        reserved = reserved_load or {}

        timelines = {
            rid: ResourceTimeline(rid, caps[rid], reserved.get(rid)) for rid in resource_ids
        }
        for assignment in assignments:
            task = schedule.task(assignment.task_id)
            if task.duration_days <= 0:
                continue
            timelines[assignment.resource_id].add_allocation(
                task.task_id,
                task.start,
                task.duration_days,
                assignment.allocated_hours / task.duration_days,
            )

        conflicts = self._find_conflicts(timelines, window)
        bottlenecks = self._find_bottlenecks(schedule, assignments)
        span = window or _schedule_span(schedule)
        utilization = self._utilization(timelines, span)

        if conflicts:
            logger.checks(
                f"Project {graph.project_id}: {len(conflicts)} over-allocated resource-day(s), "
                f"{sum(c.over_hours for c in conflicts):.1f}h over capacity"
            )

        return ResourceAnalysis(
            conflicts=conflicts,
            bottlenecks=bottlenecks,
            utilization=utilization,
            timelines=timelines,
        )

    def analyze_portfolio(
        self,
        entries: Sequence[tuple[Schedule, Sequence[ResourceAssignment]]],
        capacities: Mapping[str, float],
        *,
        window: TimeRange | None = None,
    ) -> ResourceAnalysis:
        """Scan the merged timelines of several projects for conflicts.

        Task ids in the result are qualified as ``project/task``.
        """
        resource_ids = list(
            dict.fromkeys(a.resource_id for _, assignments in entries for a in assignments)
        )
        caps = resolve_capacities(resource_ids, capacities)
        timelines = {rid: ResourceTimeline(rid, caps[rid]) for rid in resource_ids}

        for schedule, assignments in entries:
            for assignment in assignments:
                task = schedule.task(assignment.task_id)
                if task.duration_days <= 0:
                    continue
                timelines[assignment.resource_id].add_allocation(
                    f"{schedule.project_id}/{task.task_id}",
                    task.start,
                    task.duration_days,
                    assignment.allocated_hours / task.duration_days,
                )

        span = window
        if span is None and entries:
            start = min(s.project_start for s, _ in entries)
            finish = max(s.project_finish for s, _ in entries)
            span = TimeRange(start, max(start, finish - timedelta(days=1)))

        return ResourceAnalysis(
            conflicts=self._find_conflicts(timelines, window),
            bottlenecks=(),
            utilization=self._utilization(timelines, span),
            timelines=timelines,
        )

    def _find_conflicts(
        self, timelines: Mapping[str, ResourceTimeline], window: TimeRange | None
    ) -> tuple[ResourceConflict, ...]:
        tolerance = self.config.capacity_tolerance_hours
        conflicts: list[ResourceConflict] = []
        for resource_id, timeline in timelines.items():
            for day in timeline.over_allocated_days(tolerance):
                if window is not None and not window.contains(day):
                    continue
                load = timeline.load_on(day)
                conflicts.append(
                    ResourceConflict(
                        resource_id=resource_id,
                        day=day,
                        capacity_hours=timeline.capacity_hours,
                        allocated_hours=load,
                        over_hours=load - timeline.capacity_hours,
                        task_ids=tuple(timeline.tasks.get(day, [])),
                        reserved_hours=timeline.reserved.get(day, 0.0),
                        severity=self._severity(load, timeline.capacity_hours),
                    )
                )
        return tuple(conflicts)

    def _severity(self, load: float, capacity: float) -> ConflictSeverity:
        if capacity <= 0:
            return ConflictSeverity.CRITICAL
        ratio = load / capacity
        if ratio > self.config.severity.critical_ratio:
            return ConflictSeverity.CRITICAL
        if ratio > self.config.severity.major_ratio:
            return ConflictSeverity.MAJOR
        return ConflictSeverity.MINOR

    def _find_bottlenecks(
        self, schedule: Schedule, assignments: Sequence[ResourceAssignment]
    ) -> tuple[Bottleneck, ...]:
        """Resources that are the only assignee of overlapping critical tasks."""
        assignees: dict[str, list[str]] = {}
        for assignment in assignments:
            ids = assignees.setdefault(assignment.task_id, [])
            if assignment.resource_id not in ids:
                ids.append(assignment.resource_id)

        sole_critical: dict[str, list[str]] = {}
        for task in schedule.tasks:
            ids = assignees.get(task.task_id, [])
            if task.is_critical and task.duration_days > 0 and len(ids) == 1:
                sole_critical.setdefault(ids[0], []).append(task.task_id)

        bottlenecks: list[Bottleneck] = []
        for resource_id, task_ids in sole_critical.items():
            if len(task_ids) < 2:
                continue
            active: dict[date, int] = {}
            for tid in task_ids:
                task = schedule.task(tid)
                for offset in range(task.duration_days):
                    day = task.start + timedelta(days=offset)
                    active[day] = active.get(day, 0) + 1
            overlap = sorted(day for day, count in active.items() if count > 1)
            if not overlap:
                continue

            overlap_set = set(overlap)
            involved = tuple(
                tid
                for tid in task_ids
                if any(
                    schedule.task(tid).start + timedelta(days=i) in overlap_set
                    for i in range(schedule.task(tid).duration_days)
                )
            )
            bottlenecks.append(
                Bottleneck(
                    resource_id=resource_id,
                    task_ids=involved,
                    overlap_days=len(overlap),
                    suggestions=(
                        f"Add a second assignee to one of: {', '.join(involved)}",
                        f"Increase {resource_id} capacity from {overlap[0]} to {overlap[-1]}",
                    ),
                )
            )
        return tuple(bottlenecks)

    def _utilization(
        self, timelines: Mapping[str, ResourceTimeline], span: TimeRange | None
    ) -> tuple[ResourceUtilization, ...]:
        result: list[ResourceUtilization] = []
        days = span.days() if span is not None else []
        for resource_id, timeline in timelines.items():
            capacity_total = timeline.capacity_hours * len(days)
            allocated = sum(timeline.own_hours(day) for day in days)
            peak = max((timeline.own_hours(day) for day in days), default=0.0)
            result.append(
                ResourceUtilization(
                    resource_id=resource_id,
                    capacity_hours=capacity_total,
                    allocated_hours=allocated,
                    utilization_rate=allocated / capacity_total if capacity_total > 0 else 0.0,
                    peak_daily_hours=peak,
                )
            )
        return tuple(result)


def _schedule_span(schedule: Schedule) -> TimeRange | None:
    """Inclusive day range covered by the schedule, or None for an empty one."""
    if schedule.duration_days <= 0:
        return None
    return TimeRange(schedule.project_start, schedule.project_finish - timedelta(days=1))
