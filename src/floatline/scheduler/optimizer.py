"""Timeline optimizer: bounded local search over task start constraints.

The search state is a set of start-no-earlier-than dates. Every candidate move
edits that set, the schedule is recomputed with CPM and the resources are
re-analyzed, so dependency order and float are always fresh.

Move kinds:
- level: push a non-critical task later, within its float, off an over-allocated day
- compress: drop a planned-start constraint that holds a task back further than its
  dependencies require
- delay: portfolio mode only; a serial pass that pushes tasks past their float until
  capacity (including other projects' reserved hours) is free
"""

from __future__ import annotations

import heapq
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

from floatline.config import EngineConfig
from floatline.logger import get_logger
from floatline.models import OptimizationGoal, ResourceAssignment, TimeRange

from .core import CancellationToken, Schedule, TimelineSummary, check_cancelled
from .cpm import CriticalPathAnalyzer
from .graph import TaskGraph
from .resources import (
    ResourceAnalysis,
    ResourceConflict,
    ResourceConstraintResolver,
    ResourceLoad,
    daily_requirements,
)

logger = get_logger()


class MoveKind(str, Enum):
    """Kinds of schedule edits the optimizer applies."""

    LEVEL = "level"
    COMPRESS = "compress"
    DELAY = "delay"


@dataclass(frozen=True)
class AppliedMove:
    """A start-date change the optimizer accepted."""

    task_id: str
    kind: MoveKind
    previous_start: date
    new_start: date


@dataclass(frozen=True)
class Improvements:
    """Differences between the original and optimized timelines."""

    duration_reduction: int  # Never negative
    conflicts_resolved: int
    over_allocation_hours_reduced: float
    utilization_gain: float
    delay_days: int = 0  # Finish slip; only non-zero in portfolio mode


@dataclass(frozen=True)
class OptimizationResult:
    """Original vs optimized schedule for a single project."""

    project_id: str
    goals: tuple[OptimizationGoal, ...]
    original_timeline: TimelineSummary
    optimized_timeline: TimelineSummary
    improvements: Improvements
    moves: tuple[AppliedMove, ...]
    iterations: int
    hit_iteration_cap: bool
    original_schedule: Schedule
    optimized_schedule: Schedule
    original_analysis: ResourceAnalysis
    optimized_analysis: ResourceAnalysis


@dataclass(frozen=True)
class _State:
    releases: dict[str, date]
    schedule: Schedule
    analysis: ResourceAnalysis


@dataclass
class _Context:
    graph: TaskGraph
    assignments: Sequence[ResourceAssignment]
    capacities: Mapping[str, float]
    window: TimeRange | None
    reserved: Mapping[str, Mapping[date, float]]
    goals: tuple[OptimizationGoal, ...]


def planned_starts(graph: TaskGraph) -> dict[str, date]:
    """Planned start dates of the graph's tasks, as start-no-earlier-than constraints."""
    return {
        tid: task.planned_start
        for tid, task in graph.tasks.items()
        if task.planned_start is not None
    }


def summarize(schedule: Schedule, analysis: ResourceAnalysis | None = None) -> TimelineSummary:
    """Headline numbers of a schedule and, if given, its resource analysis."""
    return TimelineSummary(
        start=schedule.project_start,
        finish=schedule.project_finish,
        duration_days=schedule.duration_days,
        critical_path=schedule.critical_path,
        conflict_count=analysis.conflict_count if analysis else 0,
        over_allocation_hours=analysis.total_over_allocation_hours if analysis else 0.0,
        average_utilization=analysis.average_utilization if analysis else 0.0,
    )


class TimelineOptimizer:
    """Greedy best-improvement search for a single project's schedule.

    A candidate is accepted only if it does not lengthen the project and strictly
    improves the score: over-allocated hours first, then each requested goal in
    the order given. The loop stops when no candidate improves or the iteration
    cap is reached; the cap is not an error.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()
        self.analyzer = CriticalPathAnalyzer(self.config)
        self.resolver = ResourceConstraintResolver(self.config)

    def optimize(  # noqa: PLR0913 - keyword-only options
        self,
        graph: TaskGraph,
        assignments: Sequence[ResourceAssignment],
        capacities: Mapping[str, float],
        goals: Sequence[OptimizationGoal],
        *,
        window: TimeRange | None = None,
        reserved_load: Mapping[str, Mapping[date, float]] | None = None,
        allow_delay: bool = False,
        cancel_token: CancellationToken | None = None,
    ) -> OptimizationResult:
        """Search for a better schedule.

        Args:
            graph: Validated task graph
            assignments: Effective resource assignments for the graph's tasks
            capacities: Hours per day for every assigned resource
            goals: Ordered goal preferences
            window: Only conflicts inside this range are considered
            reserved_load: Hours other projects already hold, per resource and day
            allow_delay: Permit pushing tasks past their float (portfolio mode)
            cancel_token: Checked once per iteration

        Returns:
            OptimizationResult; when no move is accepted the optimized schedule is
            the original schedule object
        """
        ctx = _Context(
            graph=graph,
            assignments=assignments,
            capacities=capacities,
            window=window,
            reserved=reserved_load or {},
            goals=tuple(dict.fromkeys(goals)),
        )
        project_id = graph.project_id

        original = self._evaluate(ctx, planned_starts(graph))
        duration_limit = original.schedule.duration_days

        current = original
        moves: list[AppliedMove] = []
        iterations = 0
        hit_cap = False

        for _ in range(self.config.max_iterations):
            check_cancelled(cancel_token, "optimizer", project_id)
            iterations += 1
            step = self._best_move(ctx, current, duration_limit)
            if step is None:
                break
            current, move = step
            moves.append(move)
            logger.changes(
                f"  {project_id}: {move.kind.value} {move.task_id} "
                f"{move.previous_start} -> {move.new_start}"
            )
        else:
            hit_cap = True
            logger.checks(
                f"{project_id}: iteration cap {self.config.max_iterations} reached, "
                "keeping best schedule found"
            )

        if allow_delay and current.analysis.has_conflicts:
            check_cancelled(cancel_token, "optimizer", project_id)
            delayed = self._delay_pass(ctx, current)
            if (
                delayed.analysis.total_over_allocation_hours
                < current.analysis.total_over_allocation_hours
            ):
                delay_moves = self._diff_moves(current.schedule, delayed.schedule, MoveKind.DELAY)
                for move in delay_moves:
                    logger.changes(
                        f"  {project_id}: delay {move.task_id} "
                        f"{move.previous_start} -> {move.new_start}"
                    )
                moves.extend(delay_moves)
                current = delayed

        return self._build_result(ctx, original, current, moves, iterations, hit_cap)

    def _evaluate(self, ctx: _Context, releases: dict[str, date]) -> _State:
        schedule = self.analyzer.analyze(ctx.graph, start_constraints=releases)
        analysis = self.resolver.analyze(
            schedule,
            ctx.graph,
            ctx.assignments,
            ctx.capacities,
            window=ctx.window,
            reserved_load=ctx.reserved,
        )
        return _State(releases=releases, schedule=schedule, analysis=analysis)

    def _score(self, ctx: _Context, state: _State) -> tuple[float, ...]:
        parts: list[float] = [round(state.analysis.total_over_allocation_hours, 6)]
        for goal in ctx.goals:
            if goal == OptimizationGoal.MINIMIZE_DURATION:
                parts.append(float(state.schedule.duration_days))
            elif goal == OptimizationGoal.MAXIMIZE_RESOURCE_UTILIZATION:
                parts.append(-round(state.analysis.average_utilization, 6))
        return tuple(parts)

    def _best_move(
        self, ctx: _Context, current: _State, duration_limit: int
    ) -> tuple[_State, AppliedMove] | None:
        current_score = self._score(ctx, current)
        best: tuple[_State, AppliedMove] | None = None
        best_score = current_score

        for move, releases in self._candidates(ctx, current):
            candidate = self._evaluate(ctx, releases)
            if candidate.schedule.duration_days > duration_limit:
                continue
            score = self._score(ctx, candidate)
            logger.checks(
                f"    candidate {move.kind.value} {move.task_id} -> {move.new_start}: "
                f"score {score} (current {current_score})"
            )
            if score < best_score:
                best = (candidate, move)
                best_score = score

        return best

    def _candidates(
        self, ctx: _Context, current: _State
    ) -> list[tuple[AppliedMove, dict[str, date]]]:
        candidates: list[tuple[AppliedMove, dict[str, date]]] = []
        seen: set[tuple[str, date | None]] = set()

        if current.analysis.has_conflicts:
            for task_id, new_start in self._leveling_shifts(current):
                if (task_id, new_start) in seen:
                    continue
                seen.add((task_id, new_start))
                releases = dict(current.releases)
                releases[task_id] = new_start
                move = AppliedMove(
                    task_id=task_id,
                    kind=MoveKind.LEVEL,
                    previous_start=current.schedule.task(task_id).start,
                    new_start=new_start,
                )
                candidates.append((move, releases))

        if ctx.goals:
            for task_id, new_start in self._compression_pulls(ctx, current):
                if (task_id, None) in seen:
                    continue
                seen.add((task_id, None))
                releases = dict(current.releases)
                del releases[task_id]
                move = AppliedMove(
                    task_id=task_id,
                    kind=MoveKind.COMPRESS,
                    previous_start=current.schedule.task(task_id).start,
                    new_start=new_start,
                )
                candidates.append((move, releases))

        return candidates

    def _leveling_shifts(self, current: _State) -> list[tuple[str, date]]:
        """Later start dates for non-critical tasks involved in the worst conflicts."""
        schedule = current.schedule
        worst = sorted(
            current.analysis.conflicts,
            key=lambda c: (-c.over_hours, c.day, c.resource_id),
        )[: self.config.max_conflicts_per_iteration]

        shifts: list[tuple[str, date]] = []
        for conflict in worst:
            run_end = self._conflict_run_end(current.analysis, conflict)
            for task_id in dict.fromkeys(conflict.task_ids):
                task = schedule.task(task_id)
                if task.is_critical or task.float_days <= 0:
                    continue
                clear_day = (conflict.day - task.start).days + 1
                clear_run = (run_end - task.start).days + 1
                for shift in sorted({clear_day, clear_run, task.float_days}):
                    if 1 <= shift <= task.float_days:
                        shifts.append((task_id, task.start + timedelta(days=shift)))
        return shifts

    def _conflict_run_end(self, analysis: ResourceAnalysis, conflict: ResourceConflict) -> date:
        """Last day of the consecutive over-allocated run containing the conflict."""
        over_days = {
            c.day for c in analysis.conflicts if c.resource_id == conflict.resource_id
        }
        run_end = conflict.day
        while run_end + timedelta(days=1) in over_days:
            run_end += timedelta(days=1)
        return run_end

    def _compression_pulls(self, ctx: _Context, current: _State) -> list[tuple[str, date]]:
        """Tasks held later than their dependencies require by a start constraint."""
        schedule = current.schedule
        origin = ctx.graph.project.start_date
        pulls: list[tuple[str, date]] = []
        for task_id in ctx.graph.topological_order:
            if task_id not in current.releases:
                continue
            dependency_start = max(
                (schedule.task(p).finish for p in ctx.graph.predecessors[task_id]),
                default=origin,
            )
            if schedule.task(task_id).start > dependency_start:
                pulls.append((task_id, dependency_start))
        return pulls

    def _delay_pass(self, ctx: _Context, current: _State) -> _State:
        """Serial schedule generation against capacity.

        Tasks are placed in a precedence-feasible order, smallest latest-start first,
        each at the first start where every resource it needs has room on every day
        of its window. A resource with no other load on a day always has room, so a
        task that alone exceeds capacity is not pushed forever. Placement gives up
        after max_delay_days and keeps the dependency-driven start.
        """
        graph = ctx.graph
        schedule = current.schedule
        origin = graph.project.start_date
        needs = daily_requirements(graph, ctx.assignments)
        position = {tid: i for i, tid in enumerate(graph.topological_order)}
        remaining = {tid: len(graph.predecessors[tid]) for tid in graph.tasks}

        heap = [(schedule.task(tid).latest_start, position[tid], tid) for tid in graph.sources()]
        heapq.heapify(heap)

        placed: ResourceLoad = {}
        finish: dict[str, date] = {}
        releases = dict(current.releases)

        while heap:
            _, _, task_id = heapq.heappop(heap)
            task = graph.tasks[task_id]
            earliest = max((finish[p] for p in graph.predecessors[task_id]), default=origin)
            constraint = current.releases.get(task_id)
            if constraint is not None and constraint > earliest:
                earliest = constraint

            start = self._first_fit(ctx, earliest, task.duration_days, needs[task_id], placed)
            if start > earliest:
                releases[task_id] = start
            finish[task_id] = start + timedelta(days=task.duration_days)

            for resource_id, hours in needs[task_id]:
                bucket = placed.setdefault(resource_id, {})
                for offset in range(task.duration_days):
                    day = start + timedelta(days=offset)
                    bucket[day] = bucket.get(day, 0.0) + hours

            for succ in graph.successors[task_id]:
                remaining[succ] -= 1
                if remaining[succ] == 0:
                    heapq.heappush(heap, (schedule.task(succ).latest_start, position[succ], succ))

        return self._evaluate(ctx, releases)

    def _first_fit(
        self,
        ctx: _Context,
        earliest: date,
        duration_days: int,
        needs: list[tuple[str, float]],
        placed: ResourceLoad,
    ) -> date:
        if duration_days <= 0 or not needs:
            return earliest

        limit = earliest + timedelta(days=self.config.max_delay_days)
        start = earliest
        while start <= limit:
            blocked = self._first_blocked_day(ctx, start, duration_days, needs, placed)
            if blocked is None:
                return start
            # Any start on or before the blocked day would still cover it
            start = blocked + timedelta(days=1)
        return earliest

    def _first_blocked_day(
        self,
        ctx: _Context,
        start: date,
        duration_days: int,
        needs: list[tuple[str, float]],
        placed: ResourceLoad,
    ) -> date | None:
        tolerance = self.config.capacity_tolerance_hours
        for offset in range(duration_days):
            day = start + timedelta(days=offset)
            for resource_id, hours in needs:
                used = ctx.reserved.get(resource_id, {}).get(day, 0.0) + placed.get(
                    resource_id, {}
                ).get(day, 0.0)
                if used > tolerance and used + hours > ctx.capacities[resource_id] + tolerance:
                    return day
        return None

    def _diff_moves(self, before: Schedule, after: Schedule, kind: MoveKind) -> list[AppliedMove]:
        return [
            AppliedMove(
                task_id=task.task_id,
                kind=kind,
                previous_start=before.task(task.task_id).start,
                new_start=task.start,
            )
            for task in after.tasks
            if task.start != before.task(task.task_id).start
        ]

    def _build_result(  # noqa: PLR0913 - assembles the final record
        self,
        ctx: _Context,
        original: _State,
        optimized: _State,
        moves: list[AppliedMove],
        iterations: int,
        hit_cap: bool,
    ) -> OptimizationResult:
        original_timeline = summarize(original.schedule, original.analysis)
        optimized_timeline = summarize(optimized.schedule, optimized.analysis)

        improvements = Improvements(
            duration_reduction=max(
                0, original_timeline.duration_days - optimized_timeline.duration_days
            ),
            conflicts_resolved=max(
                0, original_timeline.conflict_count - optimized_timeline.conflict_count
            ),
            over_allocation_hours_reduced=max(
                0.0,
                original_timeline.over_allocation_hours - optimized_timeline.over_allocation_hours,
            ),
            utilization_gain=(
                optimized_timeline.average_utilization - original_timeline.average_utilization
            ),
            delay_days=max(0, (optimized_timeline.finish - original_timeline.finish).days),
        )

        return OptimizationResult(
            project_id=ctx.graph.project_id,
            goals=ctx.goals,
            original_timeline=original_timeline,
            optimized_timeline=optimized_timeline,
            improvements=improvements,
            moves=tuple(moves),
            iterations=iterations,
            hit_iteration_cap=hit_cap,
            original_schedule=original.schedule,
            optimized_schedule=optimized.schedule,
            original_analysis=original.analysis,
            optimized_analysis=optimized.analysis,
        )
