"""Portfolio scheduling: priority-ordered greedy placement of several projects."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

from floatline.config import EngineConfig
from floatline.exceptions import PROJECT_SCOPED_ERRORS, FloatlineError
from floatline.logger import get_logger
from floatline.models import (
    ObjectiveKind,
    OptimizationGoal,
    OptimizationObjective,
    Project,
    ResourceAssignment,
    TimeRange,
    normalize_objectives,
)
from floatline.storage import load_capacities

from .core import CancellationToken, Schedule, check_cancelled
from .cpm import CriticalPathAnalyzer
from .graph import TaskGraph, TaskGraphBuilder
from .optimizer import OptimizationResult, TimelineOptimizer, planned_starts
from .resources import (
    ResourceAnalysis,
    ResourceConstraintResolver,
    ResourceLoad,
    effective_assignments,
    merge_load,
)

if TYPE_CHECKING:
    from floatline.storage import StorageReader

logger = get_logger()

# Portfolio objectives that also steer each project's local search
_GOAL_FOR_OBJECTIVE = {
    ObjectiveKind.MINIMIZE_DURATION: OptimizationGoal.MINIMIZE_DURATION,
    ObjectiveKind.MAXIMIZE_RESOURCE_UTILIZATION: OptimizationGoal.MAXIMIZE_RESOURCE_UTILIZATION,
}


@dataclass(frozen=True)
class ProjectError:
    """A project excluded from a portfolio run, with the error that excluded it."""

    project_id: str
    error: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, project_id: str, exc: FloatlineError) -> ProjectError:
        return cls(
            project_id=exc.project_id or project_id,
            error=type(exc).__name__,
            message=exc.message,
            details={"task_id": exc.task_id, **exc.details()},
        )


@dataclass(frozen=True)
class ProjectDeliveryResult:
    """Where one project landed in the portfolio schedule."""

    project_id: str
    name: str
    priority: int
    target_date: date
    baseline_finish: date
    optimized_finish: date
    delay_days: int
    on_time: bool
    sequence_position: int
    optimization: OptimizationResult


@dataclass(frozen=True)
class PortfolioSummary:
    total_projects: int
    on_time_projects: int
    delayed_projects: int
    average_delay: float  # Mean over delayed projects only
    failed_projects: int = 0


@dataclass(frozen=True)
class CandidateScore:
    """Weighted score of one candidate sequencing."""

    rule: str
    sequence: tuple[str, ...]
    score: float
    penalties: dict[ObjectiveKind, float]


@dataclass(frozen=True)
class PortfolioResult:
    per_project_results: tuple[ProjectDeliveryResult, ...]  # Input order
    portfolio_summary: PortfolioSummary
    errors: tuple[ProjectError, ...]
    objectives: dict[ObjectiveKind, float]
    sequence: tuple[str, ...]
    candidates: tuple[CandidateScore, ...]
    resource_analysis: ResourceAnalysis | None = None


@dataclass(frozen=True)
class _Prepared:
    index: int
    project: Project
    graph: TaskGraph
    baseline: Schedule
    assignments: list[ResourceAssignment]
    capacities: dict[str, float]


@dataclass
class _Outcome:
    rule: str
    ordered: list[_Prepared]
    results: dict[str, OptimizationResult]
    delays: dict[str, int]
    analysis: ResourceAnalysis
    penalties: dict[ObjectiveKind, float]
    score: float


# Tie-breaks between projects of equal priority; higher priority always goes first
_SEQUENCING_RULES: list[tuple[str, Callable[[_Prepared], tuple[Any, ...]]]] = [
    ("input_order", lambda p: (-p.project.priority, p.index)),
    ("earliest_due_date", lambda p: (-p.project.priority, p.project.due_date, p.index)),
    (
        "shortest_duration",
        lambda p: (-p.project.priority, p.baseline.duration_days, p.index),
    ),
]


class PortfolioScheduler:
    """Sequences several projects over shared resources.

    Projects are placed one at a time in descending priority. Each placement runs
    the timeline optimizer in delay mode against the hours already claimed by
    the projects placed before it, so higher-priority work gets first claim on
    contested resources. Candidate sequencings differ only in how projects of
    equal priority are ordered; the one with the lowest weighted penalty wins.
    """

    def __init__(self, storage: StorageReader, config: EngineConfig | None = None) -> None:
        self.storage = storage
        self.config = config or EngineConfig()
        self.builder = TaskGraphBuilder(storage)
        self.analyzer = CriticalPathAnalyzer(self.config)
        self.resolver = ResourceConstraintResolver(self.config)
        self.optimizer = TimelineOptimizer(self.config)

    def schedule(
        self,
        project_ids: Sequence[str],
        time_range: TimeRange | None = None,
        objectives: Sequence[OptimizationObjective] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> PortfolioResult:
        """Schedule a batch of projects.

        Project-scoped failures (invalid graphs, unknown projects, missing resource
        data) exclude the project and are reported in ``errors``; anything else
        aborts the run.
        """
        weights = normalize_objectives(list(objectives or []), self.config.default_objectives)
        logger.debug(
            "Portfolio objectives: "
            + ", ".join(f"{kind.value}={weight:.3f}" for kind, weight in weights.items())
        )

        prepared, errors = self._prepare_all(project_ids, time_range, cancel_token)

        if not prepared:
            return PortfolioResult(
                per_project_results=(),
                portfolio_summary=PortfolioSummary(0, 0, 0, 0.0, failed_projects=len(errors)),
                errors=tuple(errors),
                objectives=weights,
                sequence=(),
                candidates=(),
            )

        goals = [
            _GOAL_FOR_OBJECTIVE[kind]
            for kind, _ in sorted(weights.items(), key=lambda item: -item[1])
            if kind in _GOAL_FOR_OBJECTIVE
        ]

        best: _Outcome | None = None
        candidates: list[CandidateScore] = []
        seen: set[tuple[str, ...]] = set()
        for rule, key in _SEQUENCING_RULES:
            ordered = sorted(prepared, key=key)
            sequence = tuple(p.project.id for p in ordered)
            if sequence in seen:
                continue
            seen.add(sequence)

            outcome = self._run_sequence(rule, ordered, goals, weights, time_range, cancel_token)
            candidates.append(
                CandidateScore(
                    rule=rule, sequence=sequence, score=outcome.score, penalties=outcome.penalties
                )
            )
            logger.checks(
                f"Sequence {rule} [{', '.join(sequence)}]: score {outcome.score:.4f}"
            )
            if best is None or outcome.score < best.score:
                best = outcome

        assert best is not None
        logger.changes(
            f"Portfolio sequence ({best.rule}): {' -> '.join(p.project.id for p in best.ordered)}"
        )
        return self._build_result(prepared, best, errors, weights, candidates)

    def _prepare_all(
        self,
        project_ids: Sequence[str],
        time_range: TimeRange | None,
        cancel_token: CancellationToken | None,
    ) -> tuple[list[_Prepared], list[ProjectError]]:
        """Build and analyze every project on worker threads."""
        check_cancelled(cancel_token, "prepare")
        unique_ids = list(dict.fromkeys(project_ids))
        prepared: list[_Prepared] = []
        errors: list[ProjectError] = []

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            futures: list[tuple[str, Future[_Prepared]]] = [
                (pid, pool.submit(self._prepare, index, pid, time_range))
                for index, pid in enumerate(unique_ids)
            ]
            for project_id, future in futures:
                try:
                    prepared.append(future.result())
                except PROJECT_SCOPED_ERRORS as e:
                    logger.changes(f"Excluding project {project_id}: {e.message}")
                    errors.append(ProjectError.from_exception(project_id, e))

        check_cancelled(cancel_token, "prepare")
        return prepared, errors

    def _prepare(self, index: int, project_id: str, time_range: TimeRange | None) -> _Prepared:
        graph = self.builder.build(project_id, time_range)
        baseline = self.analyzer.analyze(graph, start_constraints=planned_starts(graph))
        loaded = self.storage.load_resource_assignments(project_id, time_range)
        assignments = effective_assignments(graph, loaded)
        capacities = load_capacities(self.storage, assignments, project_id)
        return _Prepared(
            index=index,
            project=graph.project,
            graph=graph,
            baseline=baseline,
            assignments=assignments,
            capacities=capacities,
        )

    def _run_sequence(  # noqa: PLR0913 - one candidate needs the full context
        self,
        rule: str,
        ordered: list[_Prepared],
        goals: list[OptimizationGoal],
        weights: dict[ObjectiveKind, float],
        time_range: TimeRange | None,
        cancel_token: CancellationToken | None,
    ) -> _Outcome:
        reserved: ResourceLoad = {}
        results: dict[str, OptimizationResult] = {}

        for item in ordered:
            check_cancelled(cancel_token, "portfolio", item.project.id)
            result = self.optimizer.optimize(
                item.graph,
                item.assignments,
                item.capacities,
                goals,
                window=time_range,
                reserved_load=reserved,
                allow_delay=True,
                cancel_token=cancel_token,
            )
            merge_load(reserved, result.optimized_analysis.own_load())
            results[item.project.id] = result

        capacities: dict[str, float] = {}
        for item in ordered:
            capacities.update(item.capacities)
        analysis = self.resolver.analyze_portfolio(
            [(results[p.project.id].optimized_schedule, p.assignments) for p in ordered],
            capacities,
            window=time_range,
        )

        delays = {
            p.project.id: _delay_days(results[p.project.id].optimized_schedule, p.project)
            for p in ordered
        }
        penalties = self._penalties(ordered, results, delays, analysis)
        score = sum(weight * penalties[kind] for kind, weight in weights.items())
        return _Outcome(
            rule=rule,
            ordered=ordered,
            results=results,
            delays=delays,
            analysis=analysis,
            penalties=penalties,
            score=score,
        )

    def _penalties(
        self,
        ordered: list[_Prepared],
        results: dict[str, OptimizationResult],
        delays: dict[str, int],
        analysis: ResourceAnalysis,
    ) -> dict[ObjectiveKind, float]:
        """Each penalty is scaled into [0, 1]; lower is better."""
        baseline_total = sum(p.baseline.duration_days for p in ordered)
        total_delay = sum(delays.values())
        if baseline_total > 0:
            delay_penalty = total_delay / baseline_total
        else:
            delay_penalty = float(total_delay > 0)

        pairs = 0
        inversions = 0
        for high in ordered:
            for low in ordered:
                if high.project.priority <= low.project.priority:
                    continue
                pairs += 1
                high_delay = delays[high.project.id]
                if high_delay > 0 and high_delay > delays[low.project.id]:
                    inversions += 1
        priority_penalty = inversions / pairs if pairs else 0.0

        allocated = analysis.total_allocated_hours
        conflict_penalty = (
            analysis.total_over_allocation_hours / allocated if allocated > 0 else 0.0
        )

        baseline_span = _makespan([p.baseline for p in ordered])
        optimized_span = _makespan([results[p.project.id].optimized_schedule for p in ordered])
        growth = max(0, optimized_span - baseline_span)
        duration_penalty = growth / baseline_span if baseline_span > 0 else 0.0

        utilization_penalty = 1.0 - analysis.average_utilization

        return {
            ObjectiveKind.MINIMIZE_TOTAL_DELAY: _clamp(delay_penalty),
            ObjectiveKind.MAXIMIZE_PRIORITY_ADHERENCE: _clamp(priority_penalty),
            ObjectiveKind.MINIMIZE_RESOURCE_CONFLICTS: _clamp(conflict_penalty),
            ObjectiveKind.MINIMIZE_DURATION: _clamp(duration_penalty),
            ObjectiveKind.MAXIMIZE_RESOURCE_UTILIZATION: _clamp(utilization_penalty),
        }

    def _build_result(
        self,
        prepared: list[_Prepared],
        best: _Outcome,
        errors: list[ProjectError],
        weights: dict[ObjectiveKind, float],
        candidates: list[CandidateScore],
    ) -> PortfolioResult:
        position = {p.project.id: i for i, p in enumerate(best.ordered)}
        per_project: list[ProjectDeliveryResult] = []
        for item in prepared:
            pid = item.project.id
            result = best.results[pid]
            delay = best.delays[pid]
            per_project.append(
                ProjectDeliveryResult(
                    project_id=pid,
                    name=item.project.name,
                    priority=item.project.priority,
                    target_date=item.project.due_date,
                    baseline_finish=result.original_schedule.project_finish,
                    optimized_finish=result.optimized_schedule.project_finish,
                    delay_days=delay,
                    on_time=delay == 0,
                    sequence_position=position[pid],
                    optimization=result,
                )
            )

        delayed = [r.delay_days for r in per_project if r.delay_days > 0]
        summary = PortfolioSummary(
            total_projects=len(per_project),
            on_time_projects=len(per_project) - len(delayed),
            delayed_projects=len(delayed),
            average_delay=sum(delayed) / len(delayed) if delayed else 0.0,
            failed_projects=len(errors),
        )

        return PortfolioResult(
            per_project_results=tuple(per_project),
            portfolio_summary=summary,
            errors=tuple(errors),
            objectives=weights,
            sequence=tuple(p.project.id for p in best.ordered),
            candidates=tuple(candidates),
            resource_analysis=best.analysis,
        )


def _delay_days(schedule: Schedule, project: Project) -> int:
    # Both dates are exclusive finish boundaries
    return max(0, (schedule.project_finish - project.due_date).days)


def _makespan(schedules: list[Schedule]) -> int:
    if not schedules:
        return 0
    start = min(s.project_start for s in schedules)
    finish = max(s.project_finish for s in schedules)
    return max(0, (finish - start).days)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))
