"""High-level optimization service: the three exposed operations."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel

from floatline.config import EngineConfig
from floatline.logger import get_logger
from floatline.models import TimeRange
from floatline.storage import load_capacities

from .core import (
    CancellationToken,
    FloatAnalysis,
    Schedule,
    ScheduleMetadata,
    TimelineSummary,
    check_cancelled,
)
from .cpm import CriticalPathAnalyzer
from .graph import TaskGraph, TaskGraphBuilder
from .optimizer import AppliedMove, Improvements, TimelineOptimizer, planned_starts
from .portfolio import PortfolioResult, PortfolioScheduler
from .requests import CriticalPathRequest, DeliveryScheduleRequest, TimelineOptimizationRequest
from .resources import (
    Bottleneck,
    ResourceAnalysis,
    ResourceConflict,
    ResourceConstraintResolver,
    effective_assignments,
)

if TYPE_CHECKING:
    from floatline.models import ResourceAssignment
    from floatline.storage import StorageReader

logger = get_logger()

RequestT = TypeVar("RequestT", bound=BaseModel)


@dataclass(frozen=True)
class CriticalPathResult:
    """Result of analyze_critical_path."""

    project_id: str
    schedule: Schedule
    metadata: ScheduleMetadata
    feasible: bool
    float_analysis: FloatAnalysis | None = None
    resource_analysis: ResourceAnalysis | None = None


@dataclass(frozen=True)
class TimelineOptimizationResult:
    """Result of optimize_project_timeline."""

    project_id: str
    original_timeline: TimelineSummary
    optimized_timeline: TimelineSummary
    improvements: Improvements
    moves: tuple[AppliedMove, ...]
    iterations: int
    hit_iteration_cap: bool
    schedule: Schedule
    remaining_conflicts: tuple[ResourceConflict, ...]
    bottlenecks: tuple[Bottleneck, ...]


def _coerce(model: type[RequestT], request: RequestT | Mapping[str, Any]) -> RequestT:
    """Accept a request model or a raw mapping; mappings are validated."""
    if isinstance(request, model):
        return request
    return model.model_validate(request)


class OptimizationService:
    """Entry points consumed by the calling API layer.

    Stateless apart from the injected storage and config; construct one per
    request. Cancellation is checked between stages and, inside the optimizer,
    once per search iteration.
    """

    def __init__(self, storage: StorageReader, config: EngineConfig | None = None) -> None:
        self.storage = storage
        self.config = config or EngineConfig()

    def optimize_project_timeline(
        self,
        request: TimelineOptimizationRequest | Mapping[str, Any],
        cancel_token: CancellationToken | None = None,
    ) -> TimelineOptimizationResult:
        """Level resources and shorten one project's schedule.

        Raises:
            pydantic.ValidationError: Malformed request or unknown goal
            ValidationError: Invalid task graph (cycle, unknown dependency, bad task)
            ResourceDataUnavailableError: A capacity could not be loaded
            OptimizationCancelledError: The token was cancelled
        """
        req = _coerce(TimelineOptimizationRequest, request)
        window = req.window
        project_id = req.project_id

        graph = self._build(project_id, window, cancel_token)
        assignments, capacities = self._load_resources(graph, window, cancel_token)

        check_cancelled(cancel_token, "optimize", project_id)
        result = TimelineOptimizer(self.config).optimize(
            graph,
            assignments,
            capacities,
            req.optimization_goals,
            window=window,
            cancel_token=cancel_token,
        )

        logger.info(
            f"Optimized {project_id}: {result.original_timeline.duration_days}d -> "
            f"{result.optimized_timeline.duration_days}d, "
            f"{result.improvements.conflicts_resolved} conflict(s) resolved, "
            f"{len(result.moves)} move(s)"
        )

        return TimelineOptimizationResult(
            project_id=project_id,
            original_timeline=result.original_timeline,
            optimized_timeline=result.optimized_timeline,
            improvements=result.improvements,
            moves=result.moves,
            iterations=result.iterations,
            hit_iteration_cap=result.hit_iteration_cap,
            schedule=result.optimized_schedule,
            remaining_conflicts=result.optimized_analysis.conflicts,
            bottlenecks=result.optimized_analysis.bottlenecks,
        )

    def analyze_critical_path(
        self,
        request: CriticalPathRequest | Mapping[str, Any],
        cancel_token: CancellationToken | None = None,
    ) -> CriticalPathResult:
        """Compute the CPM schedule of one project.

        An infeasible deadline does not raise: the schedule carries negative float
        and ``feasible`` is False. Planned starts are ignored unless
        ``respect_planned_starts`` is set, so by default the critical path spans the
        whole project duration.
        """
        req = _coerce(CriticalPathRequest, request)
        project_id = req.project_id

        graph = self._build(project_id, None, cancel_token)

        check_cancelled(cancel_token, "analyze", project_id)
        constraints = planned_starts(graph) if req.respect_planned_starts else None
        schedule = CriticalPathAnalyzer(self.config).analyze(
            graph, deadline=req.deadline, start_constraints=constraints
        )

        float_analysis = None
        if req.include_float_analysis:
            threshold = req.risk_threshold
            if threshold is None:
                threshold = self.config.default_risk_threshold
            float_analysis = schedule.float_analysis(threshold)

        resource_analysis = None
        if req.include_resource_analysis:
            assignments, capacities = self._load_resources(graph, None, cancel_token)
            resource_analysis = ResourceConstraintResolver(self.config).analyze(
                schedule, graph, assignments, capacities
            )

        return CriticalPathResult(
            project_id=project_id,
            schedule=schedule,
            metadata=schedule.metadata,
            feasible=schedule.is_feasible,
            float_analysis=float_analysis,
            resource_analysis=resource_analysis,
        )

    def optimize_delivery_schedule(
        self,
        request: DeliveryScheduleRequest | Mapping[str, Any],
        cancel_token: CancellationToken | None = None,
    ) -> PortfolioResult:
        """Sequence several projects over shared resources.

        Project-scoped failures are reported in ``errors`` instead of raised.
        """
        req = _coerce(DeliveryScheduleRequest, request)
        result = PortfolioScheduler(self.storage, self.config).schedule(
            req.project_ids,
            req.window,
            req.optimization_objectives,
            cancel_token=cancel_token,
        )
        summary = result.portfolio_summary
        logger.info(
            f"Portfolio of {summary.total_projects} project(s): {summary.on_time_projects} "
            f"on time, {summary.delayed_projects} delayed, {summary.failed_projects} failed"
        )
        return result

    def _build(
        self, project_id: str, window: TimeRange | None, cancel_token: CancellationToken | None
    ) -> TaskGraph:
        check_cancelled(cancel_token, "build", project_id)
        return TaskGraphBuilder(self.storage).build(project_id, window)

    def _load_resources(
        self,
        graph: TaskGraph,
        window: TimeRange | None,
        cancel_token: CancellationToken | None,
    ) -> tuple[list[ResourceAssignment], dict[str, float]]:
        check_cancelled(cancel_token, "resources", graph.project_id)
        loaded = self.storage.load_resource_assignments(graph.project_id, window)
        assignments = effective_assignments(graph, loaded)
        return assignments, load_capacities(self.storage, assignments, graph.project_id)
