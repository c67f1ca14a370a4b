"""Scheduler package - critical path analysis and resource-constrained optimization.

Pipeline stages, each producing new immutable values:
- TaskGraphBuilder: load and validate a project's dependency DAG
- CriticalPathAnalyzer: forward/backward pass, float, critical chains
- ResourceConstraintResolver: over-allocation conflicts, bottlenecks, utilization
- TimelineOptimizer: bounded local search over task start constraints
- PortfolioScheduler: priority-ordered greedy placement of several projects

Main entry point:
- OptimizationService: optimize_project_timeline, analyze_critical_path,
  optimize_delivery_schedule
"""

# Core dataclasses
from .core import (
    CancellationToken,
    FloatAnalysis,
    Schedule,
    ScheduledTask,
    ScheduleMetadata,
    TimelineSummary,
)

# Pipeline stages
from .cpm import CriticalPathAnalyzer
from .graph import TaskGraph, TaskGraphBuilder, build_task_graph
from .optimizer import (
    AppliedMove,
    Improvements,
    MoveKind,
    OptimizationResult,
    TimelineOptimizer,
)
from .portfolio import (
    CandidateScore,
    PortfolioResult,
    PortfolioScheduler,
    PortfolioSummary,
    ProjectDeliveryResult,
    ProjectError,
)

# Requests
from .requests import (
    CriticalPathRequest,
    DeliveryScheduleRequest,
    TimelineOptimizationRequest,
    TimeRangeSpec,
)
from .resources import (
    Bottleneck,
    ConflictSeverity,
    ResourceAnalysis,
    ResourceConflict,
    ResourceConstraintResolver,
    ResourceTimeline,
    ResourceUtilization,
)

# High-level service
from .service import CriticalPathResult, OptimizationService, TimelineOptimizationResult

__all__ = [
    # Core dataclasses
    "CancellationToken",
    "FloatAnalysis",
    "Schedule",
    "ScheduledTask",
    "ScheduleMetadata",
    "TimelineSummary",
    # Graph
    "TaskGraph",
    "TaskGraphBuilder",
    "build_task_graph",
    # Critical path
    "CriticalPathAnalyzer",
    # Resources
    "Bottleneck",
    "ConflictSeverity",
    "ResourceAnalysis",
    "ResourceConflict",
    "ResourceConstraintResolver",
    "ResourceTimeline",
    "ResourceUtilization",
    # Optimizer
    "AppliedMove",
    "Improvements",
    "MoveKind",
    "OptimizationResult",
    "TimelineOptimizer",
    # Portfolio
    "CandidateScore",
    "PortfolioResult",
    "PortfolioScheduler",
    "PortfolioSummary",
    "ProjectDeliveryResult",
    "ProjectError",
    # Requests
    "CriticalPathRequest",
    "DeliveryScheduleRequest",
    "TimelineOptimizationRequest",
    "TimeRangeSpec",
    # High-level service
    "CriticalPathResult",
    "OptimizationService",
    "TimelineOptimizationResult",
]
