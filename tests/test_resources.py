"""Tests for resource timelines and the constraint resolver."""

import pytest

from floatline.config import EngineConfig, SeverityConfig
from floatline.exceptions import ResourceDataUnavailableError
from floatline.models import TimeRange
from floatline.scheduler.cpm import CriticalPathAnalyzer
from floatline.scheduler.resources import (
    ConflictSeverity,
    ResourceConstraintResolver,
    ResourceTimeline,
    daily_requirements,
    effective_assignments,
    merge_load,
)
from tests.conftest import assign, day, graph_of, task


class TestResourceTimeline:
    """Test per-day bookkeeping."""

    def test_allocation_spreads_over_days(self) -> None:
        timeline = ResourceTimeline("r", 8.0)
        timeline.add_allocation("t", day(0), 3, 4.0)

        assert timeline.booked_days() == [day(0), day(1), day(2)]
        assert timeline.own_hours(day(1)) == 4.0
        assert timeline.own_hours(day(3)) == 0.0

    def test_reserved_hours_count_towards_load(self) -> None:
        timeline = ResourceTimeline("r", 8.0, reserved={day(0): 6.0, day(5): 10.0})
        timeline.add_allocation("t", day(0), 1, 4.0)

        assert timeline.load_on(day(0)) == 10.0
        # Day 5 is over capacity only through reserved hours, which are not ours
        assert timeline.over_allocated_days() == [day(0)]


class TestEffectiveAssignments:
    """Test derivation of assignments from task resource lists."""

    def test_effort_split_among_listed_resources(self) -> None:
        graph = graph_of(task("a", 2, effort=30.0, resources=["x", "y"]))

        result = effective_assignments(graph, [])

        assert result == [assign("x", "a", 15.0), assign("y", "a", 15.0)]

    def test_explicit_assignment_wins(self) -> None:
        graph = graph_of(task("a", 2, effort=30.0, resources=["x", "y"]))

        result = effective_assignments(graph, [assign("x", "a", 4.0)])

        assert result == [assign("x", "a", 4.0), assign("y", "a", 15.0)]

    def test_unknown_task_dropped(self) -> None:
        graph = graph_of(task("a"))

        assert effective_assignments(graph, [assign("x", "ghost", 4.0)]) == []

    def test_daily_requirements(self) -> None:
        graph = graph_of(task("a", 4), task("m", 0))

        needs = daily_requirements(graph, [assign("x", "a", 20.0), assign("x", "m", 5.0)])

        assert needs == {"a": [("x", 5.0)], "m": []}

    def test_merge_load(self) -> None:
        target = {"r": {day(0): 2.0}}
        merge_load(target, {"r": {day(0): 3.0, day(1): 1.0}, "s": {day(0): 4.0}})

        assert target == {"r": {day(0): 5.0, day(1): 1.0}, "s": {day(0): 4.0}}


class TestConflictDetection:
    """Test over-allocation detection."""

    def test_parallel_tasks_overbook_resource(
        self, analyzer: CriticalPathAnalyzer, resolver: ResourceConstraintResolver
    ) -> None:
        graph = graph_of(task("a", 2), task("b", 3))
        assignments = [assign("r", "a", 16.0), assign("r", "b", 24.0)]
        schedule = analyzer.analyze(graph)

        analysis = resolver.analyze(schedule, graph, assignments, {"r": 12.0})

        assert [c.day for c in analysis.conflicts] == [day(0), day(1)]
        conflict = analysis.conflicts[0]
        assert conflict.allocated_hours == 16.0
        assert conflict.over_hours == 4.0
        assert conflict.task_ids == ("a", "b")
        assert conflict.severity == ConflictSeverity.MAJOR
        assert analysis.total_over_allocation_hours == 8.0
        assert analysis.conflict_count == 2

    def test_no_conflict_at_capacity(
        self, analyzer: CriticalPathAnalyzer, resolver: ResourceConstraintResolver
    ) -> None:
        graph = graph_of(task("a", 2), task("b", 2))
        schedule = analyzer.analyze(graph)

        analysis = resolver.analyze(
            schedule, graph, [assign("r", "a", 8.0), assign("r", "b", 8.0)], {"r": 8.0}
        )

        assert not analysis.has_conflicts

    def test_window_limits_conflicts(
        self, analyzer: CriticalPathAnalyzer, resolver: ResourceConstraintResolver
    ) -> None:
        graph = graph_of(task("a", 4), task("b", 4))
        schedule = analyzer.analyze(graph)

        analysis = resolver.analyze(
            schedule,
            graph,
            [assign("r", "a", 32.0), assign("r", "b", 32.0)],
            {"r": 8.0},
            window=TimeRange(day(2), day(10)),
        )

        assert [c.day for c in analysis.conflicts] == [day(2), day(3)]

    def test_reserved_load_creates_conflict(
        self, analyzer: CriticalPathAnalyzer, resolver: ResourceConstraintResolver
    ) -> None:
        graph = graph_of(task("a", 1))
        schedule = analyzer.analyze(graph)

        analysis = resolver.analyze(
            schedule,
            graph,
            [assign("r", "a", 4.0)],
            {"r": 8.0},
            reserved_load={"r": {day(0): 6.0}},
        )

        conflict = analysis.conflicts[0]
        assert conflict.reserved_hours == 6.0
        assert conflict.over_hours == 2.0
        assert conflict.task_ids == ("a",)

    def test_missing_capacity_raises(
        self, analyzer: CriticalPathAnalyzer, resolver: ResourceConstraintResolver
    ) -> None:
        graph = graph_of(task("a", 1))
        schedule = analyzer.analyze(graph)

        with pytest.raises(ResourceDataUnavailableError) as exc_info:
            resolver.analyze(schedule, graph, [assign("ghost", "a", 4.0)], {})

        assert exc_info.value.resource_id == "ghost"
        assert exc_info.value.project_id == "p"


class TestSeverity:
    """Test severity tiers."""

    @pytest.mark.parametrize(
        ("hours", "expected"),
        [
            (9.0, ConflictSeverity.MINOR),
            (10.0, ConflictSeverity.MAJOR),
            (12.0, ConflictSeverity.MAJOR),
            (13.0, ConflictSeverity.CRITICAL),
        ],
    )
    def test_default_thresholds(
        self,
        hours: float,
        expected: ConflictSeverity,
        analyzer: CriticalPathAnalyzer,
        resolver: ResourceConstraintResolver,
    ) -> None:
        graph = graph_of(task("a", 1))
        schedule = analyzer.analyze(graph)

        analysis = resolver.analyze(schedule, graph, [assign("r", "a", hours)], {"r": 8.0})

        assert analysis.conflicts[0].severity == expected

    def test_custom_thresholds(self, analyzer: CriticalPathAnalyzer) -> None:
        config = EngineConfig(severity=SeverityConfig(major_ratio=1.05, critical_ratio=1.1))
        resolver = ResourceConstraintResolver(config)
        graph = graph_of(task("a", 1))
        schedule = analyzer.analyze(graph)

        analysis = resolver.analyze(schedule, graph, [assign("r", "a", 9.0)], {"r": 8.0})

        assert analysis.conflicts[0].severity == ConflictSeverity.CRITICAL


class TestBottlenecks:
    """Test bottleneck detection on critical tasks."""

    def test_sole_assignee_of_overlapping_critical_tasks(
        self, analyzer: CriticalPathAnalyzer, resolver: ResourceConstraintResolver
    ) -> None:
        graph = graph_of(task("a", 3), task("b", 3))
        schedule = analyzer.analyze(graph)

        analysis = resolver.analyze(
            schedule, graph, [assign("r", "a", 12.0), assign("r", "b", 12.0)], {"r": 8.0}
        )

        assert len(analysis.bottlenecks) == 1
        bottleneck = analysis.bottlenecks[0]
        assert bottleneck.resource_id == "r"
        assert bottleneck.task_ids == ("a", "b")
        assert bottleneck.overlap_days == 3
        assert bottleneck.suggestions

    def test_shared_assignment_is_not_a_bottleneck(
        self, analyzer: CriticalPathAnalyzer, resolver: ResourceConstraintResolver
    ) -> None:
        graph = graph_of(task("a", 3), task("b", 3))
        schedule = analyzer.analyze(graph)
        assignments = [
            assign("r", "a", 12.0),
            assign("s", "a", 12.0),
            assign("r", "b", 12.0),
        ]

        analysis = resolver.analyze(schedule, graph, assignments, {"r": 8.0, "s": 8.0})

        assert analysis.bottlenecks == ()

    def test_sequential_critical_tasks_are_not_a_bottleneck(
        self, analyzer: CriticalPathAnalyzer, resolver: ResourceConstraintResolver
    ) -> None:
        graph = graph_of(task("a", 3), task("b", 3, deps=["a"]))
        schedule = analyzer.analyze(graph)

        analysis = resolver.analyze(
            schedule, graph, [assign("r", "a", 12.0), assign("r", "b", 12.0)], {"r": 8.0}
        )

        assert analysis.bottlenecks == ()

    def test_non_critical_tasks_ignored(
        self, analyzer: CriticalPathAnalyzer, resolver: ResourceConstraintResolver
    ) -> None:
        graph = graph_of(task("a", 5), task("b", 2))
        schedule = analyzer.analyze(graph)

        analysis = resolver.analyze(
            schedule, graph, [assign("r", "a", 10.0), assign("r", "b", 4.0)], {"r": 8.0}
        )

        assert analysis.bottlenecks == ()


class TestUtilization:
    """Test utilization reporting."""

    def test_utilization_over_schedule_span(
        self, analyzer: CriticalPathAnalyzer, resolver: ResourceConstraintResolver
    ) -> None:
        graph = graph_of(task("a", 4), task("b", 2))
        schedule = analyzer.analyze(graph)

        analysis = resolver.analyze(
            schedule, graph, [assign("r", "a", 16.0), assign("r", "b", 12.0)], {"r": 8.0}
        )

        util = analysis.utilization[0]
        assert util.capacity_hours == 32.0
        assert util.allocated_hours == 28.0
        assert util.utilization_rate == pytest.approx(0.875)
        assert util.peak_daily_hours == 10.0
        assert analysis.average_utilization == pytest.approx(0.875)


class TestPortfolioAnalysis:
    """Test the merged conflict scan over several projects."""

    def test_task_ids_are_qualified(self, analyzer: CriticalPathAnalyzer) -> None:
        resolver = ResourceConstraintResolver()
        graph_a = graph_of(task("t", 2), project_id="a")
        graph_b = graph_of(task("t", 2), project_id="b")

        analysis = resolver.analyze_portfolio(
            [
                (analyzer.analyze(graph_a), [assign("r", "t", 16.0)]),
                (analyzer.analyze(graph_b), [assign("r", "t", 16.0)]),
            ],
            {"r": 8.0},
        )

        assert analysis.conflict_count == 2
        assert analysis.conflicts[0].task_ids == ("a/t", "b/t")
        assert analysis.total_allocated_hours == 32.0
        assert analysis.average_utilization == pytest.approx(2.0)
