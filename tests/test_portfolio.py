"""Tests for the portfolio scheduler."""

from dataclasses import replace

import pytest

from floatline.config import EngineConfig
from floatline.exceptions import OptimizationCancelledError, StorageError
from floatline.models import Edge, ObjectiveKind, OptimizationObjective, normalize_objectives
from floatline.scheduler.core import CancellationToken
from floatline.scheduler.portfolio import PortfolioScheduler
from floatline.storage import InMemoryStorage
from tests.conftest import day, project, task


class TestObjectiveWeights:
    """Test weight normalization."""

    def test_weights_sum_to_one(self) -> None:
        weights = normalize_objectives(
            [
                OptimizationObjective(kind=ObjectiveKind.MINIMIZE_TOTAL_DELAY, weight=3.0),
                OptimizationObjective(kind=ObjectiveKind.MINIMIZE_RESOURCE_CONFLICTS, weight=1.0),
            ]
        )

        assert weights == {
            ObjectiveKind.MINIMIZE_TOTAL_DELAY: 0.75,
            ObjectiveKind.MINIMIZE_RESOURCE_CONFLICTS: 0.25,
        }

    def test_duplicate_kinds_merge(self) -> None:
        weights = normalize_objectives(
            [
                OptimizationObjective(kind=ObjectiveKind.MINIMIZE_DURATION, weight=1.0),
                OptimizationObjective(kind=ObjectiveKind.MINIMIZE_DURATION, weight=1.0),
            ]
        )

        assert weights == {ObjectiveKind.MINIMIZE_DURATION: 1.0}

    def test_all_zero_falls_back_to_defaults(self) -> None:
        defaults = EngineConfig().default_objectives
        weights = normalize_objectives(
            [OptimizationObjective(kind=ObjectiveKind.MINIMIZE_DURATION, weight=0.0)], defaults
        )

        assert set(weights) == {o.kind for o in defaults}
        assert sum(weights.values()) == pytest.approx(1.0)

    def test_negative_weight_rejected(self) -> None:
        with pytest.raises(ValueError):
            OptimizationObjective(kind=ObjectiveKind.MINIMIZE_DURATION, weight=-1.0)


class TestPriorityPlacement:
    """Test greedy priority-ordered placement."""

    def test_lower_priority_project_is_delayed(
        self, shared_resource_storage: InMemoryStorage
    ) -> None:
        """``a`` has priority; ``b`` waits for the shared resource."""
        result = PortfolioScheduler(shared_resource_storage).schedule(["b", "a"])

        by_id = {r.project_id: r for r in result.per_project_results}
        assert by_id["a"].delay_days == 0
        assert by_id["a"].on_time
        assert by_id["b"].delay_days == 5
        assert by_id["b"].optimized_finish == day(10)
        assert result.sequence == ("a", "b")
        # Results keep the caller's order
        assert [r.project_id for r in result.per_project_results] == ["b", "a"]

        summary = result.portfolio_summary
        assert summary.total_projects == 2
        assert summary.on_time_projects == 1
        assert summary.delayed_projects == 1
        assert summary.average_delay == 5.0
        assert summary.failed_projects == 0

    def test_merged_timeline_has_no_residual_conflicts(
        self, shared_resource_storage: InMemoryStorage
    ) -> None:
        result = PortfolioScheduler(shared_resource_storage).schedule(["a", "b"])

        assert result.resource_analysis is not None
        assert not result.resource_analysis.has_conflicts

    def test_single_project_without_overlaps(self) -> None:
        storage = InMemoryStorage()
        storage.set_capacity("r", 8.0)
        storage.add_project(
            project(
                "solo",
                [task("a", 2, effort=8.0, resources=["r"]), task("b", 3, deps=["a"])],
                target=10,
            )
        )

        result = PortfolioScheduler(storage).schedule(["solo"])

        summary = result.portfolio_summary
        assert summary.delayed_projects == 0
        assert summary.average_delay == 0.0
        assert summary.on_time_projects == 1
        assert result.errors == ()

    def test_equal_priority_candidates_are_scored(self) -> None:
        """Equal priorities produce several candidate sequences; the best is kept."""
        storage = InMemoryStorage()
        storage.set_capacity("r", 8.0)
        storage.add_project(
            project("long", [task("l", 6, effort=48.0, resources=["r"])], target=6)
        )
        storage.add_project(
            project("short", [task("s", 2, effort=16.0, resources=["r"])], target=2)
        )

        result = PortfolioScheduler(storage).schedule(["long", "short"])

        sequences = {c.sequence for c in result.candidates}
        assert sequences == {("long", "short"), ("short", "long")}
        # short first costs 2 days of delay, long first costs 6
        assert result.sequence == ("short", "long")
        assert result.portfolio_summary.average_delay == 2.0
        best = min(result.candidates, key=lambda c: c.score)
        assert best.sequence == result.sequence

    def test_objective_weights_reported(self, shared_resource_storage: InMemoryStorage) -> None:
        result = PortfolioScheduler(shared_resource_storage).schedule(
            ["a", "b"],
            objectives=[OptimizationObjective(kind=ObjectiveKind.MINIMIZE_TOTAL_DELAY)],
        )

        assert result.objectives == {ObjectiveKind.MINIMIZE_TOTAL_DELAY: 1.0}


class TestDueDates:
    """Test on-time measurement against exclusive due dates."""

    @pytest.mark.parametrize(("target", "delay"), [(5, 0), (6, 0), (4, 1)])
    def test_finish_on_target_is_on_time(self, target: int, delay: int) -> None:
        """Five days of work starting on D0 finish on D5."""
        storage = InMemoryStorage()
        storage.set_capacity("r", 8.0)
        storage.add_project(
            project("p", [task("a", 5, effort=40.0, resources=["r"])], target=target)
        )

        result = PortfolioScheduler(storage).schedule(["p"])

        delivered = result.per_project_results[0]
        assert delivered.optimized_finish == day(5)
        assert delivered.delay_days == delay
        assert delivered.on_time is (delay == 0)

    def test_end_date_used_without_target(self) -> None:
        storage = InMemoryStorage()
        storage.set_capacity("r", 8.0)
        base = project("p", [task("a", 5, effort=40.0, resources=["r"])])
        storage.add_project(replace(base, end_date=day(5)))

        result = PortfolioScheduler(storage).schedule(["p"])

        delivered = result.per_project_results[0]
        assert delivered.target_date == day(5)
        assert delivered.on_time


class TestFailureIsolation:
    """Test that project-scoped errors do not abort the batch."""

    def test_cyclic_project_excluded(self, shared_resource_storage: InMemoryStorage) -> None:
        shared_resource_storage.add_project(
            project("loop", [task("x", deps=["y"]), task("y", deps=["x"])])
        )

        result = PortfolioScheduler(shared_resource_storage).schedule(["a", "loop", "b"])

        assert [e.project_id for e in result.errors] == ["loop"]
        error = result.errors[0]
        assert error.error == "CyclicDependencyError"
        assert error.details["cycle"][0] == error.details["cycle"][-1]
        assert result.portfolio_summary.total_projects == 2
        assert result.portfolio_summary.failed_projects == 1

    def test_unknown_dependency_and_missing_project(
        self, shared_resource_storage: InMemoryStorage
    ) -> None:
        shared_resource_storage.add_project(project("bad", [task("x", deps=["ghost"])]))

        result = PortfolioScheduler(shared_resource_storage).schedule(["bad", "nope", "a"])

        errors = {e.project_id: e.error for e in result.errors}
        assert errors == {"bad": "UnknownDependencyError", "nope": "ProjectNotFoundError"}
        assert [r.project_id for r in result.per_project_results] == ["a"]

    def test_missing_capacity_excludes_project(
        self, shared_resource_storage: InMemoryStorage
    ) -> None:
        shared_resource_storage.add_project(
            project("unstaffed", [task("x", 1, effort=8.0, resources=["nobody"])])
        )

        result = PortfolioScheduler(shared_resource_storage).schedule(["unstaffed", "a"])

        assert result.errors[0].error == "ResourceDataUnavailableError"
        assert result.errors[0].project_id == "unstaffed"
        assert result.errors[0].details["resource_id"] == "nobody"

    def test_all_projects_failing(self) -> None:
        result = PortfolioScheduler(InMemoryStorage()).schedule(["x", "y"])

        assert result.per_project_results == ()
        assert result.portfolio_summary.total_projects == 0
        assert result.portfolio_summary.average_delay == 0.0
        assert result.portfolio_summary.failed_projects == 2

    def test_storage_failure_propagates(self, shared_resource_storage: InMemoryStorage) -> None:
        """Non project-scoped storage errors abort the run."""

        class BrokenStorage(InMemoryStorage):
            def load_dependencies(self, project_id: str) -> list[Edge]:
                raise StorageError("connection lost", project_id=project_id)

        storage = BrokenStorage(list(shared_resource_storage.projects.values()))

        with pytest.raises(StorageError, match="connection lost"):
            PortfolioScheduler(storage).schedule(["a"])


class TestCancellation:
    def test_cancelled_before_start(self, shared_resource_storage: InMemoryStorage) -> None:
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OptimizationCancelledError) as exc_info:
            PortfolioScheduler(shared_resource_storage).schedule(["a"], cancel_token=token)

        assert exc_info.value.stage == "prepare"
