"""Pytest configuration and fixtures for floatline tests."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from datetime import date, timedelta
from pathlib import Path

import pytest

from floatline.config import EngineConfig
from floatline.logger import reset_logger
from floatline.models import Edge, Project, ResourceAssignment, Task
from floatline.scheduler.cpm import CriticalPathAnalyzer
from floatline.scheduler.graph import TaskGraph, build_task_graph
from floatline.scheduler.optimizer import TimelineOptimizer
from floatline.scheduler.resources import ResourceConstraintResolver
from floatline.storage import InMemoryStorage

# Monday; all fixtures count days from here
D0 = date(2025, 1, 6)

EXAMPLE_FILE = Path(__file__).resolve().parent.parent / "examples" / "portfolio.yaml"


def day(offset: int) -> date:
    """Date ``offset`` days after D0."""
    return D0 + timedelta(days=offset)


def task(  # noqa: PLR0913 - mirrors Task fields
    task_id: str,
    duration: int = 1,
    *,
    deps: Sequence[str] = (),
    effort: float = 0.0,
    resources: Sequence[str] = (),
    planned: int | None = None,
) -> Task:
    """Create a Task with short keyword names; ``planned`` is a day offset from D0."""
    return Task(
        id=task_id,
        name=task_id.title(),
        duration_days=duration,
        dependencies=tuple(deps),
        effort_hours=effort,
        resource_ids=tuple(resources),
        planned_start=day(planned) if planned is not None else None,
    )


def project(
    project_id: str,
    tasks: Sequence[Task] = (),
    *,
    priority: int = 0,
    target: int | None = None,
) -> Project:
    """Create a project starting on D0; ``target`` is a day offset from D0."""
    return Project(
        id=project_id,
        name=project_id.title(),
        start_date=D0,
        end_date=day(90),
        priority=priority,
        target_date=day(target) if target is not None else None,
        tasks=tuple(tasks),
    )


def graph_of(*tasks: Task, edges: Sequence[Edge] = (), project_id: str = "p") -> TaskGraph:
    """Build a validated graph for a single project."""
    proj = project(project_id, tasks)
    return build_task_graph(proj, list(tasks), list(edges))


def assign(resource_id: str, task_id: str, hours: float) -> ResourceAssignment:
    return ResourceAssignment(resource_id=resource_id, task_id=task_id, allocated_hours=hours)


@pytest.fixture(autouse=True)
def clean_logger() -> Iterator[None]:
    """Reset the floatline logger after each test for isolation."""
    yield
    reset_logger()


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def analyzer(config: EngineConfig) -> CriticalPathAnalyzer:
    return CriticalPathAnalyzer(config)


@pytest.fixture
def resolver(config: EngineConfig) -> ResourceConstraintResolver:
    return ResourceConstraintResolver(config)


@pytest.fixture
def optimizer(config: EngineConfig) -> TimelineOptimizer:
    return TimelineOptimizer(config)


@pytest.fixture
def diamond_tasks() -> list[Task]:
    """start -> (long, short) -> end; ``short`` has 3 days of float."""
    return [
        task("start", 2),
        task("long", 5, deps=["start"]),
        task("short", 2, deps=["start"]),
        task("end", 1, deps=["long", "short"]),
    ]


@pytest.fixture
def shared_resource_storage() -> InMemoryStorage:
    """Two projects that both need ``r`` full-time over the same five days.

    Project ``a`` has the higher priority.
    """
    storage = InMemoryStorage()
    storage.set_capacity("r", 8.0)
    storage.add_project(
        project("a", [task("a1", 5, effort=40.0, resources=["r"])], priority=2, target=5)
    )
    storage.add_project(
        project("b", [task("b1", 5, effort=40.0, resources=["r"])], priority=1, target=5)
    )
    return storage
