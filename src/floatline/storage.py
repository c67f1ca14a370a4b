"""Storage read interface consumed by the engine, plus an in-memory implementation."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from typing import Protocol

from .exceptions import ProjectNotFoundError, ResourceDataUnavailableError
from .models import Edge, Project, ResourceAssignment, Task, TimeRange


class StorageReader(Protocol):
    """Request-scoped read access to projects, tasks and resources."""

    def load_project(self, project_id: str) -> Project:
        """Load the project header (window, priority, target date).

        Raises:
            ProjectNotFoundError: If the project does not exist
        """
        ...

    def load_project_tasks(self, project_id: str, time_range: TimeRange | None) -> list[Task]:
        """Load the project's tasks, optionally limited to a time range."""
        ...

    def load_dependencies(self, project_id: str) -> list[Edge]:
        """Load dependency edges stored separately from the tasks."""
        ...

    def load_resource_assignments(
        self, project_id: str, time_range: TimeRange | None
    ) -> list[ResourceAssignment]:
        """Load explicit resource assignments for the project's tasks."""
        ...

    def load_resource_capacity(self, resource_id: str) -> float:
        """Load available hours per day for a resource.

        Raises:
            ResourceDataUnavailableError: If no capacity is known
        """
        ...


class InMemoryStorage:
    """StorageReader backed by plain dictionaries.

    Used by the CLI (through the YAML loader), by tests, and by callers that
    already hold their data in memory.
    """

    def __init__(
        self,
        projects: list[Project] | None = None,
        edges: dict[str, list[Edge]] | None = None,
        assignments: dict[str, list[ResourceAssignment]] | None = None,
        capacities: dict[str, float] | None = None,
    ) -> None:
        self.projects: dict[str, Project] = {p.id: p for p in projects or []}
        self.edges: dict[str, list[Edge]] = edges or {}
        self.assignments: dict[str, list[ResourceAssignment]] = assignments or {}
        self.capacities: dict[str, float] = capacities or {}

    def add_project(
        self,
        project: Project,
        edges: list[Edge] | None = None,
        assignments: list[ResourceAssignment] | None = None,
    ) -> None:
        self.projects[project.id] = project
        if edges is not None:
            self.edges[project.id] = list(edges)
        if assignments is not None:
            self.assignments[project.id] = list(assignments)

    def set_capacity(self, resource_id: str, hours_per_day: float) -> None:
        self.capacities[resource_id] = hours_per_day

    def load_project(self, project_id: str) -> Project:
        project = self.projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return replace(project, tasks=())

    def load_project_tasks(self, project_id: str, time_range: TimeRange | None) -> list[Task]:
        project = self.projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        if time_range is None:
            return list(project.tasks)

        # Tasks without a planned start have no window yet and are always included
        result: list[Task] = []
        for task in project.tasks:
            if task.planned_start is None:
                result.append(task)
                continue
            finish = task.planned_start + timedelta(days=task.duration_days)
            if time_range.overlaps(task.planned_start, finish):
                result.append(task)
        return result

    def load_dependencies(self, project_id: str) -> list[Edge]:
        if project_id not in self.projects:
            raise ProjectNotFoundError(project_id)
        return list(self.edges.get(project_id, []))

    def load_resource_assignments(
        self, project_id: str, time_range: TimeRange | None
    ) -> list[ResourceAssignment]:
        if project_id not in self.projects:
            raise ProjectNotFoundError(project_id)
        task_ids = {t.id for t in self.load_project_tasks(project_id, time_range)}
        return [a for a in self.assignments.get(project_id, []) if a.task_id in task_ids]

    def load_resource_capacity(self, resource_id: str) -> float:
        capacity = self.capacities.get(resource_id)
        if capacity is None:
            raise ResourceDataUnavailableError(
                f"No capacity defined for resource '{resource_id}'", resource_id=resource_id
            )
        return capacity


def load_capacities(
    storage: StorageReader,
    assignments: list[ResourceAssignment],
    project_id: str | None = None,
) -> dict[str, float]:
    """Fetch the capacity of every resource named by ``assignments``.

    Raises:
        ResourceDataUnavailableError: If any capacity is missing; the error names
            the project it was loaded for
    """
    capacities: dict[str, float] = {}
    for resource_id in dict.fromkeys(a.resource_id for a in assignments):
        try:
            capacities[resource_id] = storage.load_resource_capacity(resource_id)
        except ResourceDataUnavailableError as e:
            if e.project_id is not None:
                raise
            raise ResourceDataUnavailableError(
                e.message, project_id=project_id, resource_id=e.resource_id
            ) from e
    return capacities
