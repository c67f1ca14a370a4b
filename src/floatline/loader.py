"""Load a YAML portfolio data file into an InMemoryStorage."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ParseError, ValidationError
from .logger import get_logger
from .models import Edge, Project, ResourceAssignment, Task
from .schemas import PortfolioFileSchema, ProjectSchema
from .storage import InMemoryStorage

logger = get_logger()


def load_storage(path: Path | str) -> InMemoryStorage:
    """Parse and validate a data file.

    Graph-level checks (cycles, unknown dependencies) are left to the task graph
    builder so they surface per project.

    Raises:
        ParseError: If the file is missing or is not valid YAML
        ValidationError: If the data does not match the schema
    """
    path = Path(path)
    if not path.exists():
        raise ParseError(f"File not found: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            data: Any = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ParseError(f"Failed to parse YAML: {e}") from e

    if not isinstance(data, dict):
        raise ParseError("YAML must contain a dictionary at the root level")

    try:
        schema = PortfolioFileSchema.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid data file {path}: {e}") from e

    return build_storage(schema)


def build_storage(schema: PortfolioFileSchema) -> InMemoryStorage:
    """Convert a validated schema into storage rows."""
    storage = InMemoryStorage()
    for resource_id, resource in schema.resources.items():
        storage.set_capacity(resource_id, resource.capacity_hours)

    for project_id, project_data in schema.projects.items():
        project, edges, assignments = _convert_project(project_id, project_data)
        storage.add_project(project, edges, assignments)

    logger.debug(
        f"Loaded {len(schema.projects)} project(s) and {len(schema.resources)} resource(s)"
    )
    return storage


def _convert_project(
    project_id: str, data: ProjectSchema
) -> tuple[Project, list[Edge], list[ResourceAssignment]]:
    tasks = tuple(
        Task(
            id=task_id,
            name=task.name or task_id,
            duration_days=task.duration_days,
            dependencies=tuple(task.requires),
            effort_hours=task.effort_hours,
            resource_ids=tuple(task.resources),
            planned_start=task.planned_start,
        )
        for task_id, task in data.tasks.items()
    )
    project = Project(
        id=project_id,
        name=data.name or project_id,
        start_date=data.start_date,
        end_date=data.end_date,
        priority=data.priority,
        target_date=data.target_date,
        tasks=tasks,
    )
    edges = [Edge(predecessor_id=pred, successor_id=succ) for pred, succ in data.edges]
    assignments = [
        ResourceAssignment(resource_id=a.resource, task_id=a.task, allocated_hours=a.hours)
        for a in data.assignments
    ]
    return project, edges, assignments
