"""Custom exceptions for floatline.

Every error names the project (and task, where one is involved) it concerns so
callers can report it without parsing the message.
"""

from __future__ import annotations

from typing import Any


class FloatlineError(Exception):
    """Base exception for all floatline errors."""

    def __init__(
        self,
        message: str,
        *,
        project_id: str | None = None,
        task_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.project_id = project_id
        self.task_id = task_id

    def details(self) -> dict[str, Any]:
        """Extra structured fields for subclasses."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for API responses."""
        data: dict[str, Any] = {
            "error": type(self).__name__,
            "message": self.message,
            "project_id": self.project_id,
            "task_id": self.task_id,
        }
        data.update(self.details())
        return data


class ConfigError(FloatlineError):
    """Raised when a configuration file cannot be loaded."""

    pass


class ParseError(FloatlineError):
    """Raised when a data file cannot be read or parsed."""

    pass


class ValidationError(FloatlineError):
    """Raised when loaded project data fails validation."""

    pass


class InvalidTaskError(ValidationError):
    """Raised for a task with impossible values (negative duration, duplicate id)."""

    pass


class CyclicDependencyError(ValidationError):
    """Raised when the dependency relation of a project contains a cycle."""

    def __init__(self, project_id: str, cycle: list[str]) -> None:
        self.cycle = list(cycle)
        super().__init__(
            f"Circular dependency detected in project '{project_id}': {' -> '.join(cycle)}",
            project_id=project_id,
            task_id=cycle[0] if cycle else None,
        )

    def details(self) -> dict[str, Any]:
        return {"cycle": list(self.cycle)}


class UnknownDependencyError(ValidationError):
    """Raised when a task references a predecessor outside the loaded task set."""

    def __init__(self, project_id: str, task_id: str, dependency_id: str) -> None:
        self.dependency_id = dependency_id
        super().__init__(
            f"Task '{task_id}' in project '{project_id}' depends on unknown task "
            f"'{dependency_id}'",
            project_id=project_id,
            task_id=task_id,
        )

    def details(self) -> dict[str, Any]:
        return {"dependency_id": self.dependency_id}


class InfeasibleDeadlineError(FloatlineError):
    """A deadline earlier than the achievable finish.

    Not raised: attached to the Schedule, which carries the negative float.
    """

    def __init__(self, project_id: str, overrun_days: int, task_ids: list[str]) -> None:
        self.overrun_days = overrun_days
        self.task_ids = list(task_ids)
        super().__init__(
            f"Deadline for project '{project_id}' is infeasible by {overrun_days} day(s)",
            project_id=project_id,
            task_id=task_ids[0] if task_ids else None,
        )

    def details(self) -> dict[str, Any]:
        return {"overrun_days": self.overrun_days, "task_ids": list(self.task_ids)}


class StorageError(FloatlineError):
    """Raised by storage readers when a fetch fails."""

    pass


class ProjectNotFoundError(StorageError):
    """Raised when a project id is not known to the storage layer."""

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project '{project_id}' not found", project_id=project_id)


class ResourceDataUnavailableError(StorageError):
    """Raised when assignments or capacity for a resource cannot be loaded."""

    def __init__(
        self,
        message: str,
        *,
        project_id: str | None = None,
        resource_id: str | None = None,
    ) -> None:
        self.resource_id = resource_id
        super().__init__(message, project_id=project_id)

    def details(self) -> dict[str, Any]:
        return {"resource_id": self.resource_id}


class OptimizationCancelledError(FloatlineError):
    """Raised when a request is cancelled cooperatively."""

    def __init__(self, stage: str, *, project_id: str | None = None) -> None:
        self.stage = stage
        super().__init__(f"Optimization cancelled during {stage}", project_id=project_id)

    def details(self) -> dict[str, Any]:
        return {"stage": self.stage}


# Errors that exclude a single project from a portfolio run instead of aborting it
PROJECT_SCOPED_ERRORS: tuple[type[FloatlineError], ...] = (
    ValidationError,
    ProjectNotFoundError,
    ResourceDataUnavailableError,
)
