"""Pydantic schemas for the YAML portfolio data file."""

from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class ResourceSchema(BaseModel):
    """Schema for one resource entry."""

    capacity_hours: float = Field(ge=0.0)  # Hours per day
    name: str | None = None


class TaskSchema(BaseModel):
    """Schema for one task entry, keyed by task id."""

    name: str | None = None
    duration_days: int = Field(ge=0)
    effort_hours: float = Field(default=0.0, ge=0.0)
    resources: list[str] = Field(default_factory=list)
    requires: list[str] = Field(default_factory=list)
    planned_start: date | None = None

    @field_validator("resources", "requires", mode="before")
    @classmethod
    def ensure_list(cls, v: Any) -> list[str]:
        """Ensure value is a list."""
        if v is None:
            return []
        if isinstance(v, list):
            return [str(item) for item in v]  # type: ignore[misc]
        return [str(v)]


class AssignmentSchema(BaseModel):
    """Schema for an explicit resource assignment."""

    resource: str
    task: str
    hours: float = Field(ge=0.0)


class ProjectSchema(BaseModel):
    """Schema for one project entry, keyed by project id."""

    name: str | None = None
    start_date: date
    end_date: date  # Exclusive: work finishing the day before ends on end_date
    target_date: date | None = None  # Exclusive, same as end_date
    priority: int = 0
    tasks: dict[str, TaskSchema] = Field(default_factory=dict)
    edges: list[tuple[str, str]] = Field(default_factory=list)  # (predecessor, successor)
    assignments: list[AssignmentSchema] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_window(self) -> ProjectSchema:
        if self.end_date < self.start_date:
            raise ValueError(f"end_date {self.end_date} is before start_date {self.start_date}")
        return self


class PortfolioFileSchema(BaseModel):
    """Schema for the entire data file."""

    resources: dict[str, ResourceSchema] = Field(default_factory=dict)
    projects: dict[str, ProjectSchema] = Field(default_factory=dict)
