"""floatline - critical path analysis and resource-constrained schedule optimization."""

from .config import EngineConfig, load_config
from .exceptions import (
    ConfigError,
    CyclicDependencyError,
    FloatlineError,
    InfeasibleDeadlineError,
    InvalidTaskError,
    OptimizationCancelledError,
    ParseError,
    ProjectNotFoundError,
    ResourceDataUnavailableError,
    StorageError,
    UnknownDependencyError,
    ValidationError,
)
from .models import (
    Edge,
    ObjectiveKind,
    OptimizationGoal,
    OptimizationObjective,
    Project,
    ResourceAssignment,
    Task,
    TimeRange,
)
from .scheduler import OptimizationService
from .storage import InMemoryStorage, StorageReader

__version__ = "0.1.0"

__all__ = [
    "EngineConfig",
    "load_config",
    "ConfigError",
    "CyclicDependencyError",
    "FloatlineError",
    "InfeasibleDeadlineError",
    "InvalidTaskError",
    "OptimizationCancelledError",
    "ParseError",
    "ProjectNotFoundError",
    "ResourceDataUnavailableError",
    "StorageError",
    "UnknownDependencyError",
    "ValidationError",
    "Edge",
    "ObjectiveKind",
    "OptimizationGoal",
    "OptimizationObjective",
    "Project",
    "ResourceAssignment",
    "Task",
    "TimeRange",
    "OptimizationService",
    "InMemoryStorage",
    "StorageReader",
]
