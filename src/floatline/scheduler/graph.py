"""Task graph construction and validation."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING

from floatline.exceptions import CyclicDependencyError, InvalidTaskError, UnknownDependencyError
from floatline.logger import get_logger
from floatline.models import Edge, Project, Task, TimeRange

if TYPE_CHECKING:
    from floatline.storage import StorageReader

logger = get_logger()

_WHITE, _GREY, _BLACK = 0, 1, 2


@dataclass(frozen=True)
class TaskGraph:
    """A validated dependency DAG for one project."""

    project: Project
    tasks: dict[str, Task]  # Insertion order matches the loaded order
    predecessors: dict[str, tuple[str, ...]]
    successors: dict[str, tuple[str, ...]]
    topological_order: tuple[str, ...]

    @property
    def project_id(self) -> str:
        return self.project.id

    def sources(self) -> list[str]:
        return [tid for tid in self.topological_order if not self.predecessors[tid]]

    def sinks(self) -> list[str]:
        return [tid for tid in self.topological_order if not self.successors[tid]]

    def __len__(self) -> int:
        return len(self.tasks)


def build_task_graph(
    project: Project,
    tasks: list[Task],
    edges: list[Edge],
    out_of_range: frozenset[str] = frozenset(),
) -> TaskGraph:
    """Assemble and validate a DAG from loaded rows.

    Dependencies on ids in ``out_of_range`` (tasks that exist but were filtered out
    by a time range) are dropped instead of rejected.

    Raises:
        InvalidTaskError: Duplicate ids, negative duration or effort
        UnknownDependencyError: A dependency names a task outside the loaded set
        CyclicDependencyError: The dependency relation contains a cycle
    """
    task_map: dict[str, Task] = {}
    for task in tasks:
        if task.id in task_map:
            raise InvalidTaskError(
                f"Duplicate task id '{task.id}' in project '{project.id}'",
                project_id=project.id,
                task_id=task.id,
            )
        if task.duration_days < 0:
            raise InvalidTaskError(
                f"Task '{task.id}' has negative duration {task.duration_days}",
                project_id=project.id,
                task_id=task.id,
            )
        if task.effort_hours < 0:
            raise InvalidTaskError(
                f"Task '{task.id}' has negative effort {task.effort_hours}",
                project_id=project.id,
                task_id=task.id,
            )
        task_map[task.id] = task

    # Merge per-task dependency lists with separately stored edges, preserving order
    preds: dict[str, list[str]] = {tid: [] for tid in task_map}
    for task in task_map.values():
        for dep_id in task.dependencies:
            if dep_id in out_of_range:
                continue
            if dep_id not in task_map:
                raise UnknownDependencyError(project.id, task.id, dep_id)
            if dep_id not in preds[task.id]:
                preds[task.id].append(dep_id)

    for edge in edges:
        if edge.predecessor_id in out_of_range or edge.successor_id in out_of_range:
            continue
        if edge.successor_id not in task_map:
            raise UnknownDependencyError(project.id, edge.successor_id, edge.predecessor_id)
        if edge.predecessor_id not in task_map:
            raise UnknownDependencyError(project.id, edge.successor_id, edge.predecessor_id)
        if edge.predecessor_id not in preds[edge.successor_id]:
            preds[edge.successor_id].append(edge.predecessor_id)

    succs: dict[str, list[str]] = {tid: [] for tid in task_map}
    for tid in task_map:
        for dep_id in preds[tid]:
            succs[dep_id].append(tid)

    _check_acyclic(project.id, task_map, preds)
    order = _topological_sort(task_map, preds, succs)

    return TaskGraph(
        project=project,
        tasks=task_map,
        predecessors={tid: tuple(p) for tid, p in preds.items()},
        successors={tid: tuple(s) for tid, s in succs.items()},
        topological_order=tuple(order),
    )


def _check_acyclic(project_id: str, tasks: dict[str, Task], preds: dict[str, list[str]]) -> None:
    """Three-colour DFS over predecessor links; raises on the first back edge."""
    colour = dict.fromkeys(tasks, _WHITE)

    for root in tasks:
        if colour[root] != _WHITE:
            continue

        path: list[str] = [root]
        stack: list[tuple[str, int]] = [(root, 0)]
        colour[root] = _GREY

        while stack:
            node, idx = stack[-1]
            node_preds = preds[node]
            if idx >= len(node_preds):
                colour[node] = _BLACK
                stack.pop()
                path.pop()
                continue

            stack[-1] = (node, idx + 1)
            nxt = node_preds[idx]
            if colour[nxt] == _GREY:
                # Path runs against dependency direction; report it in dependency order
                cycle = path[path.index(nxt) :] + [nxt]
                cycle.reverse()
                raise CyclicDependencyError(project_id, cycle)
            if colour[nxt] == _WHITE:
                colour[nxt] = _GREY
                path.append(nxt)
                stack.append((nxt, 0))


def _topological_sort(
    tasks: dict[str, Task],
    preds: dict[str, list[str]],
    succs: dict[str, list[str]],
) -> list[str]:
    """Kahn's algorithm; ready tasks are released in their loaded order."""
    position = {tid: i for i, tid in enumerate(tasks)}
    in_degree = {tid: len(preds[tid]) for tid in tasks}

    ready = deque(tid for tid in tasks if in_degree[tid] == 0)
    result: list[str] = []

    while ready:
        tid = ready.popleft()
        result.append(tid)
        released: list[str] = []
        for succ in succs[tid]:
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                released.append(succ)
        released.sort(key=lambda t: position[t])
        ready.extend(released)

    if len(result) != len(tasks):
        # _check_acyclic runs first, so this only guards against misuse
        raise ValueError("Circular dependency detected in task graph")

    return result


class TaskGraphBuilder:
    """Loads a project's tasks and edges from storage and returns a validated DAG."""

    def __init__(self, storage: StorageReader) -> None:
        self.storage = storage

    def build(self, project_id: str, time_range: TimeRange | None = None) -> TaskGraph:
        project = self.storage.load_project(project_id)
        tasks = self.storage.load_project_tasks(project_id, time_range)
        edges = self.storage.load_dependencies(project_id)
        logger.debug(
            f"Loaded project {project_id}: {len(tasks)} task(s), {len(edges)} stored edge(s)"
        )

        out_of_range: frozenset[str] = frozenset()
        if time_range is not None:
            loaded = {t.id for t in tasks}
            out_of_range = frozenset(
                t.id for t in self.storage.load_project_tasks(project_id, None)
                if t.id not in loaded
            )
            if out_of_range:
                logger.checks(
                    f"Project {project_id}: {len(out_of_range)} task(s) outside "
                    f"{time_range.start}..{time_range.end}, their dependency links are ignored"
                )

        return build_task_graph(project, tasks, edges, out_of_range)
