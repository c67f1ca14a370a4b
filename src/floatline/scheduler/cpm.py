"""Critical Path Method: forward/backward pass, float and critical chains."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, timedelta

from floatline.config import EngineConfig
from floatline.exceptions import InfeasibleDeadlineError
from floatline.logger import debug_enabled, get_logger

from .core import Schedule, ScheduledTask
from .graph import TaskGraph

logger = get_logger()


class CriticalPathAnalyzer:
    """Computes earliest/latest timings, float and the critical sub-graph.

    All arithmetic is done on whole-day offsets from the project start date and
    converted to dates at the end, so repeated runs on the same input produce
    identical schedules. A task is critical when its float is zero or negative, so a
    deadline later than the natural finish can leave the critical path empty.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()

    def analyze(
        self,
        graph: TaskGraph,
        *,
        deadline: date | None = None,
        start_constraints: Mapping[str, date] | None = None,
    ) -> Schedule:
        """Run the forward and backward pass over a validated graph.

        Args:
            graph: Validated task graph
            deadline: Optional finish date overriding the natural project finish for
                the backward pass; an earlier deadline yields negative float
            start_constraints: Start-no-earlier-than dates per task id

        Returns:
            A new Schedule
        """
        origin = graph.project.start_date
        constraints = start_constraints or {}
        order = graph.topological_order

        es, ef = self._forward_pass(graph, origin, constraints)

        natural_finish = max((ef[tid] for tid in graph.sinks()), default=0)
        horizon = (deadline - origin).days if deadline is not None else natural_finish
        ls, lf = self._backward_pass(graph, horizon)

        floats = {tid: ls[tid] - es[tid] for tid in order}
        min_float = min(floats.values(), default=0)
        critical = {tid for tid in order if floats[tid] <= 0}

        scheduled = tuple(
            ScheduledTask(
                task_id=tid,
                name=graph.tasks[tid].name,
                duration_days=graph.tasks[tid].duration_days,
                earliest_start=origin + timedelta(days=es[tid]),
                earliest_finish=origin + timedelta(days=ef[tid]),
                latest_start=origin + timedelta(days=ls[tid]),
                latest_finish=origin + timedelta(days=lf[tid]),
                float_days=floats[tid],
                is_critical=tid in critical,
                resource_ids=graph.tasks[tid].resource_ids,
            )
            for tid in order
        )

        critical_path = tuple(tid for tid in order if tid in critical)
        chains = self._critical_chains(graph, critical, es, ef)

        earliest = min(es.values(), default=0)
        deadline_error = None
        if min_float < 0:
            deadline_error = InfeasibleDeadlineError(
                graph.project_id, overrun_days=-min_float, task_ids=list(critical_path)
            )
            logger.warning(
                f"Project {graph.project_id}: deadline {deadline} is {-min_float} day(s) "
                f"earlier than the achievable finish "
                f"{origin + timedelta(days=natural_finish)}"
            )

        if debug_enabled():
            logger.debug(
                f"CPM {graph.project_id}: {len(order)} task(s), duration "
                f"{natural_finish - earliest}d, critical={list(critical_path)}"
            )

        return Schedule(
            project_id=graph.project_id,
            origin=origin,
            project_start=origin + timedelta(days=earliest),
            project_finish=origin + timedelta(days=natural_finish),
            duration_days=natural_finish - earliest,
            tasks=scheduled,
            critical_path=critical_path,
            critical_chains=chains,
            deadline=deadline,
            deadline_error=deadline_error,
        )

    def _forward_pass(
        self, graph: TaskGraph, origin: date, constraints: Mapping[str, date]
    ) -> tuple[dict[str, int], dict[str, int]]:
        es: dict[str, int] = {}
        ef: dict[str, int] = {}
        for tid in graph.topological_order:
            start = 0
            for pred in graph.predecessors[tid]:
                start = max(start, ef[pred])
            snet = constraints.get(tid)
            if snet is not None:
                start = max(start, (snet - origin).days)
            es[tid] = start
            ef[tid] = start + graph.tasks[tid].duration_days
        return es, ef

    def _backward_pass(
        self, graph: TaskGraph, horizon: int
    ) -> tuple[dict[str, int], dict[str, int]]:
        ls: dict[str, int] = {}
        lf: dict[str, int] = {}
        for tid in reversed(graph.topological_order):
            succs = graph.successors[tid]
            lf[tid] = min((ls[s] for s in succs), default=horizon)
            ls[tid] = lf[tid] - graph.tasks[tid].duration_days
        return ls, lf

    def _critical_chains(
        self,
        graph: TaskGraph,
        critical: set[str],
        es: dict[str, int],
        ef: dict[str, int],
    ) -> tuple[tuple[str, ...], ...]:
        """Enumerate every chain of tight critical edges.

        An edge u -> v is tight when v starts exactly when u finishes. Chains start at
        critical tasks with no tight critical predecessor and end at critical tasks
        with no tight critical successor. Enumeration stops at max_critical_chains.
        """
        tight: dict[str, list[str]] = {}
        has_tight_pred: set[str] = set()
        for tid in graph.topological_order:
            if tid not in critical:
                continue
            nexts = [s for s in graph.successors[tid] if s in critical and es[s] == ef[tid]]
            tight[tid] = nexts
            has_tight_pred.update(nexts)

        limit = self.config.max_critical_chains
        chains: list[tuple[str, ...]] = []
        starts = [
            tid
            for tid in graph.topological_order
            if tid in critical and tid not in has_tight_pred
        ]

        for start in starts:
            stack: list[tuple[str, ...]] = [(start,)]
            while stack:
                if len(chains) >= limit:
                    logger.checks(
                        f"Project {graph.project_id}: critical chain enumeration capped at {limit}"
                    )
                    return tuple(chains)
                path = stack.pop()
                nexts = tight[path[-1]]
                if not nexts:
                    chains.append(path)
                    continue
                # Reverse so chains come out in successor order
                for nxt in reversed(nexts):
                    stack.append((*path, nxt))

        return tuple(chains)
