# dag.py
from __future__ import annotations

from typing import Dict, Iterable, List, Set

from .errors import ConfigurationError, SchedulingError
from .model import ExecutionPlan, Job, PipelineSpec


class JobGraph:
    """
    Index of jobs by name plus the dependency relation.

    The canonical Job records are never touched by scheduling: `remaining()`
    hands out a fresh mutable copy of the `needs` relation each time.
    """

    def __init__(self, jobs: Iterable[Job]):
        jobs = list(jobs)
        names = [j.name for j in jobs]
        if len(set(names)) != len(names):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ConfigurationError(f"Duplicate job names found: {dupes}")

        self._by_name: Dict[str, Job] = {j.name: j for j in jobs}
        self._needs: Dict[str, frozenset[str]] = {j.name: frozenset(j.needs) for j in jobs}

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def get(self, name: str) -> Job:
        return self._by_name[name]

    @property
    def jobs(self) -> List[Job]:
        return list(self._by_name.values())

    @property
    def names(self) -> List[str]:
        return sorted(self._by_name)

    def dependents(self, name: str) -> List[str]:
        """Jobs that list `name` in their needs."""
        return sorted(n for n, deps in self._needs.items() if name in deps)

    def validate(self) -> None:
        """Every `needs` entry must name a job of this pipeline."""
        for name in self.names:
            missing = sorted(d for d in self._needs[name] if d not in self._by_name)
            if missing:
                raise SchedulingError(
                    f"Job '{name}' needs missing job(s) {missing}. Known jobs: {self.names}",
                    jobs=[name],
                )

    def remaining(self) -> Dict[str, Set[str]]:
        return {name: set(deps) for name, deps in self._needs.items()}


# ----------------------------------------------------------------------
# Layering
# ----------------------------------------------------------------------

def topo_levels(graph: JobGraph) -> List[List[str]]:
    """
    Convert the graph into topological "levels" (layers).
    Each level can run in parallel; names are sorted inside a level.
    """
    graph.validate()
    remaining = graph.remaining()
    levels: List[List[str]] = []

    while remaining:
        level = sorted(n for n, deps in remaining.items() if not deps)
        if not level:
            raise _cycle_error(remaining)

        for name in level:
            del remaining[name]
        for deps in remaining.values():
            deps.difference_update(level)

        levels.append(level)

    return levels


def _cycle_error(remaining: Dict[str, Set[str]]) -> SchedulingError:
    stuck = {n: set(d) for n, d in remaining.items()}

    # Peel off jobs that are only blocked (nothing stuck depends on them);
    # what is left sits on a cycle or between cycles.
    involved = set(stuck)
    while True:
        needed = set().union(*(stuck[n] for n in involved)) if involved else set()
        leaves = involved - needed
        if not leaves:
            break
        involved -= leaves

    # Walk one concrete cycle for the message.
    start = min(involved)
    path = [start]
    seen = {start: 0}
    node = start
    while True:
        node = min(stuck[node] & involved)
        if node in seen:
            cycle = path[seen[node]:] + [node]
            break
        seen[node] = len(path)
        path.append(node)

    blocked = sorted(set(stuck) - involved)
    msg = f"DAG has a cycle: {' -> '.join(cycle)}. Jobs involved: {sorted(involved)}"
    if blocked:
        msg += f". Blocked downstream: {blocked}"
    return SchedulingError(msg, jobs=involved)


# ----------------------------------------------------------------------
# Plan construction (dependency mode / flat mode)
# ----------------------------------------------------------------------

def _validate_stages(spec: PipelineSpec) -> None:
    declared = set(spec.stages or ())
    bad = sorted(j.name for j in spec.jobs if j.stage is not None and j.stage not in declared)
    if bad:
        raise ConfigurationError(
            f"Job(s) {bad} use a stage that is not declared in 'stages' {list(spec.stages or ())}"
        )


def _validate_flat(spec: PipelineSpec) -> None:
    bad = sorted(j.name for j in spec.jobs if j.has_stage or j.has_needs)
    if bad:
        raise ConfigurationError(
            f"Job(s) {bad} declare 'stage' or 'needs' but the pipeline has no 'stages' list. "
            "Declare a top-level 'stages' list to enable dependency ordering."
        )


def build_plan(spec: PipelineSpec) -> ExecutionPlan:
    """
    Compute the execution plan for a pipeline.

    Dependency mode (a `stages` list is declared): layers come from `needs`
    alone; stage labels are informational.

    Flat mode (no `stages`): every job lands in one layer; jobs asking for
    ordering via `stage` or `needs` are rejected.

    Raises:
      ConfigurationError: duplicate names, undeclared stage, flat-mode misuse
      SchedulingError: missing dependency or cycle
    """
    graph = JobGraph(spec.jobs)

    if not spec.dependency_mode:
        _validate_flat(spec)
        if not len(graph):
            return ExecutionPlan(layers=(), mode="flat")
        layer = tuple(graph.get(n) for n in graph.names)
        return ExecutionPlan(layers=(layer,), mode="flat")

    _validate_stages(spec)
    levels = topo_levels(graph)
    layers = tuple(tuple(graph.get(n) for n in level) for level in levels)
    return ExecutionPlan(layers=layers, mode="dependency")
