# pipeline.py
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .artifacts import ArtifactStore
from .container import check_runtime_available
from .dag import build_plan
from .model import ExecutionPlan, Job, JobResult, Outcome, PipelineSpec
from .parser import parse_file
from .runner import run_job
from .settings import RunnerSettings
from .ui.console import Console, get_console

RunFn = Callable[..., JobResult]


def _inputs_from(job: Job, by_name: Dict[str, Job]) -> List[str]:
    return sorted(n for n in job.needs if n in by_name and by_name[n].artifacts)


def run_plan(
    plan: ExecutionPlan,
    settings: RunnerSettings,
    store: ArtifactStore,
    console: Optional[Console] = None,
    *,
    cancel: Optional[threading.Event] = None,
    run_fn: RunFn = run_job,
) -> Dict[str, JobResult]:
    """
    Drive an execution plan to completion.

    - Runs every job of a layer in parallel.
    - Waits for the whole layer before starting the next one.
    - A failing job is reported and never stops its siblings or later layers.

    Returns:
        name -> JobResult, in plan order.
    """
    console = console or get_console()
    cancel = cancel or threading.Event()
    by_name = {job.name: job for layer in plan for job in layer}
    results: Dict[str, JobResult] = {}

    for level_idx, layer in enumerate(plan):
        names = [job.name for job in layer]
        console.print_stage(level_idx + 1, len(plan), names)

        layer_results: Dict[str, JobResult] = {}
        workers = settings.max_workers or max(1, len(layer))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {}
            for job in layer:
                inputs = _inputs_from(job, by_name) if settings.propagate_artifacts else []
                fut = pool.submit(
                    run_fn,
                    job,
                    settings,
                    store,
                    console,
                    cancel=cancel,
                    inputs_from=inputs,
                )
                futures[fut] = job.name

            try:
                for future in as_completed(futures):
                    name = futures[future]
                    try:
                        layer_results[name] = future.result()
                    except Exception as e:
                        # run_fn is not supposed to raise; keep the run going anyway
                        console.print_exception(e)
                        result = JobResult(name=name, outcome=Outcome.ERROR, reason=str(e))
                        console.print_job_status(result)
                        layer_results[name] = result
            except KeyboardInterrupt:
                cancel.set()
                raise

        for name in names:
            results[name] = layer_results[name]

    return results


# ----------------------------------------------------------------------
# Run lifecycle
# ----------------------------------------------------------------------

@dataclass
class PipelineRun:
    plan: ExecutionPlan
    results: Dict[str, JobResult] = field(default_factory=dict)

    @property
    def failed(self) -> List[str]:
        return [n for n, r in self.results.items() if not r.succeeded]


class Pipeline:
    """
    Load a configuration file, plan it and execute it.

    Configuration, scheduling and runtime errors propagate before any job
    starts; once execution begins the run always completes.
    """

    def __init__(self, settings: Optional[RunnerSettings] = None, console: Optional[Console] = None):
        self.settings = settings or RunnerSettings()
        self.console = console or get_console()

    def load(self, file_path: str | Path) -> PipelineSpec:
        return parse_file(file_path)

    def plan(self, file_path: str | Path) -> ExecutionPlan:
        return build_plan(self.load(file_path))

    def execute(
        self,
        plan: ExecutionPlan,
        *,
        cancel: Optional[threading.Event] = None,
        check_runtime: bool = True,
    ) -> PipelineRun:
        if check_runtime and any(job.script for layer in plan for job in layer):
            banner = check_runtime_available(self.settings.runtime)
            self.console.print_debug(f"runtime: {banner}")

        store = ArtifactStore(self.settings.artifacts_root, self.settings.workspace)
        results = run_plan(plan, self.settings, store, self.console, cancel=cancel)
        return PipelineRun(plan=plan, results=results)

    def run(self, file_path: str | Path) -> PipelineRun:
        plan = self.plan(file_path)
        self.console.print_run_started(
            config=str(file_path),
            mode=plan.mode,
            job_count=plan.job_count,
            layer_count=len(plan),
        )
        self.console.print_plan(plan)
        return self.execute(plan)
