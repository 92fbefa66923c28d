from .dag import JobGraph, build_plan, topo_levels
from .model import ExecutionPlan, Job, JobResult, Outcome, PipelineSpec
from .parser import parse_file, parse_str
from .pipeline import Pipeline, run_plan
from .runner import run_job
from .settings import RunnerSettings

__all__ = [
    "Job",
    "PipelineSpec",
    "ExecutionPlan",
    "JobResult",
    "Outcome",
    "JobGraph",
    "build_plan",
    "topo_levels",
    "parse_file",
    "parse_str",
    "Pipeline",
    "run_plan",
    "run_job",
    "RunnerSettings",
]
