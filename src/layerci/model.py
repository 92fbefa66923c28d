# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from .errors import ArtifactError


@dataclass(frozen=True)
class Job:
    """
    A CI job: an image, a script and its place in the dependency graph.

    Jobs are created once by the parser and never mutated afterwards, so the
    same instance can be handed to concurrently running workers.
    """
    name: str
    image: str
    script: Tuple[str, ...] = ()
    stage: Optional[str] = None
    needs: frozenset[str] = field(default_factory=frozenset)
    artifacts: Tuple[str, ...] = ()

    # "declared but empty" vs "absent" matters for flat-mode validation
    has_needs: bool = False

    @property
    def has_stage(self) -> bool:
        return self.stage is not None

    @property
    def command(self) -> str:
        # && short-circuits: the first failing line fails the whole job
        return " && ".join(self.script)


@dataclass(frozen=True)
class PipelineSpec:
    """All jobs of a pipeline plus the optional declared stage list."""
    jobs: Tuple[Job, ...] = ()
    stages: Optional[Tuple[str, ...]] = None

    @property
    def dependency_mode(self) -> bool:
        return self.stages is not None


Layer = Tuple[Job, ...]


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered layers; jobs inside a layer are safe to run concurrently."""
    layers: Tuple[Layer, ...] = ()
    mode: str = "dependency"

    def __iter__(self) -> Iterator[Layer]:
        return iter(self.layers)

    def __len__(self) -> int:
        return len(self.layers)

    def names(self) -> List[List[str]]:
        return [[j.name for j in layer] for layer in self.layers]

    @property
    def job_count(self) -> int:
        return sum(len(layer) for layer in self.layers)


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TERMINATED = "terminated"
    ERROR = "error"


@dataclass
class JobResult:
    """Terminal classification of one job's single run."""
    name: str
    outcome: Outcome
    exit_code: Optional[int] = None
    signal: Optional[int] = None
    reason: Optional[str] = None
    artifact_error: Optional[ArtifactError] = None
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCEEDED

    def status_line(self) -> str:
        if self.outcome is Outcome.SUCCEEDED:
            return "SUCCESS"
        if self.outcome is Outcome.FAILED:
            return f"FAILURE CODE: {self.exit_code}"
        if self.outcome is Outcome.TERMINATED:
            return f"KILLED SIGNAL: {self.signal}"
        return f"ERROR: {self.reason or 'unknown error'}"
