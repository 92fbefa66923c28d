# errors.py
from __future__ import annotations

from typing import Iterable, List, Optional


class LayerCIError(Exception):
    """Base class for every error raised by layerci."""


# ----------------------------------------------------------------------
# Fatal: abort before any job runs
# ----------------------------------------------------------------------

class ConfigurationError(LayerCIError):
    """Unreadable or malformed pipeline configuration."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


class SchedulingError(LayerCIError):
    """
    No valid execution order exists.

    `jobs` names every job involved: the members of a cycle, or the job
    holding an unresolved `needs` reference.
    """

    def __init__(self, message: str, jobs: Iterable[str] = ()):
        self.jobs: List[str] = sorted(set(jobs))
        super().__init__(message)


class RuntimeUnavailable(LayerCIError):
    """The container runtime program is missing or not working."""

    def __init__(self, runtime: str, reason: str):
        self.runtime = runtime
        self.reason = reason
        super().__init__(f"Failed to start runtime {runtime}: {reason}")


# ----------------------------------------------------------------------
# Scoped to a single job: caught at the job boundary
# ----------------------------------------------------------------------

class ExecutionError(LayerCIError):
    def __init__(self, job: str, reason: str):
        self.job = job
        self.reason = reason
        super().__init__(f"Failed to execute job {job} | Reason: {reason}")


class ArtifactError(LayerCIError):
    """Capture or restore of job artifacts failed."""


class ArtifactNotFound(ArtifactError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Artifact not found: {path}")


class ArtifactCopyFailed(ArtifactError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Artifact copy failed: {path}: {reason}")


class ArtifactCleanupFailed(ArtifactError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Artifact cleanup failed: {path}: {reason}")
