"""Console output formatting utilities for layerci."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from ..model import ExecutionPlan, JobResult


class Console:
    """
    Centralized console output formatting.

    Jobs of one layer print from worker threads at the same time, so every
    write goes through a lock and lands as whole lines.
    """

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        self._lock = threading.Lock()

    def _out(self, text: str, *, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            print(text, file=stream, flush=True)

    def print_run_started(
        self,
        config: str,
        mode: str,
        job_count: int,
        layer_count: int,
    ) -> None:
        """Print run start information."""
        self._out(
            "\nRUN STARTED\n"
            f"Config: {config}\n"
            f"Mode: {mode}\n"
            f"Jobs: {job_count}\n"
            f"Stages: {layer_count}\n"
        )

    def print_plan(self, plan: ExecutionPlan) -> None:
        """Print the execution plan, one line per layer."""
        if not len(plan):
            self._out("PLAN: (empty)")
            return
        lines = ["PLAN:"]
        for idx, layer in enumerate(plan, start=1):
            labels = []
            for job in layer:
                labels.append(f"{job.name} ({job.stage})" if job.stage else job.name)
            lines.append(f"  {idx}. {', '.join(labels)}")
        self._out("\n".join(lines))

    def print_stage(self, index: int, total: int, names: list[str]) -> None:
        """Print layer start message."""
        self._out(f"=== Stage {index}/{total}: {names} ===")

    def print_job_start(self, name: str, image: str) -> None:
        self._out(f"Running job {name}\nImage {image}")

    def print_job_line(self, name: str, line: str) -> None:
        self._out(f"[{name}] | {line}")

    def print_job_status(self, result: JobResult) -> None:
        """Print the final status line of a job."""
        self._out(f"[{result.name}] {result.status_line()}")

    def print_artifacts_saved(self, name: str, count: int) -> None:
        self._out(f"[{name}] ARTIFACTS: saved {count} path(s)")

    def print_artifacts_loaded(self, name: str, from_job: str) -> None:
        self._out(f"[{name}] ARTIFACTS: loaded from {from_job}")

    def print_artifact_error(self, name: str, error: Exception) -> None:
        self._out(f"[{name}] ARTIFACT ERROR: {error}")

    def print_results(self, results: Dict[str, JobResult]) -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for name, result in results.items():
            line = f"  {name}: {result.status_line()}"
            if result.artifact_error is not None:
                line += f" (artifacts: {result.artifact_error})"
            lines.append(line)
        self._out("\n".join(lines))

    def print_completed(self) -> None:
        self._out("Execution completed successfully")

    def print_warning(self, message: str) -> None:
        self._out(f"WARNING: {message}", err=True)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {d}" for d in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._out("\n".join(lines), err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        else:
            self._out(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._out(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
