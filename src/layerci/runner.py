# runner.py
from __future__ import annotations

import contextlib
import os
import signal
import subprocess
import threading
import time
from typing import Optional, Sequence

from .artifacts import ArtifactStore
from .container import build_run_command
from .errors import ArtifactError, ExecutionError
from .model import Job, JobResult, Outcome
from .settings import RunnerSettings
from .ui.console import Console, get_console


# ----------------------------------------------------------------------
# Supervision
# ----------------------------------------------------------------------

def _kill(proc: subprocess.Popen) -> None:
    # The runtime client runs in its own session; take the whole group down.
    with contextlib.suppress(ProcessLookupError):
        os.killpg(proc.pid, signal.SIGKILL)


class _Watchdog:
    """Kills a job's process on timeout or when the cancel token is set."""

    POLL_INTERVAL = 0.1

    def __init__(
        self,
        proc: subprocess.Popen,
        timeout: Optional[float],
        cancel: Optional[threading.Event],
    ):
        self.reason: Optional[str] = None
        self._done = threading.Event()
        self._thread = threading.Thread(
            target=self._watch,
            args=(proc, timeout, cancel),
            daemon=True,
        )
        self._thread.start()

    def _watch(
        self,
        proc: subprocess.Popen,
        timeout: Optional[float],
        cancel: Optional[threading.Event],
    ) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._done.wait(self.POLL_INTERVAL):
            if cancel is not None and cancel.is_set():
                self.reason = "cancelled"
            elif deadline is not None and time.monotonic() >= deadline:
                self.reason = f"timed out after {timeout}s"
            else:
                continue
            _kill(proc)
            return

    def stop(self) -> None:
        self._done.set()
        self._thread.join()


def _stream_output(job: Job, proc: subprocess.Popen, console: Console) -> None:
    try:
        for line in proc.stdout:
            console.print_job_line(job.name, line.rstrip("\r\n"))
    except (OSError, ValueError) as e:
        console.print_warning(
            f"[{job.name}] error reading output ({e}). Program may exit unexpectedly"
        )
    finally:
        proc.stdout.close()


def _classify(name: str, returncode: int) -> JobResult:
    if returncode == 0:
        return JobResult(name=name, outcome=Outcome.SUCCEEDED, exit_code=0)
    if returncode < 0:
        return JobResult(name=name, outcome=Outcome.TERMINATED, signal=-returncode)
    return JobResult(name=name, outcome=Outcome.FAILED, exit_code=returncode)


def _execute(
    job: Job,
    settings: RunnerSettings,
    console: Console,
    cancel: Optional[threading.Event],
) -> JobResult:
    if not job.script:
        console.print_debug(f"[{job.name}] empty script, nothing to run")
        return JobResult(name=job.name, outcome=Outcome.SUCCEEDED, exit_code=0)

    cmd = build_run_command(
        job,
        settings.workspace,
        runtime=settings.runtime,
        container_workdir=settings.container_workdir,
    )
    console.print_debug(f"[{job.name}] {cmd}")

    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            bufsize=1,
            start_new_session=True,
        )
    except (OSError, ValueError) as e:
        raise ExecutionError(job.name, str(e)) from e

    watchdog = None
    if settings.job_timeout is not None or cancel is not None:
        watchdog = _Watchdog(proc, settings.job_timeout, cancel)

    try:
        _stream_output(job, proc, console)
        try:
            returncode = proc.wait()
        except OSError as e:
            _kill(proc)
            raise ExecutionError(job.name, str(e)) from e
    finally:
        if watchdog is not None:
            watchdog.stop()

    # A process that finished on its own before the kill landed keeps its status.
    if watchdog is not None and watchdog.reason and returncode < 0:
        raise ExecutionError(job.name, watchdog.reason)

    return _classify(job.name, returncode)


# ----------------------------------------------------------------------
# Artifacts
# ----------------------------------------------------------------------

def _restore_inputs(
    job: Job,
    inputs_from: Sequence[str],
    store: ArtifactStore,
    console: Console,
) -> None:
    for upstream in inputs_from:
        try:
            store.load(upstream, job.name)
            console.print_artifacts_loaded(job.name, upstream)
        except ArtifactError as e:
            console.print_warning(f"[{job.name}] could not load artifacts of {upstream}: {e}")


def _capture_artifacts(job: Job, result: JobResult, store: ArtifactStore, console: Console) -> None:
    if not job.artifacts:
        return
    try:
        saved = store.save(job.name, job.artifacts)
        console.print_artifacts_saved(job.name, len(saved))
    except ArtifactError as e:
        result.artifact_error = e
        console.print_artifact_error(job.name, e)


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_job(
    job: Job,
    settings: RunnerSettings,
    store: ArtifactStore,
    console: Optional[Console] = None,
    *,
    cancel: Optional[threading.Event] = None,
    inputs_from: Sequence[str] = (),
) -> JobResult:
    """
    Run one job in a container and classify how it ended.

    Never raises for job-level problems: launch and supervision failures
    come back as an ERROR result, artifact problems as `artifact_error` on
    an otherwise SUCCEEDED result.

    Args:
        job: the job to run
        settings: workspace, runtime and timeout
        store: artifact archive for this workspace
        console: output sink (defaults to the global console)
        cancel: when set, the running process is killed
        inputs_from: upstream jobs whose archives are loaded before the script runs
    """
    console = console or get_console()
    started = time.monotonic()

    console.print_job_start(job.name, job.image)
    if inputs_from:
        _restore_inputs(job, inputs_from, store, console)

    try:
        result = _execute(job, settings, console, cancel)
    except ExecutionError as e:
        result = JobResult(name=job.name, outcome=Outcome.ERROR, reason=e.reason)

    if result.succeeded:
        _capture_artifacts(job, result, store, console)

    result.duration = time.monotonic() - started
    console.print_job_status(result)
    return result
