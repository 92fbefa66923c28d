# container.py
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List

from .errors import RuntimeUnavailable
from .model import Job

DEFAULT_RUNTIME = "docker"
CONTAINER_WORKDIR = "/workspace"

RUNTIME_HINTS = {
    "docker": "Install Docker and ensure the daemon is running.",
    "podman": "Install Podman or fix PATH.",
}


# ---------------------------------------------------------------------
# Runtime availability
# ---------------------------------------------------------------------

def check_runtime_available(runtime: str = DEFAULT_RUNTIME) -> str:
    """
    Check that the container runtime can be started.

    Returns:
        The runtime's version banner (first line of `<runtime> --version`).

    Raises:
        RuntimeUnavailable: if the program is missing or exits non-zero.
    """
    try:
        proc = subprocess.run(
            [runtime, "--version"],
            capture_output=True,
            text=True,
            check=True,
        )
    except FileNotFoundError:
        hint = RUNTIME_HINTS.get(Path(runtime).name, "Check the --runtime option or fix PATH.")
        raise RuntimeUnavailable(runtime, f"program not found. {hint}")
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or e.stdout or "").strip().splitlines()
        raise RuntimeUnavailable(runtime, detail[0] if detail else f"exit code {e.returncode}")
    except OSError as e:
        raise RuntimeUnavailable(runtime, str(e))

    lines = proc.stdout.strip().splitlines()
    return lines[0] if lines else runtime


# ---------------------------------------------------------------------
# Command composition
# ---------------------------------------------------------------------

def build_run_command(
    job: Job,
    workspace: str | Path,
    *,
    runtime: str = DEFAULT_RUNTIME,
    container_workdir: str = CONTAINER_WORKDIR,
) -> List[str]:
    """Compose the `<runtime> run` invocation for a job."""
    workspace_abs = Path(workspace).resolve()

    cmd = [runtime, "run", "--rm"]

    # Volume mount: workspace -> container_workdir
    cmd.extend(["-v", f"{workspace_abs}:{container_workdir}"])
    cmd.extend(["-w", container_workdir])

    cmd.append(job.image)
    cmd.extend(["sh", "-c", job.command])
    return cmd
