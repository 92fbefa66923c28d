"""Tests for the job runner, executed against the fake container runtime."""

import subprocess
import threading
from dataclasses import replace

from layerci.artifacts import ArtifactStore
from layerci.container import build_run_command
from layerci.errors import ArtifactCopyFailed, ArtifactNotFound
from layerci.model import Job, Outcome
from layerci.runner import run_job


def _job(script, artifacts=(), name="job"):
    return Job(name=name, image="alpine", script=tuple(script), artifacts=tuple(artifacts))


def test_build_run_command(workspace):
    cmd = build_run_command(_job(["make", "make test"]), workspace, runtime="docker")
    assert cmd == [
        "docker", "run", "--rm",
        "-v", f"{workspace.resolve()}:/workspace",
        "-w", "/workspace",
        "alpine",
        "sh", "-c", "make && make test",
    ]


def test_success_streams_prefixed_lines(settings, store, console, capsys):
    result = run_job(_job(["echo hello", "echo world 1>&2"], name="build"), settings, store, console)

    assert result.outcome is Outcome.SUCCEEDED
    assert result.exit_code == 0
    out = capsys.readouterr().out
    assert "Running job build" in out
    assert "Image alpine" in out
    assert "[build] | hello" in out
    assert "[build] | world" in out
    assert "[build] SUCCESS" in out


def test_script_runs_in_mounted_workspace(settings, store, console, workspace):
    result = run_job(_job(["echo data > out.txt"]), settings, store, console)
    assert result.succeeded
    assert (workspace / "out.txt").read_text().strip() == "data"


def test_false_fails_and_skips_artifacts(settings, store, console, workspace, capsys):
    (workspace / "dist").mkdir()
    result = run_job(_job(["false"], artifacts=["dist"]), settings, store, console)

    assert result.outcome is Outcome.FAILED
    assert result.exit_code != 0
    assert result.artifact_error is None
    assert not store.has_archive("job")
    assert f"[job] FAILURE CODE: {result.exit_code}" in capsys.readouterr().out


def test_failing_line_aborts_rest_of_script(settings, store, console, workspace):
    result = run_job(_job(["exit 3", "touch never"]), settings, store, console)
    assert result.outcome is Outcome.FAILED
    assert result.exit_code == 3
    assert not (workspace / "never").exists()


def test_killed_by_signal(settings, store, console, capsys):
    result = run_job(_job(["kill -9 $$"]), settings, store, console)
    assert result.outcome is Outcome.TERMINATED
    assert result.signal == 9
    assert "[job] KILLED SIGNAL: 9" in capsys.readouterr().out


def test_launch_failure_is_execution_error(settings, store, console, tmp_path, capsys):
    broken = replace(settings, runtime=str(tmp_path / "no-such-runtime"))
    result = run_job(_job(["true"]), broken, store, console)
    assert result.outcome is Outcome.ERROR
    assert result.reason
    assert "[job] ERROR:" in capsys.readouterr().out


def test_timeout_is_execution_error(settings, store, console):
    slow = replace(settings, job_timeout=1)
    result = run_job(_job(["sleep 30"]), slow, store, console)
    assert result.outcome is Outcome.ERROR
    assert "timed out after 1s" in result.reason
    assert result.duration < 20


def test_cancel_token_kills_job(settings, store, console):
    cancel = threading.Event()
    timer = threading.Timer(0.5, cancel.set)
    timer.start()
    try:
        result = run_job(_job(["sleep 30"]), settings, store, console, cancel=cancel)
    finally:
        timer.cancel()
    assert result.outcome is Outcome.ERROR
    assert result.reason == "cancelled"


def test_empty_script_is_noop(settings, store, console, tmp_path):
    # no container is launched, so a missing runtime does not matter
    broken = replace(settings, runtime=str(tmp_path / "no-such-runtime"))
    result = run_job(_job([]), broken, store, console)
    assert result.outcome is Outcome.SUCCEEDED


def test_artifacts_saved_on_success(settings, store, console, workspace):
    result = run_job(
        _job(["mkdir -p dist", "echo pkg > dist/app.whl", "echo r > report.txt"],
             artifacts=["dist", "report.txt"]),
        settings, store, console,
    )
    assert result.succeeded
    assert result.artifact_error is None
    archive = store.archive_dir("job")
    assert (archive / "dist" / "app.whl").read_text().strip() == "pkg"
    assert (archive / "report.txt").exists()


def test_missing_artifact_keeps_success(settings, store, console, capsys):
    result = run_job(_job(["true"], artifacts=["missing.txt"]), settings, store, console)
    assert result.outcome is Outcome.SUCCEEDED
    assert isinstance(result.artifact_error, ArtifactNotFound)
    assert result.status_line() == "SUCCESS"
    assert "[job] ARTIFACT ERROR: Artifact not found: missing.txt" in capsys.readouterr().out


def test_inputs_loaded_before_script(settings, store, console, workspace):
    (workspace / "lib.txt").write_text("upstream")
    store.save("build", ["lib.txt"])

    result = run_job(
        _job(["cat .layerci/inputs/test/build/lib.txt > seen.txt"], name="test"),
        settings, store, console,
        inputs_from=["build"],
    )
    assert result.succeeded
    assert (workspace / "seen.txt").read_text() == "upstream"


def test_missing_upstream_archive_is_warning(settings, store, console, capsys):
    result = run_job(_job(["true"], name="test"), settings, store, console, inputs_from=["build"])
    assert result.succeeded
    assert "could not load artifacts of build" in capsys.readouterr().err


def test_archive_root_inside_artifact_dir_keeps_success(settings, console, workspace):
    nested = replace(settings, artifacts_root="build/archive")
    store = ArtifactStore(nested.artifacts_root, nested.workspace)

    result = run_job(
        _job(["mkdir -p build", "echo x > build/f"], artifacts=["build"]),
        nested, store, console,
    )

    assert result.outcome is Outcome.SUCCEEDED
    assert isinstance(result.artifact_error, ArtifactCopyFailed)
    assert not store.has_archive("job")


class _UnreadableStdout:
    def __init__(self, real):
        self._real = real

    def __iter__(self):
        raise OSError("pipe went away")

    def close(self):
        self._real.close()


def test_unreadable_output_warns_and_keeps_exit_status(settings, store, console, monkeypatch, capsys):
    real_popen = subprocess.Popen

    def popen(*args, **kwargs):
        proc = real_popen(*args, **kwargs)
        proc.stdout = _UnreadableStdout(proc.stdout)
        return proc

    monkeypatch.setattr(subprocess, "Popen", popen)
    result = run_job(_job(["exit 5"]), settings, store, console)

    assert result.outcome is Outcome.FAILED
    assert result.exit_code == 5
    captured = capsys.readouterr()
    assert "WARNING: [job] error reading output (pipe went away)" in captured.err
    assert "[job] FAILURE CODE: 5" in captured.out
