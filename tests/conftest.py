"""Shared fixtures: a fake container runtime that runs the job command on the host."""

import os
import stat
from pathlib import Path

import pytest

from layerci.artifacts import ArtifactStore
from layerci.settings import RunnerSettings
from layerci.ui.console import Console

# Understands the subset of `docker run` that layerci emits:
#   <rt> run --rm -v HOST:/workspace -w /workspace IMAGE sh -c CMD
# and `<rt> --version`. The mounted host dir becomes the working directory.
FAKE_RUNTIME = """#!/bin/sh
if [ "$1" = "--version" ]; then
  echo "fake-runtime 1.0"
  exit 0
fi
shift
mount=""
while [ $# -gt 0 ]; do
  case "$1" in
    --rm) shift ;;
    -v) mount="$2"; shift 2 ;;
    -w) shift 2 ;;
    *) break ;;
  esac
done
shift
cd "${mount%:*}" || exit 125
exec "$@"
"""


@pytest.fixture
def fake_runtime(tmp_path: Path) -> str:
    path = tmp_path / "bin" / "fake-runtime"
    path.parent.mkdir()
    path.write_text(FAKE_RUNTIME)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "ws"
    ws.mkdir()
    return ws


@pytest.fixture
def settings(workspace: Path, fake_runtime: str, tmp_path: Path) -> RunnerSettings:
    return RunnerSettings(
        workspace=str(workspace),
        artifacts_root=str(tmp_path / "archive"),
        runtime=fake_runtime,
    )


@pytest.fixture
def store(settings: RunnerSettings) -> ArtifactStore:
    return ArtifactStore(settings.artifacts_root, settings.workspace)


@pytest.fixture
def console() -> Console:
    return Console()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("LAYERCI_"):
            monkeypatch.delenv(key)
