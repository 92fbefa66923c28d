# artifacts.py
from __future__ import annotations

import hashlib
import shutil
from pathlib import Path
from typing import Iterable, List

from .errors import ArtifactCleanupFailed, ArtifactCopyFailed, ArtifactNotFound

# ---------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------
#   <root>/
#     <workspace key>/
#       <job name>/
#         <workspace-relative path>...
#
# The workspace key keeps archives of different checkouts apart:
#   "<dir name>-<sha256(abs path)[:12]>"
#
# Restored inputs land inside the workspace so the container sees them:
#   <workspace>/.layerci/inputs/<to job>/<from job>/...
# ---------------------------------------------------------------------

DEFAULT_ARTIFACTS_DIR = ".layerci/artifacts"
INPUTS_DIR = ".layerci/inputs"


def _sha256_str(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def workspace_key(workspace: str | Path) -> str:
    ws = Path(workspace).resolve()
    return f"{ws.name or 'workspace'}-{_sha256_str(str(ws))[:12]}"


def ensure_clean_dir(path: str | Path) -> None:
    p = Path(path)
    try:
        if p.exists():
            shutil.rmtree(p)
        p.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ArtifactCleanupFailed(str(p), str(e)) from e


def _copy_entry(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    if src.is_dir():
        shutil.copytree(src, dst, dirs_exist_ok=True)
    else:
        shutil.copy2(src, dst)


class ArtifactStore:
    """
    File-based artifact archive for one workspace.

    `save` snapshots paths out of the workspace after a job succeeds;
    `load` copies one job's snapshot into another job's inputs area.
    """

    def __init__(self, root: str | Path = DEFAULT_ARTIFACTS_DIR, workspace: str | Path = "."):
        self.workspace = Path(workspace).resolve()
        root = Path(root)
        if not root.is_absolute():
            root = self.workspace / root
        self.root = root.resolve()
        self.key = workspace_key(self.workspace)

    def archive_dir(self, job_name: str) -> Path:
        return self.root / self.key / job_name

    def inputs_dir(self, job_name: str) -> Path:
        return self.workspace / INPUTS_DIR / job_name

    def has_archive(self, job_name: str) -> bool:
        return self.archive_dir(job_name).is_dir()

    def save(self, job_name: str, paths: Iterable[str]) -> List[str]:
        """
        Copy workspace-relative files/directories into the job's archive.

        Every path is checked before anything is copied. The job's previous
        archive is replaced.

        Returns:
            The archived relative paths, in the given order.

        Raises:
            ArtifactNotFound: a path does not exist in the workspace
            ArtifactCopyFailed: a copy failed
            ArtifactCleanupFailed: the previous archive could not be cleared
        """
        paths = list(paths)
        if not paths:
            return []

        sources = []
        for rel in paths:
            src = self.workspace / rel
            if not src.exists():
                raise ArtifactNotFound(rel)
            if self.root.is_relative_to(src.resolve()):
                raise ArtifactCopyFailed(rel, f"archive root {self.root} is inside the artifact path")
            sources.append((rel, src))

        dest_root = self.archive_dir(job_name)
        ensure_clean_dir(dest_root)

        for rel, src in sources:
            try:
                _copy_entry(src, dest_root / rel)
            except (OSError, shutil.Error) as e:
                raise ArtifactCopyFailed(rel, str(e)) from e

        return paths

    def load(self, from_job: str, to_job: str) -> Path:
        """
        Copy everything archived by `from_job` into `to_job`'s inputs area.

        Returns:
            The destination directory.

        Raises:
            ArtifactNotFound: `from_job` has no archive
            ArtifactCopyFailed: the copy failed
        """
        src = self.archive_dir(from_job)
        if not src.is_dir():
            raise ArtifactNotFound(f"{from_job} (no archive at {src})")

        dest = self.inputs_dir(to_job) / from_job
        ensure_clean_dir(dest)
        try:
            shutil.copytree(src, dest, dirs_exist_ok=True)
        except (OSError, shutil.Error) as e:
            raise ArtifactCopyFailed(str(src), str(e)) from e
        return dest
