# settings.py
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional

from .artifacts import DEFAULT_ARTIFACTS_DIR
from .container import CONTAINER_WORKDIR, DEFAULT_RUNTIME
from .errors import ConfigurationError

DEFAULT_WORKSPACE = "."

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def _int_or_none(env: Mapping[str, str], key: str) -> Optional[int]:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{key} must be positive, got {value}")
    return value


def _bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in _TRUTHY:
        return True
    if v in _FALSY:
        return False
    raise ConfigurationError(f"{key} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class RunnerSettings:
    """
    Everything the engine needs to know about its host.

    Passed explicitly to the coordinator and runner; nothing reads a global
    workspace path.
    """
    workspace: str = DEFAULT_WORKSPACE
    artifacts_root: str = DEFAULT_ARTIFACTS_DIR
    runtime: str = DEFAULT_RUNTIME
    container_workdir: str = CONTAINER_WORKDIR
    max_workers: Optional[int] = None
    job_timeout: Optional[int] = None  # seconds, None = wait forever
    propagate_artifacts: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> RunnerSettings:
        env = os.environ if env is None else env
        return cls(
            workspace=env.get("LAYERCI_WORKSPACE", DEFAULT_WORKSPACE),
            artifacts_root=env.get("LAYERCI_ARTIFACTS_DIR", DEFAULT_ARTIFACTS_DIR),
            runtime=env.get("LAYERCI_RUNTIME", DEFAULT_RUNTIME),
            max_workers=_int_or_none(env, "LAYERCI_WORKERS"),
            job_timeout=_int_or_none(env, "LAYERCI_JOB_TIMEOUT"),
            propagate_artifacts=_bool(env, "LAYERCI_PROPAGATE_ARTIFACTS", False),
        )

    def with_overrides(self, **overrides) -> RunnerSettings:
        """Apply CLI overrides; None means "not given" and keeps the current value."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise TypeError(f"Unknown settings: {unknown}")
        given = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **given)
