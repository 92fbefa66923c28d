"""
Pipeline YAML parser and validator.

Document shape:

    stages: [build, test]        # optional; enables dependency mode
    <job name>:
      image: python:3.11         # required
      script: [cmd, ...]         # required, may be empty
      stage: build               # optional
      needs: [other job, ...]    # optional
      artifacts: [path, ...]     # optional, workspace-relative
"""

from __future__ import annotations

import posixpath
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigurationError
from .model import Job, PipelineSpec

STAGES_KEY = "stages"
JOB_KEYS = {"image", "script", "stage", "needs", "artifacts"}
RESERVED_PREFIX = ".layerci"


class _UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that refuses duplicate mapping keys instead of keeping the last one."""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            try:
                duplicate = key in seen
            except TypeError:
                # unhashable key: SafeLoader reports it below
                break
            if duplicate:
                raise ConfigurationError(
                    f"Duplicate key {key!r} (line {key_node.start_mark.line + 1})"
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


def _string_list(value: Any, what: str) -> List[str]:
    if not isinstance(value, list):
        raise ConfigurationError(f"{what} must be a list of strings")
    for i, item in enumerate(value):
        if not isinstance(item, str):
            raise ConfigurationError(f"{what} item {i} must be a string")
    return list(value)


def _artifact_path(path: str, job: str) -> str:
    norm = posixpath.normpath(path.replace("\\", "/"))
    if not path.strip() or norm == ".":
        raise ConfigurationError(f"Job '{job}' artifact path {path!r} must name a file or directory")
    if posixpath.isabs(norm) or norm == ".." or norm.startswith("../"):
        raise ConfigurationError(f"Job '{job}' artifact path {path!r} must stay inside the workspace")
    if norm == RESERVED_PREFIX or norm.startswith(RESERVED_PREFIX + "/"):
        raise ConfigurationError(f"Job '{job}' artifact path {path!r} is inside the reserved {RESERVED_PREFIX} directory")
    return norm


def validate_job(name: Any, record: Any) -> Job:
    """Validate a single job record."""
    if not isinstance(name, str) or not name:
        raise ConfigurationError(f"Job name {name!r} must be a non-empty string")

    if not isinstance(record, dict):
        raise ConfigurationError(f"Job '{name}' must be a mapping")

    unknown = sorted(str(k) for k in record if k not in JOB_KEYS)
    if unknown:
        raise ConfigurationError(f"Job '{name}' has unknown key(s) {unknown}")

    # Required fields
    if "image" not in record:
        raise ConfigurationError(f"Job '{name}' missing 'image'")
    image = record["image"]
    if not isinstance(image, str) or not image.strip():
        raise ConfigurationError(f"Job '{name}' 'image' must be a non-empty string")

    if "script" not in record:
        raise ConfigurationError(f"Job '{name}' missing 'script'")
    script = _string_list(record["script"], f"Job '{name}' 'script'")

    # Optional fields
    stage = record.get("stage")
    if stage is not None and not isinstance(stage, str):
        raise ConfigurationError(f"Job '{name}' 'stage' must be a string")

    has_needs = "needs" in record
    needs: List[str] = []
    if has_needs:
        needs = _string_list(record["needs"] or [], f"Job '{name}' 'needs'")

    artifacts: List[str] = []
    if record.get("artifacts") is not None:
        raw = _string_list(record["artifacts"], f"Job '{name}' 'artifacts'")
        artifacts = [_artifact_path(p, name) for p in raw]

    return Job(
        name=name,
        image=image,
        script=tuple(script),
        stage=stage,
        needs=frozenset(needs),
        artifacts=tuple(artifacts),
        has_needs=has_needs,
    )


def _validate_stages(value: Any) -> Tuple[str, ...]:
    stages = _string_list(value, "'stages'")
    dupes = sorted({s for s in stages if stages.count(s) > 1})
    if dupes:
        raise ConfigurationError(f"'stages' has duplicate entries {dupes}")
    return tuple(stages)


def parse_dict(config: Optional[Dict[Any, Any]]) -> PipelineSpec:
    """Validate a pipeline configuration already loaded into Python objects."""
    if config is None:
        return PipelineSpec()

    if not isinstance(config, dict):
        raise ConfigurationError("Pipeline configuration must be a mapping of job name to job")

    stages: Optional[Tuple[str, ...]] = None
    jobs: List[Job] = []
    for name, record in config.items():
        if name == STAGES_KEY:
            stages = _validate_stages(record)
            continue
        jobs.append(validate_job(name, record))

    return PipelineSpec(jobs=tuple(jobs), stages=stages)


def parse_str(config_str: str) -> PipelineSpec:
    """Parse pipeline YAML configuration from string."""
    try:
        config = yaml.load(config_str, Loader=_UniqueKeyLoader)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse config: {e}")
    return parse_dict(config)


def parse_file(file_path: str | Path) -> PipelineSpec:
    """Read and parse a pipeline configuration file."""
    path = Path(file_path)
    try:
        config_str = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Config file {path} could not be read: {e}")

    try:
        return parse_str(config_str)
    except ConfigurationError as e:
        if e.path is None:
            e.path = str(path)
        raise
