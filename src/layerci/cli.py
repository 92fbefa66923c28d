# cli.py
from __future__ import annotations

import sys
from pathlib import Path

import click

from layerci.dag import build_plan
from layerci.errors import ConfigurationError, RuntimeUnavailable, SchedulingError
from layerci.parser import parse_file
from layerci.pipeline import Pipeline
from layerci.settings import RunnerSettings
from layerci.ui.console import Console, get_console, set_console

DEFAULT_CONFIG_FILES = (".layerci.yml", ".layerci.yaml", "pipeline.yml", "pipeline.yaml")


def discover_config(file_path: str | None) -> Path:
    """
    Resolve the pipeline configuration file from the argument or defaults.

    Raises:
        SystemExit: If no configuration file can be found
    """
    console = get_console()

    if file_path:
        return Path(file_path)

    for candidate in DEFAULT_CONFIG_FILES:
        path = Path(candidate)
        if path.exists():
            return path

    console.print_error(
        "No pipeline file found",
        "Could not find a pipeline configuration file.",
        details=["Looked for:", *(f"  {c}" for c in DEFAULT_CONFIG_FILES)],
        suggestion="Specify a pipeline explicitly:\n  layerci run --file-path pipeline.yml",
    )
    sys.exit(1)


def _report_fatal(ctx: click.Context, exc: Exception) -> None:
    console = get_console()
    if isinstance(exc, ConfigurationError):
        console.print_error("Invalid configuration", str(exc))
    elif isinstance(exc, SchedulingError):
        console.print_error(
            "Scheduling failed",
            str(exc),
            details=[f"jobs: {', '.join(exc.jobs)}"] if exc.jobs else None,
        )
    elif isinstance(exc, RuntimeUnavailable):
        console.print_error(
            "Container runtime unavailable",
            str(exc),
            suggestion="Pick another runtime with --runtime or LAYERCI_RUNTIME.",
        )
    else:
        console.print_exception(exc)
        return
    if ctx.obj.get("debug", False):
        console.print_exception(exc)


file_path_option = click.option(
    "--file-path",
    "-f",
    "file_path",
    default=None,
    help="Pipeline YAML file (defaults to .layerci.yml or pipeline.yml if present)",
)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """layerci: dependency-ordered, container-isolated CI pipeline runner."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@file_path_option
@click.option("--workspace", default=None, help="Directory mounted into every job container")
@click.option("--artifacts-dir", default=None, help="Root directory of the artifact archive")
@click.option("--runtime", default=None, help="Container runtime program (default: docker)")
@click.option("--workers", default=None, type=click.IntRange(min=1), help="Max parallel jobs per stage")
@click.option("--timeout", default=None, type=click.IntRange(min=1), help="Per-job timeout in seconds")
@click.option(
    "--propagate-artifacts/--no-propagate-artifacts",
    default=None,
    help="Load upstream artifacts into .layerci/inputs/<job>/ before a job runs",
)
@click.pass_context
def run(ctx, file_path, workspace, artifacts_dir, runtime, workers, timeout, propagate_artifacts):
    """Run a pipeline."""
    console = get_console()
    config_path = discover_config(file_path)

    try:
        settings = RunnerSettings.from_env().with_overrides(
            workspace=workspace,
            artifacts_root=artifacts_dir,
            runtime=runtime,
            max_workers=workers,
            job_timeout=timeout,
            propagate_artifacts=propagate_artifacts,
        )
        pipeline = Pipeline(settings, console)
        pipeline_run = pipeline.run(config_path)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except (ConfigurationError, SchedulingError, RuntimeUnavailable) as e:
        _report_fatal(ctx, e)
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    # Job failures are reported, not fatal.
    console.print_results(pipeline_run.results)
    console.print_completed()


@cli.command()
@file_path_option
@click.pass_context
def plan(ctx, file_path):
    """Print the execution plan without running anything."""
    console = get_console()
    config_path = discover_config(file_path)

    try:
        execution_plan = build_plan(parse_file(config_path))
    except (ConfigurationError, SchedulingError) as e:
        _report_fatal(ctx, e)
        sys.exit(1)

    console.print_info(f"Mode: {execution_plan.mode}")
    console.print_plan(execution_plan)


@cli.command()
@file_path_option
@click.pass_context
def validate(ctx, file_path):
    """Check that a pipeline parses and can be scheduled."""
    console = get_console()
    config_path = discover_config(file_path)

    try:
        execution_plan = build_plan(parse_file(config_path))
    except (ConfigurationError, SchedulingError) as e:
        _report_fatal(ctx, e)
        sys.exit(1)

    console.print_info(
        f"OK: {execution_plan.job_count} job(s) in {len(execution_plan)} stage(s) ({execution_plan.mode} mode)"
    )


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
