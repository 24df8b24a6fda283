"""snesdev CLI - bootstrap command."""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Tuple

import click
import yaml
from click.core import ParameterSource

from snesdev.config import get_config
from snesdev.errors import BootstrapError
from snesdev.executor import StepExecutor
from snesdev.models import RunRequest, parse_request
from snesdev.operations import OperationRegistry
from snesdev.orchestrator import run_bootstrap
from snesdev.reporter import render
from snesdev.telemetry import configure_otel_providers, flush_otel_providers

logger = logging.getLogger(__name__)

EXIT_ABORTED = 1
EXIT_USAGE = 2

# CLI option name -> RunRequest field
_REQUEST_OPTIONS = {
    "project_name": "project_name",
    "install_prefix": "install_prefix",
    "sdk_version": "sdk_version",
    "offline": "offline_mode",
    "sdk_path": "offline_sdk_path",
    "force_reinstall": "force_reinstall",
    "resume": "resume_from_failure",
    "skip_ide": "skip_ide",
    "skip_ci": "skip_ci",
    "starter_project": "create_starter_project",
    "non_interactive": "non_interactive",
}


def build_registry() -> OperationRegistry:
    """Registry populated from the installed collaborator packages."""
    registry = OperationRegistry()
    registry.load_entry_points()
    if not len(registry):
        logger.warning(
            "No provisioning operations are installed; every step will fail. "
            "Install a package providing 'snesdev.operations' entry points."
        )
    return registry


def _parse_overrides(values: Tuple[str, ...]) -> Dict[str, Dict[str, Any]]:
    """Parse ``STEP.KEY=VALUE`` options; values are read as YAML scalars."""
    overrides: Dict[str, Dict[str, Any]] = {}
    for item in values:
        target, sep, raw = item.partition("=")
        step, dot, key = target.partition(".")
        if not sep or not dot or not step or not key:
            raise click.BadParameter(
                f"expected STEP.KEY=VALUE, got {item!r}", param_hint="--set"
            )
        try:
            value = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError:
            value = raw
        overrides.setdefault(step, {})[key] = value
    return overrides


def _explicit_options(ctx: click.Context, **values: Any) -> Dict[str, Any]:
    """Request fields for options the user actually gave."""
    fields: Dict[str, Any] = {}
    for option, field_name in _REQUEST_OPTIONS.items():
        if ctx.get_parameter_source(option) in (None, ParameterSource.DEFAULT):
            continue
        fields[field_name] = values[option]
    return fields


@click.command("bootstrap")
@click.option("--project-name", "-p", help="Starter project name (default: my-snes-game)")
@click.option(
    "--install-prefix",
    type=click.Path(file_okay=False, path_type=Path),
    help="Installation directory prefix (default: ~/.pvsneslib)",
)
@click.option("--sdk-version", help="PVSnesLib SDK version to install (default: 4.3.0)")
@click.option("--offline", is_flag=True, help="Install from a local SDK archive")
@click.option(
    "--sdk-path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Local SDK archive (required with --offline)",
)
@click.option("--force-reinstall", is_flag=True, help="Re-run every step even if completed")
@click.option("--resume", is_flag=True, help="Resume from a previous failed attempt")
@click.option("--skip-ide", "--skip-vscode", "skip_ide", is_flag=True, help="Skip VS Code integration")
@click.option("--skip-ci", is_flag=True, help="Skip CI integration")
@click.option(
    "--starter-project/--no-starter-project",
    default=True,
    help="Create a starter SNES project",
)
@click.option("--non-interactive", is_flag=True, help="Never prompt from provisioning steps")
@click.option(
    "--set",
    "overrides",
    multiple=True,
    metavar="STEP.KEY=VALUE",
    help="Extra parameter for one step (repeatable)",
)
@click.option(
    "--request-file",
    "-f",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML/JSON file with request fields; options override it",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Report format",
)
@click.option(
    "--otlp-endpoint",
    envvar="OTEL_EXPORTER_OTLP_ENDPOINT",
    default=None,
    help="Export traces and metrics to this OTLP endpoint",
)
@click.pass_context
def bootstrap(
    ctx,
    project_name,
    install_prefix,
    sdk_version,
    offline,
    sdk_path,
    force_reinstall,
    resume,
    skip_ide,
    skip_ci,
    starter_project,
    non_interactive,
    overrides,
    request_file,
    output_format,
    otlp_endpoint,
):
    """Provision a complete PVSnesLib development environment.

    Runs host validation, SDK installation, install validation, toolchain
    configuration, build/IDE/CI integration and starter-project creation.
    Progress is saved after every step; re-run with --resume after a
    failure to continue where it stopped.

    Examples:

        # Everything with defaults
        snesdev bootstrap

        # Offline install from a downloaded archive
        snesdev bootstrap --offline --sdk-path ~/Downloads/pvsneslib-4.3.0.tar.gz

        # Continue after fixing a failed step
        snesdev bootstrap --resume
    """
    fields = _explicit_options(
        ctx,
        project_name=project_name,
        install_prefix=install_prefix,
        sdk_version=sdk_version,
        offline=offline,
        sdk_path=sdk_path,
        force_reinstall=force_reinstall,
        resume=resume,
        skip_ide=skip_ide,
        skip_ci=skip_ci,
        starter_project=starter_project,
        non_interactive=non_interactive,
    )
    step_overrides = _parse_overrides(overrides)

    try:
        if request_file:
            request = RunRequest.from_file(request_file, **fields)
            if step_overrides:
                merged = {k: dict(v) for k, v in request.step_overrides.items()}
                for step, params in step_overrides.items():
                    merged.setdefault(step, {}).update(params)
                request = parse_request({**request.model_dump(), "step_overrides": merged})
        else:
            request = parse_request({**fields, "step_overrides": step_overrides})
    except BootstrapError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_USAGE)

    endpoint = otlp_endpoint or get_config().otlp_endpoint
    otel_configured = False
    if endpoint:
        otel_configured = configure_otel_providers(endpoint, get_config().service_name)

    try:
        report = run_bootstrap(request, StepExecutor(build_registry()))
    except BootstrapError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_USAGE)
    finally:
        if otel_configured:
            flush_otel_providers()

    if output_format == "json":
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        click.echo(render(report, use_colors=True), err=not report.success)

    if not report.success:
        sys.exit(EXIT_ABORTED)
