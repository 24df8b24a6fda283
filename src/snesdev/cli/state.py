"""snesdev CLI - inspect and reset recorded bootstrap progress."""

import json
import sys
from pathlib import Path

import click

from snesdev.catalog import get_step_catalog
from snesdev.errors import BootstrapError
from snesdev.models import parse_request
from snesdev.state import RunKey, StateRepository

EXIT_USAGE = 2


def _target_options(f):
    f = click.option(
        "--install-prefix",
        type=click.Path(file_okay=False, path_type=Path),
        help="Installation directory prefix (default: ~/.pvsneslib)",
    )(f)
    f = click.option("--project-name", "-p", help="Starter project name (default: my-snes-game)")(f)
    return f


def _resolve_key(project_name, install_prefix) -> RunKey:
    try:
        request = parse_request({"project_name": project_name, "install_prefix": install_prefix})
    except BootstrapError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_USAGE)
    return RunKey(request.install_prefix, request.project_name)


@click.command("status")
@_target_options
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format",
)
def status(project_name, install_prefix, output_format):
    """Show the recorded progress of an unfinished bootstrap."""
    key = _resolve_key(project_name, install_prefix)
    repository = StateRepository()
    state = repository.load(key)

    if output_format == "json":
        click.echo(json.dumps(state.to_record() if state else None, indent=2))
        return

    if state is None:
        click.echo("No bootstrap in progress for this target.")
        return

    click.echo(click.style("PVSnesLib Bootstrap State", bold=True))
    click.echo("=" * 40)
    click.echo(f"Project: {state.project_name}")
    click.echo(f"Install Path: {state.install_prefix}")
    click.echo(f"Updated: {state.last_updated or 'unknown'}")
    if state.environment_file_path:
        click.echo(f"Environment File: {state.environment_file_path}")
    click.echo(f"State File: {repository.path_for(key)}")
    click.echo()

    catalog = get_step_catalog()
    click.echo(click.style("Steps:", bold=True))
    for step in catalog:
        done = state.is_completed(step.name)
        indicator = click.style("[DONE]", fg="green") if done else click.style("[TODO]", fg="yellow")
        click.echo(f"  {indicator} {step.description}")
    completed = sum(1 for step in catalog if state.is_completed(step.name))
    click.echo()
    click.echo(f"Progress: {completed}/{len(catalog)} steps completed")
    click.echo("Run 'snesdev bootstrap --resume' to continue.")


@click.command("reset")
@_target_options
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
def reset(project_name, install_prefix, yes):
    """Discard the recorded progress of a bootstrap.

    The next bootstrap runs every step again. Installed files are left alone.
    """
    key = _resolve_key(project_name, install_prefix)
    repository = StateRepository()

    if repository.load(key) is None and not repository.path_for(key).exists():
        click.echo("No bootstrap state recorded for this target.")
        return

    if not yes:
        click.confirm("Discard recorded bootstrap progress?", abort=True)

    try:
        with repository.lock(key):
            repository.clear(key)
    except BootstrapError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_USAGE)
    click.echo("Bootstrap state cleared.")


@click.command("steps")
def steps():
    """List the bootstrap steps in execution order."""
    for index, step in enumerate(get_step_catalog(), start=1):
        kind = "required" if step.required else "optional"
        click.echo(f"{index}. {step.name:18} [{kind}] {step.description} ({step.operation_ref})")
