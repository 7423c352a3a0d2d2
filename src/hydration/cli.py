"""Intune Hydration Kit CLI (hydrate).

Usage:
    hydrate --settings settings.json                 # Create missing baseline objects
    hydrate --settings settings.json --dry-run       # Show what would be created
    hydrate --settings settings.json --force         # Recreate objects that exist
    hydrate --settings settings.json --delete        # Remove kit-created objects
    hydrate --settings settings.json --kind Group    # Limit to selected kinds
    hydrate kinds                                    # List supported kinds
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from . import __version__
from .config import ConfigurationError, RunMode, load_run_context
from .kinds import KIND_CONFIGS, KIND_ORDER, ResourceKind
from .main import EXIT_FATAL, run, setup_logging

DEFAULT_SETTINGS_FILE = "settings.json"


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="hydrate")
@click.option(
    "--settings",
    "-s",
    "settings_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=DEFAULT_SETTINGS_FILE,
    show_default=True,
    help="Settings file (JSON or YAML)",
)
@click.option("--create", "mode", flag_value=RunMode.CREATE.value, help="Create baseline objects")
@click.option(
    "--delete", "mode", flag_value=RunMode.DELETE.value, help="Remove kit-created objects"
)
@click.option("--dry-run", "-n", is_flag=True, help="Record decisions only")
@click.option("--force", "-f", is_flag=True, help="Recreate existing objects")
@click.option(
    "--kind",
    "-k",
    "kinds",
    multiple=True,
    type=click.Choice([k.value for k in ResourceKind]),
    help="Only process these kinds (repeatable)",
)
@click.option(
    "--templates",
    "templates_dir",
    type=click.Path(path_type=Path, file_okay=False),
    help="Templates directory",
)
@click.option(
    "--reports",
    "reports_dir",
    type=click.Path(path_type=Path, file_okay=False),
    help="Reports directory",
)
@click.option("--recursive", is_flag=True, help="Load templates recursively")
@click.option(
    "--log-format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
    help="Log output format",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    settings_path: Path,
    mode: str | None,
    dry_run: bool,
    force: bool,
    kinds: tuple[str, ...],
    templates_dir: Path | None,
    reports_dir: Path | None,
    recursive: bool,
    log_format: str,
    verbose: bool,
) -> None:
    """Intune Hydration Kit.

    Creates baseline groups, filters, policies, templates, profiles and app
    registrations in an Intune tenant, or removes the ones it created.

    \b
    Quick Start:
        hydrate --settings settings.json --dry-run
        hydrate --settings settings.json
    """
    if ctx.invoked_subcommand is not None:
        return

    setup_logging(log_format, verbose)

    try:
        context = load_run_context(
            settings_path,
            mode=RunMode(mode) if mode else None,
            dry_run=dry_run or None,
            force_update=force or None,
            enabled_kinds=frozenset(ResourceKind(k) for k in kinds) if kinds else None,
            templates_dir=templates_dir,
            reports_dir=reports_dir,
            recursive=recursive or None,
        )
    except ConfigurationError as e:
        click.secho(str(e), fg="red", err=True)
        sys.exit(EXIT_FATAL)

    sys.exit(run(context))


@cli.command("kinds")
def list_kinds() -> None:
    """List supported resource kinds and their template directories."""
    for kind in KIND_ORDER:
        kind_config = KIND_CONFIGS[kind]
        endpoints = ", ".join(e.path for e in kind_config.endpoints)
        click.echo(f"{kind.value:<26} templates/{kind_config.template_dir:<18} {endpoints}")


if __name__ == "__main__":
    cli()
