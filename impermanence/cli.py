import json
import sys
from typing import List, Optional

import typer

from .api import check, plan, provision
from .config import CONFIG_ENV_VAR, load_config
from .exceptions import ImpermanenceError
from .log import configure_logging
from .mounts import MountEntry, render_fstab
from .result import ProvisionReport

app = typer.Typer(
    name="impermanence",
    help="Keep selected paths across reboots of an ephemeral root filesystem",
    add_completion=False,
)

PLAN_FORMATS = ("table", "fstab", "json")


@app.command("plan")
def cli_plan(
    config: Optional[str] = typer.Option(
        None, "--config", "-c",
        envvar=CONFIG_ENV_VAR,
        help="Configuration file (default: /etc/impermanence.yaml)"
    ),
    output_format: str = typer.Option(
        "table", "--format", "-f",
        help="Output format: table, fstab or json"
    ),
):
    """Print the bind mounts the configuration declares.

    Examples:

        $ impermanence plan

        $ impermanence plan --format fstab >> /etc/fstab
    """
    if output_format not in PLAN_FORMATS:
        typer.echo(
            f"Error: unknown format {output_format!r}, expected one of {', '.join(PLAN_FORMATS)}",
            err=True,
        )
        sys.exit(2)

    try:
        entries = plan(load_config(config).mappings)
    except ImpermanenceError as e:
        typer.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output_format == "json":
        typer.echo(json.dumps([_entry_to_dict(entry) for entry in entries], indent=2))
    elif output_format == "fstab":
        typer.echo(render_fstab(entries), nl=False)
    else:
        _print_plan_table(entries)


@app.command("provision")
def cli_provision(
    config: Optional[str] = typer.Option(
        None, "--config", "-c",
        envvar=CONFIG_ENV_VAR,
        help="Configuration file (default: /etc/impermanence.yaml)"
    ),
    runtime_root: str = typer.Option(
        "/", "--runtime-root", "-r",
        help="Root of the runtime tree, e.g. /mnt during installation"
    ),
    workers: int = typer.Option(
        1, "--workers", "-w",
        help="Provision disjoint top-level directories in parallel"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log every metadata synchronization"
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Only report failures"
    ),
):
    """Create missing persistent and runtime paths and sync their metadata.

    Exits with status 1 if any entry could not be provisioned.

    Examples:

        $ impermanence provision

        $ impermanence provision --runtime-root /mnt -c /mnt/etc/impermanence.yaml
    """
    configure_logging(verbose=verbose, quiet=quiet)

    try:
        cfg = load_config(config)
        report = provision(
            cfg.mappings,
            filesystems=cfg.filesystems,
            runtime_root=runtime_root,
            workers=workers,
        )
    except ImpermanenceError as e:
        typer.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not quiet:
        _print_report_summary(report)

    sys.exit(0 if report.ok else 1)


@app.command("check")
def cli_check(
    config: Optional[str] = typer.Option(
        None, "--config", "-c",
        envvar=CONFIG_ENV_VAR,
        help="Configuration file (default: /etc/impermanence.yaml)"
    ),
):
    """Validate the configuration without touching the filesystem.

    Checks:
        - Every path is absolute and normalized
        - No path is declared both as a file and a directory
        - No two entries share a target path
        - Every persistent root is needed for boot (if filesystems are declared)
    """
    try:
        cfg = load_config(config)
        entries = check(cfg.mappings, filesystems=cfg.filesystems)
    except ImpermanenceError as e:
        typer.echo(f"Error: {e}", err=True)
        sys.exit(1)

    typer.echo(f"OK: {len(entries)} entries across {len(cfg.mappings)} persistent roots")


def main():
    """Entry point for CLI."""
    app()


def _entry_to_dict(entry: MountEntry) -> dict:
    return {
        "target": entry.target_path,
        "device": entry.source_device,
        "kind": entry.kind.value,
        "persistent_root": entry.persistent_root,
        "options": list(entry.options),
        "no_check": entry.no_check,
    }


def _print_plan_table(entries: List[MountEntry]):
    if not entries:
        typer.echo("No paths declared.")
        return

    width = max(len(entry.target_path) for entry in entries)
    for entry in entries:
        typer.echo(
            f"  {entry.kind.value:<9} {entry.target_path:<{width}}  <- {entry.source_device}"
        )


def _print_report_summary(report: ProvisionReport):
    """Print one line per failed entry and an overall count."""
    for result in report.failed:
        typer.echo(f"  FAILED {result.entry.target_path}: {result.error}", err=True)

    typer.echo(
        f"Provisioned {len(report.succeeded)}/{len(report.results)} entries, "
        f"created {len(report.created)} paths",
        err=True,
    )


if __name__ == "__main__":
    main()
