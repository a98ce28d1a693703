"""
crouton-edit — CLI entrypoint.

Usage:
    edit-chroot -b dev                  back up dev into the working directory
    edit-chroot -r -f ~/Downloads dev   restore dev from its newest backup there
    edit-chroot -rr dev                 restore over an existing dev
    edit-chroot -e -k ~/keys/ dev       encrypt dev, keeping the key outside
    edit-chroot -m /media/usb/ dev      move dev to another disk
    edit-chroot -d dev                  delete dev
    edit-chroot -a                      list all chroots
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from crouton_edit import __version__
from crouton_edit.core.observability.logging_config import setup_cli_logging


def _progress(count: int) -> None:
    click.echo(f"\r   … {count:,} entries", nl=False, err=True)


@click.command(
    context_settings={"help_option_names": ["-h", "--help"]},
    epilog="Names beginning with '-' must follow '--'.",
)
@click.version_option(version=__version__, prog_name="edit-chroot")
@click.option("-a", "list_all", is_flag=True, help="List details of all chroots.")
@click.option("-b", "backup", is_flag=True, help="Back up the chroot to an archive.")
@click.option(
    "-c",
    "chroots",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory the chroots are in.",
)
@click.option("-d", "delete", is_flag=True, help="Delete the chroot.")
@click.option(
    "-e",
    "encrypt",
    is_flag=True,
    help="Encrypt the chroot, or change its passphrase if already encrypted.",
)
@click.option(
    "-f",
    "archive",
    default=None,
    metavar="PATH",
    help="Backup destination or restore source: a file, or a directory to use.",
)
@click.option(
    "-k",
    "keyfile_target",
    default=None,
    metavar="KEYFILE",
    help="Move the encryption key to KEYFILE (a directory if it ends in '/'; '-' = inside the chroot).",
)
@click.option("-l", "list_details", is_flag=True, help="Print details of the chroots.")
@click.option(
    "-m",
    "move",
    default=None,
    metavar="DEST",
    help="Move the chroot: a new name, a directory ending in '/', or a full path.",
)
@click.option(
    "-r",
    "restore",
    count=True,
    help="Restore the chroot from a backup. Repeat to overwrite an existing chroot.",
)
@click.option("-y", "yes", is_flag=True, help="Do everything without asking for confirmation.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to edit.yml (default: $CROUTON_EDIT_CONFIG or /etc/crouton/edit.yml).",
)
@click.option("--mock", is_flag=True, help="Don't run mount-chroot / unmount-chroot.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.argument("names", nargs=-1)
def cli(
    list_all: bool,
    backup: bool,
    chroots: str | None,
    delete: bool,
    encrypt: bool,
    archive: str | None,
    keyfile_target: str | None,
    list_details: bool,
    move: str | None,
    restore: int,
    yes: bool,
    config_path: str | None,
    mock: bool,
    as_json: bool,
    verbose: bool,
    debug: bool,
    names: tuple[str, ...],
) -> None:
    """Back up, restore, encrypt, move or delete chroots."""
    setup_cli_logging(debug=debug, verbose=verbose)

    from crouton_edit.adapters.registry import AdapterRegistry
    from crouton_edit.adapters.shell.mount import ShellMountAdapter
    from crouton_edit.core.config.loader import load_config
    from crouton_edit.core.errors import ChrootEditError
    from crouton_edit.core.models.request import OperationRequest
    from crouton_edit.core.use_cases.edit import ChrootEditor, validate_request

    request = OperationRequest(
        names=list(names),
        backup=backup,
        delete=delete,
        encrypt=encrypt,
        keyfile=keyfile_target,
        move=move,
        restore=restore,
        archive=archive,
        list_details=list_details,
        list_all=list_all,
    )

    try:
        config = load_config(
            Path(config_path) if config_path else None,
            overrides={
                "chroots_root": chroots,
                "yes_to_all": True if yes else None,
            },
        )
        if list_all or list_details:
            validate_request(request)
            _list(config.chroots_root, request, as_json)
            return

        registry = AdapterRegistry(mock_mode=mock)
        registry.register(ShellMountAdapter(config.bin_dir))
        editor = ChrootEditor(config, registry, progress=None if as_json else _progress)
        report = editor.run(request)
    except ChrootEditError as e:
        if as_json:
            click.echo(json.dumps({"error": str(e), "exit_code": e.exit_code}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(e.exit_code)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(report.exit_code)

    click.echo(err=True)
    for outcome in report.outcomes:
        label = outcome.name or "(restore)"
        if outcome.ok:
            click.secho(f"✅ {label}: {', '.join(outcome.completed)}", fg="green")
        elif outcome.aborted:
            click.secho(f"⊘ {label}: aborted", fg="yellow")
        else:
            done = f" (completed: {', '.join(outcome.completed)})" if outcome.completed else ""
            click.secho(f"❌ {label}: {outcome.error}{done}", fg="red")

    if not report.ok:
        sys.exit(report.exit_code)


def _list(chroots_root: Path, request, as_json: bool) -> None:
    from crouton_edit.core.services.chroot_info import describe_chroot, list_chroots

    names = list_chroots(chroots_root) if request.list_all else request.names
    infos = [describe_chroot(chroots_root / name) for name in names]

    if as_json:
        click.echo(json.dumps([i.to_dict() for i in infos], indent=2))
        return

    if not infos:
        click.secho(f"No chroots found in {chroots_root}", fg="yellow")
        return

    for info in infos:
        click.secho(f"{info.name}", fg="cyan", bold=True)
        click.echo(f"   Path: {info.path}")
        if info.encrypted:
            click.echo(f"   🔒 Encrypted, key: {info.keyfile}")
        else:
            click.echo("   Not encrypted")
        if info.targets:
            click.echo(f"   Targets: {', '.join(info.targets)}")


if __name__ == "__main__":
    cli()
