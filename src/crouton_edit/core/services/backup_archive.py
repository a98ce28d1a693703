"""
Backup creation — archive a chroot into a labeled tarball.

Naming: when the destination is omitted or is a directory, the file is
``{name}-{YYYYMMDD}-{HHMM}.tar.gz``, or plain ``.tar`` if the chroot is
encrypted (its contents don't compress).  An explicit file name picks
the compression from its extension.

The partial archive is deleted if the run does not finish.
"""

from __future__ import annotations

import logging
import tarfile
from datetime import datetime
from pathlib import Path

from crouton_edit.core.errors import PreconditionError, RuntimeFailure
from crouton_edit.core.models.archive import BackupResult, make_label
from crouton_edit.core.reliability.cleanup import compensating
from crouton_edit.core.services import keyfile
from crouton_edit.core.services.backup_common import (
    ProgressFn,
    compression_for,
    label_member,
    walk_one_filesystem,
    write_mode,
)
from crouton_edit.core.services.encryption import Mounter

logger = logging.getLogger(__name__)


def default_backup_name(name: str, now: datetime, encrypted: bool) -> str:
    """``dev-20200101-1200.tar.gz`` (``.tar`` when encrypted)."""
    stamp = now.strftime("%Y%m%d-%H%M")
    return f"{name}-{stamp}.tar" + ("" if encrypted else ".gz")


def resolve_destination(
    chroot_dir: Path,
    destination: str | Path | None,
    now: datetime,
    cwd: Path | None = None,
) -> Path:
    """Where the backup of ``chroot_dir`` will be written."""
    base = cwd or Path.cwd()
    raw = str(destination) if destination is not None else ""
    if not raw:
        return base / default_backup_name(
            chroot_dir.name, now, keyfile.is_encrypted(chroot_dir)
        )

    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = base / path
    if raw.endswith("/") or path.is_dir():
        path = path / default_backup_name(
            chroot_dir.name, now, keyfile.is_encrypted(chroot_dir)
        )
    return path


def backup_chroot(
    chroot_dir: Path,
    destination: str | Path | None = None,
    *,
    mounter: Mounter | None = None,
    now: datetime | None = None,
    progress: ProgressFn | None = None,
    checkpoint: int = 100,
    cwd: Path | None = None,
) -> BackupResult:
    """Back up ``chroot_dir`` into a labeled archive.

    Args:
        chroot_dir: The chroot directory.
        destination: Archive file, or directory to create it in
            (default: the working directory).
        mounter: Collaborator used to unmount first; None skips that.
        now: Backup time for the file name and label (default: now).
        progress: Called with the member count every ``checkpoint`` members.
        checkpoint: Progress interval.
        cwd: Base for relative destinations.

    Raises:
        PreconditionError: Chroot missing or destination already exists.
        RuntimeFailure: Writing the archive failed; nothing is left behind.
    """
    if not chroot_dir.is_dir():
        raise PreconditionError(f"{chroot_dir} not found.")

    name = chroot_dir.name
    now = now or datetime.now()
    dest = resolve_destination(chroot_dir, destination, now, cwd)
    if dest.exists():
        raise PreconditionError(f"{dest} already exists.")

    compression = compression_for(dest)
    label = make_label(name, now.strftime("%Y%m%d%H%M"))

    if mounter is not None:
        mounter.unmount(name)

    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise RuntimeFailure(f"Unable to create {dest.parent}: {e}") from e
    logger.warning("Backing up %s to %s", chroot_dir, dest)

    with compensating("Deleting partial archive.", dest.unlink, missing_ok=True):
        try:
            members = _write_archive(
                chroot_dir, dest, label, compression, now, progress, checkpoint
            )
        except (OSError, tarfile.TarError) as e:
            raise RuntimeFailure(f"Unable to backup {chroot_dir}: {e}") from e

    logger.warning("Finished backing up %s to %s", chroot_dir, dest)
    return BackupResult(
        chroot=name,
        destination=dest,
        label=label,
        compression=compression,
        members=members,
        size_bytes=dest.stat().st_size,
    )


def _write_archive(
    chroot_dir: Path,
    dest: Path,
    label: str,
    compression: str,
    now: datetime,
    progress: ProgressFn | None,
    checkpoint: int,
) -> int:
    name = chroot_dir.name
    count = 0
    with tarfile.open(dest, write_mode(compression), format=tarfile.GNU_FORMAT) as tar:
        tar.addfile(label_member(label, now.timestamp()))
        for path in walk_one_filesystem(chroot_dir):
            if path == chroot_dir:
                arcname = name
            else:
                arcname = f"{name}/{path.relative_to(chroot_dir).as_posix()}"
            tar.add(path, arcname=arcname, recursive=False)
            count += 1
            if progress and count % checkpoint == 0:
                progress(count)
    return count
