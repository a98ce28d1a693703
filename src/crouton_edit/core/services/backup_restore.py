"""
Backup restore — find an archive, clear the way, extract.

Source resolution:
    explicit file       → identified and used
    directory / omitted → every ``{name}.*`` and ``{name}-*`` in it is
                          identified; the lexicographically last valid one
                          wins (dated names sort oldest first)

An existing chroot is only replaced when restore was requested twice,
and then only after a short grace period the operator can interrupt.
"""

from __future__ import annotations

import glob
import logging
import shutil
import tarfile
import time
from pathlib import Path
from typing import Callable

from crouton_edit.core.errors import (
    InvalidArchiveError,
    PreconditionError,
    RuntimeFailure,
    ValidationError,
)
from crouton_edit.core.models.archive import ArchiveIdentity, RestoreResult
from crouton_edit.core.reliability.cleanup import compensating
from crouton_edit.core.services.archive_identify import identify
from crouton_edit.core.services.backup_common import ProgressFn, stripped_members
from crouton_edit.core.services.chroot_delete import delete_chroot
from crouton_edit.core.services.encryption import Mounter
from crouton_edit.core.services.names import require_valid_name

logger = logging.getLogger(__name__)


def candidate_archives(name: str, directory: Path) -> list[Path]:
    """Files in ``directory`` that may be backups of ``name``, sorted."""
    escaped = glob.escape(name)
    found = set(directory.glob(f"{escaped}.*")) | set(directory.glob(f"{escaped}-*"))
    return sorted((p for p in found if p.is_file()), key=str)


def find_archive(
    name: str | None,
    source: str | Path | None = None,
    cwd: Path | None = None,
) -> ArchiveIdentity:
    """Locate and identify the archive to restore ``name`` from.

    Raises:
        ValidationError: A directory search was needed but no name given.
        PreconditionError: Nothing usable found (InvalidArchiveError for
            an explicit file that is not a backup).
    """
    base = cwd or Path.cwd()
    raw = str(source) if source is not None else ""
    path = Path(raw).expanduser() if raw else base
    if not path.is_absolute():
        path = base / path

    if raw and path.is_file():
        return identify(path)
    if not path.is_dir():
        raise PreconditionError(f"{path} not found.")
    if not name:
        raise ValidationError(
            f"{path} is a directory; specify the name of the chroot to restore."
        )

    for candidate in reversed(candidate_archives(name, path)):
        try:
            identity = identify(candidate)
        except InvalidArchiveError as e:
            logger.debug("Skipping %s: %s", candidate, e)
            continue
        if identity.name != name:
            logger.warning("%s is a backup of %s, restoring it as %s", candidate, identity.name, name)
        else:
            logger.info("Found backup %s", candidate)
        return identity

    raise PreconditionError(f"Unable to find a backup of {name} in {path}.")


def restore_chroot(
    chroots_root: Path,
    name: str | None = None,
    source: str | Path | None = None,
    *,
    restore_count: int = 1,
    mounter: Mounter,
    grace_seconds: float = 3.0,
    sleep: Callable[[float], None] = time.sleep,
    progress: ProgressFn | None = None,
    checkpoint: int = 100,
    cwd: Path | None = None,
) -> RestoreResult:
    """Restore a chroot from a backup archive.

    Args:
        chroots_root: Directory the chroot is restored into.
        name: Chroot name; None takes the name recorded in the archive.
            An explicit name wins over the archive's.
        source: Archive file, or directory to search (default: cwd).
        restore_count: 2 or more allows replacing an existing chroot.
        mounter: Collaborator used when an existing chroot is deleted.
        grace_seconds: Warning delay before deleting an existing chroot.
        sleep: Injected for tests.
        progress: Called with the member count every ``checkpoint`` members.
        checkpoint: Progress interval.
        cwd: Base for relative sources.

    Raises:
        PreconditionError: No archive, or the chroot exists and overwrite
            was not requested.
        RuntimeFailure: Extraction failed; the partial chroot is removed.
    """
    identity = find_archive(name, source, cwd)
    target = require_valid_name(name or identity.name)
    chroot_dir = chroots_root / target

    replaced = False
    if chroot_dir.exists() or chroot_dir.is_symlink():
        if restore_count < 2:
            raise PreconditionError(
                f"{chroot_dir} already exists! Specify restore twice to overwrite."
            )
        require_valid_name(chroot_dir.name)
        logger.warning("Deleting %s in %g seconds...", chroot_dir, grace_seconds)
        logger.warning("Press Control-C to abort; restoration will continue if you do nothing.")
        sleep(grace_seconds)
        delete_chroot(chroot_dir, mounter=mounter)
        replaced = True

    logger.warning("Restoring %s to %s", identity.path, chroot_dir)
    try:
        chroot_dir.mkdir(parents=True)
    except OSError as e:
        raise RuntimeFailure(f"Unable to create {chroot_dir}: {e}") from e

    with compensating(
        "Deleting partially restored chroot.", shutil.rmtree, chroot_dir, ignore_errors=True
    ):
        try:
            members = _extract(identity.path, chroot_dir, progress, checkpoint)
        except (OSError, tarfile.TarError, EOFError) as e:
            raise RuntimeFailure(f"Unable to restore {chroot_dir}: {e}") from e

    logger.warning("Finished restoring %s to %s", identity.path, chroot_dir)
    return RestoreResult(
        chroot=target,
        destination=chroot_dir,
        source=identity.path,
        identity=identity,
        members=members,
        replaced_existing=replaced,
    )


def _extract(
    archive: Path,
    dest: Path,
    progress: ProgressFn | None,
    checkpoint: int,
) -> int:
    count = 0

    def _counted(tar: tarfile.TarFile):
        nonlocal count
        for member in stripped_members(tar, progress, checkpoint):
            count += 1
            yield member

    with tarfile.open(archive, "r:*") as tar:
        # Chroot contents need ownership, devices and setuid bits intact
        tar.extractall(dest, members=_counted(tar), numeric_owner=True, filter="fully_trusted")
    return count
