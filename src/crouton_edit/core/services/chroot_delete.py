"""Chroot deletion."""

from __future__ import annotations

import logging
import os
import shutil
import stat
from pathlib import Path

from crouton_edit.core.errors import PreconditionError, RuntimeFailure
from crouton_edit.core.services import keyfile
from crouton_edit.core.services.backup_common import walk_one_filesystem
from crouton_edit.core.services.confirm import Confirmer
from crouton_edit.core.services.encryption import Mounter
from crouton_edit.core.services.names import require_valid_name

logger = logging.getLogger(__name__)


def remove_tree_one_filesystem(top: Path) -> None:
    """Remove ``top`` without descending into other filesystems.

    Like ``rm -rf --one-file-system``: if something is still mounted
    inside, removal stops with an error instead of deleting its contents.
    """
    device = os.lstat(top).st_dev
    for path in walk_one_filesystem(top):
        st = os.lstat(path)
        if stat.S_ISDIR(st.st_mode) and st.st_dev != device:
            raise RuntimeFailure(f"{path} is still mounted; refusing to delete {top}.")
    shutil.rmtree(top)


def delete_chroot(
    chroot_dir: Path,
    *,
    mounter: Mounter,
    confirmer: Confirmer | None = None,
) -> None:
    """Delete a chroot and its external keyfile.

    Args:
        chroot_dir: The chroot directory (must exist).
        mounter: Collaborator used to unmount first.
        confirmer: Asks before deleting; None means already confirmed.

    Raises:
        PreconditionError: The chroot does not exist.
        UserAbort: The operator declined.
        RuntimeFailure: Unmounting or removal failed.
    """
    name = require_valid_name(chroot_dir.name)
    if not chroot_dir.is_dir():
        raise PreconditionError(f"{chroot_dir} not found.")

    if confirmer is not None:
        confirmer.require(f"Delete {chroot_dir}?")

    mounter.unmount(name)

    external = keyfile.external_keyfile(chroot_dir) if keyfile.is_encrypted(chroot_dir) else None

    logger.warning("Deleting %s", chroot_dir)
    try:
        remove_tree_one_filesystem(chroot_dir)
    except OSError as e:
        raise RuntimeFailure(f"Unable to delete {chroot_dir}: {e}") from e

    if external is not None and external.is_file():
        logger.warning("Deleting keyfile %s", external)
        try:
            external.unlink()
        except OSError as e:
            raise RuntimeFailure(f"Unable to delete keyfile {external}: {e}") from e

    logger.warning("Finished deleting %s", chroot_dir)
