"""
Chroot relocation.

Target forms:
    newname        rename within the chroots root
    /some/dir/     move into that directory, keeping the name
    /some/path     move to exactly that path

On one filesystem the move is a single rename.  Across filesystems it
is copy-then-delete: slow and not atomic, so it is confirmed first.
An interrupted copy leaves the source intact and the partial copy is
removed.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal

from crouton_edit.core.errors import PreconditionError, RuntimeFailure, ValidationError
from crouton_edit.core.reliability.cleanup import compensating
from crouton_edit.core.services.backup_common import walk_one_filesystem
from crouton_edit.core.services.chroot_delete import remove_tree_one_filesystem
from crouton_edit.core.services.confirm import Confirmer
from crouton_edit.core.services.encryption import Mounter
from crouton_edit.core.services.mounts import same_filesystem
from crouton_edit.core.services.names import require_valid_name

logger = logging.getLogger(__name__)

CopyFn = Callable[[Path, Path], None]


@dataclass
class MoveResult:
    source: Path
    target: Path
    method: Literal["rename", "copy"]

    def to_dict(self) -> dict:
        return {"source": str(self.source), "target": str(self.target), "method": self.method}


def resolve_move_target(
    chroot_dir: Path,
    target: str,
    chroots_root: Path,
    cwd: Path | None = None,
) -> Path:
    """Where ``chroot_dir`` ends up for a ``-m target`` request.

    Raises:
        ValidationError: Bad new name, or the resolved target exists
            (it is unclear whether a directory or exact path was meant).
    """
    if "/" not in target:
        path = chroots_root / require_valid_name(target)
    elif target.endswith("/"):
        path = Path(target).expanduser() / chroot_dir.name
    else:
        path = Path(target).expanduser()
    if not path.is_absolute():
        path = (cwd or Path.cwd()) / path

    if path.exists() or path.is_symlink():
        raise ValidationError(f"{path} already exists.")
    return path


def copy_tree_one_filesystem(src: Path, dst: Path) -> None:
    """Copy ``src`` to a new ``dst`` like ``cp -a --one-file-system``.

    Preserves symlinks, hard links, special files, modes, timestamps and,
    when running as root, ownership.  Mount points inside ``src`` are
    created empty.
    """
    as_root = hasattr(os, "geteuid") and os.geteuid() == 0
    linked: dict[tuple[int, int], Path] = {}
    directories: list[tuple[Path, Path]] = []

    for path in walk_one_filesystem(src):
        out = dst / path.relative_to(src)
        st = os.lstat(path)
        mode = st.st_mode

        if stat.S_ISDIR(mode):
            out.mkdir()
            directories.append((path, out))
            if as_root:
                os.lchown(out, st.st_uid, st.st_gid)
            continue

        if st.st_nlink > 1 and (st.st_dev, st.st_ino) in linked:
            os.link(linked[(st.st_dev, st.st_ino)], out)
            continue

        if stat.S_ISLNK(mode):
            os.symlink(os.readlink(path), out)
        elif stat.S_ISREG(mode):
            shutil.copyfile(path, out)
        elif stat.S_ISSOCK(mode):
            continue
        else:
            os.mknod(out, mode, st.st_rdev)

        if as_root:
            os.lchown(out, st.st_uid, st.st_gid)
        shutil.copystat(path, out, follow_symlinks=False)
        if st.st_nlink > 1:
            linked[(st.st_dev, st.st_ino)] = out

    # Directory times last, after their contents stopped changing
    for path, out in reversed(directories):
        shutil.copystat(path, out, follow_symlinks=False)


def move_chroot(
    chroot_dir: Path,
    target: Path,
    *,
    mounter: Mounter,
    confirmer: Confirmer,
    copy: CopyFn = copy_tree_one_filesystem,
) -> MoveResult:
    """Move ``chroot_dir`` to the resolved ``target``.

    Raises:
        PreconditionError: The chroot does not exist.
        ValidationError: The target exists.
        UserAbort: A cross-filesystem move was declined.
        RuntimeFailure: Rename or copy failed; the source is untouched.
    """
    name = require_valid_name(chroot_dir.name)
    if not chroot_dir.is_dir():
        raise PreconditionError(f"{chroot_dir} not found.")
    if target.exists() or target.is_symlink():
        raise ValidationError(f"{target} already exists.")

    mounter.unmount(name)

    if same_filesystem(chroot_dir, target.parent):
        logger.warning("Moving %s to %s", chroot_dir, target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            os.rename(chroot_dir, target)
        except OSError as e:
            raise RuntimeFailure(f"Unable to move {chroot_dir} to {target}: {e}") from e
        return MoveResult(chroot_dir, target, "rename")

    confirmer.require(
        f"Moving {chroot_dir} to {target} copies it to another filesystem. "
        f"This is slow and not atomic; if interrupted, {chroot_dir} stays "
        f"intact and the partial {target} can be deleted. Continue?"
    )

    logger.warning("Copying %s to %s", chroot_dir, target)
    with compensating("Deleting partial copy.", shutil.rmtree, target, ignore_errors=True):
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            copy(chroot_dir, target)
        except (OSError, shutil.Error) as e:
            raise RuntimeFailure(f"Unable to copy {chroot_dir} to {target}: {e}") from e

    logger.warning("Deleting %s", chroot_dir)
    try:
        remove_tree_one_filesystem(chroot_dir)
    except OSError as e:
        raise RuntimeFailure(f"Copied to {target} but unable to delete {chroot_dir}: {e}") from e

    logger.warning("Finished moving %s to %s", chroot_dir, target)
    return MoveResult(chroot_dir, target, "copy")
