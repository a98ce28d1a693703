"""
Backup archive helpers shared by backup, restore and identification.

Archives are GNU-format tarballs:

    member 0    volume label  ``crouton:backup.YYYYMMDDHHMM-NAME``  (type 'V')
    member 1..  NAME/, NAME/etc, NAME/etc/passwd, ...

Traversal never leaves the filesystem the chroot directory is on, the
same way ``tar --one-file-system`` behaves: a mount point inside the
chroot is stored as an empty directory.
"""

from __future__ import annotations

import logging
import os
import stat
import tarfile
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Iterator

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  Constants
# ═══════════════════════════════════════════════════════════════════

# GNU tar volume header; tarfile reads it but has no constant for it
VOLTYPE = b"V"

# Suffix → tarfile compression, longest suffixes first
COMPRESSION_SUFFIXES: tuple[tuple[str, str], ...] = (
    (".tar.gz", "gz"),
    (".tar.bz2", "bz2"),
    (".tar.xz", "xz"),
    (".tgz", "gz"),
    (".tbz2", "bz2"),
    (".tbz", "bz2"),
    (".txz", "xz"),
    (".tar", ""),
)

ProgressFn = Callable[[int], None]


# ═══════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════


def compression_for(path: Path) -> str:
    """Compression implied by the file name; uncompressed if unknown."""
    lower = path.name.lower()
    for suffix, comp in COMPRESSION_SUFFIXES:
        if lower.endswith(suffix):
            return comp
    return ""


def write_mode(compression: str) -> str:
    return f"w:{compression}" if compression else "w"


def is_label(member: tarfile.TarInfo) -> bool:
    return member.type == VOLTYPE


def label_member(label: str, mtime: float) -> tarfile.TarInfo:
    """The volume-label header that opens every backup."""
    info = tarfile.TarInfo(name=label)
    info.type = VOLTYPE
    info.size = 0
    info.mtime = int(mtime)
    return info


def walk_one_filesystem(top: Path) -> Iterator[Path]:
    """Yield ``top`` and everything below it on the same filesystem.

    Directories are yielded before their contents.  Symlinks are not
    followed.  Directories on another device are yielded but not entered.
    """

    def _raise(err: OSError) -> None:
        raise err

    device = os.lstat(top).st_dev
    yield top
    for dirpath, dirnames, filenames in os.walk(top, onerror=_raise):
        entered = []
        for d in sorted(dirnames):
            path = os.path.join(dirpath, d)
            yield Path(path)
            st = os.lstat(path)
            if stat.S_ISDIR(st.st_mode) and st.st_dev == device:
                entered.append(d)
            elif stat.S_ISDIR(st.st_mode):
                logger.info("Not crossing into mount point %s", path)
        dirnames[:] = entered
        for f in sorted(filenames):
            yield Path(dirpath, f)


def strip_first_component(name: str) -> str | None:
    """``dev/etc/passwd`` → ``etc/passwd``; ``dev`` → None.

    Returns None as well for names that would land outside the
    destination (absolute, or containing ``..``).
    """
    parts = PurePosixPath(name.lstrip("/")).parts
    if parts and parts[0] == ".":
        parts = parts[1:]
    if len(parts) < 2:
        return None
    rest = parts[1:]
    if ".." in rest:
        return None
    return "/".join(rest)


def top_level_name(name: str) -> str:
    """First path component of an archive entry, ignoring a leading ``./``."""
    parts = [p for p in PurePosixPath(name.lstrip("/")).parts if p != "."]
    return parts[0] if parts else ""


def stripped_members(
    members: Iterable[tarfile.TarInfo],
    progress: ProgressFn | None = None,
    checkpoint: int = 100,
) -> Iterator[tarfile.TarInfo]:
    """Rename archive members for extraction one level down.

    The label and the top-level directory entry are dropped; members
    that would escape the destination are skipped with a warning.
    """
    count = 0
    for member in members:
        if is_label(member):
            continue
        stripped = strip_first_component(member.name)
        if stripped is None:
            if top_level_name(member.name) and ".." not in member.name.split("/"):
                continue
            logger.warning("Skipping unsafe archive entry %s", member.name)
            continue
        if member.islnk():
            link = strip_first_component(member.linkname)
            if link is None:
                logger.warning("Skipping hard link with unsafe target %s", member.name)
                continue
            member.linkname = link
        member.name = stripped
        count += 1
        if progress and count % checkpoint == 0:
            progress(count)
        yield member
