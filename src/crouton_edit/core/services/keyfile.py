"""
Keyfile management — where a chroot's encryption key lives, and moving it.

An encrypted chroot has a pointer file ``.ecryptfs`` at its root:

    line 1   absolute path of an external keyfile, or empty
    line 2+  the wrapped key, when line 1 is empty (key stored inline)

Exactly one location holds the authoritative key.  Moving it is
write-new, then remove-old, then repoint, so an interruption can leave
two valid copies but never none.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from crouton_edit.core.errors import PreconditionError, RuntimeFailure

logger = logging.getLogger(__name__)

POINTER_NAME = ".ecryptfs"

# Keyfile target meaning "store the key inside the chroot"
INLINE_TARGET = "-"


def pointer_path(chroot_dir: Path) -> Path:
    return chroot_dir / POINTER_NAME


def is_encrypted(chroot_dir: Path) -> bool:
    return pointer_path(chroot_dir).is_file()


def _header(path: Path) -> str:
    with path.open("r", encoding="utf-8", errors="surrogateescape") as f:
        return f.readline().rstrip("\n")


def locate(chroot_dir: Path) -> Path:
    """Current location of the chroot's key.

    The pointer's first line when it names a file, otherwise the pointer
    file itself (also when the chroot is not encrypted yet).
    """
    pointer = pointer_path(chroot_dir)
    if pointer.is_file():
        header = _header(pointer)
        if header:
            return Path(header)
    return pointer


def external_keyfile(chroot_dir: Path) -> Path | None:
    """The external keyfile of an encrypted chroot, None if stored inline."""
    location = locate(chroot_dir)
    if location == pointer_path(chroot_dir):
        return None
    return location


def resolve_target(chroot_dir: Path, target: str, cwd: Path | None = None) -> Path:
    """Turn a ``-k`` argument into a keyfile path for ``chroot_dir``.

    ``-`` is the pointer file (key inside the chroot).  A target that ends
    in ``/`` or names an existing directory gets the chroot name appended.
    """
    if target == INLINE_TARGET:
        return pointer_path(chroot_dir)
    path = Path(target).expanduser()
    if not path.is_absolute():
        path = (cwd or Path.cwd()) / path
    if target.endswith("/") or path.is_dir():
        path = path / chroot_dir.name
    return path


def canonical(path: Path) -> Path:
    """Absolute path with symlinks resolved; need not exist."""
    return Path(os.path.realpath(path))


@dataclass
class KeyRotation:
    """What ``rotate`` did."""

    status: Literal["moved", "already_there", "deferred"]
    old: Path
    new: Path
    pointer_updated: bool = False


def rotate(chroot_dir: Path, new_location: Path, *, encrypting: bool = False) -> KeyRotation:
    """Move the chroot's key to ``new_location``.

    Args:
        chroot_dir: The chroot directory.
        new_location: Where the key should live (``resolve_target`` output).
        encrypting: An encryption stage follows; a missing key is then
            expected (the chroot is about to be encrypted for the first time).

    Raises:
        PreconditionError: No existing key, or the destination is taken.
        RuntimeFailure: Reading or writing a keyfile failed.
    """
    pointer = canonical(pointer_path(chroot_dir))
    old = canonical(locate(chroot_dir))
    new = canonical(new_location)

    if old == new:
        if not encrypting:
            logger.warning("Keyfile is already located at %s", new)
        return KeyRotation("already_there", old, new)

    if not old.is_file():
        if not encrypting:
            raise PreconditionError(f"Old keyfile {old} not found; {chroot_dir} has no existing key.")
        return KeyRotation("deferred", old, new)

    if new.exists() and new != pointer:
        raise PreconditionError(f"{new} already exists.")

    logger.warning("Moving keyfile from %s to %s", old, new)

    # Line 1 is the pointer header, not key material: the copy starts blank
    try:
        _, _, body = old.read_bytes().partition(b"\n")
        new.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write(new, b"\n" + body)
    except OSError as e:
        raise RuntimeFailure(f"Unable to write keyfile {new}: {e}") from e

    try:
        if old != pointer:
            old.unlink()

        updated = False
        if new != pointer:
            # When the key was inline this replaces it; until here both copies are valid
            _atomic_write(pointer, f"{new}\n".encode())
            updated = True
    except OSError as e:
        raise RuntimeFailure(f"Unable to finish moving keyfile to {new}: {e}") from e

    return KeyRotation("moved", old, new, pointer_updated=updated)


def _atomic_write(path: Path, content: bytes) -> None:
    """Write via a private temp file in the same directory, then rename."""
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".key_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        tmp.replace(path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
