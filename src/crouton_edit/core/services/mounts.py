"""
Mount point resolution — which filesystem does a path live on?

Used to decide whether a chroot can be moved with a plain rename or
has to be copied.  The path does not need to exist: the nearest
existing ancestor decides.
"""

from __future__ import annotations

import os
from pathlib import Path


def existing_ancestor(path: str | Path) -> Path:
    """Canonicalize ``path`` and walk up until something exists."""
    current = Path(os.path.realpath(path))
    while not current.exists():
        parent = current.parent
        if parent == current:
            break
        current = parent
    return current


def mount_id(path: str | Path) -> int:
    """Device id of the filesystem ``path`` (or its nearest ancestor) is on."""
    return os.stat(existing_ancestor(path)).st_dev


def same_filesystem(a: str | Path, b: str | Path) -> bool:
    return mount_id(a) == mount_id(b)
