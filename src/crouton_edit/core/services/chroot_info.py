"""Chroot listing and details."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from crouton_edit.core.errors import PreconditionError
from crouton_edit.core.services import keyfile
from crouton_edit.core.services.names import is_valid_name

# Written by the chroot installer; one target per line or comma-separated
TARGETS_FILE = Path("etc/crouton/targets")


@dataclass
class ChrootInfo:
    name: str
    path: Path
    encrypted: bool
    keyfile: Path | None = None
    targets: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": str(self.path),
            "encrypted": self.encrypted,
            "keyfile": str(self.keyfile) if self.keyfile else None,
            "targets": self.targets,
        }


def _read_targets(chroot_dir: Path) -> list[str]:
    path = chroot_dir / TARGETS_FILE
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return []
    return [t for t in raw.replace(",", "\n").split() if t]


def describe_chroot(chroot_dir: Path) -> ChrootInfo:
    """Details of one chroot.

    Encrypted chroots report where their key currently lives; the
    pointer file itself when the key is stored inline.
    """
    if not chroot_dir.is_dir():
        raise PreconditionError(f"{chroot_dir} not found.")
    encrypted = keyfile.is_encrypted(chroot_dir)
    return ChrootInfo(
        name=chroot_dir.name,
        path=chroot_dir,
        encrypted=encrypted,
        keyfile=keyfile.locate(chroot_dir) if encrypted else None,
        targets=_read_targets(chroot_dir),
    )


def list_chroots(chroots_root: Path) -> list[str]:
    """Names of all chroots under ``chroots_root``, sorted."""
    if not chroots_root.is_dir():
        return []
    return sorted(
        entry.name
        for entry in chroots_root.iterdir()
        if entry.is_dir() and not entry.is_symlink() and is_valid_name(entry.name)
    )
