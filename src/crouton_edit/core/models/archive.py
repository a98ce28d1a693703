"""
Backup archive identity.

An archive is recognized one of two ways, and the result records which:

    LabeledArchive — the archive starts with a ``crouton:backup.…`` volume
                     label naming the chroot and the backup time.
    LegacyArchive  — no label; the chroot name is the top-level directory
                     of the first entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

LABEL_PREFIX = "crouton:backup"


@dataclass(frozen=True)
class LabeledArchive:
    path: Path
    name: str
    label: str
    timestamp: str = ""     # YYYYMMDDHHMM, digits only; "" if unparseable

    @property
    def kind(self) -> str:
        return "labeled"


@dataclass(frozen=True)
class LegacyArchive:
    path: Path
    name: str

    @property
    def kind(self) -> str:
        return "legacy"


ArchiveIdentity = Union[LabeledArchive, LegacyArchive]


def make_label(name: str, stamp: str) -> str:
    """Build the volume label for a backup of ``name`` taken at ``stamp``.

    ``stamp`` is ``YYYYMMDDHHMM``.
    """
    return f"{LABEL_PREFIX}.{stamp}-{name}"


@dataclass
class BackupResult:
    """Outcome of a finished backup."""

    chroot: str
    destination: Path
    label: str
    compression: str        # "", "gz", "bz2" or "xz"
    members: int = 0
    size_bytes: int = 0

    def to_dict(self) -> dict:
        return {
            "chroot": self.chroot,
            "destination": str(self.destination),
            "label": self.label,
            "compression": self.compression or "none",
            "members": self.members,
            "size_bytes": self.size_bytes,
        }


@dataclass
class RestoreResult:
    """Outcome of a finished restore."""

    chroot: str
    destination: Path
    source: Path
    identity: ArchiveIdentity
    members: int = 0
    replaced_existing: bool = False

    def to_dict(self) -> dict:
        return {
            "chroot": self.chroot,
            "destination": str(self.destination),
            "source": str(self.source),
            "format": self.identity.kind,
            "members": self.members,
            "replaced_existing": self.replaced_existing,
        }
