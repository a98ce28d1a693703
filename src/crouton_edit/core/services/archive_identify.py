"""
Archive identification — is this file a chroot backup, and of what?

Two formats are recognized, the labeled one taking precedence:

    LabeledArchive  first member is a volume label
                    ``crouton:backup.202001011200-dev`` (or with the date
                    and time separated, ``crouton:backup.20200101-1200-dev``)
    LegacyArchive   no label; the name is the top-level directory of the
                    first entry

A label that does not carry the ``crouton:backup`` marker means the
file is some other labeled tarball, and it is rejected rather than
sniffed.
"""

from __future__ import annotations

import logging
import re
import tarfile
from pathlib import Path

from crouton_edit.core.errors import InvalidArchiveError
from crouton_edit.core.models.archive import (
    LABEL_PREFIX,
    ArchiveIdentity,
    LabeledArchive,
    LegacyArchive,
)
from crouton_edit.core.services.backup_common import is_label, top_level_name

logger = logging.getLogger(__name__)

_LABEL_RE = re.compile(
    re.escape(LABEL_PREFIX) + r"\.(?P<date>\d{8})-?(?P<time>\d{4})-(?P<name>.+)$"
)


def parse_label(label: str) -> tuple[str, str] | None:
    """Return (name, timestamp) for a backup label, or None if it isn't one.

    The timestamp is ``YYYYMMDDHHMM``; it is "" when the label carries
    the marker but no recognizable date, in which case the name is
    everything after the first ``-``.
    """
    if not label.startswith(LABEL_PREFIX):
        return None
    m = _LABEL_RE.match(label)
    if m:
        return m.group("name"), m.group("date") + m.group("time")
    _, sep, name = label.partition("-")
    if not sep or not name:
        return None
    return name, ""


def identify(path: Path) -> ArchiveIdentity:
    """Identify the chroot backed up in ``path``.

    Raises:
        InvalidArchiveError: unreadable, foreign label, or no name found.
    """
    try:
        with tarfile.open(path, "r:*") as tar:
            first = tar.next()
            if first is None:
                raise InvalidArchiveError(f"{path} is an empty archive.")
            if is_label(first):
                return _from_label(path, first.name)
            name = top_level_name(first.name)
    except (tarfile.TarError, OSError, EOFError) as e:
        raise InvalidArchiveError(f"{path} doesn't appear to be a valid archive: {e}") from e

    if not name:
        raise InvalidArchiveError(f"Unable to determine the chroot name in {path}.")
    logger.debug("%s: legacy archive of '%s'", path, name)
    return LegacyArchive(path=path, name=name)


def _from_label(path: Path, label: str) -> LabeledArchive:
    parsed = parse_label(label)
    if parsed is None:
        raise InvalidArchiveError(
            f"{path} doesn't appear to be a valid backup (label '{label}')."
        )
    name, timestamp = parsed
    logger.debug("%s: labeled archive of '%s' from %s", path, name, timestamp or "?")
    return LabeledArchive(path=path, name=name, label=label, timestamp=timestamp)


def is_backup_archive(path: Path) -> bool:
    """Whether ``path`` is a file ``identify`` accepts."""
    if not path.is_file():
        return False
    try:
        identify(path)
    except InvalidArchiveError:
        return False
    return True
