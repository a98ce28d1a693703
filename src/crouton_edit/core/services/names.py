"""Chroot name validation."""

from __future__ import annotations

from crouton_edit.core.errors import ValidationError

_RESERVED = frozenset({".", ".."})


def is_valid_name(name: str) -> bool:
    """Whether ``name`` can name a directory directly under the chroots root.

    Rejects empty names, path separators, ``.``/``..``, non-printable
    characters, and a leading ``-`` (it would be read as an option).
    """
    if not name or "/" in name:
        return False
    if name in _RESERVED:
        return False
    if name.startswith("-"):
        return False
    return name.isprintable()


def require_valid_name(name: str) -> str:
    """Return ``name`` unchanged, or raise ValidationError."""
    if not is_valid_name(name):
        raise ValidationError(f"Invalid chroot name '{name}'.")
    return name
