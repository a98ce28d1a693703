"""
EditConfig — settings shared by every stage of an edit run.

Loaded from an optional YAML file (see ``crouton_edit.core.config.loader``)
and then overridden by CLI flags and environment variables.  The
confirmation settings live here instead of in module globals so that
the orchestrator can be driven without a terminal.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

DEFAULT_CHROOTS = "/mnt/stateful_partition/crouton/chroots"
DEFAULT_BIN_DIR = "/usr/local/bin"


class EditConfig(BaseModel):
    """Validated edit settings."""

    chroots_root: Path = Path(DEFAULT_CHROOTS)
    bin_dir: Path = Path(DEFAULT_BIN_DIR)   # where mount-chroot / unmount-chroot live
    archive_dir: Path | None = None         # default backup destination / restore search dir

    yes_to_all: bool = False
    response: str | None = None             # answer consumed as if typed at the prompt

    restore_grace_seconds: float = Field(default=3.0, ge=0)
    checkpoint_interval: int = Field(default=100, ge=1)

    @field_validator("chroots_root", "bin_dir", "archive_dir", mode="before")
    @classmethod
    def _expand(cls, v: object) -> object:
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    def chroot_path(self, name: str) -> Path:
        """Directory of the chroot called ``name``."""
        return self.chroots_root / name
