"""
OperationRequest — what one ``edit-chroot`` invocation asked for.

The request is a plain record of the flags.  Whether the combination
makes sense is decided by ``crouton_edit.core.use_cases.edit.validate_request``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class OperationRequest(BaseModel):
    """The requested subset of {backup, delete, encrypt, keyfile, move, restore}."""

    names: list[str] = Field(default_factory=list)

    backup: bool = False
    delete: bool = False
    encrypt: bool = False
    keyfile: str | None = None      # new key location, "-" = back into the chroot
    move: str | None = None         # new name, directory ("…/") or full path
    restore: int = 0                # 1 = restore, 2+ = restore over an existing chroot
    archive: str | None = None      # backup destination / restore source (file or dir)

    list_details: bool = False
    list_all: bool = False

    @property
    def edits(self) -> list[str]:
        """Names of the requested editing stages, in execution order."""
        stages = []
        if self.delete:
            stages.append("delete")
        if self.backup:
            stages.append("backup")
        if self.restore:
            stages.append("restore")
        if self.keyfile is not None:
            stages.append("keyfile")
        if self.encrypt:
            stages.append("encrypt")
        if self.move is not None:
            stages.append("move")
        return stages
