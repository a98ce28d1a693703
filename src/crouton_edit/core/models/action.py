"""
Action and Receipt — what the editor asks of the mount collaborator.

Mounting, unmounting and encryption setup happen outside this package
(``mount-chroot`` / ``unmount-chroot``).  The editor describes each
call as an Action; the adapter that carries it out answers with a
Receipt.  Adapters report failure in the Receipt, they do not raise.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

MountOperation = Literal["unmount", "mount"]
ReceiptStatus = Literal["ok", "failed"]


class Action(BaseModel):
    """One mount collaborator call for one chroot."""

    operation: MountOperation
    chroot: str                     # chroot name
    chroots_root: str               # directory holding the chroots
    adapter: str = "mount"
    keyfile: str | None = None      # external keyfile, None = inside the chroot
    encrypt: bool = False           # encrypt, or change the passphrase if encrypted

    @property
    def id(self) -> str:
        """``unmount:dev``, ``mount:dev``."""
        return f"{self.operation}:{self.chroot}"


class Receipt(BaseModel):
    """How an Action went.

    ``return_code`` is the collaborator's exit status, so a failure can
    be passed on as the process exit status unchanged.
    """

    action_id: str
    adapter: str
    status: ReceiptStatus = "ok"
    return_code: int = 0
    output: str = ""
    error: str | None = None
    duration_ms: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, action: Action, adapter: str | None = None, **kwargs: Any) -> Receipt:
        return cls(action_id=action.id, adapter=adapter or action.adapter, **kwargs)

    @classmethod
    def failure(
        cls,
        action: Action,
        error: str,
        return_code: int = 1,
        adapter: str | None = None,
        **kwargs: Any,
    ) -> Receipt:
        """A failed call; a zero ``return_code`` is bumped to 1."""
        return cls(
            action_id=action.id,
            adapter=adapter or action.adapter,
            status="failed",
            error=error,
            return_code=return_code or 1,
            **kwargs,
        )
