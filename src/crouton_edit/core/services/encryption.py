"""
Encryption coordination — delegate to the mount collaborator, always unmount.

The cryptography itself is done by ``mount-chroot``.  This module only
guarantees that a chroot is never left mounted when the encryption
step fails part way: an unmount is scheduled before mounting and
cancelled, then done explicitly, once the mount has succeeded.
"""

from __future__ import annotations

import logging
from pathlib import Path

from crouton_edit.adapters.registry import AdapterRegistry
from crouton_edit.core.errors import RuntimeFailure
from crouton_edit.core.models.action import Action, Receipt
from crouton_edit.core.reliability.cleanup import compensating

logger = logging.getLogger(__name__)


class Mounter:
    """Mount collaborator calls for chroots under one root.

    Failed receipts are raised as RuntimeFailure carrying the tool's
    exit status.
    """

    def __init__(self, registry: AdapterRegistry, chroots_root: Path):
        self._registry = registry
        self._root = str(chroots_root)

    def _run(self, action: Action) -> Receipt:
        receipt = self._registry.execute_action(action)
        if receipt.failed:
            raise RuntimeFailure(
                f"{action.operation} of {action.chroot} failed: {receipt.error}",
                exit_code=receipt.return_code,
            )
        return receipt

    def unmount(self, name: str) -> Receipt:
        """Make sure nothing is mounted in chroot ``name``."""
        return self._run(Action(operation="unmount", chroot=name, chroots_root=self._root))

    def mount(self, name: str, *, keyfile: Path | None = None, encrypt: bool = False) -> Receipt:
        """Mount chroot ``name``, encrypting or changing its passphrase if asked."""
        return self._run(
            Action(
                operation="mount",
                chroot=name,
                chroots_root=self._root,
                keyfile=str(keyfile) if keyfile else None,
                encrypt=encrypt,
            )
        )

    def unmount_quietly(self, name: str) -> None:
        """Unmount during cleanup; a failure is logged, not raised."""
        receipt = self._registry.execute_action(
            Action(operation="unmount", chroot=name, chroots_root=self._root)
        )
        if receipt.failed:
            logger.error("Unable to unmount %s: %s", name, receipt.error)


def encrypt_chroot(mounter: Mounter, name: str, keyfile: Path | None = None) -> None:
    """Encrypt chroot ``name``, or change its passphrase if already encrypted.

    Args:
        mounter: Collaborator access.
        name: Chroot name.
        keyfile: External keyfile location, None to keep the key in the chroot.
    """
    mounter.unmount(name)
    with compensating("", mounter.unmount_quietly, name):
        mounter.mount(name, keyfile=keyfile, encrypt=True)
    mounter.unmount(name)
    logger.info("Encryption step finished for %s", name)
