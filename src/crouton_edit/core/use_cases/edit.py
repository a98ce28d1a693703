"""
Edit use case — apply the requested operations to each named chroot.

Every chroot goes through the same fixed sequence, skipping stages
that were not requested:

    delete  (terminal; nothing else may be combined with it)
    backup
    restore
    keyfile update
    encrypt
    move

The whole request is validated before anything is touched.  After
that a failure, or a declined confirmation, ends the current chroot's
remaining stages; the next chroot is still processed and the run
reports the first failure's exit status.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from crouton_edit.adapters.registry import AdapterRegistry
from crouton_edit.core.errors import (
    ChrootEditError,
    PreconditionError,
    UserAbort,
    ValidationError,
)
from crouton_edit.core.models.config import EditConfig
from crouton_edit.core.models.request import OperationRequest
from crouton_edit.core.reliability.cleanup import signals_raise
from crouton_edit.core.services import keyfile
from crouton_edit.core.services.backup_archive import backup_chroot
from crouton_edit.core.services.backup_common import ProgressFn
from crouton_edit.core.services.backup_restore import restore_chroot
from crouton_edit.core.services.chroot_delete import delete_chroot
from crouton_edit.core.services.chroot_move import move_chroot, resolve_move_target
from crouton_edit.core.services.confirm import Confirmer
from crouton_edit.core.services.encryption import Mounter, encrypt_chroot
from crouton_edit.core.services.names import require_valid_name

logger = logging.getLogger(__name__)


@dataclass
class ChrootOutcome:
    """What happened to one chroot."""

    name: str
    completed: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    exit_code: int = 0
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict:
        result: dict = {"name": self.name, "completed": self.completed}
        if self.details:
            result["details"] = self.details
        if self.error:
            result["error"] = self.error
            result["exit_code"] = self.exit_code
            result["aborted"] = self.aborted
        return result


@dataclass
class EditReport:
    """Outcome of a whole edit run."""

    outcomes: list[ChrootOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def exit_code(self) -> int:
        for outcome in self.outcomes:
            if not outcome.ok:
                return outcome.exit_code
        return 0

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "exit_code": self.exit_code,
            "chroots": [o.to_dict() for o in self.outcomes],
        }


# ═══════════════════════════════════════════════════════════════════
#  Validation
# ═══════════════════════════════════════════════════════════════════


def validate_request(request: OperationRequest, cwd: Path | None = None) -> None:
    """Reject impossible or ambiguous requests before anything changes.

    Raises:
        ValidationError: With the reason.
    """
    edits = request.edits
    listing = request.list_details or request.list_all

    if listing and edits:
        raise ValidationError("Listing cannot be combined with other operations.")
    if not listing and not edits:
        raise ValidationError("Nothing to do; specify at least one operation.")
    if request.delete and len(edits) > 1:
        raise ValidationError("Delete cannot be combined with other operations.")
    if request.backup and request.restore:
        raise ValidationError("Backup and restore cannot be combined.")

    for name in request.names:
        require_valid_name(name)
    if len(set(request.names)) != len(request.names):
        raise ValidationError("A chroot was specified more than once.")

    if request.list_all:
        return

    multiple = len(request.names) > 1

    if not request.names:
        archive = _absolute(request.archive, cwd) if request.archive else None
        if request.list_details:
            raise ValidationError("Specify the chroots to list, or list all of them.")
        if not (request.restore and archive is not None and archive.is_file()):
            raise ValidationError(
                "No chroot specified; a name can only be omitted when restoring from an archive file."
            )

    if multiple and request.move is not None and not request.move.endswith("/"):
        raise ValidationError(
            "Multiple chroots can only be moved into a directory (end the target with '/')."
        )

    if multiple and request.keyfile not in (None, keyfile.INLINE_TARGET):
        target = _absolute(request.keyfile, cwd)
        if not (request.keyfile.endswith("/") or target.is_dir()):
            raise ValidationError(
                "Multiple chroots need a keyfile directory (end the target with '/'), or '-'."
            )

    if multiple and request.archive and (request.backup or request.restore):
        archive = _absolute(request.archive, cwd)
        if not (request.archive.endswith("/") or archive.is_dir()):
            raise ValidationError("Multiple chroots need an archive directory, not a file.")


def _absolute(raw: str, cwd: Path | None) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = (cwd or Path.cwd()) / path
    return path


def _required(chroot_dir: Path | None) -> Path:
    if chroot_dir is None:
        raise ValidationError("Specify the name of the chroot.")
    return chroot_dir


# ═══════════════════════════════════════════════════════════════════
#  Orchestration
# ═══════════════════════════════════════════════════════════════════


class ChrootEditor:
    """Runs an OperationRequest against the chroots under one root.

    Args:
        config: Edit settings (chroots root, confirmation settings, delays).
        registry: Mount collaborator dispatch.
        confirmer: Confirmation gate; built from ``config`` if omitted.
        sleep: Used for the restore grace delay.
        progress: Archive progress callback.
        now: Clock used to name backups.
        cwd: Base for relative paths in the request.
    """

    def __init__(
        self,
        config: EditConfig,
        registry: AdapterRegistry,
        confirmer: Confirmer | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        progress: ProgressFn | None = None,
        now: Callable[[], datetime] = datetime.now,
        cwd: Path | None = None,
    ):
        self.config = config
        self.mounter = Mounter(registry, config.chroots_root)
        self.confirmer = confirmer or Confirmer(
            yes_to_all=config.yes_to_all, response=config.response
        )
        self._sleep = sleep
        self._progress = progress
        self._now = now
        self._cwd = cwd

    def run(self, request: OperationRequest) -> EditReport:
        """Validate, then edit each chroot in turn.

        Raises:
            ValidationError: The request is invalid; nothing was changed.
        """
        validate_request(request, self._cwd)
        self._check_move_targets(request)

        report = EditReport()
        names: list[str | None] = list(request.names) or [None]
        with signals_raise():
            for name in names:
                report.outcomes.append(self._edit_one(name, request))
        return report

    def _check_move_targets(self, request: OperationRequest) -> None:
        if request.move is None or request.restore:
            return
        for name in request.names:
            chroot_dir = self.config.chroot_path(name)
            if chroot_dir.is_dir():
                resolve_move_target(chroot_dir, request.move, self.config.chroots_root, self._cwd)

    def _edit_one(self, name: str | None, request: OperationRequest) -> ChrootOutcome:
        outcome = ChrootOutcome(name=name or "")
        try:
            self._run_stages(name, request, outcome)
        except UserAbort as e:
            logger.warning("%s: %s", outcome.name or "restore", e)
            outcome.aborted = True
            outcome.error = str(e)
            outcome.exit_code = e.exit_code
        except ChrootEditError as e:
            logger.error("%s", e)
            outcome.error = str(e)
            outcome.exit_code = e.exit_code
        return outcome

    def _run_stages(
        self,
        name: str | None,
        request: OperationRequest,
        outcome: ChrootOutcome,
    ) -> None:
        config = self.config
        chroot_dir = config.chroot_path(name) if name else None

        if request.delete:
            delete_chroot(_required(chroot_dir), mounter=self.mounter, confirmer=self.confirmer)
            outcome.completed.append("delete")
            return

        if chroot_dir is not None and not request.restore and not chroot_dir.is_dir():
            raise PreconditionError(f"{chroot_dir} not found.")

        # A configured archive_dir is a directory even before it exists
        archive = request.archive or (f"{config.archive_dir}/" if config.archive_dir else None)

        if request.backup:
            backup = backup_chroot(
                _required(chroot_dir),
                archive,
                mounter=self.mounter,
                now=self._now(),
                progress=self._progress,
                checkpoint=config.checkpoint_interval,
                cwd=self._cwd,
            )
            outcome.completed.append("backup")
            outcome.details["backup"] = backup.to_dict()

        if request.restore:
            restored = restore_chroot(
                config.chroots_root,
                name,
                archive,
                restore_count=request.restore,
                mounter=self.mounter,
                grace_seconds=config.restore_grace_seconds,
                sleep=self._sleep,
                progress=self._progress,
                checkpoint=config.checkpoint_interval,
                cwd=self._cwd,
            )
            name = restored.chroot
            chroot_dir = restored.destination
            outcome.name = name
            outcome.completed.append("restore")
            outcome.details["restore"] = restored.to_dict()

        chroot_dir = _required(chroot_dir)
        name = chroot_dir.name

        new_key: Path | None = None
        if request.keyfile is not None:
            target = keyfile.resolve_target(chroot_dir, request.keyfile, self._cwd)
            rotation = keyfile.rotate(chroot_dir, target, encrypting=request.encrypt)
            if rotation.new != keyfile.canonical(keyfile.pointer_path(chroot_dir)):
                new_key = rotation.new
            outcome.completed.append("keyfile")
            outcome.details["keyfile"] = {"status": rotation.status, "location": str(rotation.new)}

        if request.encrypt:
            was_encrypted = keyfile.is_encrypted(chroot_dir)
            logger.warning(
                "%s %s",
                "Changing the passphrase of" if was_encrypted else "Encrypting",
                chroot_dir,
            )
            encrypt_chroot(self.mounter, name, keyfile=new_key)
            outcome.completed.append("encrypt")

        if request.move is not None:
            target = resolve_move_target(chroot_dir, request.move, config.chroots_root, self._cwd)
            moved = move_chroot(
                chroot_dir, target, mounter=self.mounter, confirmer=self.confirmer
            )
            outcome.completed.append("move")
            outcome.details["move"] = moved.to_dict()
