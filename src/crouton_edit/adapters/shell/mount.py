"""
Shell mount adapter — drives crouton's mount-chroot / unmount-chroot.

    unmount:  sh -e BIN/unmount-chroot -y -c CHROOTS -- NAME
    mount:    sh -e BIN/mount-chroot [-k KEYFILE] [-e] -c CHROOTS -- NAME

The scripts talk to the operator (passphrase prompts), so they inherit
the terminal instead of having their output captured.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from pathlib import Path

from crouton_edit.adapters.base import Adapter, ExecutionContext
from crouton_edit.core.models.action import Receipt

logger = logging.getLogger(__name__)

MOUNT_SCRIPT = "mount-chroot"
UNMOUNT_SCRIPT = "unmount-chroot"


class ShellMountAdapter(Adapter):
    """Run the mount scripts found in ``bin_dir``."""

    def __init__(self, bin_dir: Path):
        self._bin_dir = Path(bin_dir)

    @property
    def name(self) -> str:
        return "mount"

    def script(self, operation: str) -> Path:
        return self._bin_dir / (MOUNT_SCRIPT if operation == "mount" else UNMOUNT_SCRIPT)

    def is_available(self) -> bool:
        return (
            shutil.which("sh") is not None
            and self.script("mount").is_file()
            and self.script("unmount").is_file()
        )

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        script = self.script(context.action.operation)
        if not script.is_file():
            return False, f"{script} not found"
        return True, ""

    def command(self, context: ExecutionContext) -> list[str]:
        action = context.action
        cmd = ["sh", "-e", str(self.script(action.operation))]
        if action.operation == "unmount":
            cmd.append("-y")
        else:
            if action.keyfile:
                cmd += ["-k", action.keyfile]
            if action.encrypt:
                cmd.append("-e")
        cmd += ["-c", action.chroots_root, "--", action.chroot]
        return cmd

    def execute(self, context: ExecutionContext) -> Receipt:
        cmd = self.command(context)
        logger.debug("Executing: %s", " ".join(cmd))
        start = time.monotonic()

        try:
            result = subprocess.run(cmd, check=False)
        except OSError as e:
            return Receipt.failure(
                context.action,
                f"Cannot run {cmd[2]}: {e}",
                adapter=self.name,
                metadata={"command": cmd},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.returncode == 0:
            return Receipt.success(
                context.action, adapter=self.name, duration_ms=elapsed_ms, metadata={"command": cmd}
            )
        return Receipt.failure(
            context.action,
            f"{Path(cmd[2]).name} exited with code {result.returncode}",
            adapter=self.name,
            return_code=result.returncode,
            duration_ms=elapsed_ms,
            metadata={"command": cmd},
        )
