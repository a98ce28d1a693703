"""
Error hierarchy for chroot editing.

Every failure a service can report maps onto one of four families,
each carrying the process exit status the CLI should return:

    ValidationError    bad name, conflicting flags, ambiguous target    → 2
    PreconditionError  chroot missing, destination exists, key missing → 1
    RuntimeFailure     archive / copy / collaborator failed             → tool status
    UserAbort          a confirmation was declined                      → 1

ValidationErrors are raised before anything touches the filesystem.
PreconditionErrors are raised before the first mutation of the stage
that detects them.  RuntimeFailures unwind through any registered
cleanup (see ``crouton_edit.core.reliability.cleanup``).
"""

from __future__ import annotations


class ChrootEditError(Exception):
    """Base exception for all chroot edit errors."""

    exit_code: int = 1

    def __init__(self, message: str, *, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ValidationError(ChrootEditError):
    """Invalid name, flag combination, or target. Nothing was changed."""

    exit_code = 2


class ConfigError(ValidationError):
    """Configuration file missing or malformed."""


class PreconditionError(ChrootEditError):
    """The filesystem is not in a state the operation can start from."""

    exit_code = 1


class InvalidArchiveError(PreconditionError):
    """A file is not a recognizable chroot backup."""


class RuntimeFailure(ChrootEditError):
    """An archive, copy, or collaborator step failed part way."""

    exit_code = 1


class UserAbort(ChrootEditError):
    """The operator declined a confirmation."""

    exit_code = 1
