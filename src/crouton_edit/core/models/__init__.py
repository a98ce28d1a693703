"""
Domain models for crouton-edit.

Re-exports the public model types for convenient access:
    from crouton_edit.core.models import OperationRequest, EditConfig, Receipt
"""

from crouton_edit.core.models.action import Action, Receipt
from crouton_edit.core.models.archive import (
    ArchiveIdentity,
    BackupResult,
    LabeledArchive,
    LegacyArchive,
    RestoreResult,
)
from crouton_edit.core.models.config import EditConfig
from crouton_edit.core.models.request import OperationRequest

__all__ = [
    "Action",
    "ArchiveIdentity",
    "BackupResult",
    "EditConfig",
    "LabeledArchive",
    "LegacyArchive",
    "OperationRequest",
    "Receipt",
    "RestoreResult",
]
