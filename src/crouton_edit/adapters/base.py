"""
Adapter base — the contract between the editor and the mount collaborator.

Mounting, unmounting and setting up encryption belong to external
tools.  The editor only talks to them through this protocol, so tests
can swap in ``MockAdapter``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from crouton_edit.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to carry out an action."""

    action: Action


class Adapter(ABC):
    """Something that can unmount and mount chroots.

    ``execute`` reports every outcome, including failure, as a Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g. 'mount', 'mock')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the underlying tools exist. Fast, never raises."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Return (is_valid, error_message); message is empty if valid."""

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Run the collaborator for ``context.action``."""
