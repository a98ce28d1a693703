"""
Mock mount adapter — stands in for mount-chroot / unmount-chroot.

Every call succeeds and is recorded unless a failure was scripted for
its action id (``mount:dev``).  ``on_execute`` lets a test add side
effects, such as raising KeyboardInterrupt in the middle of a mount.
"""

from __future__ import annotations

from typing import Callable

from crouton_edit.adapters.base import Adapter, ExecutionContext
from crouton_edit.core.models.action import Receipt

Hook = Callable[[ExecutionContext], None]


class MockAdapter(Adapter):
    def __init__(
        self,
        adapter_name: str = "mount",
        available: bool = True,
        on_execute: Hook | None = None,
    ):
        self._name = adapter_name
        self._available = available
        self._hook = on_execute
        self._failures: dict[str, tuple[str, int]] = {}
        self.call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def calls(self) -> list[str]:
        """Action ids in call order: ``["unmount:dev", "mount:dev"]``."""
        return [ctx.action.id for ctx in self.call_log]

    @property
    def call_count(self) -> int:
        return len(self.call_log)

    def set_failure(self, action_id: str, error: str = "Mock failure", return_code: int = 1) -> None:
        """Make every later call of ``action_id`` fail with ``return_code``."""
        self._failures[action_id] = (error, return_code)

    def reset(self) -> None:
        self.call_log.clear()
        self._failures.clear()

    def is_available(self) -> bool:
        return self._available

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        action = context.action
        self.call_log.append(context)

        if action.id in self._failures:
            error, code = self._failures[action.id]
            return Receipt.failure(action, error, return_code=code, adapter=self._name)

        if self._hook is not None:
            self._hook(context)
        return Receipt.success(
            action, adapter=self._name, output=f"[mock] {action.id}", metadata={"mock": True}
        )
