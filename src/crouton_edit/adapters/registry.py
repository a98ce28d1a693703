"""
Adapter registry — routes mount collaborator actions to an adapter.

Services hand every Action to ``execute_action`` and get a Receipt
back, whatever happens on the way:

    resolve   adapter named by the action (canned successes in mock mode)
    check     is_available() and validate(); a refusal becomes a failed receipt
    execute   exceptions from a misbehaving adapter become failed receipts
"""

from __future__ import annotations

import logging
import time

from crouton_edit.adapters.base import Adapter, ExecutionContext
from crouton_edit.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Mount adapters by name, plus mock mode for ``--mock`` runs."""

    def __init__(self, mock_mode: bool = False):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def register(self, adapter: Adapter) -> None:
        if adapter.name in self._adapters:
            logger.warning("Replacing adapter %s", adapter.name)
        self._adapters[adapter.name] = adapter

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    # ── Dispatch ─────────────────────────────────────────────────

    def execute_action(self, action: Action) -> Receipt:
        """Carry out ``action``. Never raises."""
        if self._mock_mode:
            logger.info("[mock] %s", action.id)
            return Receipt.success(action, output=f"[mock] {action.id}", metadata={"mock": True})

        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(action, f"No adapter registered for '{action.adapter}'")

        context = ExecutionContext(action=action)
        refusal = self._check(adapter, context)
        if refusal is not None:
            return refusal

        started = time.monotonic()
        try:
            receipt = adapter.execute(context)
        except Exception as e:
            logger.error("Adapter %s raised on %s: %s", adapter.name, action.id, e)
            receipt = Receipt.failure(action, f"Unexpected error: {e}", adapter=adapter.name)
        receipt.duration_ms = int((time.monotonic() - started) * 1000)
        logger.debug("%s → %s (%d ms)", action.id, receipt.status, receipt.duration_ms)
        return receipt

    @staticmethod
    def _check(adapter: Adapter, context: ExecutionContext) -> Receipt | None:
        try:
            if not adapter.is_available():
                return Receipt.failure(
                    context.action, f"Adapter {adapter.name} is not available", adapter=adapter.name
                )
            valid, reason = adapter.validate(context)
        except Exception as e:
            return Receipt.failure(context.action, f"Validation error: {e}", adapter=adapter.name)
        if valid:
            return None
        return Receipt.failure(context.action, reason, adapter=adapter.name)
