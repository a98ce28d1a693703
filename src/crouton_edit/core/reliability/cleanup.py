"""
Scoped cleanup — compensating actions that fire unless cancelled.

Pattern:
    register  → before the risky step, schedule its undo
    cancel    → after the step is confirmed successful
    otherwise → the undo runs when the scope unwinds, whatever the cause
                (exception, KeyboardInterrupt, or a signal turned into
                SystemExit by ``signals_raise``)

Compensations run last-registered-first.  A compensation that itself
fails is logged and does not mask the original error.

Usage::

    with compensating("Deleting partial archive", dest.unlink, missing_ok=True):
        write_archive(dest)     # raises → dest is removed
    # block finished → dest is kept
"""

from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

logger = logging.getLogger(__name__)

# Signals that end the process without a Python-level unwind by default
_TERMINATING_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)
)


@dataclass
class Compensation:
    """One scheduled undo action."""

    description: str
    action: Callable[..., Any]
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        """Keep the result of the guarded step; the undo will not run."""
        self.cancelled = True

    def fire(self) -> None:
        if self.cancelled or self.fired:
            return
        self.fired = True
        if self.description:
            logger.warning("%s", self.description)
        try:
            self.action(*self.args, **self.kwargs)
        except Exception as e:
            logger.error("Cleanup '%s' failed: %s", self.description or self.action, e)


class CleanupScope:
    """A stack of compensations, unwound when the scope exits."""

    def __init__(self) -> None:
        self._stack: list[Compensation] = []

    def register(
        self,
        description: str,
        action: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Compensation:
        """Schedule ``action(*args, **kwargs)`` to run on unwind."""
        comp = Compensation(description, action, args, kwargs)
        self._stack.append(comp)
        logger.debug("Registered cleanup: %s", description or action)
        return comp

    @property
    def pending(self) -> list[Compensation]:
        """Compensations that would still fire."""
        return [c for c in self._stack if not c.cancelled and not c.fired]

    def unwind(self) -> None:
        """Fire every pending compensation, newest first."""
        while self._stack:
            self._stack.pop().fire()

    def __enter__(self) -> CleanupScope:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unwind()


@contextmanager
def compensating(
    description: str,
    action: Callable[..., Any],
    *args: Any,
    **kwargs: Any,
) -> Iterator[Compensation]:
    """Run ``action`` if the guarded block does not complete normally."""
    with CleanupScope() as scope:
        comp = scope.register(description, action, *args, **kwargs)
        yield comp
        comp.cancel()


class Terminated(SystemExit):
    """Raised in place of the default action of SIGTERM / SIGHUP."""

    def __init__(self, signum: int):
        super().__init__(128 + signum)
        self.signum = signum


def _raise_terminated(signum: int, _frame: object) -> None:
    raise Terminated(signum)


@contextmanager
def signals_raise() -> Iterator[None]:
    """Turn terminating signals into exceptions for the duration of the block.

    Without this, SIGTERM kills the interpreter without unwinding, and
    registered compensations never run.  Only effective on the main thread.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = {}
    for sig in _TERMINATING_SIGNALS:
        previous[sig] = signal.signal(sig, _raise_terminated)
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
