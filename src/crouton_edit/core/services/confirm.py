"""
Confirmation gate for destructive or slow operations.

Answers are case-insensitive:

    y…   yes, this once
    a…   yes, and to every later question in this run
    else no

A preset response (config ``response`` / CROUTON_EDIT_RESPONSE) is used
as if it had been typed, for every question.  ``yes_to_all`` skips the
questions entirely.
"""

from __future__ import annotations

import logging
from typing import Callable

import click

from crouton_edit.core.errors import UserAbort

logger = logging.getLogger(__name__)

PromptFn = Callable[[str], str]


def _click_prompt(question: str) -> str:
    return click.prompt(question, default="", show_default=False, prompt_suffix=" ")


class Confirmer:
    """Ask, or don't, depending on the run's confirmation settings."""

    def __init__(
        self,
        yes_to_all: bool = False,
        response: str | None = None,
        prompt: PromptFn | None = None,
    ):
        self.yes_to_all = yes_to_all
        self.response = response
        self._prompt = prompt or _click_prompt

    def confirm(self, question: str) -> bool:
        """Return True if the operator agrees to ``question``."""
        if self.yes_to_all:
            return True
        full = f"{question} [a/y/N]"
        if self.response is not None:
            answer = self.response
            logger.warning("%s %s", full, answer)
        else:
            answer = self._prompt(full)
        answer = answer.strip().lower()
        if answer.startswith("a"):
            self.yes_to_all = True
            return True
        return answer.startswith("y")

    def require(self, question: str) -> None:
        """Like ``confirm``, but a refusal raises UserAbort."""
        if not self.confirm(question):
            raise UserAbort("Aborting.")
