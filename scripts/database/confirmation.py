"""
Interactive "are you sure?" gate for destructive commands.
"""

from __future__ import annotations

from typing import Protocol

CONFIRMATION_TOKEN = "yes"


class Prompt(Protocol):
    """Reads one line of operator input."""

    def read_line(self) -> str: ...


class StdinPrompt:
    """Reads the answer from standard input."""

    def read_line(self) -> str:
        try:
            return input()
        except EOFError:
            return ""


class ConfirmationGuard:
    """
    Asks the operator to confirm by typing exactly ``yes``.

    The comparison is case sensitive and nothing is stripped: ``Yes``, ``y``,
    `` yes`` and an empty line all count as "no".
    """

    def __init__(self, prompt: Prompt | None = None):
        self.prompt = prompt or StdinPrompt()

    def confirm(self) -> bool:
        return self.prompt.read_line() == CONFIRMATION_TOKEN
