"""Interactive terminal port used for secret entry and confirmations."""
from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Protocol, TextIO

import typer


class InteractivePrompt(Protocol):
    """Blocking operator interaction."""

    def is_interactive(self) -> bool:
        """Return ``True`` when an operator can answer prompts."""

    def read_secret(self, label: str) -> str:
        """Read one line of secret input."""

    def confirm(self, message: str) -> bool:
        """Ask a yes/no question defaulting to no."""


@dataclass(slots=True)
class TerminalPrompt:
    """Prompt through the controlling terminal via Typer/Click."""

    stream: TextIO = field(default_factory=lambda: sys.stdin)

    def is_interactive(self) -> bool:
        """Return ``True`` when stdin is attached to a TTY."""
        try:
            return bool(self.stream.isatty())
        except (AttributeError, ValueError):
            return False

    def read_secret(self, label: str) -> str:
        """Read the secret without echoing it."""
        value = typer.prompt(label, default="", show_default=False, hide_input=True)
        return str(value).strip()

    def confirm(self, message: str) -> bool:
        """Ask *message* and return the operator's answer."""
        return bool(typer.confirm(message, default=False))


__all__ = ["InteractivePrompt", "TerminalPrompt"]
