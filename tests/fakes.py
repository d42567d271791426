"""Deterministic stand-ins for the terminal and HTTP ports."""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from straylight.cli import RuntimeContext
from straylight.providers.openrouter import ProbeOutcome, ProbeStatus

SECRET = "abcdefghij" * 4

RuntimeFactory = Callable[..., RuntimeContext]


@dataclass
class ScriptedPrompt:
    """Answers prompts from preset values and records what was asked."""

    interactive: bool = False
    secret: str = ""
    answer: bool = False
    secret_requests: list[str] = field(default_factory=list)
    confirmations: list[str] = field(default_factory=list)

    def is_interactive(self) -> bool:
        return self.interactive

    def read_secret(self, label: str) -> str:
        self.secret_requests.append(label)
        return self.secret

    def confirm(self, message: str) -> bool:
        self.confirmations.append(message)
        return self.answer


@dataclass
class FakeProbe:
    """Records probed secrets and answers with a fixed outcome."""

    outcome: ProbeOutcome = field(
        default_factory=lambda: ProbeOutcome(ProbeStatus.HEALTHY, http_status=200)
    )
    calls: list[str] = field(default_factory=list)

    def check(self, secret: str) -> ProbeOutcome:
        self.calls.append(secret)
        return self.outcome
