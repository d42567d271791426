"""Ports for the blocking side effects straylight depends on."""
from __future__ import annotations

from .openrouter import ApiProbe, HttpApiProbe, ProbeOutcome, ProbeStatus, classify_status
from .terminal import InteractivePrompt, TerminalPrompt

__all__ = [
    "ApiProbe",
    "HttpApiProbe",
    "InteractivePrompt",
    "ProbeOutcome",
    "ProbeStatus",
    "TerminalPrompt",
    "classify_status",
]
