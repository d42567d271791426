"""Content of the files the installer generates for opencode.

The configuration document is a contract owed to opencode: its shape must not
drift. Only the top-level keys listed in :data:`MANAGED_KEYS` are owned by
straylight; any other top-level keys already present in an installed document
are carried over untouched.
"""
from __future__ import annotations

import json
import re
from collections.abc import Mapping
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path

from .config import ProviderConfig

MARKER = "# // straylight // opencode"
CONFIG_SCHEMA_URL = "https://opencode.dev/config.schema.json"
INSTALL_HINT = "https://opencode.dev"


@dataclass(frozen=True, slots=True)
class ShellAlias:
    """A convenience alias written into the shell integration block."""

    name: str
    command: str


ALIASES: tuple[ShellAlias, ...] = (
    ShellAlias("oc", "opencode"),
    ShellAlias("oc-nitpick", "opencode --model nitpick"),
    ShellAlias("oc-opus", "opencode --model creative"),
    ShellAlias("oc-gemini", "opencode --model creative-gemini"),
    ShellAlias("oc-kimi", "opencode --model creative-kimi"),
    ShellAlias("oc-review", "opencode --workflow review-first"),
)

MODELS: dict[str, dict[str, object]] = {
    "nitpick": {
        "id": "openai/gpt-5.2",
        "temperature": 0.1,
        "description": "adversarial review, spec validation",
        "systemPrompt": (
            "You are an adversarial code reviewer. Find flaws, edge cases, spec "
            "violations. Be thorough and uncharitable."
        ),
    },
    "creative": {
        "id": "anthropic/claude-opus-4.5",
        "temperature": 0.9,
        "description": "primary creative, reliable workhorse",
    },
    "creative-gemini": {
        "id": "google/gemini-3-pro-preview",
        "temperature": 0.85,
        "description": "dark horse, slow crusher",
    },
    "creative-kimi": {
        "id": "moonshotai/kimi-k2.5",
        "temperature": 0.9,
        "description": "9x cheaper, guest rotation",
    },
    "cheap": {
        "id": "moonshotai/kimi-k2.5",
        "temperature": 0.7,
        "description": "bulk operations",
    },
}

WORKFLOWS: dict[str, object] = {
    "review-first": {
        "steps": [
            {"model": "nitpick", "action": "review"},
            {"model": "creative", "action": "implement"},
        ]
    }
}

ROUTING: dict[str, object] = {
    "taskRouting": {
        "review": "nitpick",
        "implement": "creative",
        "bulk": "cheap",
    }
}

MANAGED_KEYS = ("$schema", "provider", "models", "workflows", "routing")


def build_config_document(provider: ProviderConfig, secret_variable: str) -> dict[str, object]:
    """Return the configuration document owned by straylight.

    The API key is referenced through a ``${VAR}`` placeholder that opencode
    resolves from its environment; the secret itself never appears here.
    """
    models: dict[str, object] = {}
    for alias, spec in MODELS.items():
        entry = deepcopy(spec)
        entry["provider"] = provider.name
        models[alias] = {key: entry[key] for key in _model_key_order(entry)}
    return {
        "$schema": CONFIG_SCHEMA_URL,
        "provider": {
            "default": provider.name,
            provider.name: {
                "apiKey": f"${{{secret_variable}}}",
                "baseUrl": provider.base_url,
            },
        },
        "models": models,
        "workflows": deepcopy(WORKFLOWS),
        "routing": deepcopy(ROUTING),
    }


def _model_key_order(entry: Mapping[str, object]) -> list[str]:
    preferred = ["id", "provider", "temperature", "description", "systemPrompt"]
    return [key for key in preferred if key in entry] + [
        key for key in entry if key not in preferred
    ]


def merge_config_document(
    existing: Mapping[str, object] | None,
    managed: Mapping[str, object],
) -> dict[str, object]:
    """Overlay *managed* keys onto *existing*, keeping unrelated top-level keys."""
    merged: dict[str, object] = dict(managed)
    if existing:
        for key, value in existing.items():
            if key not in MANAGED_KEYS:
                merged[key] = value
    return merged


def serialize_config_document(document: Mapping[str, object]) -> str:
    """Return the deterministic on-disk form of *document*."""
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


def load_config_document(path: Path) -> dict[str, object] | None:
    """Return the parsed document at *path*, or ``None`` if absent or unusable."""
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return None
    return dict(data) if isinstance(data, Mapping) else None


def extract_secret(text: str, variable: str) -> str | None:
    """Return the quoted value of ``export <variable>="..."`` in *text*."""
    pattern = re.compile(rf'^export {re.escape(variable)}="([^"\n]*)"\s*$', re.MULTILINE)
    match = pattern.search(text)
    if match is None or not match.group(1):
        return None
    return match.group(1)


def read_secret_file(path: Path, variable: str) -> str | None:
    """Return the secret stored in the env file at *path*, if recognisable."""
    if not path.is_file():
        return None
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    return extract_secret(text, variable)


__all__ = [
    "ALIASES",
    "INSTALL_HINT",
    "MANAGED_KEYS",
    "MARKER",
    "ShellAlias",
    "build_config_document",
    "extract_secret",
    "load_config_document",
    "merge_config_document",
    "read_secret_file",
    "serialize_config_document",
]
