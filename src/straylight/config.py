"""Settings loader for straylight.

This module centralises the logic for reading installer settings from
multiple sources:

1. Built-in defaults.
2. ``<config_home>/straylight/installer.yml`` (or an override path).
3. Environment variables prefixed with ``STRAYLIGHT_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export STRAYLIGHT_PROBE__ENABLED=false
    export STRAYLIGHT_PROBE__CONNECT_TIMEOUT=2

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. Path settings left unset are derived later by
:class:`straylight.paths.PathResolver` from ``XDG_*`` variables and ``HOME``.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

ENV_PREFIX = "STRAYLIGHT_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}
SETTINGS_FILE_NAME = "installer.yml"


class ConfigError(RuntimeError):
    """Raised when settings parsing fails."""


@dataclass(frozen=True)
class ProviderConfig:
    """Remote API provider the generated configuration points at."""

    name: str = "openrouter"
    base_url: str = "https://openrouter.ai/api/v1"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"name": self.name, "base_url": self.base_url}


@dataclass(frozen=True)
class ProbeConfig:
    """Connectivity probe tunables used by ``verify``."""

    enabled: bool = True
    connect_timeout: float = 5.0
    total_timeout: float = 10.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "enabled": self.enabled,
            "connect_timeout": self.connect_timeout,
            "total_timeout": self.total_timeout,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved settings for straylight."""

    config_file: Path
    state_dir: Path | None
    config_home: Path | None
    logs_dir: Path | None
    templates_dir: Path | None
    shell_rc: Path | None
    binary: str
    secret_variable: str
    provider: ProviderConfig
    probe: ProbeConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the settings."""
        return {
            "config_file": str(self.config_file),
            "state_dir": _optional_str(self.state_dir),
            "config_home": _optional_str(self.config_home),
            "logs_dir": _optional_str(self.logs_dir),
            "templates_dir": _optional_str(self.templates_dir),
            "shell_rc": _optional_str(self.shell_rc),
            "binary": self.binary,
            "secret_variable": self.secret_variable,
            "provider": self.provider.to_dict(),
            "probe": self.probe.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": None,  # derived from config_home when absent
    "state_dir": None,
    "config_home": None,
    "logs_dir": None,
    "templates_dir": None,
    "shell_rc": None,
    "binary": "opencode",
    "secret_variable": "OPENROUTER_API_KEY",
    "provider": {
        "name": "openrouter",
        "base_url": "https://openrouter.ai/api/v1",
    },
    "probe": {
        "enabled": True,
        "connect_timeout": 5.0,
        "total_timeout": 10.0,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())


def default_settings_path(env: Mapping[str, str], home: Path) -> Path:
    """Return the settings file location implied by ``XDG_CONFIG_HOME``/``HOME``."""
    config_home = env.get("XDG_CONFIG_HOME") or str(home / ".config")
    return Path(config_home) / "straylight" / SETTINGS_FILE_NAME


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    home: Path | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge settings sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)
    resolved_home = home if home is not None else Path(resolved_env.get("HOME") or "~").expanduser()

    config_path = _determine_config_path(config_file, resolved_env, resolved_home)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
    home: Path,
) -> Path:
    if cli_override:
        return Path(cli_override)
    if env.get(CONFIG_ENV_VAR):
        return Path(env[CONFIG_ENV_VAR])
    return default_settings_path(env, home)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse settings file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Settings file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown settings keys: {joined}.")

    provider = raw.get("provider")
    if provider is not None:
        provider_map = _as_dict(provider, "provider")
        unknown = set(provider_map.keys()) - {"name", "base_url"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown provider settings keys: {joined}.")
        base_url = provider_map.get("base_url")
        if base_url is not None and not str(base_url).startswith(("https://", "http://")):
            raise ConfigError(f"provider.base_url must be an http(s) URL. Got {base_url!r}.")

    probe = raw.get("probe")
    if probe is not None:
        probe_map = _as_dict(probe, "probe")
        unknown = set(probe_map.keys()) - {"enabled", "connect_timeout", "total_timeout"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown probe settings keys: {joined}.")

    for key in ("binary", "secret_variable"):
        value = raw.get(key)
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f"{key} must be a non-empty string.")

    secret_variable = cast(str, raw.get("secret_variable"))
    if not secret_variable.replace("_", "").isalnum() or secret_variable[0].isdigit():
        raise ConfigError(
            f"secret_variable must be a valid shell variable name. Got {secret_variable!r}."
        )


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    provider_mapping = _as_dict(raw.get("provider"), "provider")
    provider = ProviderConfig(
        name=str(provider_mapping.get("name", "openrouter")),
        base_url=str(provider_mapping.get("base_url", "https://openrouter.ai/api/v1")).rstrip("/"),
    )

    probe_mapping = _as_dict(raw.get("probe"), "probe")
    probe = ProbeConfig(
        enabled=_expect_bool(probe_mapping.get("enabled"), "probe.enabled", default=True),
        connect_timeout=_expect_positive_float(
            probe_mapping.get("connect_timeout"), "probe.connect_timeout", default=5.0
        ),
        total_timeout=_expect_positive_float(
            probe_mapping.get("total_timeout"), "probe.total_timeout", default=10.0
        ),
    )
    if probe.total_timeout < probe.connect_timeout:
        raise ConfigError("probe.total_timeout must not be shorter than probe.connect_timeout.")

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        state_dir=_optional_path(raw.get("state_dir"), "state_dir"),
        config_home=_optional_path(raw.get("config_home"), "config_home"),
        logs_dir=_optional_path(raw.get("logs_dir"), "logs_dir"),
        templates_dir=_optional_path(raw.get("templates_dir"), "templates_dir"),
        shell_rc=_optional_path(raw.get("shell_rc"), "shell_rc"),
        binary=str(raw.get("binary", "opencode")).strip(),
        secret_variable=str(raw.get("secret_variable", "OPENROUTER_API_KEY")).strip(),
        provider=provider,
        probe=probe,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        else:
            result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _optional_str(value: Path | None) -> str | None:
    return str(value) if value is not None else None


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _optional_path(value: object, label: str) -> Path | None:
    if value is None or value == "":
        return None
    if not isinstance(value, (str, Path)):
        raise ConfigError(f"{label} must be a string path or null.")
    return _to_path(value)


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "yes", "on", "1"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"false", "no", "off", "0"}:
        return False
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "ProbeConfig",
    "ProviderConfig",
    "default_settings_path",
    "load_config",
]
