"""Filesystem locations derived from ``HOME``, ``XDG_*`` variables and settings.

Every location the installer touches is computed once at process entry into an
:class:`InstallPaths` value that is handed to each phase explicitly.
"""
from __future__ import annotations

import os
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

from .atomic import PRIVATE_FILE_MODE
from .config import AppConfig
from .errors import InstallerEnvironmentError
from .validation import validate_not_enclosing, validate_path_containment

STATE_NAMESPACE = "straylight"
OPENCODE_DIR_NAME = "opencode"
CONFIG_FILE_NAME = "config.json"
SECRET_FILE_NAME = "env"
RECOVERY_PREFIX = "recovery-"
RUN_ID_FORMAT = "%Y%m%dT%H%M%S%fZ"


def resolve_home(env: Mapping[str, str]) -> Path:
    """Return the user's home directory or raise if it is unusable."""
    raw = env.get("HOME", "")
    if not raw:
        raise InstallerEnvironmentError("HOME not set")
    home = Path(raw)
    if not home.is_dir():
        raise InstallerEnvironmentError(f"HOME is not a directory: {home}")
    return home


@dataclass(frozen=True, slots=True)
class InstallationTarget:
    """A file the installer makes authoritative, with its required mode."""

    label: str
    path: Path
    mode: int = PRIVATE_FILE_MODE

    @property
    def backup_name(self) -> str:
        """Name of this target's backup inside a recovery record."""
        return f"{self.path.name}.bak"


@dataclass(frozen=True, slots=True)
class InstallPaths:
    """Resolved locations for one invocation."""

    home: Path
    config_home: Path
    state_base: Path
    state_root: Path
    logs_dir: Path
    opencode_dir: Path
    config_file: Path
    secret_dir: Path
    secret_file: Path
    shell_candidates: tuple[Path, ...]
    preferred_shell_rc: Path

    @property
    def staging_root(self) -> Path:
        """Directory holding one staging area per run."""
        return self.state_root / "staging"

    @property
    def config_target(self) -> InstallationTarget:
        """The opencode configuration document."""
        return InstallationTarget("config", self.config_file)

    @property
    def secret_target(self) -> InstallationTarget:
        """The sourceable secret file."""
        return InstallationTarget("secret", self.secret_file)

    def targets(self) -> Iterator[InstallationTarget]:
        """Yield the configuration and secret targets, in install order."""
        yield self.config_target
        yield self.secret_target

    def recovery_dir(self, run_id: str) -> Path:
        """Return the recovery record directory for *run_id*."""
        return self.state_root / f"{RECOVERY_PREFIX}{run_id}"

    def staging_dir(self, run_id: str) -> Path:
        """Return the staging area directory for *run_id*."""
        return self.staging_root / run_id

    def shell_backup_name(self, rc_file: Path) -> str:
        """Return the backup file name used for *rc_file* in a recovery record."""
        relative = rc_file.relative_to(self.home).as_posix()
        parts = [part.lstrip(".") for part in relative.split("/")]
        return "__".join(parts) + ".bak"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class PathResolver:
    """Compute :class:`InstallPaths` and run identifiers."""

    env: Mapping[str, str]
    home: Path
    config: AppConfig
    clock: Callable[[], datetime] = _utcnow
    _last_run_at: datetime | None = field(default=None, init=False, repr=False)

    def resolve(self) -> InstallPaths:
        """Return the locations for this invocation.

        A ``state_dir`` override must sit strictly below the XDG state
        directory or the home directory, and no directory ``clean`` may
        delete is allowed to be the home directory or one of its parents.
        """
        home = self.home
        config_home = self.config.config_home or Path(
            self.env.get("XDG_CONFIG_HOME") or home / ".config"
        )
        validate_not_enclosing(config_home, home)
        state_base = Path(self.env.get("XDG_STATE_HOME") or home / ".local" / "state")
        state_root = state_base / STATE_NAMESPACE
        if self.config.state_dir is not None:
            state_root = Path(os.path.normpath(self.config.state_dir))
            if not state_root.is_relative_to(state_base):
                state_base = home
            validate_path_containment(state_root, state_base)
            validate_not_enclosing(state_root, state_base)
        logs_dir = self.config.logs_dir or state_root / "logs"

        opencode_dir = config_home / OPENCODE_DIR_NAME
        secret_dir = config_home / STATE_NAMESPACE
        config_file = opencode_dir / CONFIG_FILE_NAME
        secret_file = secret_dir / SECRET_FILE_NAME
        for target in (config_file, secret_file):
            validate_path_containment(target, config_home)
        for managed in (state_root, opencode_dir, secret_dir):
            validate_not_enclosing(managed, home)

        candidates: list[Path] = [home / ".bashrc", home / ".zshrc"]
        override: Path | None = None
        if self.config.shell_rc is not None:
            override = self.config.shell_rc
            if not override.is_absolute():
                override = home / override
            validate_path_containment(override, home)
            if override not in candidates:
                candidates.append(override)

        return InstallPaths(
            home=home,
            config_home=config_home,
            state_base=state_base,
            state_root=state_root,
            logs_dir=logs_dir,
            opencode_dir=opencode_dir,
            config_file=config_file,
            secret_dir=secret_dir,
            secret_file=secret_file,
            shell_candidates=tuple(candidates),
            preferred_shell_rc=override or self._preferred_shell_rc(home),
        )

    def new_run_id(self) -> str:
        """Return a fresh, process-unique run identifier.

        Identifiers are fixed-width UTC timestamps, so sorting them
        lexicographically sorts them chronologically.
        """
        now = self.clock()
        if self._last_run_at is not None and now <= self._last_run_at:
            now = self._last_run_at + timedelta(microseconds=1)
        self._last_run_at = now
        return now.strftime(RUN_ID_FORMAT)

    def _preferred_shell_rc(self, home: Path) -> Path:
        shell = self.env.get("SHELL") or "/bin/sh"
        if os.path.basename(shell).endswith("zsh"):
            return home / ".zshrc"
        return home / ".bashrc"


__all__ = [
    "CONFIG_FILE_NAME",
    "InstallPaths",
    "InstallationTarget",
    "PathResolver",
    "RECOVERY_PREFIX",
    "SECRET_FILE_NAME",
    "resolve_home",
]
