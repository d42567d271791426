"""Tests for location resolution and run identifiers."""
from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from straylight.config import load_config
from straylight.errors import InstallerEnvironmentError, PathTraversalError
from straylight.paths import PathResolver, resolve_home


def _resolver(env: dict[str, str], home: Path, **overrides: object) -> PathResolver:
    config = load_config(env=env, home=home, overrides=overrides)
    return PathResolver(env=env, home=home, config=config)


def test_resolve_home_requires_existing_directory(tmp_path: Path) -> None:
    """Unset, empty or missing ``HOME`` is an environment error."""
    with pytest.raises(InstallerEnvironmentError, match="HOME not set"):
        resolve_home({})
    with pytest.raises(InstallerEnvironmentError, match="HOME not set"):
        resolve_home({"HOME": ""})
    with pytest.raises(InstallerEnvironmentError, match="not a directory"):
        resolve_home({"HOME": str(tmp_path / "missing")})
    assert resolve_home({"HOME": str(tmp_path)}) == tmp_path


def test_defaults_follow_home(home: Path) -> None:
    """Without XDG variables everything lives under the home directory."""
    env = {"HOME": str(home), "SHELL": "/bin/bash"}
    paths = _resolver(env, home).resolve()

    assert paths.config_home == home / ".config"
    assert paths.state_root == home / ".local" / "state" / "straylight"
    assert paths.logs_dir == paths.state_root / "logs"
    assert paths.staging_root == paths.state_root / "staging"
    assert paths.config_file == home / ".config" / "opencode" / "config.json"
    assert paths.secret_file == home / ".config" / "straylight" / "env"
    assert paths.shell_candidates == (home / ".bashrc", home / ".zshrc")
    assert paths.preferred_shell_rc == home / ".bashrc"


def test_xdg_variables_and_zsh(tmp_path: Path, home: Path) -> None:
    """XDG directories are honoured and zsh users get ``.zshrc``."""
    env = {
        "HOME": str(home),
        "SHELL": "/usr/bin/zsh",
        "XDG_CONFIG_HOME": str(tmp_path / "xdg-config"),
        "XDG_STATE_HOME": str(tmp_path / "xdg-state"),
    }
    paths = _resolver(env, home).resolve()

    assert paths.config_file == tmp_path / "xdg-config" / "opencode" / "config.json"
    assert paths.state_root == tmp_path / "xdg-state" / "straylight"
    assert paths.state_base == tmp_path / "xdg-state"
    assert paths.preferred_shell_rc == home / ".zshrc"


def test_shell_rc_override_is_relative_to_home(home: Path) -> None:
    """A relative ``shell_rc`` is a candidate and the preferred file."""
    env = {"HOME": str(home), "SHELL": "/bin/zsh"}
    paths = _resolver(env, home, shell_rc=".profile").resolve()

    assert paths.preferred_shell_rc == home / ".profile"
    assert paths.shell_candidates[-1] == home / ".profile"


def test_shell_rc_override_outside_home_is_rejected(tmp_path: Path, home: Path) -> None:
    """Shell files must live under the home directory."""
    env = {"HOME": str(home)}
    with pytest.raises(PathTraversalError):
        _resolver(env, home, shell_rc=str(tmp_path / "elsewhere.rc")).resolve()


def test_targets_and_backup_names(home: Path) -> None:
    """Targets are the config then the secret, each with its backup name."""
    paths = _resolver({"HOME": str(home)}, home).resolve()

    targets = list(paths.targets())
    assert [target.label for target in targets] == ["config", "secret"]
    assert [target.backup_name for target in targets] == ["config.json.bak", "env.bak"]
    assert all(target.mode == 0o600 for target in targets)
    assert paths.shell_backup_name(home / ".bashrc") == "bashrc.bak"
    assert paths.shell_backup_name(home / ".config" / "zsh" / ".zshrc") == "config__zsh__zshrc.bak"


def test_run_ids_sort_chronologically_and_never_repeat(home: Path) -> None:
    """A frozen clock still yields strictly increasing identifiers."""
    frozen = datetime(2026, 1, 2, 3, 4, 5, 600000, tzinfo=UTC)
    config = load_config(env={"HOME": str(home)}, home=home)
    resolver = PathResolver(env={"HOME": str(home)}, home=home, config=config, clock=lambda: frozen)

    first = resolver.new_run_id()
    second = resolver.new_run_id()

    assert first == "20260102T030405600000Z"
    assert second == "20260102T030405600001Z"
    assert sorted([second, first]) == [first, second]
    assert resolver.resolve().recovery_dir(first).name == f"recovery-{first}"


def test_state_dir_override_below_home(home: Path) -> None:
    """A ``state_dir`` outside the XDG state directory is measured against home."""
    env = {"HOME": str(home)}
    paths = _resolver(env, home, state_dir=str(home / "straylight-state")).resolve()

    assert paths.state_root == home / "straylight-state"
    assert paths.state_base == home


def test_state_dir_override_below_xdg_state(home: Path) -> None:
    """A ``state_dir`` inside the XDG state directory keeps that base."""
    env = {"HOME": str(home)}
    override = home / ".local" / "state" / "custom"
    paths = _resolver(env, home, state_dir=str(override)).resolve()

    assert paths.state_root == override
    assert paths.state_base == home / ".local" / "state"


@pytest.mark.parametrize("relative", [".", "..", ".local/state", "../elsewhere"])
def test_state_dir_override_must_be_strictly_below_a_base(home: Path, relative: str) -> None:
    """Home itself, its parents and the bare state directory are refused."""
    env = {"HOME": str(home)}
    with pytest.raises(PathTraversalError):
        _resolver(env, home, state_dir=str(home / relative)).resolve()


@pytest.mark.parametrize("config_home", ["/", "."])
def test_config_home_enclosing_home_is_rejected(home: Path, config_home: str) -> None:
    """A config home of ``/`` or the home directory itself is refused."""
    env = {"HOME": str(home)}
    with pytest.raises(PathTraversalError, match="contains"):
        _resolver(env, home, config_home=str(home / config_home)).resolve()
