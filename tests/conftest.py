"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from straylight.cli import RuntimeContext, build_runtime
from straylight.paths import InstallPaths

from .fakes import FakeProbe, RuntimeFactory, ScriptedPrompt


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """An empty home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def base_env(tmp_path: Path, home: Path) -> dict[str, str]:
    """Environment with only ``HOME``, ``SHELL`` and an empty ``PATH``."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    return {"HOME": str(home), "SHELL": "/bin/bash", "PATH": str(bin_dir)}


@pytest.fixture
def prompt() -> ScriptedPrompt:
    return ScriptedPrompt()


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def make_runtime(
    base_env: dict[str, str],
    prompt: ScriptedPrompt,
    probe: FakeProbe,
) -> RuntimeFactory:
    """Return a factory building a runtime wired to the fake ports."""

    def factory(
        *,
        env: dict[str, str] | None = None,
        read_only: bool = False,
    ) -> RuntimeContext:
        merged = dict(base_env)
        merged.update(env or {})
        return build_runtime(env=merged, prompt=prompt, probe=probe, read_only=read_only)

    return factory


@pytest.fixture
def runtime(make_runtime: RuntimeFactory) -> RuntimeContext:
    return make_runtime()


@pytest.fixture
def paths(runtime: RuntimeContext) -> InstallPaths:
    return runtime.paths
