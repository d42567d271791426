"""Phase 1: acquire and validate the secret, then stage both payloads."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from .. import __version__
from ..atomic import PRIVATE_FILE_MODE, AtomicWriter, ensure_private_dir
from ..config import AppConfig
from ..errors import NoCredentialSourceError
from ..paths import CONFIG_FILE_NAME, SECRET_FILE_NAME, InstallPaths
from ..payload import (
    build_config_document,
    load_config_document,
    merge_config_document,
    read_secret_file,
    serialize_config_document,
)
from ..providers.terminal import InteractivePrompt
from ..templates import TemplateEngine
from ..validation import validate_secret_format

LOGGER = logging.getLogger(__name__)

ENV_TEMPLATE = "env.j2"

SOURCE_EXISTING_FILE = "existing-file"
SOURCE_ENVIRONMENT = "environment"
SOURCE_PROMPT = "prompt"


@dataclass(frozen=True, slots=True)
class StagingArea:
    """Scratch directory holding one run's fully-formed artifacts."""

    path: Path

    @property
    def run_id(self) -> str:
        """Run the area belongs to."""
        return self.path.name

    @property
    def secret_file(self) -> Path:
        """Staged sourceable secret file."""
        return self.path / SECRET_FILE_NAME

    @property
    def config_file(self) -> Path:
        """Staged opencode configuration document."""
        return self.path / CONFIG_FILE_NAME

    def is_complete(self) -> bool:
        """Return ``True`` when both artifacts are present."""
        return self.secret_file.is_file() and self.config_file.is_file()


@dataclass(frozen=True, slots=True)
class StageResult:
    """Outcome of the stage phase."""

    area: StagingArea
    secret_source: str
    carried_keys: tuple[str, ...]
    warnings: tuple[str, ...] = ()


def latest_staging_area(staging_root: Path) -> StagingArea | None:
    """Return the newest staging area under *staging_root*, if any."""
    if not staging_root.is_dir():
        return None
    candidates = sorted(entry.name for entry in staging_root.iterdir() if entry.is_dir())
    return StagingArea(staging_root / candidates[-1]) if candidates else None


@dataclass(slots=True)
class Stager:
    """Prepare the secret file and configuration document in a staging area."""

    paths: InstallPaths
    config: AppConfig
    templates: TemplateEngine
    writer: AtomicWriter
    prompt: InteractivePrompt
    env: Mapping[str, str]

    def stage(self, run_id: str) -> StageResult:
        """Produce a complete staging area for *run_id*."""
        secret, source = self.acquire_secret()
        validate_secret_format(secret, name=self.config.secret_variable)

        area = StagingArea(self.paths.staging_dir(run_id))
        ensure_private_dir(self.paths.staging_root)
        ensure_private_dir(area.path)

        self.templates.render_to_path(
            ENV_TEMPLATE, area.secret_file, self._secret_context(secret), mode=PRIVATE_FILE_MODE
        )

        warnings: list[str] = []
        existing = load_config_document(self.paths.config_file)
        if existing is None and self.paths.config_file.is_file():
            warnings.append(
                f"existing {self.paths.config_file} is not a JSON object; "
                "it will be replaced without carrying keys over"
            )
        managed = build_config_document(self.config.provider, self.config.secret_variable)
        document = merge_config_document(existing, managed)
        self.writer.write(area.config_file, PRIVATE_FILE_MODE, serialize_config_document(document))

        carried = tuple(key for key in document if key not in managed)
        LOGGER.info("stage: staged %s (secret from %s)", area.path, source)
        return StageResult(
            area=area,
            secret_source=source,
            carried_keys=carried,
            warnings=tuple(warnings),
        )

    def acquire_secret(self) -> tuple[str, str]:
        """Return ``(secret, source)`` following file, environment, prompt order."""
        variable = self.config.secret_variable
        existing = read_secret_file(self.paths.secret_file, variable)
        if existing:
            return existing, SOURCE_EXISTING_FILE

        from_env = self.env.get(variable, "")
        if from_env:
            return from_env, SOURCE_ENVIRONMENT

        if not self.prompt.is_interactive():
            raise NoCredentialSourceError(
                f"no TTY and no existing key; set {variable} in the environment"
            )
        return self.prompt.read_secret(variable), SOURCE_PROMPT

    def _secret_context(self, secret: str) -> dict[str, object]:
        return {
            "generated_at": datetime.now(tz=UTC).isoformat(timespec="seconds"),
            "version": __version__,
            "provider": self.config.provider.name,
            "base_url": self.config.provider.base_url,
            "variable": self.config.secret_variable,
            "secret": secret,
        }


__all__ = [
    "SOURCE_ENVIRONMENT",
    "SOURCE_EXISTING_FILE",
    "SOURCE_PROMPT",
    "StageResult",
    "Stager",
    "StagingArea",
    "latest_staging_area",
]
