"""Phase 2 (``entry``): promote staged artifacts onto their targets."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from ..atomic import PRIVATE_DIR_MODE, AtomicWriter, ensure_private_dir
from ..errors import IncompleteStageError
from ..paths import InstallPaths
from ..shell import EnsureResult, ShellIntegration
from ..validation import validate_path_containment
from .stage import StagingArea

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CommitResult:
    """Files written by the entry phase."""

    area: StagingArea
    installed: list[Path] = field(default_factory=list)
    shell: EnsureResult | None = None

    @property
    def shell_already_configured(self) -> bool:
        """``True`` when the preferred rc file already held the block."""
        return self.shell is not None and not self.shell.appended


@dataclass(slots=True)
class Committer:
    """Copy staged files into place and wire up the shell."""

    paths: InstallPaths
    shell: ShellIntegration
    writer: AtomicWriter = field(default_factory=AtomicWriter)

    def commit(self, area: StagingArea) -> CommitResult:
        """Install the contents of *area*; staged files are left in place."""
        if not area.secret_file.is_file():
            raise IncompleteStageError(f"staged secret file missing: {area.secret_file}")
        if not area.config_file.is_file():
            raise IncompleteStageError(f"staged configuration missing: {area.config_file}")

        result = CommitResult(area=area)
        staged = {
            self.paths.config_file: area.config_file,
            self.paths.secret_file: area.secret_file,
        }
        for target in self.paths.targets():
            validate_path_containment(target.path, self.paths.config_home)
            directory = target.path.parent
            if not ensure_private_dir(directory):
                os.chmod(directory, PRIVATE_DIR_MODE)
            self.writer.copy(staged[target.path], target.path, mode=target.mode)
            result.installed.append(target.path)
            LOGGER.info("entry: installed %s", target.path)

        rc_file = self.paths.preferred_shell_rc
        validate_path_containment(rc_file, self.paths.home)
        result.shell = self.shell.ensure_block(rc_file, self.paths.secret_file)
        return result


__all__ = ["CommitResult", "Committer"]
