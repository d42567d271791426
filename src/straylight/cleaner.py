"""Full removal of everything the installer manages (``clean``)."""
from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .errors import NoConfirmationError, PathTraversalError
from .paths import InstallPaths
from .providers.terminal import InteractivePrompt
from .shell import ShellIntegration
from .validation import validate_not_enclosing, validate_path_containment

LOGGER = logging.getLogger(__name__)

CONFIRM_MESSAGE = "Continue?"


@dataclass(slots=True)
class CleanResult:
    """Directories and shell files touched by ``clean``."""

    removed_dirs: list[Path] = field(default_factory=list)
    cleaned_shell_files: list[Path] = field(default_factory=list)


@dataclass(slots=True)
class Cleaner:
    """Remove managed directories and the shell integration block."""

    paths: InstallPaths
    prompt: InteractivePrompt
    shell: ShellIntegration

    def managed_dirs(self) -> list[Path]:
        """Directories ``clean`` deletes, each strictly below its expected base.

        None of them may be the home directory or one of its parents.
        """
        dirs = [
            (self.paths.state_root, self.paths.state_base),
            (self.paths.opencode_dir, self.paths.config_home),
            (self.paths.secret_dir, self.paths.config_home),
        ]
        checked = []
        for path, base in dirs:
            validate_path_containment(path, base)
            if path == base:
                raise PathTraversalError(f"refusing to remove base directory {base}")
            validate_not_enclosing(path, self.paths.home)
            checked.append(path)
        return checked

    def clean(
        self, *, announce: Callable[[Sequence[Path]], None] | None = None
    ) -> CleanResult:
        """Confirm with the operator, then remove everything.

        *announce*, when given, is called with the paths about to be removed
        before the confirmation question is asked.
        """
        targets = self.managed_dirs()
        if not self.prompt.is_interactive():
            raise NoConfirmationError("clean requires an interactive terminal to confirm")
        if announce is not None:
            announce(targets)
        if not self.prompt.confirm(CONFIRM_MESSAGE):
            raise NoConfirmationError("clean cancelled")

        result = CleanResult()
        for directory in targets:
            if directory.is_dir():
                shutil.rmtree(directory)
                result.removed_dirs.append(directory)
                LOGGER.info("clean: removed %s", directory)

        for rc_file in self.paths.shell_candidates:
            validate_path_containment(rc_file, self.paths.home)
            outcome = self.shell.remove_block(rc_file)
            if outcome.removed_lines:
                result.cleaned_shell_files.append(rc_file)
                LOGGER.info("clean: removed integration block from %s", rc_file)
        return result


__all__ = ["CONFIRM_MESSAGE", "CleanResult", "Cleaner"]
