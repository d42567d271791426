"""Marker-delimited shell integration block handling.

Detection and removal of the block are driven by :class:`BlockScanner`, a
two-state line scanner:

``BEFORE_MARKER``
    Lines are user content and are kept. The exact marker line switches to
    ``INSIDE_BLOCK`` and is dropped.
``INSIDE_BLOCK``
    Blank lines, comments, ``alias`` definitions and the ``[ -f ... ]``
    source line belong to the block and are dropped. The first line of any
    other kind switches back to ``BEFORE_MARKER`` and is kept.

A hand-written line between two aliases therefore ends the block early and
every line after it survives removal.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .atomic import AtomicWriter
from .payload import ALIASES, MARKER
from .templates import TemplateEngine

LOGGER = logging.getLogger(__name__)

SHELL_BLOCK_TEMPLATE = "shell_block.j2"


class ScanState(Enum):
    """States of :class:`BlockScanner`."""

    BEFORE_MARKER = "before-marker"
    INSIDE_BLOCK = "inside-block"


def is_block_line(line: str) -> bool:
    """Return ``True`` for lines that may appear inside the integration block."""
    stripped = line.rstrip("\r\n")
    if not stripped.strip():
        return True
    return stripped.startswith(("#", "alias ", "[ -f "))


@dataclass(slots=True)
class ScanResult:
    """Outcome of scanning a shell file."""

    kept: list[str]
    markers: int
    removed: int


@dataclass(slots=True)
class BlockScanner:
    """Find and strip the integration block from shell file lines."""

    marker: str = MARKER
    state: ScanState = field(default=ScanState.BEFORE_MARKER, init=False)

    def contains_block(self, lines: Iterable[str]) -> bool:
        """Return ``True`` when any line is exactly the marker."""
        return any(line.rstrip("\r\n") == self.marker for line in lines)

    def strip(self, lines: Sequence[str]) -> ScanResult:
        """Return *lines* with every integration block removed.

        The separator written before the marker is removed along with the
        block: a preceding blank line is dropped, otherwise the newline that
        was added to terminate the preceding line is.
        """
        self.state = ScanState.BEFORE_MARKER
        kept: list[str] = []
        markers = 0
        removed = 0
        for line in lines:
            if self.state is ScanState.BEFORE_MARKER:
                if line.rstrip("\r\n") == self.marker:
                    markers += 1
                    removed += 1
                    if kept and not kept[-1].strip():
                        kept.pop()
                        removed += 1
                    elif kept and kept[-1].endswith("\n"):
                        kept[-1] = kept[-1][:-1]
                    self.state = ScanState.INSIDE_BLOCK
                    continue
                kept.append(line)
                continue

            if is_block_line(line):
                removed += 1
                continue
            self.state = ScanState.BEFORE_MARKER
            kept.append(line)
        self.state = ScanState.BEFORE_MARKER
        return ScanResult(kept=kept, markers=markers, removed=removed)


@dataclass(slots=True, frozen=True)
class EnsureResult:
    """Outcome of :meth:`ShellIntegration.ensure_block`."""

    rc_file: Path
    appended: bool


@dataclass(slots=True, frozen=True)
class RemoveResult:
    """Outcome of :meth:`ShellIntegration.remove_block`."""

    rc_file: Path
    removed_lines: int
    deleted_file: bool


@dataclass(slots=True)
class ShellIntegration:
    """Append and remove the integration block in shell startup files."""

    templates: TemplateEngine
    writer: AtomicWriter = field(default_factory=AtomicWriter)
    marker: str = MARKER

    def render_block(self, env_file: Path) -> str:
        """Return the block text for sourcing *env_file*."""
        return self.templates.render_to_string(
            SHELL_BLOCK_TEMPLATE,
            {"marker": self.marker, "env_file": str(env_file), "aliases": ALIASES},
        )

    def has_block(self, rc_file: Path) -> bool:
        """Return ``True`` when *rc_file* already carries the marker."""
        if not rc_file.is_file():
            return False
        return BlockScanner(self.marker).contains_block(_read_lines(rc_file))

    def ensure_block(self, rc_file: Path, env_file: Path) -> EnsureResult:
        """Append the block to *rc_file* unless the marker is already present.

        The file is only ever opened for appending; existing lines are never
        edited.
        """
        if self.has_block(rc_file):
            LOGGER.info("shell: already configured (%s)", rc_file)
            return EnsureResult(rc_file=rc_file, appended=False)

        existing = rc_file.read_bytes() if rc_file.is_file() else b""
        # A blank separator line, or just the newline an unterminated last
        # line is missing.
        prefix = "\n" if existing else ""
        block = self.render_block(env_file)
        rc_file.parent.mkdir(parents=True, exist_ok=True)
        with rc_file.open("a", encoding="utf-8") as handle:
            handle.write(prefix + block)
        LOGGER.info("shell: appended integration block to %s", rc_file)
        return EnsureResult(rc_file=rc_file, appended=True)

    def remove_block(self, rc_file: Path, *, delete_if_empty: bool = False) -> RemoveResult:
        """Strip the block from *rc_file*, rewriting it atomically with its mode."""
        if not rc_file.is_file():
            return RemoveResult(rc_file=rc_file, removed_lines=0, deleted_file=False)
        lines = _read_lines(rc_file)
        result = BlockScanner(self.marker).strip(lines)
        if result.markers == 0:
            return RemoveResult(rc_file=rc_file, removed_lines=0, deleted_file=False)

        content = "".join(result.kept).encode("utf-8", "surrogateescape")
        if delete_if_empty and not content.strip():
            rc_file.unlink()
            return RemoveResult(rc_file=rc_file, removed_lines=result.removed, deleted_file=True)

        mode = rc_file.stat().st_mode & 0o777
        self.writer.write(rc_file, mode, content)
        return RemoveResult(rc_file=rc_file, removed_lines=result.removed, deleted_file=False)


def _read_lines(path: Path) -> list[str]:
    with path.open("r", encoding="utf-8", errors="surrogateescape", newline="") as handle:
        return handle.readlines()


__all__ = [
    "BlockScanner",
    "EnsureResult",
    "RemoveResult",
    "ScanResult",
    "ScanState",
    "ShellIntegration",
    "is_block_line",
]
