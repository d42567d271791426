"""Atomic file writes used for every file the installer makes authoritative.

Content is written to a sibling temporary file, given its final permission
bits, and only then renamed onto the target. A crash at any point leaves the
target holding either its previous content or the complete new content.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

LOGGER = logging.getLogger(__name__)

PRIVATE_DIR_MODE = 0o700
PRIVATE_FILE_MODE = 0o600


@dataclass(slots=True, frozen=True)
class WriteResult:
    """Outcome of a single atomic write."""

    path: Path
    mode: int
    created_parent: bool


def ensure_private_dir(path: Path) -> bool:
    """Create *path* with owner-only permissions, returning ``True`` if created."""
    if path.is_dir():
        return False
    path.mkdir(parents=True, mode=PRIVATE_DIR_MODE, exist_ok=True)
    os.chmod(path, PRIVATE_DIR_MODE)
    LOGGER.debug("created directory %s", path)
    return True


@dataclass(slots=True)
class AtomicWriter:
    """Write files via temp-file-then-rename."""

    def write(self, path: Path, mode: int, content: str | bytes) -> WriteResult:
        """Atomically replace *path* with *content* at permission *mode*."""
        created_parent = ensure_private_dir(path.parent)
        data = content.encode("utf-8") if isinstance(content, str) else content

        tmp_fd, tmp_name = tempfile.mkstemp(
            dir=str(path.parent),
            prefix=f".{path.name}.{os.getpid()}.",
            suffix=".tmp",
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, path)
        finally:
            tmp_path.unlink(missing_ok=True)

        LOGGER.debug("wrote %s (%d bytes, mode %04o)", path, len(data), mode)
        return WriteResult(path=path, mode=mode, created_parent=created_parent)

    def copy(self, source: Path, destination: Path, *, mode: int | None = None) -> WriteResult:
        """Copy *source* onto *destination* atomically.

        The source's permission bits are used unless *mode* is given;
        timestamps are carried over once the new content is in place.
        """
        source_mode = source.stat().st_mode & 0o777
        result = self.write(
            destination,
            source_mode if mode is None else mode,
            source.read_bytes(),
        )
        shutil.copystat(source, destination)
        if mode is not None:
            os.chmod(destination, mode)
        return result


__all__ = [
    "AtomicWriter",
    "PRIVATE_DIR_MODE",
    "PRIVATE_FILE_MODE",
    "WriteResult",
    "ensure_private_dir",
]
