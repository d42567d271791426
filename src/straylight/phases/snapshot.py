"""Phase 0: capture the pre-install state in a fresh recovery record."""
from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass
from datetime import UTC, datetime

from .. import __version__
from ..atomic import PRIVATE_DIR_MODE, PRIVATE_FILE_MODE, AtomicWriter
from ..errors import SnapshotError
from ..paths import InstallPaths
from ..recovery import METADATA_FILE, RecoveryRecord

LOGGER = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


@dataclass(slots=True)
class SnapshotManager:
    """Create one recovery record per invocation."""

    paths: InstallPaths
    writer: AtomicWriter

    def take(self, run_id: str) -> RecoveryRecord:
        """Back up every existing target and shell file under a new record."""
        record_dir = self.paths.recovery_dir(run_id)
        try:
            self.paths.state_root.mkdir(parents=True, exist_ok=True, mode=PRIVATE_DIR_MODE)
            record_dir.mkdir(mode=PRIVATE_DIR_MODE)
            os.chmod(record_dir, PRIVATE_DIR_MODE)
        except FileExistsError as exc:
            raise SnapshotError(f"recovery record already exists: {record_dir}") from exc
        except OSError as exc:
            raise SnapshotError(f"cannot create recovery record {record_dir}: {exc}") from exc

        record = RecoveryRecord(record_dir)
        targets: dict[str, object] = {}
        for target in self.paths.targets():
            existed = target.path.is_file()
            if existed:
                shutil.copy2(target.path, record.backup_path(target.backup_name))
            targets[target.label] = {
                "path": str(target.path),
                "existed": existed,
                "dir_existed": target.path.parent.is_dir(),
            }

        shell_files: dict[str, str | None] = {}
        for rc_file in self.paths.shell_candidates:
            backup_name: str | None = None
            if rc_file.is_file():
                backup_name = self.paths.shell_backup_name(rc_file)
                shutil.copy2(rc_file, record.backup_path(backup_name))
            shell_files[str(rc_file)] = backup_name

        metadata = {
            "run_id": run_id,
            "created_at": _now_iso(),
            "tool_version": __version__,
            "targets": targets,
            "shell_files": shell_files,
        }
        self.writer.write(
            record.backup_path(METADATA_FILE),
            PRIVATE_FILE_MODE,
            json.dumps(metadata, indent=2) + "\n",
        )
        LOGGER.info("snapshot: state %s", record_dir)
        return record


__all__ = ["SnapshotManager"]
