"""Recovery records and the ``abort`` rollback engine.

A recovery record is a ``recovery-<run_id>`` directory under the state root.
The *absence* of a target's backup inside a record means the target did not
exist before the install, so rollback deletes it instead of restoring it.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from packaging.version import InvalidVersion, Version

from . import __version__
from .atomic import AtomicWriter
from .errors import NoRecoveryStateError
from .paths import RECOVERY_PREFIX, InstallPaths, InstallationTarget
from .shell import ShellIntegration
from .validation import validate_path_containment

LOGGER = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"


@dataclass(frozen=True, slots=True)
class RecoveryRecord:
    """A timestamped snapshot of pre-install state."""

    path: Path

    @property
    def run_id(self) -> str:
        """Identifier shared with the run's staging area."""
        return self.path.name[len(RECOVERY_PREFIX) :]

    @property
    def metadata_path(self) -> Path:
        """Location of the record's ``metadata.json``."""
        return self.path / METADATA_FILE

    def backup_path(self, name: str) -> Path:
        """Return the path a backup called *name* would have."""
        return self.path / name

    def has_backup(self, name: str) -> bool:
        """Return ``True`` when the record holds a backup called *name*."""
        return self.backup_path(name).is_file()

    def read_metadata(self) -> dict[str, object]:
        """Return parsed metadata, or an empty mapping if missing or corrupt."""
        try:
            data = json.loads(self.metadata_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return {}
        return dict(data) if isinstance(data, Mapping) else {}


def list_recovery_records(state_root: Path) -> list[RecoveryRecord]:
    """Return recovery records under *state_root*, oldest first."""
    if not state_root.is_dir():
        return []
    records = [
        RecoveryRecord(entry)
        for entry in state_root.iterdir()
        if entry.name.startswith(RECOVERY_PREFIX) and entry.is_dir()
    ]
    return sorted(records, key=lambda record: record.path.name)


def latest_recovery_record(state_root: Path) -> RecoveryRecord | None:
    """Return the most recent record (greatest name), if any."""
    records = list_recovery_records(state_root)
    return records[-1] if records else None


@dataclass(slots=True)
class RollbackResult:
    """Summary of an ``abort`` run."""

    record: RecoveryRecord
    restored: list[Path] = field(default_factory=list)
    removed: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def restored_count(self) -> int:
        """Number of files copied back from the record."""
        return len(self.restored)


@dataclass(slots=True)
class RollbackEngine:
    """Return targets and shell files to the state captured in a record."""

    paths: InstallPaths
    shell: ShellIntegration
    writer: AtomicWriter = field(default_factory=AtomicWriter)

    def abort(self) -> RollbackResult:
        """Roll back using the most recent recovery record."""
        state_root = self.paths.state_root
        if not state_root.is_dir():
            raise NoRecoveryStateError(f"no recovery state directory: {state_root}")
        record = latest_recovery_record(state_root)
        if record is None:
            raise NoRecoveryStateError(f"no recovery state found under {state_root}")
        validate_path_containment(record.path, state_root, resolve=True)

        result = RollbackResult(record=record)
        metadata = record.read_metadata()
        self._check_version(metadata, result)

        for target in self.paths.targets():
            try:
                self._roll_back_target(record, target, metadata, result)
            except OSError as exc:
                result.warnings.append(f"could not roll back {target.path}: {exc}")
        for rc_file in self.paths.shell_candidates:
            try:
                self._roll_back_shell_file(record, rc_file, result)
            except OSError as exc:
                result.warnings.append(f"could not roll back {rc_file}: {exc}")

        LOGGER.info("restored %d files from %s", result.restored_count, record.path)
        return result

    def _check_version(self, metadata: Mapping[str, object], result: RollbackResult) -> None:
        recorded = metadata.get("tool_version")
        if not isinstance(recorded, str):
            return
        try:
            newer = Version(recorded) > Version(__version__)
        except InvalidVersion:
            result.warnings.append(f"recovery record has unparsable tool version {recorded!r}")
            return
        if newer:
            result.warnings.append(
                f"recovery record was written by straylight {recorded}, "
                f"newer than this version ({__version__})"
            )

    def _roll_back_target(
        self,
        record: RecoveryRecord,
        target: InstallationTarget,
        metadata: Mapping[str, object],
        result: RollbackResult,
    ) -> None:
        validate_path_containment(target.path, self.paths.config_home)
        backup = record.backup_path(target.backup_name)
        if backup.is_file():
            self.writer.copy(backup, target.path)
            result.restored.append(target.path)
            return
        if target.path.exists():
            target.path.unlink()
            result.removed.append(target.path)
        if _target_dir_existed(metadata, target.label) is False:
            self._remove_empty_dir(target.path.parent, result)

    def _remove_empty_dir(self, directory: Path, result: RollbackResult) -> None:
        validate_path_containment(directory, self.paths.config_home)
        if directory == self.paths.config_home:
            return
        try:
            directory.rmdir()
        except FileNotFoundError:
            return
        except OSError:
            LOGGER.debug("leaving non-empty directory %s in place", directory)
            return
        result.removed.append(directory)

    def _roll_back_shell_file(
        self,
        record: RecoveryRecord,
        rc_file: Path,
        result: RollbackResult,
    ) -> None:
        validate_path_containment(rc_file, self.paths.home)
        backup = record.backup_path(self.paths.shell_backup_name(rc_file))
        if backup.is_file():
            self.writer.copy(backup, rc_file)
            result.restored.append(rc_file)
            return
        # No backup: the file did not exist at snapshot time, so any copy on
        # disk now was created by the install.
        if rc_file.is_file():
            outcome = self.shell.remove_block(rc_file, delete_if_empty=True)
            if outcome.deleted_file:
                result.removed.append(rc_file)
            elif outcome.removed_lines:
                result.warnings.append(
                    f"{rc_file} was created after the snapshot; removed the integration "
                    "block and kept the remaining content"
                )


def _target_dir_existed(metadata: Mapping[str, object], label: str) -> bool | None:
    targets = metadata.get("targets")
    if not isinstance(targets, Mapping):
        return None
    entry = targets.get(label)
    if not isinstance(entry, Mapping):
        return None
    value = entry.get("dir_existed")
    return value if isinstance(value, bool) else None


__all__ = [
    "METADATA_FILE",
    "RecoveryRecord",
    "RollbackEngine",
    "RollbackResult",
    "latest_recovery_record",
    "list_recovery_records",
]
