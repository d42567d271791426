"""Read-only summary of the current installation (``status``)."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path

from . import __version__
from .paths import InstallPaths
from .recovery import list_recovery_records
from .shell import ShellIntegration


@dataclass(slots=True, frozen=True)
class StatusReport:
    version: str
    config_file: Path
    config_exists: bool
    secret_file: Path
    secret_exists: bool
    secret_mode: int | None
    state_root: Path
    state_root_exists: bool
    recovery_records: int
    latest_record: str | None
    shell_rc: Path
    shell_configured: bool

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly representation."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Path):
                data[key] = str(value)
        if self.secret_mode is not None:
            data["secret_mode"] = f"{self.secret_mode:04o}"
        return data


@dataclass(slots=True)
class StatusReporter:
    paths: InstallPaths
    shell: ShellIntegration

    def report(self) -> StatusReport:
        """Inspect the filesystem without modifying it."""
        paths = self.paths
        records = list_recovery_records(paths.state_root)
        secret_mode = None
        if paths.secret_file.is_file():
            secret_mode = paths.secret_file.stat().st_mode & 0o777
        return StatusReport(
            version=__version__,
            config_file=paths.config_file,
            config_exists=paths.config_file.is_file(),
            secret_file=paths.secret_file,
            secret_exists=paths.secret_file.is_file(),
            secret_mode=secret_mode,
            state_root=paths.state_root,
            state_root_exists=paths.state_root.is_dir(),
            recovery_records=len(records),
            latest_record=records[-1].run_id if records else None,
            shell_rc=paths.preferred_shell_rc,
            shell_configured=self.shell.has_block(paths.preferred_shell_rc),
        )


__all__ = ["StatusReport", "StatusReporter"]
