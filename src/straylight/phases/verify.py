"""Phase 3: post-install checks. Only missing artifacts are fatal."""
from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum

from ..errors import MissingArtifactError
from ..paths import InstallPaths
from ..payload import INSTALL_HINT, read_secret_file
from ..providers.openrouter import ApiProbe, ProbeStatus

LOGGER = logging.getLogger(__name__)


class FindingLevel(str, Enum):
    """Severity of a verification finding."""

    INFO = "info"
    WARNING = "warning"


@dataclass(slots=True, frozen=True)
class Finding:
    """One observation made by :class:`Verifier`."""

    level: FindingLevel
    code: str
    message: str


@dataclass(slots=True)
class VerifyReport:
    """Findings collected during one verify run."""

    findings: list[Finding] = field(default_factory=list)

    def info(self, code: str, message: str) -> None:
        self.findings.append(Finding(FindingLevel.INFO, code, message))

    def warn(self, code: str, message: str) -> None:
        self.findings.append(Finding(FindingLevel.WARNING, code, message))

    @property
    def warnings(self) -> list[Finding]:
        """Findings at warning level."""
        return [item for item in self.findings if item.level is FindingLevel.WARNING]

    def codes(self) -> list[str]:
        """Return finding codes in the order they were recorded."""
        return [item.code for item in self.findings]


@dataclass(slots=True)
class Verifier:
    """Inspect installed files, optionally probe the API, look for the binary."""

    paths: InstallPaths
    secret_variable: str
    binary: str = "opencode"
    probe: ApiProbe | None = None
    search_path: str | None = None

    def verify(self) -> VerifyReport:
        """Run every check and return the collected findings."""
        report = VerifyReport()
        for target in self.paths.targets():
            if not target.path.is_file():
                raise MissingArtifactError(f"{target.label} file missing: {target.path}")

        for target in self.paths.targets():
            mode = target.path.stat().st_mode & 0o777
            if mode != target.mode:
                report.warn(
                    "permissions",
                    f"{target.path} has mode {mode:04o}, expected {target.mode:04o}",
                )
            else:
                report.info("permissions", f"{target.path} is {mode:04o}")

        self._check_probe(report)
        self._check_binary(report)
        return report

    def _check_probe(self, report: VerifyReport) -> None:
        if self.probe is None:
            report.info("probe-skipped", "connectivity probe disabled")
            return
        secret = read_secret_file(self.paths.secret_file, self.secret_variable)
        if not secret:
            report.warn("probe-skipped", f"no {self.secret_variable} found in {self.paths.secret_file}")
            return

        outcome = self.probe.check(secret)
        LOGGER.debug("probe outcome: %s", outcome)
        if outcome.status is ProbeStatus.HEALTHY:
            report.info("probe", "API reachable, key accepted")
        elif outcome.status is ProbeStatus.UNAUTHORIZED:
            report.warn("probe-unauthorized", "API rejected the key (HTTP 401)")
        elif outcome.status is ProbeStatus.OFFLINE:
            detail = f": {outcome.detail}" if outcome.detail else ""
            report.warn("probe-offline", f"API unreachable{detail}")
        else:
            report.warn("probe-unexpected", f"unexpected API response (HTTP {outcome.http_status})")

    def _check_binary(self, report: VerifyReport) -> None:
        location = shutil.which(self.binary, path=self.search_path)
        if location:
            report.info("binary", f"{self.binary} found at {location}")
        else:
            report.info("binary-missing", f"{self.binary} not on PATH; install from {INSTALL_HINT}")


__all__ = ["Finding", "FindingLevel", "VerifyReport", "Verifier"]
