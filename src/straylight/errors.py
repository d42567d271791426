"""Fatal error taxonomy shared by every phase and command.

Each error carries the exit code the CLI terminates with. Non-fatal conditions
(permission drift, offline probe, missing opencode binary) are never raised;
they are reported as findings or warnings instead.
"""
from __future__ import annotations

from enum import Enum

from .exit_codes import ExitCode


class InstallerError(RuntimeError):
    """Base class for fatal installer errors."""

    exit_code: ExitCode = ExitCode.VALIDATION


class InstallerEnvironmentError(InstallerError):
    """Raised when the home directory or a required location is unusable."""

    exit_code = ExitCode.ENVIRONMENT


class PathTraversalError(InstallerError):
    """Raised when a path escapes the directory it must live under."""

    exit_code = ExitCode.VALIDATION


class SecretFormatKind(str, Enum):
    """Reasons a secret fails format validation."""

    EMPTY = "empty"
    TOO_SHORT = "too-short"
    TOO_LONG = "too-long"
    FORBIDDEN_CHARACTERS = "forbidden-characters"


class SecretFormatError(InstallerError):
    """Raised when a secret does not pass format validation."""

    exit_code = ExitCode.VALIDATION

    def __init__(self, kind: SecretFormatKind, message: str) -> None:
        """Record the failure *kind* alongside the human readable message."""
        super().__init__(message)
        self.kind = kind


class SnapshotError(InstallerError):
    """Raised when a recovery record cannot be created."""

    exit_code = ExitCode.ENVIRONMENT


class NoCredentialSourceError(InstallerError):
    """Raised when no secret is available and no terminal can be prompted."""

    exit_code = ExitCode.ENVIRONMENT


class IncompleteStageError(InstallerError):
    """Raised when ``entry`` runs without a complete staging area."""

    exit_code = ExitCode.STATE


class MissingArtifactError(InstallerError):
    """Raised when ``verify`` finds an installed file missing."""

    exit_code = ExitCode.STATE


class NoRecoveryStateError(InstallerError):
    """Raised when ``abort`` has no recovery record to restore from."""

    exit_code = ExitCode.STATE


class NoConfirmationError(InstallerError):
    """Raised when ``clean`` cannot obtain interactive confirmation."""

    exit_code = ExitCode.VALIDATION


__all__ = [
    "IncompleteStageError",
    "InstallerEnvironmentError",
    "InstallerError",
    "MissingArtifactError",
    "NoConfirmationError",
    "NoCredentialSourceError",
    "NoRecoveryStateError",
    "PathTraversalError",
    "SecretFormatError",
    "SecretFormatKind",
    "SnapshotError",
]
