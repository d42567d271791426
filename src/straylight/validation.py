"""Pure validation helpers for paths and secrets."""
from __future__ import annotations

import os
from pathlib import Path

from .errors import PathTraversalError, SecretFormatError, SecretFormatKind

SECRET_MIN_LENGTH = 8
SECRET_MAX_LENGTH = 256

# Characters with meaning to a POSIX shell; the secret ends up inside a
# double-quoted ``export`` line that shells source on every login.
FORBIDDEN_SECRET_CHARACTERS = frozenset("'\"`$;|&><(){}[]\\")


def _normalise(value: str | os.PathLike[str]) -> str:
    return os.path.normpath(os.fspath(value))


def _is_within(path: str, base: str) -> bool:
    if path == base:
        return True
    prefix = base if base.endswith(os.sep) else base + os.sep
    return path.startswith(prefix)


def validate_path_containment(
    path: str | os.PathLike[str],
    base: str | os.PathLike[str],
    *,
    resolve: bool = False,
) -> Path:
    """Ensure *path* is *base* itself or a descendant of it.

    The comparison is a textual prefix match on normalised paths, so
    ``base/../elsewhere`` is rejected. With ``resolve=True`` the
    symlink-resolved forms must match as well, which catches a recovery
    directory that was swapped for a link pointing elsewhere.
    """
    normalised_path = _normalise(path)
    normalised_base = _normalise(base)
    if not _is_within(normalised_path, normalised_base):
        raise PathTraversalError(
            f"path validation failed: {normalised_path} not under {normalised_base}"
        )
    if resolve:
        resolved_path = os.path.realpath(normalised_path)
        resolved_base = os.path.realpath(normalised_base)
        if not _is_within(resolved_path, resolved_base):
            raise PathTraversalError(
                f"path validation failed: {normalised_path} resolves to "
                f"{resolved_path}, outside {resolved_base}"
            )
    return Path(normalised_path)


def validate_not_enclosing(
    path: str | os.PathLike[str],
    protected: str | os.PathLike[str],
) -> Path:
    """Ensure *path* is neither *protected* nor one of its ancestors.

    Directories the installer may delete recursively go through this check
    with the home directory as *protected*.
    """
    normalised_path = _normalise(path)
    normalised_protected = _normalise(protected)
    if _is_within(normalised_protected, normalised_path):
        raise PathTraversalError(
            f"path validation failed: {normalised_path} contains {normalised_protected}"
        )
    return Path(normalised_path)


def validate_secret_format(secret: str, *, name: str = "secret") -> str:
    """Return *secret* unchanged when it passes the sanity checks."""
    if not secret:
        raise SecretFormatError(SecretFormatKind.EMPTY, f"{name} is empty")
    if len(secret) < SECRET_MIN_LENGTH:
        raise SecretFormatError(
            SecretFormatKind.TOO_SHORT,
            f"{name} too short (minimum {SECRET_MIN_LENGTH} characters)",
        )
    if len(secret) > SECRET_MAX_LENGTH:
        raise SecretFormatError(
            SecretFormatKind.TOO_LONG,
            f"{name} too long (maximum {SECRET_MAX_LENGTH} characters)",
        )
    for char in secret:
        if char in FORBIDDEN_SECRET_CHARACTERS or ord(char) < 0x20 or ord(char) == 0x7F:
            raise SecretFormatError(
                SecretFormatKind.FORBIDDEN_CHARACTERS,
                f"{name} contains invalid characters",
            )
    return secret


__all__ = [
    "FORBIDDEN_SECRET_CHARACTERS",
    "SECRET_MAX_LENGTH",
    "SECRET_MIN_LENGTH",
    "validate_not_enclosing",
    "validate_path_containment",
    "validate_secret_format",
]
