"""Failure-mode tests for the structured logging subsystem."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from straylight.logging import StructuredLogger


def _records(logger: StructuredLogger) -> list[dict[str, object]]:
    path = logger.operations_log
    assert path is not None
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger._enabled is False  # type: ignore[attr-defined]
    assert logger.operations_log is None

    with logger.operation("snapshot", args={"foo": "bar"}) as op:
        op.success("done", changed=0)


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger._operations_log_path  # type: ignore[attr-defined]

    original_open = Path.open

    def fail_once(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_once)

    with logger.operation("stage") as op:
        op.success("done", changed=0)

    assert logger._enabled is False  # type: ignore[attr-defined]

    # Subsequent operations should not raise even though logger is disabled.
    with logger.operation("entry") as op:
        op.success("done", changed=0)


def test_disabled_logger_creates_nothing(tmp_path: Path) -> None:
    """The read-only logger never touches the filesystem."""
    logger = StructuredLogger.disabled()

    with logger.operation("status") as op:
        op.success("Reported status.")

    assert logger.operations_log is None
    assert list(tmp_path.iterdir()) == []


def test_operation_records_steps_and_actor(tmp_path: Path) -> None:
    """One JSON line per operation carries steps, actor and timings."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("run", target={"kind": "installation"}) as op:
        op.add_step("snapshot", detail=tmp_path / "state")
        op.add_step("verify", status="warning")
        op.success("Installation complete.", changed=3, backups=["recovery-1"])

    (record,) = _records(logger)
    assert record["command"] == "run"
    assert record["target"] == {"kind": "installation"}
    assert record["steps"] == [
        {"name": "snapshot", "status": "success", "detail": str(tmp_path / "state")},
        {"name": "verify", "status": "warning"},
    ]
    assert record["result"]["status"] == "success"  # type: ignore[index]
    assert record["result"]["changed"] == 3  # type: ignore[index]
    assert set(record["actor"]) == {"user", "uid", "pid"}  # type: ignore[arg-type]
    assert isinstance(record["duration_ms"], int)


def test_operation_without_result_defaults_to_success(tmp_path: Path) -> None:
    """Leaving the block without a result records an implicit success."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("help"):
        pass

    (record,) = _records(logger)
    assert record["result"]["status"] == "success"  # type: ignore[index]


def test_unhandled_exception_is_recorded_and_reraised(tmp_path: Path) -> None:
    """Exceptions escaping the block are logged as errors and propagate."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(ValueError, match="broken"):
        with logger.operation("abort"):
            raise ValueError("broken")

    (record,) = _records(logger)
    assert record["result"]["status"] == "error"  # type: ignore[index]
    assert record["result"]["errors"] == ["broken"]  # type: ignore[index]


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("verify", args={"path": Path("foo")}) as op:
        op.warning(
            "warned",
            warnings=("probe offline",),
            errors=("err",),
            changed=1,
            backups=["recovery-20260101T000000000000Z"],
            context={"path": Path("/var/lib"), "obj": Custom()},
        )

    (record,) = _records(logger)
    result = record["result"]
    assert result["status"] == "warning"  # type: ignore[index]
    assert result["warnings"] == ["probe offline"]  # type: ignore[index]
    assert result["errors"] == ["err"]  # type: ignore[index]
    assert result["backups"] == ["recovery-20260101T000000000000Z"]  # type: ignore[index]
    assert result["context"] == {"path": "/var/lib", "obj": "<custom>"}  # type: ignore[index]
    assert record["args"] == {"path": "foo"}


def test_operation_scope_error_defaults_error_list(tmp_path: Path) -> None:
    """Errors should default to the message when not provided."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("clean") as op:
        op.error("boom", errors=None, rc=2, context={"value": {1, 2}})

    (record,) = _records(logger)
    result = record["result"]
    assert result["status"] == "error"  # type: ignore[index]
    assert result["errors"] == ["boom"]  # type: ignore[index]
    assert result["rc"] == 2  # type: ignore[index]
    assert result["context"] == {"value": "{1, 2}"}  # type: ignore[index]
