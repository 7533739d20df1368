"""Failure-mode tests for the structured logging subsystem."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from bblctl.logging import StructuredLogger


def _records(logger: StructuredLogger) -> list[dict[str, object]]:
    lines = logger.operations_log_path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


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

    with logger.operation("up", args={"iaas": "aws"}) as op:
        op.success("done", changed=0)


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger.operations_log_path

    original_open = Path.open

    def fail_once(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_once)

    with logger.operation("rotate") as op:
        op.success("done", changed=0)

    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("destroy") as op:
        op.success("done", changed=0)


def test_operation_records_steps_and_result(tmp_path: Path) -> None:
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("rotate", target={"state_dir": tmp_path}) as op:
        op.set_lock_wait_ms(12)
        op.add_step("keypair.rotate", detail="rotated key pair kp")
        op.add_step("bosh.create_director", status="skipped")
        op.success("rotate complete", changed=1, context={"env_id": "bbl-env-lake"})

    record = _records(logger)[0]
    assert record["command"] == "rotate"
    assert record["target"] == {"state_dir": str(tmp_path)}
    assert record["lock_wait_ms"] == 12
    steps = record["steps"]
    assert isinstance(steps, list)
    assert [step["name"] for step in steps] == ["keypair.rotate", "bosh.create_director"]
    assert steps[0]["detail"] == "rotated key pair kp"
    assert steps[1]["status"] == "skipped"
    assert record["result"] == {
        "status": "success",
        "message": "rotate complete",
        "changed": 1,
        "warnings": [],
        "errors": [],
        "context": {"env_id": "bbl-env-lake"},
    }


def test_operation_redacts_secret_arguments(tmp_path: Path) -> None:
    """Credentials never reach the operations log."""
    logger = StructuredLogger(tmp_path / "logs")

    args = {
        "iaas": "aws",
        "aws_secret_access_key": "s3cr3t",
        "gcp_service_account_key": "{}",
        "azure": {"client_secret": "hidden", "region": "westus"},
        "director_password": "",
    }
    with logger.operation("up", args=args) as op:
        op.success("done")

    recorded = _records(logger)[0]["args"]
    assert recorded == {
        "iaas": "aws",
        "aws_secret_access_key": "<redacted>",
        "gcp_service_account_key": "<redacted>",
        "azure": {"client_secret": "<redacted>", "region": "westus"},
        "director_password": "",
    }
    assert "s3cr3t" not in logger.operations_log_path.read_text(encoding="utf-8")


def test_operation_records_error_for_unhandled_exception(tmp_path: Path) -> None:
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(RuntimeError):
        with logger.operation("destroy"):
            raise RuntimeError("terraform exploded")

    result = _records(logger)[0]["result"]
    assert isinstance(result, dict)
    assert result["status"] == "error"
    assert result["errors"] == ["terraform exploded"]


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("up", args={"path": Path("foo")}) as op:
        op.warning(
            "warned",
            warnings=("note",),
            errors=("err",),
            changed=1,
            context={"path": Path("/var/lib"), "obj": Custom()},
        )

    result = _records(logger)[0]["result"]
    assert isinstance(result, dict)
    assert result["status"] == "warning"
    assert result["warnings"] == ["note"]
    assert result["errors"] == ["err"]
    assert result["context"] == {"path": "/var/lib", "obj": "<custom>"}


def test_operation_scope_error_defaults_error_list(tmp_path: Path) -> None:
    """Errors should default to the message when not provided."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("rotate") as op:
        op.error("boom", errors=None, rc=4, context={"value": {1, 2}})

    result = _records(logger)[0]["result"]
    assert isinstance(result, dict)
    assert result["status"] == "error"
    assert result["errors"] == ["boom"]
    assert result["rc"] == 4
    assert result["context"] == {"value": "{1, 2}"}
