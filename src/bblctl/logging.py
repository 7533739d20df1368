"""Structured operation logging for bblctl.

Every CLI operation appends a single JSON record to
``<logs_dir>/operations.jsonl`` describing the command, its (redacted)
arguments, the steps that ran, and the final result. The logger never raises:
when the directory or file cannot be written it disables itself and the CLI
keeps working.
"""
from __future__ import annotations

import getpass
import json
import os
import time
import uuid
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

_SECRET_MARKERS = ("secret", "password", "private_key", "service_account_key", "token")
_REDACTED = "<redacted>"


def _now() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _json_safe(value: object) -> object:
    """Return *value* converted into something ``json.dumps`` accepts."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return str(value)


def _redact(args: Mapping[str, object]) -> dict[str, object]:
    redacted: dict[str, object] = {}
    for key, value in args.items():
        lowered = str(key).lower()
        if value and any(marker in lowered for marker in _SECRET_MARKERS):
            redacted[str(key)] = _REDACTED
        elif isinstance(value, Mapping):
            redacted[str(key)] = _redact(value)
        else:
            redacted[str(key)] = _json_safe(value)
    return redacted


@dataclass
class OperationScope:
    """Collects steps and the outcome of a single CLI operation."""

    logger: StructuredLogger
    command: str
    args: dict[str, object] = field(default_factory=dict)
    target: dict[str, object] = field(default_factory=dict)
    op_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: str = field(default_factory=_now)
    steps: list[dict[str, object]] = field(default_factory=list)
    lock_wait_ms: int | None = None
    result: dict[str, object] | None = None
    _start: float = field(default_factory=time.monotonic, repr=False)

    def add_step(self, name: str, *, status: str = "success", detail: str | None = None) -> None:
        """Record a named step and its status."""
        step: dict[str, object] = {"name": name, "status": status, "ts": _now()}
        if detail:
            step["detail"] = detail
        self.steps.append(step)

    def set_lock_wait_ms(self, value: int) -> None:
        """Record how long the operation waited for its lock."""
        self.lock_wait_ms = value

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Iterable[str] = (),
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result("success", message, changed=changed, warnings=warnings, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Iterable[str] = (),
        errors: Iterable[str] = (),
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=warnings,
            errors=errors,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Iterable[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            errors=list(errors) if errors else [message],
            rc=rc,
            context=context,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int = 0,
        warnings: Iterable[str] = (),
        errors: Iterable[str] = (),
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": list(warnings),
            "errors": list(errors),
        }
        if rc is not None:
            result["rc"] = rc
        if context:
            result["context"] = _json_safe(dict(context))
        self.result = result

    def to_record(self) -> dict[str, object]:
        """Return the JSON record describing this operation."""
        return {
            "op_id": self.op_id,
            "ts": self.started_at,
            "user": _current_user(),
            "pid": os.getpid(),
            "command": self.command,
            "args": self.args,
            "target": self.target,
            "lock_wait_ms": self.lock_wait_ms,
            "duration_ms": int((time.monotonic() - self._start) * 1000),
            "steps": self.steps,
            "result": self.result,
        }


class StructuredLogger:
    """Append operation records to a JSON lines file."""

    def __init__(self, log_dir: Path) -> None:
        """Prepare *log_dir*, disabling the logger when it is unusable."""
        self._log_dir = Path(log_dir).expanduser()
        self._operations_log_path = self._log_dir / "operations.jsonl"
        self._enabled = True
        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False

    @property
    def operations_log_path(self) -> Path:
        """Return the path of the operations log."""
        return self._operations_log_path

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it on exit."""
        scope = OperationScope(
            logger=self,
            command=command,
            args=_redact(args or {}),
            target={str(key): _json_safe(value) for key, value in (target or {}).items()},
        )
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                message = str(exc) or type(exc).__name__
                scope.error(message, errors=[message])
            raise
        else:
            if scope.result is None:
                scope.success("Operation complete.")
        finally:
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError:
            self._enabled = False


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):  # pragma: no cover - depends on host passwd db
        return str(os.getuid())


__all__ = ["OperationScope", "StructuredLogger"]
