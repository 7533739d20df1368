"""Advisory file locks guarding a bblctl state directory.

Only one command may mutate a given state directory at a time. The engine
itself assumes that exclusion; the CLI provides it by holding an exclusive
``fcntl`` lock on ``<state_dir>/.bblctl.lock`` for the lifetime of a command.
"""
from __future__ import annotations

import fcntl
import json
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

LOCK_FILENAME = ".bblctl.lock"
_POLL_INTERVAL = 0.05


class LockTimeoutError(TimeoutError):
    """Raised when a lock cannot be acquired before the timeout elapses."""


@dataclass(frozen=True)
class LockHandle:
    """Information about an acquired lock."""

    path: Path
    wait_ms: int


class LockManager:
    """Acquire the exclusive lock for a state directory."""

    def __init__(self, state_dir: Path, default_timeout: float = 30.0) -> None:
        """Store the state directory and the default acquisition timeout."""
        self.state_dir = Path(state_dir).expanduser()
        self.default_timeout = default_timeout

    @property
    def lock_path(self) -> Path:
        """Return the lockfile path for the managed state directory."""
        return self.state_dir / LOCK_FILENAME

    @contextmanager
    def state_lock(self, *, timeout: float | None = None) -> Iterator[LockHandle]:
        """Hold the state directory lock for the duration of the block."""
        limit = self.default_timeout if timeout is None else timeout
        self.state_dir.mkdir(parents=True, exist_ok=True)
        path = self.lock_path
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
        started = time.monotonic()
        try:
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() - started >= limit:
                        raise LockTimeoutError(
                            f"Timed out after {limit:.1f}s waiting for lock {path}; "
                            "another bblctl command is running against this state directory."
                        ) from None
                    time.sleep(_POLL_INTERVAL)
            wait_ms = int((time.monotonic() - started) * 1000)
            _write_metadata(fd, path)
            try:
                yield LockHandle(path=path, wait_ms=wait_ms)
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)


def _write_metadata(fd: int, path: Path) -> None:
    payload = {
        "pid": os.getpid(),
        "path": str(path),
        "acquired_at": datetime.now(tz=UTC).isoformat(timespec="seconds"),
    }
    os.ftruncate(fd, 0)
    os.lseek(fd, 0, os.SEEK_SET)
    os.write(fd, json.dumps(payload).encode("utf-8"))


__all__ = ["LockHandle", "LockManager", "LockTimeoutError"]
