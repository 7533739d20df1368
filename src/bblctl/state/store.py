"""Durable storage for the environment state.

The state lives in ``<state_dir>/bbl-state.yml``. Writes go to a temporary
file in the same directory that is then renamed over the previous document,
so a failed write never corrupts the last good state. Every ``set`` replaces
the whole document; there is no partial or merging write.
"""
from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

try:  # PyYAML is a runtime dependency declared in pyproject.toml
    import yaml
except Exception as exc:  # pragma: no cover - import failure handled in tests
    raise RuntimeError(
        "PyYAML is required to manage bblctl state. Install with `pip install bblctl`."
    ) from exc

from .models import State, StateFormatError

STATE_FILENAME = "bbl-state.yml"


class StateStoreError(RuntimeError):
    """Raised when the state document cannot be read or written."""


@dataclass(frozen=True)
class StateStore:
    """Load and persist the :class:`State` of one state directory."""

    root: Path

    def __post_init__(self) -> None:
        """Normalise the root path after initialisation."""
        object.__setattr__(self, "root", Path(self.root).expanduser())

    @property
    def path(self) -> Path:
        """Return the path of the state document."""
        return self.root / STATE_FILENAME

    def load(self) -> State:
        """Return the persisted state, or the empty state when none exists."""
        path = self.path
        if not path.exists():
            return State()
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise StateStoreError(f"Failed to parse state file {path}: {exc}") from exc
        except OSError as exc:
            raise StateStoreError(f"Failed to read state file {path}: {exc}") from exc
        if data is None:
            return State()
        if not isinstance(data, Mapping):
            raise StateStoreError(f"State file {path} must contain a mapping at the top level.")
        try:
            return State.from_dict(data)
        except StateFormatError as exc:
            raise StateStoreError(f"Invalid state file {path}: {exc}") from exc

    def set(self, state: State) -> None:
        """Atomically replace the persisted state with *state*.

        Persisting the empty state removes the document: the environment no
        longer exists.
        """
        if state.is_empty():
            self._remove()
            return
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp_fd, tmp_name = tempfile.mkstemp(dir=str(self.root), prefix=f".{STATE_FILENAME}.")
        except OSError as exc:
            raise StateStoreError(f"Failed to prepare state directory {self.root}: {exc}") from exc
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                yaml.safe_dump(state.to_dict(), handle, sort_keys=False)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
            _fsync_directory(self.root)
        except (OSError, yaml.YAMLError) as exc:
            raise StateStoreError(f"Failed to write state file {self.path}: {exc}") from exc
        finally:
            tmp_path.unlink(missing_ok=True)

    def _remove(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
            _fsync_directory(self.root)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StateStoreError(f"Failed to remove state file {self.path}: {exc}") from exc


def _fsync_directory(path: Path) -> None:
    """Flush *path* so a rename or unlink inside it survives a power loss."""
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


__all__ = ["STATE_FILENAME", "StateStore", "StateStoreError"]
