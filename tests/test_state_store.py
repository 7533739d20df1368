"""Tests for the on-disk state store."""
from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest
import yaml

from bblctl.state import BOSH, KeyPair, State, StateStore, StateStoreError
from bblctl.state.store import STATE_FILENAME


def _state() -> State:
    return State(
        iaas="aws",
        env_id="bbl-env-lake",
        key_pair=KeyPair(name="kp", private_key="private", public_key="public"),
        bosh=BOSH(director_name="bosh-lake"),
    )


def test_load_missing_file_returns_empty_state(tmp_path: Path) -> None:
    store = StateStore(tmp_path)

    assert store.load() == State()


def test_set_then_load_round_trip(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    state = _state()

    store.set(state)

    assert store.path == tmp_path / STATE_FILENAME
    assert store.load() == state


def test_set_writes_owner_only_file(tmp_path: Path) -> None:
    store = StateStore(tmp_path)

    store.set(_state())

    mode = stat.S_IMODE(store.path.stat().st_mode)
    assert mode == 0o600


def test_set_creates_missing_directory(tmp_path: Path) -> None:
    store = StateStore(tmp_path / "nested" / "env")

    store.set(_state())

    assert store.path.exists()


def test_set_leaves_no_temporary_files(tmp_path: Path) -> None:
    store = StateStore(tmp_path)

    store.set(_state())
    store.set(_state())

    assert sorted(p.name for p in tmp_path.iterdir()) == [STATE_FILENAME]


def test_set_flushes_state_directory_after_rename(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """The rename is only durable once the directory entry is synced too."""
    real_fsync = os.fsync
    synced: list[str] = []

    def recording_fsync(fd: int) -> None:
        mode = os.fstat(fd).st_mode
        synced.append("dir" if stat.S_ISDIR(mode) else "file")
        real_fsync(fd)

    monkeypatch.setattr(os, "fsync", recording_fsync)

    StateStore(tmp_path).set(_state())

    assert synced == ["file", "dir"]


def test_set_empty_state_removes_document(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.set(_state())

    store.set(State())

    assert not store.path.exists()
    assert store.load() == State()


def test_set_empty_state_without_document_is_noop(tmp_path: Path) -> None:
    StateStore(tmp_path).set(State())

    assert list(tmp_path.iterdir()) == []


def test_failed_replace_keeps_previous_document(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A failed write leaves the last good state in place."""
    store = StateStore(tmp_path)
    original = _state()
    store.set(original)

    def boom(src: object, dst: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", boom)

    with pytest.raises(StateStoreError, match="disk full"):
        store.set(State(iaas="aws", env_id="bbl-env-other"))

    monkeypatch.undo()
    assert store.load() == original
    assert sorted(p.name for p in tmp_path.iterdir()) == [STATE_FILENAME]


def test_load_invalid_yaml(tmp_path: Path) -> None:
    (tmp_path / STATE_FILENAME).write_text("env_id: [unterminated\n", encoding="utf-8")

    with pytest.raises(StateStoreError, match="Failed to parse state file"):
        StateStore(tmp_path).load()


def test_load_rejects_non_mapping(tmp_path: Path) -> None:
    (tmp_path / STATE_FILENAME).write_text("- one\n- two\n", encoding="utf-8")

    with pytest.raises(StateStoreError, match="mapping at the top level"):
        StateStore(tmp_path).load()


def test_load_wraps_format_errors(tmp_path: Path) -> None:
    (tmp_path / STATE_FILENAME).write_text(yaml.safe_dump({"version": 2}), encoding="utf-8")

    with pytest.raises(StateStoreError, match="Invalid state file"):
        StateStore(tmp_path).load()


def test_load_empty_document_returns_empty_state(tmp_path: Path) -> None:
    (tmp_path / STATE_FILENAME).write_text("", encoding="utf-8")

    assert StateStore(tmp_path).load() == State()
