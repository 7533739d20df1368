"""Capability interfaces consumed by the command engine.

Managers receive a :class:`~bblctl.state.models.State` snapshot and return a
new value or raise a :class:`ManagerError`. They never keep state between
calls, so fakes and alternative implementations can be swapped in without
touching the commands.
"""
from __future__ import annotations

import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path
from types import MappingProxyType
from typing import Protocol

from ..state.models import KeyPair, State

TerraformOutputs = Mapping[str, object]


class ManagerError(RuntimeError):
    """Base class for failures reported by an external capability."""


class KeyPairError(ManagerError):
    """Raised when a key pair cannot be created or rotated."""


class TerraformError(ManagerError):
    """Raised when terraform cannot be run or reports a failure."""


class TerraformApplyError(TerraformError):
    """Raised when ``terraform apply``/``destroy`` fails part way through.

    ``state`` carries the state as far as terraform got (its refreshed
    ``tf_state``) so the caller can persist it before surfacing the error.
    """

    def __init__(self, message: str, state: State) -> None:
        """Store the partial state alongside the message."""
        super().__init__(message)
        self.state = state


class BOSHError(ManagerError):
    """Raised when the BOSH director cannot be created or deleted."""


class BOSHCreateError(BOSHError):
    """Raised when ``bosh create-env`` fails after it may have created resources.

    ``state`` carries the BOSH state file and vars store as the CLI left them,
    so a re-run resumes from the half-built director instead of orphaning it.
    """

    def __init__(self, message: str, state: State) -> None:
        """Store the partial state alongside the message."""
        super().__init__(message)
        self.state = state


class KeyPairManager(Protocol):
    """Produce credential pairs for an environment."""

    def sync(self, state: State) -> KeyPair:
        """Return the existing key pair, creating one when absent."""
        ...

    def rotate(self, state: State) -> KeyPair:
        """Return a fresh key pair replacing ``state.key_pair``."""
        ...


class TerraformManager(Protocol):
    """Provision infrastructure and report its outputs."""

    def apply(self, state: State) -> State:
        """Create or update the infrastructure; return the refreshed state."""
        ...

    def destroy(self, state: State) -> State:
        """Tear the infrastructure down; return the state with ``tf_state`` cleared."""
        ...

    def get_outputs(self, state: State) -> TerraformOutputs:
        """Return the outputs of the currently provisioned infrastructure."""
        ...


class BOSHManager(Protocol):
    """Deploy and remove the BOSH director."""

    def create_director(self, state: State, outputs: TerraformOutputs) -> State:
        """Create or update the director; return the state describing it."""
        ...

    def delete_director(self, state: State, outputs: TerraformOutputs) -> State:
        """Delete the director; return the state with ``bosh`` cleared."""
        ...


def freeze_outputs(outputs: Mapping[str, object]) -> TerraformOutputs:
    """Return a read-only view of *outputs*."""
    return MappingProxyType(dict(outputs))


def run_process(
    args: Sequence[str],
    *,
    cwd: Path | None,
    env: Mapping[str, str] | None,
    error_cls: type[ManagerError],
    error_prefix: str,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Run *args* capturing output, raising *error_cls* on failure."""
    try:
        result = subprocess.run(  # noqa: S603
            list(args),
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        raise error_cls(f"{args[0]} not found: {exc}") from exc
    if check and result.returncode != 0:
        stdout = result.stdout or ""
        stderr = result.stderr or ""
        message = stderr.strip() or stdout.strip() or "no output"
        raise error_cls(f"{error_prefix} failed (exit {result.returncode}): {message}")
    return result


__all__ = [
    "BOSHCreateError",
    "BOSHError",
    "BOSHManager",
    "KeyPairError",
    "KeyPairManager",
    "ManagerError",
    "TerraformApplyError",
    "TerraformError",
    "TerraformManager",
    "TerraformOutputs",
    "freeze_outputs",
    "run_process",
]
