"""Shared protocol and checkpointing helpers for lifecycle commands.

Every command runs in two phases. ``check_fast_fails`` performs read-only
precondition checks and never touches a manager. ``execute`` runs the
mutating sequence, persisting the state through the :class:`StateStore`
after each mutating step so that a failure leaves a state the same command
can be re-run against.
"""
from __future__ import annotations

from typing import Generic, Protocol, TypeVar

from ..managers.base import BOSHCreateError, TerraformApplyError
from ..state.models import State
from ..state.store import StateStore, StateStoreError
from ..state.validator import ValidationError

ArgsT = TypeVar("ArgsT", contravariant=True)


class CommandValidationError(ValidationError):
    """Raised when command arguments conflict with each other or the state."""


class StepReporter(Protocol):
    """Receives a record of each step a command completes or skips."""

    def add_step(self, name: str, *, status: str = "success", detail: str | None = None) -> None:
        """Record *name* with *status*."""
        ...


class Command(Protocol[ArgsT]):
    """A lifecycle operation driven by the CLI."""

    def check_fast_fails(self, args: ArgsT, state: State) -> None:
        """Raise when a precondition does not hold; never mutates anything."""
        ...

    def execute(self, args: ArgsT, state: State) -> None:
        """Run the mutating sequence starting from *state*."""
        ...


class _NullReporter:
    def add_step(self, name: str, *, status: str = "success", detail: str | None = None) -> None:
        return None


class CheckpointedCommand(Generic[ArgsT]):
    """Base class wiring the state store and step reporting."""

    def __init__(self, state_store: StateStore, reporter: StepReporter | None = None) -> None:
        """Store the collaborators shared by every command."""
        self.state_store = state_store
        self.reporter: StepReporter = reporter or _NullReporter()

    def _persist(self, state: State, detail: str) -> None:
        """Checkpoint *state*; errors propagate unchanged."""
        self.state_store.set(state)
        self.reporter.add_step("state.save", status="success", detail=detail)

    def _persist_partial(self, error: TerraformApplyError | BOSHCreateError, detail: str) -> None:
        """Checkpoint the partial state carried by *error*.

        A store failure here must not hide the manager failure, so *error* is
        re-raised with the store error as its cause.
        """
        try:
            self._persist(error.state, detail)
        except StateStoreError as store_error:
            raise error from store_error

    def _done(self, name: str, detail: str) -> None:
        self.reporter.add_step(name, status="success", detail=detail)

    def _skipped(self, name: str, detail: str) -> None:
        self.reporter.add_step(name, status="skipped", detail=detail)


__all__ = [
    "CheckpointedCommand",
    "Command",
    "CommandValidationError",
    "StepReporter",
]
