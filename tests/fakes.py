"""Call-recording fakes for the command engine collaborators."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from bblctl.managers.base import TerraformOutputs
from bblctl.state.models import KeyPair, State


@dataclass
class StateStore:
    """Record every ``set`` call; ``set_errors`` is consumed per call."""

    loaded: State = field(default_factory=State)
    set_errors: list[Exception | None] = field(default_factory=list)
    received: list[State] = field(default_factory=list)
    events: list[str] | None = None

    def load(self) -> State:
        return self.loaded

    def set(self, state: State) -> None:
        self.received.append(state)
        if self.events is not None:
            self.events.append("store.set")
        index = len(self.received) - 1
        if index < len(self.set_errors) and self.set_errors[index] is not None:
            raise self.set_errors[index]  # type: ignore[misc]

    @property
    def set_call_count(self) -> int:
        return len(self.received)


@dataclass
class StateValidator:
    error: Exception | None = None
    calls: list[tuple[object, State, dict[str, object]]] = field(default_factory=list)

    def validate(self, args: object, state: State, **kwargs: object) -> None:
        self.calls.append((args, state, dict(kwargs)))
        if self.error is not None:
            raise self.error


@dataclass
class KeyPairManager:
    key_pair: KeyPair = field(default_factory=KeyPair)
    error: Exception | None = None
    rotate_received: list[State] = field(default_factory=list)
    sync_received: list[State] = field(default_factory=list)
    events: list[str] | None = None

    def rotate(self, state: State) -> KeyPair:
        self.rotate_received.append(state)
        if self.events is not None:
            self.events.append("keypair.rotate")
        if self.error is not None:
            raise self.error
        return self.key_pair

    def sync(self, state: State) -> KeyPair:
        self.sync_received.append(state)
        if self.events is not None:
            self.events.append("keypair.sync")
        if self.error is not None:
            raise self.error
        if not state.key_pair.is_empty():
            return state.key_pair
        return self.key_pair


@dataclass
class TerraformManager:
    outputs: Mapping[str, object] = field(default_factory=dict)
    applied_state: State | None = None
    destroyed_state: State | None = None
    outputs_error: Exception | None = None
    apply_error: Exception | None = None
    destroy_error: Exception | None = None
    outputs_received: list[State] = field(default_factory=list)
    apply_received: list[State] = field(default_factory=list)
    destroy_received: list[State] = field(default_factory=list)
    events: list[str] | None = None

    def get_outputs(self, state: State) -> TerraformOutputs:
        self.outputs_received.append(state)
        if self.events is not None:
            self.events.append("terraform.get_outputs")
        if self.outputs_error is not None:
            raise self.outputs_error
        return self.outputs

    def apply(self, state: State) -> State:
        self.apply_received.append(state)
        if self.events is not None:
            self.events.append("terraform.apply")
        if self.apply_error is not None:
            raise self.apply_error
        return self.applied_state if self.applied_state is not None else state

    def destroy(self, state: State) -> State:
        self.destroy_received.append(state)
        if self.events is not None:
            self.events.append("terraform.destroy")
        if self.destroy_error is not None:
            raise self.destroy_error
        return self.destroyed_state if self.destroyed_state is not None else state


@dataclass
class BOSHManager:
    created_state: State = field(default_factory=State)
    deleted_state: State | None = None
    create_error: Exception | None = None
    delete_error: Exception | None = None
    create_received: list[tuple[State, Mapping[str, object]]] = field(default_factory=list)
    delete_received: list[tuple[State, Mapping[str, object]]] = field(default_factory=list)
    events: list[str] | None = None

    def create_director(self, state: State, outputs: TerraformOutputs) -> State:
        self.create_received.append((state, outputs))
        if self.events is not None:
            self.events.append("bosh.create_director")
        if self.create_error is not None:
            raise self.create_error
        return self.created_state

    def delete_director(self, state: State, outputs: TerraformOutputs) -> State:
        self.delete_received.append((state, outputs))
        if self.events is not None:
            self.events.append("bosh.delete_director")
        if self.delete_error is not None:
            raise self.delete_error
        return self.deleted_state if self.deleted_state is not None else state


@dataclass
class Reporter:
    steps: list[tuple[str, str, str | None]] = field(default_factory=list)

    def add_step(self, name: str, *, status: str = "success", detail: str | None = None) -> None:
        self.steps.append((name, status, detail))
