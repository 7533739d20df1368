"""Rotate the environment key pair and redeploy the director with it."""
from __future__ import annotations

from dataclasses import dataclass, replace

from ..managers.base import BOSHCreateError, BOSHManager, KeyPairManager, TerraformManager
from ..state.models import State
from ..state.store import StateStore
from ..state.validator import StateValidator
from .base import CheckpointedCommand, StepReporter


@dataclass(frozen=True)
class RotateArgs:
    """``rotate`` takes no options."""


class Rotate(CheckpointedCommand[RotateArgs]):
    """Replace the key pair, persist it, then redeploy the director.

    The rotated key pair is persisted before anything else uses it. A failure
    after that checkpoint leaves a state holding the new key pair and the old
    director identity; re-running ``rotate`` starts again from whatever key
    pair the store holds.
    """

    def __init__(
        self,
        state_store: StateStore,
        key_pair_manager: KeyPairManager,
        terraform_manager: TerraformManager,
        bosh_manager: BOSHManager,
        state_validator: StateValidator,
        reporter: StepReporter | None = None,
    ) -> None:
        """Wire the collaborators used by the rotation."""
        super().__init__(state_store, reporter)
        self.key_pair_manager = key_pair_manager
        self.terraform_manager = terraform_manager
        self.bosh_manager = bosh_manager
        self.state_validator = state_validator

    def check_fast_fails(self, args: RotateArgs, state: State) -> None:
        """Validate the state before rotating."""
        self.state_validator.validate(args, state, require_existing=True)

    def execute(self, args: RotateArgs, state: State) -> None:
        """Rotate the key pair and redeploy the director."""
        key_pair = self.key_pair_manager.rotate(state)
        self._done("keypair.rotate", f"rotated key pair {key_pair.name}")

        state = replace(state, key_pair=key_pair)
        self._persist(state, "saved rotated key pair")

        outputs = self.terraform_manager.get_outputs(state)
        self._done("terraform.outputs", "read terraform outputs")

        if state.no_director:
            self._skipped("bosh.create_director", "no-director")
            return

        try:
            state = self.bosh_manager.create_director(state, outputs)
        except BOSHCreateError as exc:
            self._persist_partial(exc, "saved partial director state")
            raise
        self._done("bosh.create_director", f"redeployed director {state.bosh.director_name}")
        self._persist(state, "saved director state")


__all__ = ["Rotate", "RotateArgs"]
