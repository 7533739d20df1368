"""Tear an environment down: director first, then infrastructure."""
from __future__ import annotations

from dataclasses import dataclass

from ..managers.base import BOSHManager, TerraformApplyError, TerraformManager
from ..state.models import State
from ..state.store import StateStore
from ..state.validator import StateValidator
from .base import CheckpointedCommand, StepReporter


@dataclass(frozen=True)
class DestroyArgs:
    """Options accepted by ``destroy``."""

    skip_if_missing: bool = False


class Destroy(CheckpointedCommand[DestroyArgs]):
    """Delete the director and the infrastructure, then the state itself."""

    def __init__(
        self,
        state_store: StateStore,
        terraform_manager: TerraformManager,
        bosh_manager: BOSHManager,
        state_validator: StateValidator,
        reporter: StepReporter | None = None,
    ) -> None:
        """Wire the collaborators used while destroying an environment."""
        super().__init__(state_store, reporter)
        self.terraform_manager = terraform_manager
        self.bosh_manager = bosh_manager
        self.state_validator = state_validator

    def check_fast_fails(self, args: DestroyArgs, state: State) -> None:
        """Require an existing environment unless ``skip_if_missing`` is set."""
        self.state_validator.validate(args, state, require_existing=not args.skip_if_missing)

    def execute(self, args: DestroyArgs, state: State) -> None:
        """Remove the director, the infrastructure, and the state file."""
        if state.is_empty():
            self._skipped("destroy", "no environment recorded")
            return

        if state.no_director:
            self._skipped("bosh.delete_director", "no-director")
        elif state.has_director:
            outputs = self.terraform_manager.get_outputs(state)
            self._done("terraform.outputs", "read terraform outputs")
            state = self.bosh_manager.delete_director(state, outputs)
            self._done("bosh.delete_director", "deleted director")
            self._persist(state, "saved state without director")
        else:
            self._skipped("bosh.delete_director", "no director deployed")

        try:
            state = self.terraform_manager.destroy(state)
        except TerraformApplyError as exc:
            self._persist_partial(exc, "saved partial terraform state")
            raise
        self._done("terraform.destroy", "destroyed infrastructure")
        self._persist(state, "saved state without infrastructure")

        self.state_store.set(State())
        self._done("state.delete", "removed bbl-state.yml")


__all__ = ["Destroy", "DestroyArgs"]
