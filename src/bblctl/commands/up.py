"""Create or update an environment: key pair, infrastructure, director."""
from __future__ import annotations

import secrets
from collections.abc import Callable
from dataclasses import dataclass, fields, replace
from datetime import UTC, datetime

from ..managers.base import (
    BOSHCreateError,
    BOSHManager,
    KeyPairManager,
    TerraformApplyError,
    TerraformManager,
)
from ..state.models import SUPPORTED_IAAS, AWSConfig, AzureConfig, GCPConfig, State
from ..state.store import StateStore
from ..state.validator import StateValidator, missing_iaas_fields
from .base import CheckpointedCommand, CommandValidationError, StepReporter

_ENV_NAMES = (
    "lake",
    "river",
    "ocean",
    "creek",
    "pond",
    "bay",
    "harbor",
    "reef",
)


@dataclass(frozen=True)
class UpArgs:
    """Options accepted by ``up``; blank values fall back to the state."""

    iaas: str = ""
    name: str = ""
    no_director: bool = False
    aws: AWSConfig = AWSConfig()
    gcp: GCPConfig = GCPConfig()
    azure: AzureConfig = AzureConfig()


def generate_env_id() -> str:
    """Return a fresh environment identifier."""
    stamp = datetime.now(tz=UTC).strftime("%Y-%m-%dt%H-%Mz")
    return f"bbl-env-{secrets.choice(_ENV_NAMES)}-{stamp}"


def merge_iaas_config(state: State, args: UpArgs) -> State:
    """Return *state* with the non-blank IaaS fields of *args* applied."""
    merged = state
    for name in SUPPORTED_IAAS:
        current = getattr(state, name)
        incoming = getattr(args, name)
        updates = {
            item.name: getattr(incoming, item.name)
            for item in fields(incoming)
            if getattr(incoming, item.name)
        }
        if updates:
            merged = replace(merged, **{name: replace(current, **updates)})
    return merged


class Up(CheckpointedCommand[UpArgs]):
    """Provision an environment, checkpointing after every step."""

    def __init__(
        self,
        state_store: StateStore,
        key_pair_manager: KeyPairManager,
        terraform_manager: TerraformManager,
        bosh_manager: BOSHManager,
        state_validator: StateValidator,
        reporter: StepReporter | None = None,
        env_id_generator: Callable[[], str] = generate_env_id,
    ) -> None:
        """Wire the collaborators used while bringing an environment up."""
        super().__init__(state_store, reporter)
        self.key_pair_manager = key_pair_manager
        self.terraform_manager = terraform_manager
        self.bosh_manager = bosh_manager
        self.state_validator = state_validator
        self.env_id_generator = env_id_generator

    def check_fast_fails(self, args: UpArgs, state: State) -> None:
        """Reject arguments that conflict with the recorded environment."""
        self.state_validator.validate(args, state)

        iaas = args.iaas or state.iaas
        if not iaas:
            raise CommandValidationError("--iaas is required when no environment exists yet.")
        if iaas not in SUPPORTED_IAAS:
            allowed = ", ".join(SUPPORTED_IAAS)
            raise CommandValidationError(f"Unsupported iaas '{iaas}'. Allowed: {allowed}.")
        if state.iaas and args.iaas and args.iaas != state.iaas:
            raise CommandValidationError(
                f"The environment was created on {state.iaas}; "
                f"it cannot be brought up on {args.iaas}."
            )
        if args.name and state.env_id and args.name != state.env_id:
            raise CommandValidationError(
                f"The environment is already named '{state.env_id}'; "
                f"--name '{args.name}' does not match."
            )
        if args.no_director and state.has_director:
            raise CommandValidationError(
                "--no-director cannot be used on an environment that already has a director."
            )

        merged = merge_iaas_config(state, args)
        config = getattr(merged, iaas)
        missing = missing_iaas_fields(iaas, config)
        if missing:
            joined = ", ".join(f"--{iaas}-{name.replace('_', '-')}" for name in missing)
            raise CommandValidationError(f"Missing required {iaas} options: {joined}.")

    def execute(self, args: UpArgs, state: State) -> None:
        """Create the key pair, infrastructure, and director in order."""
        state = merge_iaas_config(state, args)
        state = replace(
            state,
            iaas=args.iaas or state.iaas,
            env_id=state.env_id or args.name or self.env_id_generator(),
            no_director=state.no_director or args.no_director,
        )
        self._persist(state, f"saved configuration for {state.env_id}")

        key_pair = self.key_pair_manager.sync(state)
        if key_pair != state.key_pair:
            state = replace(state, key_pair=key_pair)
            self._done("keypair.sync", f"created key pair {key_pair.name}")
            self._persist(state, "saved key pair")
        else:
            self._skipped("keypair.sync", "existing key pair")

        try:
            state = self.terraform_manager.apply(state)
        except TerraformApplyError as exc:
            self._persist_partial(exc, "saved partial terraform state")
            raise
        self._done("terraform.apply", "applied terraform templates")
        self._persist(state, "saved terraform state")

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
        self._done("bosh.create_director", f"deployed director {state.bosh.director_name}")
        self._persist(state, "saved director state")


__all__ = ["Up", "UpArgs", "generate_env_id", "merge_iaas_config"]
