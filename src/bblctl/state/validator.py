"""Read-only consistency checks run before any command mutates anything."""
from __future__ import annotations

from dataclasses import fields

from .models import SUPPORTED_IAAS, AWSConfig, AzureConfig, GCPConfig, State


class ValidationError(RuntimeError):
    """Base class for precondition failures detected before any mutation."""


class StateValidationError(ValidationError):
    """Raised when the persisted state is inconsistent."""


# Fields each IaaS block must carry once an environment has been created.
REQUIRED_IAAS_FIELDS: dict[str, tuple[str, ...]] = {
    "aws": ("access_key_id", "secret_access_key", "region"),
    "gcp": ("service_account_key", "project_id", "region", "zone"),
    "azure": ("subscription_id", "tenant_id", "client_id", "client_secret", "region"),
}


def missing_iaas_fields(iaas: str, config: AWSConfig | GCPConfig | AzureConfig) -> list[str]:
    """Return the required fields of *config* that are blank for *iaas*."""
    required = REQUIRED_IAAS_FIELDS.get(iaas, ())
    present = {item.name for item in fields(config)}
    return [name for name in required if name in present and not getattr(config, name)]


class StateValidator:
    """Check a :class:`State` against the invariants commands rely on."""

    def validate(self, args: object, state: State, *, require_existing: bool = False) -> None:
        """Raise :class:`StateValidationError` when *state* is unusable.

        *args* is accepted for parity with the command interface; the checks
        here only look at the persisted state.
        """
        if require_existing and not state.env_id:
            raise StateValidationError(
                "bbl-state.yml not found or empty; run `bblctl up` first "
                "or point --state-dir at an existing environment."
            )
        if state.is_empty():
            return

        if state.iaas and state.iaas not in SUPPORTED_IAAS:
            allowed = ", ".join(SUPPORTED_IAAS)
            raise StateValidationError(
                f"State records unsupported iaas '{state.iaas}'. Allowed: {allowed}."
            )

        config = state.iaas_config()
        if config is not None:
            missing = missing_iaas_fields(state.iaas, config)
            if missing:
                joined = ", ".join(f"{state.iaas}.{name}" for name in missing)
                raise StateValidationError(f"State is missing required fields: {joined}.")

        if state.no_director and state.has_director:
            raise StateValidationError(
                "State is marked no_director but records a BOSH director "
                f"'{state.bosh.director_name}'."
            )


__all__ = [
    "REQUIRED_IAAS_FIELDS",
    "StateValidationError",
    "StateValidator",
    "ValidationError",
    "missing_iaas_fields",
]
