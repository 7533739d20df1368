"""Data model for the persisted environment descriptor.

All types are frozen dataclasses: a step that needs a different state builds
a new value with :func:`dataclasses.replace` rather than mutating the one it
received. ``to_dict``/``from_dict`` round-trip every field, zero values
included, so an environment without a director survives a save/load cycle
unchanged.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

STATE_VERSION = 1
SUPPORTED_IAAS = ("aws", "gcp", "azure")


class StateFormatError(ValueError):
    """Raised when a persisted state document cannot be interpreted."""


def _text(data: Mapping[str, object], key: str, label: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise StateFormatError(f"{label}.{key} must be a string, got {type(value).__name__}.")
    return value


def _mapping(data: Mapping[str, object], key: str, label: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise StateFormatError(f"{label}.{key} must be a mapping, got {type(value).__name__}.")
    return {str(name): item for name, item in value.items()}


def _section(data: Mapping[str, object], key: str) -> Mapping[str, object]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise StateFormatError(f"{key} must be a mapping, got {type(value).__name__}.")
    return value


class _StringRecord:
    """Shared helpers for records made only of string fields."""

    def is_empty(self) -> bool:
        """Return ``True`` when every field holds its zero value."""
        return all(not getattr(self, item.name) for item in fields(self))

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {item.name: getattr(self, item.name) for item in fields(self)}

    @classmethod
    def _parse(cls, data: Mapping[str, object], label: str) -> dict[str, str]:
        return {item.name: _text(data, item.name, label) for item in fields(cls)}


@dataclass(frozen=True)
class KeyPair(_StringRecord):
    """Credential pair used to reach provisioned machines."""

    name: str = ""
    private_key: str = ""
    public_key: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> KeyPair:
        """Build a key pair from its serialised form."""
        return cls(**cls._parse(data, "key_pair"))


@dataclass(frozen=True)
class AWSConfig(_StringRecord):
    """AWS credentials and placement."""

    access_key_id: str = ""
    secret_access_key: str = ""
    region: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> AWSConfig:
        """Build the AWS block from its serialised form."""
        return cls(**cls._parse(data, "aws"))


@dataclass(frozen=True)
class GCPConfig(_StringRecord):
    """GCP credentials and placement."""

    service_account_key: str = ""
    project_id: str = ""
    region: str = ""
    zone: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> GCPConfig:
        """Build the GCP block from its serialised form."""
        return cls(**cls._parse(data, "gcp"))


@dataclass(frozen=True)
class AzureConfig(_StringRecord):
    """Azure service principal and placement."""

    subscription_id: str = ""
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    region: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> AzureConfig:
        """Build the Azure block from its serialised form."""
        return cls(**cls._parse(data, "azure"))


@dataclass(frozen=True)
class BOSH:
    """Identity of the deployed BOSH director."""

    director_name: str = ""
    director_username: str = ""
    director_password: str = ""
    director_address: str = ""
    director_ssl_ca: str = ""
    director_ssl_certificate: str = ""
    director_ssl_private_key: str = ""
    credentials: dict[str, Any] = field(default_factory=dict)
    state: dict[str, Any] = field(default_factory=dict)
    manifest: str = ""

    def is_empty(self) -> bool:
        """Return ``True`` when no director has been recorded."""
        return self == BOSH()

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "director_name": self.director_name,
            "director_username": self.director_username,
            "director_password": self.director_password,
            "director_address": self.director_address,
            "director_ssl_ca": self.director_ssl_ca,
            "director_ssl_certificate": self.director_ssl_certificate,
            "director_ssl_private_key": self.director_ssl_private_key,
            "credentials": dict(self.credentials),
            "state": dict(self.state),
            "manifest": self.manifest,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> BOSH:
        """Build the director descriptor from its serialised form."""
        return cls(
            director_name=_text(data, "director_name", "bosh"),
            director_username=_text(data, "director_username", "bosh"),
            director_password=_text(data, "director_password", "bosh"),
            director_address=_text(data, "director_address", "bosh"),
            director_ssl_ca=_text(data, "director_ssl_ca", "bosh"),
            director_ssl_certificate=_text(data, "director_ssl_certificate", "bosh"),
            director_ssl_private_key=_text(data, "director_ssl_private_key", "bosh"),
            credentials=_mapping(data, "credentials", "bosh"),
            state=_mapping(data, "state", "bosh"),
            manifest=_text(data, "manifest", "bosh"),
        )


@dataclass(frozen=True)
class State:
    """The persisted descriptor of one managed environment."""

    version: int = STATE_VERSION
    iaas: str = ""
    env_id: str = ""
    no_director: bool = False
    key_pair: KeyPair = KeyPair()
    bosh: BOSH = field(default_factory=BOSH)
    aws: AWSConfig = AWSConfig()
    gcp: GCPConfig = GCPConfig()
    azure: AzureConfig = AzureConfig()
    tf_state: str = ""

    def is_empty(self) -> bool:
        """Return ``True`` when no environment is recorded."""
        return self == State()

    @property
    def has_director(self) -> bool:
        """Return ``True`` when a BOSH director is recorded."""
        return not self.bosh.is_empty()

    def iaas_config(self) -> AWSConfig | GCPConfig | AzureConfig | None:
        """Return the configuration block for the recorded IaaS."""
        return {"aws": self.aws, "gcp": self.gcp, "azure": self.azure}.get(self.iaas)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "version": self.version,
            "iaas": self.iaas,
            "env_id": self.env_id,
            "no_director": self.no_director,
            "key_pair": self.key_pair.to_dict(),
            "bosh": self.bosh.to_dict(),
            "aws": self.aws.to_dict(),
            "gcp": self.gcp.to_dict(),
            "azure": self.azure.to_dict(),
            "tf_state": self.tf_state,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> State:
        """Build a state from its serialised form."""
        version = data.get("version", STATE_VERSION)
        if isinstance(version, bool) or not isinstance(version, int):
            raise StateFormatError(f"version must be an integer, got {version!r}.")
        if version != STATE_VERSION:
            raise StateFormatError(
                f"Unsupported state version {version}; this bblctl understands {STATE_VERSION}."
            )
        no_director = data.get("no_director", False)
        if not isinstance(no_director, bool):
            raise StateFormatError(f"no_director must be a boolean, got {no_director!r}.")
        return cls(
            version=version,
            iaas=_text(data, "iaas", "state"),
            env_id=_text(data, "env_id", "state"),
            no_director=no_director,
            key_pair=KeyPair.from_dict(_section(data, "key_pair")),
            bosh=BOSH.from_dict(_section(data, "bosh")),
            aws=AWSConfig.from_dict(_section(data, "aws")),
            gcp=GCPConfig.from_dict(_section(data, "gcp")),
            azure=AzureConfig.from_dict(_section(data, "azure")),
            tf_state=_text(data, "tf_state", "state"),
        )


__all__ = [
    "AWSConfig",
    "AzureConfig",
    "BOSH",
    "GCPConfig",
    "KeyPair",
    "STATE_VERSION",
    "SUPPORTED_IAAS",
    "State",
    "StateFormatError",
]
