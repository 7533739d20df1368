"""Configuration loader for bblctl.

This module centralises the logic for reading configuration values from
multiple sources:

1. Built-in defaults.
2. ``~/.config/bblctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``BBLCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export BBLCTL_TERRAFORM__BIN=/usr/local/bin/terraform
    export BBLCTL_KEYPAIR__KEY_SIZE=2048

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` for convenient access and type safety.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load bblctl configuration. Install with "
        "`pip install bblctl` or ensure PyYAML>=6.0 is available."
    ) from exc

from packaging.version import InvalidVersion, Version

ENV_PREFIX = "BBLCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class TerraformConfig:
    """Terraform binary and template locations."""

    bin: str = "terraform"
    template_dir: Path | None = None
    min_version: str = "0.11.0"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "bin": self.bin,
            "template_dir": str(self.template_dir) if self.template_dir is not None else None,
            "min_version": self.min_version,
        }


@dataclass(frozen=True)
class BOSHConfig:
    """BOSH CLI binary and director manifest."""

    bin: str = "bosh"
    manifest: Path | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "bin": self.bin,
            "manifest": str(self.manifest) if self.manifest is not None else None,
        }


@dataclass(frozen=True)
class KeyPairConfig:
    """Key pair generation defaults."""

    key_size: int = 4096

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"key_size": self.key_size}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for bblctl."""

    config_file: Path
    state_dir: Path
    logs_dir: Path
    lock_timeout: float
    debug: bool
    terraform: TerraformConfig
    bosh: BOSHConfig
    keypair: KeyPairConfig

    @property
    def terraform_dir(self) -> Path:
        """Return the terraform working directory for this state dir."""
        return self.terraform.template_dir or (self.state_dir / "terraform")

    @property
    def bosh_dir(self) -> Path:
        """Return the working directory used for ``bosh create-env``."""
        return self.state_dir / "bosh"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "state_dir": str(self.state_dir),
            "logs_dir": str(self.logs_dir),
            "lock_timeout": self.lock_timeout,
            "debug": self.debug,
            "terraform": self.terraform.to_dict(),
            "bosh": self.bosh.to_dict(),
            "keypair": self.keypair.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "~/.config/bblctl/config.yml",
    "state_dir": ".",
    "logs_dir": None,  # derived from state_dir when absent
    "lock_timeout": 30.0,
    "debug": False,
    "terraform": {
        "bin": "terraform",
        "template_dir": None,
        "min_version": "0.11.0",
    },
    "bosh": {
        "bin": "bosh",
        "manifest": None,
    },
    "keypair": {
        "key_size": 4096,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_KEY_SIZES = {2048, 3072, 4096}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return Path(default_path).expanduser()


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    lock_timeout = raw.get("lock_timeout")
    if lock_timeout is not None:
        _expect_positive_float(lock_timeout, "lock_timeout", default=30.0)

    debug = raw.get("debug")
    if debug is not None and not isinstance(debug, bool):
        raise ConfigError(f"Expected debug to be a boolean. Got {debug!r}.")

    terraform = raw.get("terraform")
    if terraform is not None:
        terraform_map = _as_dict(terraform, "terraform")
        unknown = set(terraform_map.keys()) - {"bin", "template_dir", "min_version"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown terraform configuration keys: {joined}.")
        min_version = terraform_map.get("min_version")
        if min_version is not None:
            try:
                Version(str(min_version))
            except InvalidVersion as exc:
                raise ConfigError(
                    f"Invalid terraform.min_version {min_version!r}."
                ) from exc

    bosh = raw.get("bosh")
    if bosh is not None:
        bosh_map = _as_dict(bosh, "bosh")
        unknown = set(bosh_map.keys()) - {"bin", "manifest"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown bosh configuration keys: {joined}.")

    keypair = raw.get("keypair")
    if keypair is not None:
        keypair_map = _as_dict(keypair, "keypair")
        unknown = set(keypair_map.keys()) - {"key_size"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown keypair configuration keys: {joined}.")
        key_size = _expect_int(keypair_map.get("key_size"), "keypair.key_size", default=4096)
        if key_size not in ALLOWED_KEY_SIZES:
            allowed = ", ".join(str(size) for size in sorted(ALLOWED_KEY_SIZES))
            raise ConfigError(f"Unsupported keypair.key_size {key_size}. Allowed: {allowed}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    state_dir = _to_path(raw.get("state_dir"))
    logs_dir_value = raw.get("logs_dir")
    logs_dir = _to_path(logs_dir_value) if logs_dir_value else state_dir / ".bblctl" / "logs"
    lock_timeout = _expect_positive_float(raw.get("lock_timeout"), "lock_timeout", default=30.0)
    debug = bool(raw.get("debug", False))

    terraform_mapping = _as_dict(raw.get("terraform"), "terraform")
    template_dir_value = terraform_mapping.get("template_dir")
    terraform = TerraformConfig(
        bin=str(terraform_mapping.get("bin", "terraform")),
        template_dir=_to_path(template_dir_value) if template_dir_value else None,
        min_version=str(terraform_mapping.get("min_version", "0.11.0")),
    )

    bosh_mapping = _as_dict(raw.get("bosh"), "bosh")
    manifest_value = bosh_mapping.get("manifest")
    bosh = BOSHConfig(
        bin=str(bosh_mapping.get("bin", "bosh")),
        manifest=_to_path(manifest_value) if manifest_value else None,
    )

    keypair_mapping = _as_dict(raw.get("keypair"), "keypair")
    keypair = KeyPairConfig(
        key_size=_expect_int(keypair_mapping.get("key_size"), "keypair.key_size", default=4096),
    )

    return AppConfig(
        config_file=config_file,
        state_dir=state_dir,
        logs_dir=logs_dir,
        lock_timeout=lock_timeout,
        debug=debug,
        terraform=terraform,
        bosh=bosh,
        keypair=keypair,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        else:
            result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "BOSHConfig",
    "ConfigError",
    "KeyPairConfig",
    "TerraformConfig",
    "load_config",
]
