"""Configuration loader tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from bblctl.config import AppConfig, ConfigError, load_config


def test_load_config_defaults_when_file_missing(tmp_path: Path) -> None:
    """Defaults apply when no config file is present."""
    config = load_config(config_file=tmp_path / "missing.yml", env={})

    assert isinstance(config, AppConfig)
    assert config.state_dir == Path(".")
    assert config.logs_dir == Path(".") / ".bblctl" / "logs"
    assert config.lock_timeout == 30.0
    assert config.debug is False
    assert config.terraform.bin == "terraform"
    assert config.terraform_dir == Path(".") / "terraform"
    assert config.bosh.manifest is None
    assert config.bosh_dir == Path(".") / "bosh"
    assert config.keypair.key_size == 4096


def test_load_config_reads_yaml_file(tmp_path: Path) -> None:
    """Values are loaded from the YAML config file."""
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        "state_dir: {root}\n"
        "terraform:\n"
        "  bin: /usr/local/bin/terraform\n"
        "  template_dir: {root}/templates\n"
        "bosh:\n"
        "  manifest: {root}/bosh.yml\n"
        "keypair:\n"
        "  key_size: 2048\n".format(root=tmp_path)
    )

    config = load_config(config_file=cfg, env={})

    assert config.config_file == cfg
    assert config.state_dir == tmp_path
    assert config.logs_dir == tmp_path / ".bblctl" / "logs"
    assert config.terraform.bin == "/usr/local/bin/terraform"
    assert config.terraform_dir == tmp_path / "templates"
    assert config.bosh.manifest == tmp_path / "bosh.yml"
    assert config.keypair.key_size == 2048


def test_env_overrides_take_precedence(tmp_path: Path) -> None:
    """Environment variables override defaults and file settings."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("lock_timeout: 10\nterraform:\n  bin: tf-from-file\n")
    state_dir = tmp_path / "state"
    env = {
        "BBLCTL_STATE_DIR": str(state_dir),
        "BBLCTL_LOCK_TIMEOUT": "45",
        "BBLCTL_DEBUG": "true",
        "BBLCTL_TERRAFORM__BIN": "tf-from-env",
        "BBLCTL_KEYPAIR__KEY_SIZE": "3072",
        "UNRELATED": "ignored",
    }

    config = load_config(config_file=cfg, env=env)

    assert config.state_dir == state_dir
    assert config.lock_timeout == 45.0
    assert config.debug is True
    assert config.terraform.bin == "tf-from-env"
    assert config.keypair.key_size == 3072


def test_overrides_win_over_env(tmp_path: Path) -> None:
    """Programmatic overrides are applied last."""
    env = {"BBLCTL_STATE_DIR": str(tmp_path / "env")}

    config = load_config(
        config_file=tmp_path / "missing.yml",
        env=env,
        overrides={"state_dir": str(tmp_path / "flag")},
    )

    assert config.state_dir == tmp_path / "flag"


def test_env_can_select_config_file(tmp_path: Path) -> None:
    """Environment variable selects an alternate config file."""
    cfg = tmp_path / "override.yml"
    cfg.write_text("lock_timeout: 5\n")

    config = load_config(env={"BBLCTL_CONFIG_FILE": str(cfg)})

    assert config.config_file == cfg
    assert config.lock_timeout == 5.0


def test_invalid_config_file_raises(tmp_path: Path) -> None:
    """A non-mapping document raises a ConfigError."""
    cfg = tmp_path / "bad.yml"
    cfg.write_text("- not-a-mapping\n")

    with pytest.raises(ConfigError):
        load_config(config_file=cfg, env={})


def test_unknown_top_level_key_raises(tmp_path: Path) -> None:
    """Unexpected top-level keys trigger ConfigError."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("unknown: value\n")

    with pytest.raises(ConfigError, match="Unknown configuration keys"):
        load_config(config_file=cfg, env={})


def test_unknown_terraform_keys_raise(tmp_path: Path) -> None:
    """Extra terraform keys produce ConfigError for clarity."""
    cfg = tmp_path / "config.yml"
    cfg.write_text("terraform:\n  workspace: prod\n")

    with pytest.raises(ConfigError, match="Unknown terraform configuration keys"):
        load_config(config_file=cfg, env={})


def test_invalid_min_version_raises(tmp_path: Path) -> None:
    cfg = tmp_path / "config.yml"
    cfg.write_text("terraform:\n  min_version: not-a-version\n")

    with pytest.raises(ConfigError, match="Invalid terraform.min_version"):
        load_config(config_file=cfg, env={})


def test_unsupported_key_size_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Unsupported keypair.key_size 1024"):
        load_config(
            config_file=tmp_path / "missing.yml",
            env={"BBLCTL_KEYPAIR__KEY_SIZE": "1024"},
        )


def test_non_positive_lock_timeout_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="lock_timeout must be greater than zero"):
        load_config(config_file=tmp_path / "missing.yml", env={"BBLCTL_LOCK_TIMEOUT": "0"})


def test_non_boolean_debug_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="debug to be a boolean"):
        load_config(config_file=tmp_path / "missing.yml", env={"BBLCTL_DEBUG": "maybe"})
