"""Capability providers consumed by the command engine."""
from __future__ import annotations

from .base import (
    BOSHCreateError,
    BOSHError,
    BOSHManager,
    KeyPairError,
    KeyPairManager,
    ManagerError,
    TerraformApplyError,
    TerraformError,
    TerraformManager,
    TerraformOutputs,
)
from .bosh import BOSHCLIManager
from .keypair import SSHKeyPairManager
from .terraform import TerraformCLIManager

__all__ = [
    "BOSHCLIManager",
    "BOSHCreateError",
    "BOSHError",
    "BOSHManager",
    "KeyPairError",
    "KeyPairManager",
    "ManagerError",
    "SSHKeyPairManager",
    "TerraformApplyError",
    "TerraformCLIManager",
    "TerraformError",
    "TerraformManager",
    "TerraformOutputs",
]
