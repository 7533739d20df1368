"""SSH key pair manager backed by ``cryptography``."""
from __future__ import annotations

import secrets
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..state.models import KeyPair, State
from .base import KeyPairError


@dataclass(frozen=True)
class SSHKeyPairManager:
    """Generate RSA key pairs for the jumpbox and director VMs."""

    key_size: int = 4096
    public_exponent: int = 65537

    def sync(self, state: State) -> KeyPair:
        """Return ``state.key_pair`` when complete, otherwise a new pair."""
        current = state.key_pair
        if current.name and current.private_key and current.public_key:
            return current
        return self._generate(state)

    def rotate(self, state: State) -> KeyPair:
        """Return a brand new key pair for *state*."""
        return self._generate(state)

    # ------------------------------------------------------------------
    def _generate(self, state: State) -> KeyPair:
        try:
            key = rsa.generate_private_key(
                public_exponent=self.public_exponent,
                key_size=self.key_size,
            )
        except ValueError as exc:
            raise KeyPairError(f"Failed to generate RSA key: {exc}") from exc
        private_pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_openssh = key.public_key().public_bytes(
            encoding=serialization.Encoding.OpenSSH,
            format=serialization.PublicFormat.OpenSSH,
        )
        return KeyPair(
            name=_key_name(state.env_id),
            private_key=private_pem.decode("ascii"),
            public_key=public_openssh.decode("ascii"),
        )


def _key_name(env_id: str) -> str:
    suffix = secrets.token_hex(4)
    return f"keypair-{env_id}-{suffix}" if env_id else f"keypair-{suffix}"


__all__ = ["SSHKeyPairManager"]
