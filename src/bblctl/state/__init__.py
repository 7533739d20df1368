"""State model, durable storage, and validation helpers."""
from __future__ import annotations

from .models import (
    BOSH,
    SUPPORTED_IAAS,
    AWSConfig,
    AzureConfig,
    GCPConfig,
    KeyPair,
    State,
    StateFormatError,
)
from .store import StateStore, StateStoreError
from .validator import StateValidationError, StateValidator, ValidationError

__all__ = [
    "AWSConfig",
    "AzureConfig",
    "BOSH",
    "GCPConfig",
    "KeyPair",
    "SUPPORTED_IAAS",
    "State",
    "StateFormatError",
    "StateStore",
    "StateStoreError",
    "StateValidationError",
    "StateValidator",
    "ValidationError",
]
