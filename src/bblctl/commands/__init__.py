"""Lifecycle commands orchestrated by the CLI."""
from __future__ import annotations

from .base import CheckpointedCommand, Command, CommandValidationError, StepReporter
from .destroy import Destroy, DestroyArgs
from .rotate import Rotate, RotateArgs
from .up import Up, UpArgs

__all__ = [
    "CheckpointedCommand",
    "Command",
    "CommandValidationError",
    "Destroy",
    "DestroyArgs",
    "Rotate",
    "RotateArgs",
    "StepReporter",
    "Up",
    "UpArgs",
]
