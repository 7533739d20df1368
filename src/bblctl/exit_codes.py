"""Process exit codes returned by ``bblctl`` commands."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Map each failure class of a command to a distinct exit status."""

    OK = 0
    # Bad config, bad arguments, or a state that fails validation.
    VALIDATION = 2
    # State file unreadable or unwritable, or the state lock is held.
    ENVIRONMENT = 3
    # Key pair, terraform or BOSH step failed.
    PROVIDER = 4
