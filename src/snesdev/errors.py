"""Exception types raised by snesdev."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

__all__ = [
    "BootstrapError",
    "InvalidRequestError",
    "RunInProgressError",
    "OperationNotFoundError",
]


class BootstrapError(Exception):
    """Base class for all snesdev errors."""


class InvalidRequestError(BootstrapError):
    """Raised when a bootstrap request fails validation or cannot be loaded."""


class RunInProgressError(BootstrapError):
    """Raised when another bootstrap run already holds the lock for a target."""

    def __init__(self, lock_path: Path, message: Optional[str] = None):
        self.lock_path = lock_path
        super().__init__(
            message
            or f"Another bootstrap run is already in progress (lock held: {lock_path})"
        )


class OperationNotFoundError(BootstrapError, LookupError):
    """Raised when no collaborator is registered under an operation ref."""

    def __init__(self, operation_ref: str):
        self.operation_ref = operation_ref
        super().__init__(f"No operation registered for '{operation_ref}'")
