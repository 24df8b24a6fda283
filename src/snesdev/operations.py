"""
Registry of the external provisioning operations.

Each catalog step names an operation ref (``pvsneslib_install_sdk`` and so
on). The registry maps those refs to collaborators. A collaborator is either
a plain callable ``fn(parameters) -> result`` or an object implementing
:class:`Operation`; an optional ``is_satisfied(parameters) -> bool`` probe
lets the orchestrator check that a recorded step still holds.

Collaborator packages can ship operations through the
``snesdev.operations`` entry-point group::

    [project.entry-points."snesdev.operations"]
    pvsneslib_install_sdk = "pvsneslib_tools.install:InstallSdk"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Protocol

from snesdev.errors import OperationNotFoundError

__all__ = [
    "ENTRY_POINT_GROUP",
    "Operation",
    "RegisteredOperation",
    "OperationRegistry",
]

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "snesdev.operations"

Probe = Callable[[Mapping[str, Any]], bool]


class Operation(Protocol):
    """A provisioning collaborator invoked through the Step Executor."""

    def run(self, parameters: Mapping[str, Any]) -> Any:
        ...


@dataclass(frozen=True)
class RegisteredOperation:
    ref: str
    run: Callable[[Mapping[str, Any]], Any]
    probe: Optional[Probe] = None


def _as_registered(ref: str, target: Any, probe: Optional[Probe] = None) -> RegisteredOperation:
    if isinstance(target, type):
        target = target()

    run = getattr(target, "run", None)
    if callable(run):
        probe = probe or getattr(target, "is_satisfied", None)
    elif callable(target):
        run = target
    else:
        raise TypeError(f"Operation {ref!r} is neither callable nor has a run() method")

    if probe is not None and not callable(probe):
        raise TypeError(f"Probe for operation {ref!r} is not callable")
    return RegisteredOperation(ref=ref, run=run, probe=probe)


class OperationRegistry:
    """Maps operation refs to collaborators."""

    def __init__(self) -> None:
        self._operations: Dict[str, RegisteredOperation] = {}

    def register(self, ref: str, target: Any, probe: Optional[Probe] = None) -> RegisteredOperation:
        """
        Register a collaborator under ``ref``, replacing any previous one.

        Args:
            ref: Operation ref used by catalog steps
            target: Callable, Operation instance, or Operation class
            probe: Optional satisfied-probe (overrides ``target.is_satisfied``)
        """
        registered = _as_registered(ref, target, probe)
        if ref in self._operations:
            logger.debug("Replacing operation %s", ref)
        self._operations[ref] = registered
        return registered

    def operation(self, ref: str, probe: Optional[Probe] = None):
        """Decorator form of :meth:`register`."""
        def decorator(target):
            self.register(ref, target, probe)
            return target
        return decorator

    def get(self, ref: str) -> RegisteredOperation:
        try:
            return self._operations[ref]
        except KeyError:
            raise OperationNotFoundError(ref) from None

    def names(self) -> List[str]:
        return sorted(self._operations)

    def __contains__(self, ref: object) -> bool:
        return ref in self._operations

    def __iter__(self) -> Iterator[RegisteredOperation]:
        return iter(self._operations.values())

    def __len__(self) -> int:
        return len(self._operations)

    def load_entry_points(self, group: str = ENTRY_POINT_GROUP) -> int:
        """
        Register operations advertised by installed packages.

        Entry points that fail to load are logged and skipped, so one broken
        collaborator package only fails the steps that need it.

        Returns:
            Number of operations registered.
        """
        logger.debug("Discovering operations from entry points (%s)", group)
        loaded = 0
        for entry_point in entry_points(group=group):
            try:
                self.register(entry_point.name, entry_point.load())
            except Exception as e:
                logger.error("Failed to load operation %s: %s", entry_point.name, e)
                continue
            loaded += 1
        return loaded
