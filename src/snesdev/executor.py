"""
Step Executor: the single boundary between the orchestrator and the
provisioning collaborators.

Whatever a collaborator does (return a malformed value, raise, or not be
registered at all) comes back as a StepOutcome. Nothing raised below this
boundary reaches the orchestrator.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from snesdev.errors import OperationNotFoundError
from snesdev.models import StepOutcome
from snesdev.operations import OperationRegistry

__all__ = ["StepExecutor"]

logger = logging.getLogger(__name__)


def _describe(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


class StepExecutor:
    """Invokes registered operations and normalizes their results."""

    def __init__(self, registry: OperationRegistry):
        self.registry = registry

    def execute(self, operation_ref: str, parameters: Mapping[str, Any]) -> StepOutcome:
        """
        Run one operation.

        Args:
            operation_ref: Registered operation ref
            parameters: Flat parameter bag passed to the collaborator

        Returns:
            StepOutcome; failures carry an error message, never an exception.
        """
        try:
            operation = self.registry.get(operation_ref)
        except OperationNotFoundError as e:
            logger.error("%s", e)
            return StepOutcome.failed(str(e))

        logger.debug("Executing %s with parameters: %s", operation_ref, dict(parameters))
        try:
            result = operation.run(dict(parameters))
            return StepOutcome.from_result(result)
        except (Exception, SystemExit) as e:
            # SystemExit comes from click-based collaborators; Ctrl-C still propagates
            logger.exception("Operation %s raised", operation_ref)
            return StepOutcome.failed(_describe(e))

    def probe(self, operation_ref: str, parameters: Mapping[str, Any]) -> Optional[bool]:
        """
        Ask an operation whether its effect is already in place.

        Returns:
            True or False from the operation's probe; None when the operation
            has no probe or is not registered. A probe that raises counts as
            not satisfied.
        """
        if operation_ref not in self.registry:
            return None
        probe = self.registry.get(operation_ref).probe
        if probe is None:
            return None

        try:
            return bool(probe(dict(parameters)))
        except (Exception, SystemExit) as e:
            logger.warning("Probe for %s failed, treating as unsatisfied: %s", operation_ref, e)
            return False
