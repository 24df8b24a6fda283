"""
Pytest configuration and fixtures for snesdev tests.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Tuple

import pytest

from snesdev.config import reset_config
from snesdev.executor import StepExecutor
from snesdev.logger import BootstrapLogger
from snesdev.models import StepDefinition
from snesdev.operations import OperationRegistry
from snesdev.state import StateRepository


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Point the default install prefix at a temp dir and reset config per test."""
    install_prefix = tmp_path / "pvsneslib"
    for name in ("SNESDEV_LOG_LEVEL", "SNESDEV_LOG_FORMAT", "SNESDEV_OTLP_ENDPOINT",
                 "OTEL_EXPORTER_OTLP_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SNESDEV_DEFAULT_INSTALL_PREFIX", str(install_prefix))
    reset_config()

    yield install_prefix

    reset_config()


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Drop handlers installed by CLI invocations."""
    yield
    root = logging.getLogger("snesdev")
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)
    BootstrapLogger.json_output = False


# ============================================================================
# Collaborator Fixtures
# ============================================================================


class FakeCollaborators:
    """
    Scripted provisioning operations that record every call.

    Every ref passed to ``add`` succeeds by default. ``fail``/``raise_on``
    change that per ref; ``satisfied_after_run`` attaches a satisfied-probe.
    """

    def __init__(self) -> None:
        self.registry = OperationRegistry()
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self._results: Dict[str, Any] = {}
        self._errors: Dict[str, BaseException] = {}

    def add(self, ref: str, result: Optional[Any] = None, probe=None) -> "FakeCollaborators":
        self._results[ref] = result if result is not None else {"success": True}

        def run(parameters: Dict[str, Any]) -> Any:
            self.calls.append((ref, parameters))
            if ref in self._errors:
                raise self._errors[ref]
            return self._results[ref]

        self.registry.register(ref, run, probe=probe)
        return self

    def succeed(self, ref: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._errors.pop(ref, None)
        self._results[ref] = {"success": True, "metadata": metadata or {}}

    def fail(self, ref: str, error: str = "boom") -> None:
        self._errors.pop(ref, None)
        self._results[ref] = {"success": False, "error": error}

    def raise_on(self, ref: str, error: BaseException) -> None:
        self._errors[ref] = error

    def satisfied_after_run(self, ref: str) -> None:
        """Probe reports satisfied once the operation has run successfully."""
        def probe(parameters: Dict[str, Any]) -> bool:
            return (
                ref in self.invoked
                and ref not in self._errors
                and bool(self._results[ref].get("success"))
            )

        self.registry.register(ref, self.registry.get(ref).run, probe=probe)

    @property
    def invoked(self) -> List[str]:
        return [ref for ref, _ in self.calls]

    def reset_calls(self) -> None:
        self.calls.clear()


def make_catalog(*specs: Tuple[str, bool]) -> Tuple[StepDefinition, ...]:
    """Catalog of ``(name, required)`` steps using operation ref ``op_<name>``."""
    return tuple(
        StepDefinition(
            name=name,
            description=f"Step {name}",
            required=required,
            operation_ref=f"op_{name}",
        )
        for name, required in specs
    )


@pytest.fixture
def collaborators() -> FakeCollaborators:
    return FakeCollaborators()


@pytest.fixture
def executor(collaborators: FakeCollaborators) -> StepExecutor:
    return StepExecutor(collaborators.registry)


@pytest.fixture
def repository() -> StateRepository:
    return StateRepository()


@pytest.fixture(name="make_catalog")
def make_catalog_fixture():
    return make_catalog
