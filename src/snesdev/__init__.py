"""
snesdev - zero-to-development PVSnesLib environment provisioning.

This package drives the bootstrap of a SNES homebrew toolchain (SDK,
toolchain environment, build/IDE/CI integration, starter project) as a
sequence of resumable steps.

Key Features:
- Ordered step catalog with required and optional steps
- Progress persisted after every step; resume after a failure
- Pluggable provisioning operations via the ``snesdev.operations``
  entry-point group
- Report with next steps or troubleshooting guidance

Example usage:
    from snesdev import Orchestrator, OperationRegistry, RunRequest, StepExecutor, render

    registry = OperationRegistry()
    registry.load_entry_points()
    report = Orchestrator(StepExecutor(registry)).run(RunRequest())
    print(render(report))
"""

__version__ = "0.1.0"
__all__ = [
    "Orchestrator",
    "OperationRegistry",
    "RunRequest",
    "StepExecutor",
    "StateRepository",
    "render",
    "__version__",
]


# Lazy imports to avoid loading pydantic/OTel at import time
def __getattr__(name: str):
    if name == "Orchestrator":
        from snesdev.orchestrator import Orchestrator
        return Orchestrator
    if name == "OperationRegistry":
        from snesdev.operations import OperationRegistry
        return OperationRegistry
    if name == "RunRequest":
        from snesdev.models import RunRequest
        return RunRequest
    if name == "StepExecutor":
        from snesdev.executor import StepExecutor
        return StepExecutor
    if name == "StateRepository":
        from snesdev.state import StateRepository
        return StateRepository
    if name == "render":
        from snesdev.reporter import render
        return render
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
