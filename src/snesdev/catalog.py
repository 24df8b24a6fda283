"""
The ordered catalog of bootstrap steps.

Order encodes dependencies: a step is only attempted once every step before
it reached a terminal status. New steps must be appended; renaming or
reordering entries orphans the names recorded in existing state files
(those are tolerated, but the renamed steps will run again).
"""

from __future__ import annotations

from typing import Iterable, List, Tuple

from snesdev.models import StepDefinition

__all__ = [
    "VALIDATE_HOST",
    "INSTALL_SDK",
    "VALIDATE_INSTALL",
    "CONFIGURE_TOOLS",
    "BUILD_CONFIG",
    "INIT_PROJECT",
    "STEP_CATALOG",
    "get_step_catalog",
    "step_names",
]

VALIDATE_HOST = "validate_host"
INSTALL_SDK = "install_sdk"
VALIDATE_INSTALL = "validate_install"
CONFIGURE_TOOLS = "configure_tools"
BUILD_CONFIG = "build_config"
INIT_PROJECT = "init_project"

STEP_CATALOG: Tuple[StepDefinition, ...] = (
    StepDefinition(
        name=VALIDATE_HOST,
        description="Validate system prerequisites",
        required=True,
        operation_ref="pvsneslib_validate_host",
        parameters={"action": "validate_host"},
    ),
    StepDefinition(
        name=INSTALL_SDK,
        description="Download and install PVSnesLib SDK",
        required=True,
        operation_ref="pvsneslib_install_sdk",
        parameters={"action": "install_sdk"},
    ),
    StepDefinition(
        name=VALIDATE_INSTALL,
        description="Verify installation integrity",
        required=True,
        operation_ref="pvsneslib_validate_install",
        parameters={
            "action": "validate_install",
            "validate_tools": True,
            "check_examples": False,
        },
    ),
    StepDefinition(
        name=CONFIGURE_TOOLS,
        description="Configure toolchain environment",
        required=True,
        operation_ref="pvsneslib_configure_tools",
        parameters={"action": "configure_tools", "debug_mode": False},
    ),
    StepDefinition(
        name=BUILD_CONFIG,
        description="Setup build system integration",
        required=False,
        operation_ref="pvsneslib_build_config",
        parameters={
            "action": "build_config",
            "generate_scripts": True,
            "setup_vscode": True,
            "setup_ci": False,
        },
    ),
    StepDefinition(
        name=INIT_PROJECT,
        description="Create starter SNES project",
        required=False,
        operation_ref="pvsneslib_init",
        parameters={"action": "init"},
    ),
)


def get_step_catalog() -> Tuple[StepDefinition, ...]:
    """Return the static step catalog."""
    return STEP_CATALOG


def step_names(catalog: Iterable[StepDefinition]) -> List[str]:
    return [step.name for step in catalog]
