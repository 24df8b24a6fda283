"""
Per-run customization of the step catalog.

``customize`` is a pure transform: it returns new StepDefinition objects
carrying the request's parameters and never touches the input catalog,
so concurrent runs in one process cannot leak settings into each other.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from snesdev.catalog import BUILD_CONFIG, INIT_PROJECT, INSTALL_SDK
from snesdev.models import RunRequest, StepDefinition

__all__ = ["customize"]

logger = logging.getLogger(__name__)

# Returns the extra parameters and the required flag for a step, or None to drop it.
_Rule = Callable[[StepDefinition, RunRequest], Optional[Tuple[Dict[str, Any], bool]]]


def _run_context(request: RunRequest) -> Dict[str, Any]:
    return {
        "install_prefix": str(request.install_prefix),
        "project_name": request.project_name,
        "non_interactive": request.non_interactive,
    }


def _install_sdk(step: StepDefinition, request: RunRequest):
    params = {
        "version": request.sdk_version,
        "install_path": str(request.install_prefix),
        "offline": request.offline_mode,
        "archive_path": str(request.offline_sdk_path) if request.offline_sdk_path else None,
        "force_reinstall": request.force_reinstall,
    }
    return params, step.required


def _build_config(step: StepDefinition, request: RunRequest):
    params = {
        "setup_vscode": not request.skip_ide,
        "setup_ci": not request.skip_ci,
    }
    # Helper scripts are still generated, so the step stays in the catalog.
    required = step.required and not (request.skip_ide and request.skip_ci)
    return params, required


def _init_project(step: StepDefinition, request: RunRequest):
    if not request.create_starter_project:
        return None
    params = {
        "project_name": request.project_name,
        "create_directories": True,
        "generate_makefile": True,
        "generate_main": True,
    }
    return params, step.required


_RULES: Dict[str, _Rule] = {
    INSTALL_SDK: _install_sdk,
    BUILD_CONFIG: _build_config,
    INIT_PROJECT: _init_project,
}


def _merged(*parts: Mapping[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for part in parts:
        merged.update(part)
    return merged


def customize(
    catalog: Iterable[StepDefinition], request: RunRequest
) -> Tuple[StepDefinition, ...]:
    """
    Apply a request to a catalog, returning a new catalog.

    - Run context (install prefix, project name, non-interactive) is added
      to every step's parameters.
    - Version pin, install path and offline source go to the SDK install step.
    - Opting out of a step's features demotes it to optional; opting out of
      all of them drops it.
    - ``request.step_overrides`` is merged last. Overrides naming steps that
      are not in the catalog are ignored.

    Steps are never added or reordered.
    """
    catalog = tuple(catalog)
    known = {step.name for step in catalog}
    for name in request.step_overrides:
        if name not in known:
            logger.debug("Ignoring parameters for unknown step %s", name)

    context = _run_context(request)
    customized = []
    for step in catalog:
        extra: Dict[str, Any] = {}
        required = step.required

        rule = _RULES.get(step.name)
        if rule is not None:
            result = rule(step, request)
            if result is None:
                logger.debug("Dropping step %s (all features skipped)", step.name)
                continue
            extra, required = result

        parameters = _merged(
            step.parameters,
            context,
            extra,
            request.step_overrides.get(step.name) or {},
        )
        customized.append(replace(step, parameters=parameters, required=required))

    return tuple(customized)
