"""
The bootstrap orchestrator: a resumable, strictly sequential step runner.

Per step: ``pending -> skipped | running -> completed | failed``.
Per run: ``not_started -> in_progress -> succeeded | aborted``.

Progress is persisted after every successful step so an interrupted or
failed run can be resumed; the record is cleared once a run succeeds.
A failing required step aborts the run. A failing optional step is
recorded and reported but does not affect overall success.

Usage::

    from snesdev.orchestrator import Orchestrator

    orchestrator = Orchestrator(StepExecutor(registry))
    report = orchestrator.run(RunRequest(project_name="my-snes-game"))
    print(render(report))
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from snesdev.catalog import INIT_PROJECT, STEP_CATALOG
from snesdev.config import get_config
from snesdev.customizer import customize
from snesdev.executor import StepExecutor
from snesdev.logger import BootstrapLogger
from snesdev.models import (
    RunReport,
    RunRequest,
    RunState,
    RunStatus,
    StepDefinition,
    StepRecord,
    StepStatus,
)
from snesdev.reporter import build_next_steps, build_troubleshooting
from snesdev.state import RunKey, StateRepository
from snesdev.telemetry import add_span_event, get_tracer, record_step_result

__all__ = ["Orchestrator", "run_bootstrap"]

logger = logging.getLogger(__name__)

# Outcome metadata forwarded as parameters to later steps
ENVIRONMENT_FILE = "environment_file"
PROJECT_PATH = "project_path"


class _Run:
    """Mutable bookkeeping for one run; never escapes the orchestrator."""

    def __init__(self, request: RunRequest, steps: Sequence[StepDefinition], key: RunKey):
        self.request = request
        self.steps = steps
        self.key = key
        self.status = RunStatus.NOT_STARTED
        self.records: Dict[str, StepRecord] = {
            step.name: StepRecord(
                name=step.name, description=step.description, required=step.required
            )
            for step in steps
        }
        self.completed: List[str] = []
        self.environment_file = ""
        self.project_path: Optional[str] = None
        self.failure_message: Optional[str] = None

    def transition(self, status: RunStatus) -> None:
        logger.debug("Run %s: %s -> %s", self.key.slug, self.status.value, status.value)
        self.status = status

    def update(self, name: str, **changes: Any) -> StepRecord:
        record = replace(self.records[name], **changes)
        self.records[name] = record
        return record

    def mark_done(self, name: str) -> None:
        if name not in self.completed:
            self.completed.append(name)

    def carried_parameters(self) -> Dict[str, Any]:
        carried: Dict[str, Any] = {}
        if self.environment_file:
            carried[ENVIRONMENT_FILE] = self.environment_file
        return carried

    def to_state(self) -> RunState:
        return RunState(
            install_prefix=str(self.request.install_prefix),
            project_name=self.request.project_name,
            completed_step_names=list(self.completed),
            environment_file_path=self.environment_file,
        )


class Orchestrator:
    """
    Walks a customized step catalog against persisted run state.

    Args:
        executor: Boundary to the provisioning collaborators
        repository: Run state persistence (file-based by default)
        catalog: Step catalog; the static catalog by default
        clock: Monotonic clock used for durations
        cwd: Directory the starter project is created in
    """

    def __init__(
        self,
        executor: StepExecutor,
        repository: Optional[StateRepository] = None,
        catalog: Optional[Sequence[StepDefinition]] = None,
        clock: Callable[[], float] = time.monotonic,
        cwd: Optional[Path] = None,
    ):
        self.executor = executor
        self.repository = repository or StateRepository()
        self.catalog = tuple(catalog) if catalog is not None else STEP_CATALOG
        self.clock = clock
        self.cwd = cwd

    def run(self, request: RunRequest) -> RunReport:
        """
        Execute a bootstrap run.

        Raises:
            RunInProgressError: another run holds the lock for this target
        """
        started = self.clock()
        steps = customize(self.catalog, request)
        key = RunKey(request.install_prefix, request.project_name)
        events = BootstrapLogger(
            project=request.project_name,
            install_prefix=str(request.install_prefix),
            service_name=get_config().service_name,
        )

        with self.repository.lock(key):
            tracer = get_tracer()
            with tracer.start_as_current_span(
                "bootstrap.run",
                attributes={
                    "bootstrap.project": request.project_name,
                    "bootstrap.install_prefix": str(request.install_prefix),
                    "bootstrap.force_reinstall": request.force_reinstall,
                    "bootstrap.total_steps": len(steps),
                },
            ) as span:
                run = _Run(request, steps, key)
                self._restore(run, events)
                events.run_started(len(steps), request.force_reinstall)
                run.transition(RunStatus.IN_PROGRESS)

                for step in steps:
                    if not self._run_step(run, step, events):
                        break

                if run.status == RunStatus.IN_PROGRESS:
                    run.transition(RunStatus.SUCCEEDED)
                    self.repository.clear(key)

                report = self._build_report(run, self.clock() - started)
                span.set_attribute("bootstrap.status", run.status.value)
                span.set_attribute("bootstrap.completed_steps", report.completed_count)

        events.run_finished(
            run.status.value, report.completed_count, report.total_count, report.elapsed_seconds
        )
        return report

    def _restore(self, run: _Run, events: BootstrapLogger) -> None:
        if run.request.force_reinstall:
            logger.debug("Force reinstall: ignoring any recorded progress")
            return

        state = self.repository.load(run.key)
        if state is None:
            if run.request.resume_from_failure:
                logger.info("No previous bootstrap attempt found; starting from scratch")
            return

        known = {step.name for step in run.steps}
        stale = [name for name in state.completed_step_names if name not in known]
        if stale:
            logger.debug("Ignoring recorded steps not in the catalog: %s", ", ".join(stale))
        run.completed = [name for name in state.completed_step_names if name in known]
        run.environment_file = state.environment_file_path

        if run.completed:
            events.run_resumed(len(run.completed), state.last_updated)

    def _run_step(self, run: _Run, step: StepDefinition, events: BootstrapLogger) -> bool:
        """Drive one step to a terminal status. Returns False when the run aborts."""
        parameters = dict(step.parameters)
        for name, value in run.carried_parameters().items():
            parameters.setdefault(name, value)

        if not run.request.force_reinstall:
            recorded = step.name in run.completed
            satisfied = self.executor.probe(step.operation_ref, parameters)

            if recorded and satisfied is not False:
                self._skip(run, step, "already completed", events)
                return True
            if recorded:
                events.step_stale(step.name, step.description)
                run.completed.remove(step.name)
                self._persist(run)
            elif satisfied:
                run.mark_done(step.name)
                self._skip(run, step, "already satisfied", events)
                self._persist(run)
                return True

        run.update(step.name, status=StepStatus.RUNNING)
        events.step_started(step.name, step.description)

        step_started = self.clock()
        with get_tracer().start_as_current_span(
            "bootstrap.step",
            attributes={
                "step.name": step.name,
                "step.operation": step.operation_ref,
                "step.required": step.required,
            },
        ) as span:
            outcome = self.executor.execute(step.operation_ref, parameters)
            span.set_attribute("step.success", outcome.success)
        duration = self.clock() - step_started

        if outcome.success:
            run.update(
                step.name,
                status=StepStatus.COMPLETED,
                metadata=outcome.metadata,
                duration_seconds=duration,
            )
            run.mark_done(step.name)
            self._capture_metadata(run, step, outcome.metadata)
            events.step_completed(step.name, step.description, duration)
            record_step_result(step.name, StepStatus.COMPLETED.value, step.required)
            self._persist(run)
            return True

        error = outcome.error_message or "Unknown error occurred"
        run.update(
            step.name,
            status=StepStatus.FAILED,
            error_message=error,
            metadata=outcome.metadata,
            duration_seconds=duration,
        )
        events.step_failed(step.name, step.description, error, step.required)
        record_step_result(step.name, StepStatus.FAILED.value, step.required)

        if step.required:
            run.failure_message = f"Required step failed: {step.name} ({error})"
            run.transition(RunStatus.ABORTED)
            return False
        return True

    def _skip(self, run: _Run, step: StepDefinition, reason: str, events: BootstrapLogger) -> None:
        run.update(step.name, status=StepStatus.SKIPPED, note=reason)
        events.step_skipped(step.name, step.description, reason)
        add_span_event("bootstrap.step.skipped", {"step.name": step.name, "reason": reason})
        record_step_result(step.name, StepStatus.SKIPPED.value, step.required)
        if step.name == INIT_PROJECT:
            self._capture_metadata(run, step, {})

    def _capture_metadata(
        self, run: _Run, step: StepDefinition, metadata: Mapping[str, Any]
    ) -> None:
        environment_file = metadata.get(ENVIRONMENT_FILE)
        if environment_file:
            run.environment_file = str(environment_file)
        if step.name == INIT_PROJECT:
            project_path = metadata.get(PROJECT_PATH)
            if not project_path:
                project_path = (self.cwd or Path.cwd()) / run.request.project_name
            run.project_path = str(project_path)

    def _persist(self, run: _Run) -> None:
        try:
            self.repository.save(run.key, run.to_state())
        except OSError as e:
            logger.warning("Could not save bootstrap state: %s", e)

    def _build_report(self, run: _Run, elapsed: float) -> RunReport:
        records = tuple(run.records[step.name] for step in run.steps)
        success = run.status == RunStatus.SUCCEEDED and all(
            record.is_done for record in records if record.required
        )
        optional_failures = [
            r for r in records if not r.required and r.status == StepStatus.FAILED
        ]

        if success:
            next_steps = build_next_steps(run.environment_file, run.project_path, optional_failures)
            troubleshooting: List[str] = []
        else:
            next_steps = []
            troubleshooting = build_troubleshooting(records, run.failure_message)

        return RunReport(
            success=success,
            status=run.status,
            project_name=run.request.project_name,
            install_prefix=str(run.request.install_prefix),
            steps=records,
            completed_count=sum(1 for record in records if record.is_done),
            total_count=len(records),
            environment_file=run.environment_file,
            project_path=run.project_path,
            next_steps=tuple(next_steps),
            troubleshooting=tuple(troubleshooting),
            failure_message=run.failure_message,
            elapsed_seconds=elapsed,
        )


def run_bootstrap(
    request: RunRequest,
    executor: StepExecutor,
    repository: Optional[StateRepository] = None,
) -> RunReport:
    """Run the default catalog for a request."""
    return Orchestrator(executor, repository=repository).run(request)
